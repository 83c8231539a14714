# page_analyzer/app/settings.py

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from typing import List

log = logging.getLogger(__name__)


@dataclass
class Settings:
    host: str = "0.0.0.0"
    port: int = 8080
    fetch_timeout_seconds: int = 30
    fetch_max_redirects: int = 5
    fetch_max_bytes: int = 4 << 20
    linkcheck_concurrency: int = 10
    linkcheck_per_host: int = 2
    # 0 means "use fetch_timeout_seconds"
    request_timeout_seconds: int = 10
    allow_private_fetch: bool = False
    allowed_origins: List[str] = field(default_factory=lambda: ["*"])
    log_level: str = "INFO"


def _env_int(name: str, default: int, minimum: int) -> int:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        val = int(raw)
    except ValueError:
        log.warning("invalid int for %s=%r, using default %d", name, raw, default)
        return default
    if val < minimum:
        log.warning("%s=%d is below %d, using default %d", name, val, minimum, default)
        return default
    return val


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name, "").strip().lower()
    if not raw:
        return default
    return raw in ("1", "true", "yes", "on")


def load_settings() -> Settings:
    """Read settings from the environment; bad values fall back to defaults."""
    d = Settings()
    origins = [
        o.strip() for o in os.getenv("ALLOWED_ORIGINS", "*").split(",") if o.strip()
    ]
    return Settings(
        host=os.getenv("HOST", d.host).strip() or d.host,
        port=_env_int("PORT", d.port, 1),
        fetch_timeout_seconds=_env_int("FETCH_TIMEOUT_SECONDS", d.fetch_timeout_seconds, 1),
        fetch_max_redirects=_env_int("FETCH_MAX_REDIRECTS", d.fetch_max_redirects, 0),
        fetch_max_bytes=_env_int("FETCH_MAX_BYTES", d.fetch_max_bytes, 1),
        linkcheck_concurrency=_env_int("LINKCHECK_CONCURRENCY", d.linkcheck_concurrency, 1),
        linkcheck_per_host=_env_int("LINKCHECK_PER_HOST", d.linkcheck_per_host, 1),
        request_timeout_seconds=_env_int("REQUEST_TIMEOUT_SECONDS", d.request_timeout_seconds, 0),
        allow_private_fetch=_env_bool("ALLOW_PRIVATE_FETCH", d.allow_private_fetch),
        allowed_origins=origins or ["*"],
        log_level=(os.getenv("LOG_LEVEL", d.log_level).strip() or d.log_level).upper(),
    )
