# page_analyzer/app/service.py
from __future__ import annotations

from typing import Optional, Tuple

import httpx

from page_analyzer.core.analyzer import Analyzer
from page_analyzer.core.fetcher import Fetcher
from page_analyzer.core.linkcheck import make_probe_client
from page_analyzer.core.models import AnalyzeParams, AnalyzeResult
from page_analyzer.core.urlcheck import validate_url

from .schemas import AnalyzeRequest
from .settings import Settings


def build_fetcher(settings: Settings) -> Fetcher:
    return Fetcher(
        timeout=settings.fetch_timeout_seconds,
        max_redirects=settings.fetch_max_redirects,
        max_bytes=settings.fetch_max_bytes,
        allow_local=settings.allow_private_fetch,
    )


def build_probe_client() -> httpx.AsyncClient:
    return make_probe_client()


def build_analyzer(
    settings: Settings,
    fetcher: Fetcher,
    probe_client: Optional[httpx.AsyncClient] = None,
) -> Analyzer:
    return Analyzer(
        fetcher,
        default_timeout=settings.fetch_timeout_seconds,
        global_limit=settings.linkcheck_concurrency,
        per_host_limit=settings.linkcheck_per_host,
        probe_client=probe_client,
    )


async def run_analysis(
    analyzer: Analyzer,
    req: AnalyzeRequest,
    default_timeout_seconds: int = 0,
) -> Tuple[int, AnalyzeResult]:
    """
    validate -> analyze
    Returns (http_status, result). Raises InvalidURLError for rejected input.
    """
    canonical = validate_url(req.url)
    timeout = req.timeout_seconds or default_timeout_seconds
    result, err = await analyzer.analyze(
        AnalyzeParams(url=canonical, fetch_timeout_seconds=timeout)
    )
    return (502 if err is not None else 200), result
