# urlcheck.py - accept/reject user supplied URLs and return their canonical form
from __future__ import annotations

import ipaddress
import logging
import re
from urllib.parse import urlsplit, urlunsplit

from .errors import InvalidURLError
from .utils import norm_url

log = logging.getLogger(__name__)

MAX_URL_LENGTH = 2048

CONTROL_RE = re.compile(r"[\x00-\x1f\x7f]")
SCHEME_RE = re.compile(r"^([A-Za-z][A-Za-z0-9+.\-]*):")
PORT_RE = re.compile(r"^[0-9]+$")
BAD_HOST_CHARS_RE = re.compile(r"[\s<>\"{}|\\^`]")


def _looks_like_host(head: str) -> bool:
    """True for an IPv4 literal, a bracketed IPv6, a dotted name or localhost."""
    if head.startswith("["):
        return True
    host = head.rpartition("@")[2].partition(":")[0]
    if not host:
        return False
    try:
        ipaddress.IPv4Address(host)
        return True
    except ValueError:
        pass
    return "." in host or host.lower() == "localhost"


def _has_scheme(raw: str) -> bool:
    if "://" in raw:
        return True
    m = SCHEME_RE.match(raw)
    if not m:
        return False
    # "localhost:8080/x" is a host with a port, not a scheme
    rest = re.split(r"[/?#]", raw[m.end():], maxsplit=1)[0]
    return not PORT_RE.match(rest)


def _with_default_scheme(raw: str) -> str:
    if _has_scheme(raw):
        return raw
    head = re.split(r"[/?#]", raw, maxsplit=1)[0]
    if _looks_like_host(head):
        return "https://" + raw
    return raw


def _split_port(netloc: str) -> str:
    """Return the raw port text of a netloc ('' when absent)."""
    hostport = netloc.rpartition("@")[2]
    if hostport.startswith("["):
        tail = hostport[hostport.find("]") + 1:]
        return tail[1:] if tail.startswith(":") else tail
    return hostport.partition(":")[2]


def validate_url(raw: str) -> str:
    """
    Validate `raw` and return the canonical URL that the rest of the
    pipeline (and the report) uses.

    Raises InvalidURLError with one of the kinds: empty, too-long,
    control-chars, parse-error, bad-scheme, bad-host, userinfo-present,
    bad-port.
    """
    s = (raw or "").strip()
    if not s:
        raise InvalidURLError("url is required", kind="empty")
    if len(s) > MAX_URL_LENGTH:
        raise InvalidURLError(f"url exceeds {MAX_URL_LENGTH} characters", kind="too-long")
    if CONTROL_RE.search(s):
        raise InvalidURLError("url contains control characters", kind="control-chars")

    s = _with_default_scheme(s)

    try:
        parts = urlsplit(s)
        hostname = parts.hostname
    except ValueError as e:
        raise InvalidURLError(f"url could not be parsed: {e}", kind="parse-error") from e

    scheme = parts.scheme.lower()
    if scheme not in ("http", "https"):
        raise InvalidURLError("please provide a valid http(s) URL", kind="bad-scheme")

    if not hostname or BAD_HOST_CHARS_RE.search(hostname):
        raise InvalidURLError("url has no valid host", kind="bad-host")

    if "@" in parts.netloc:
        raise InvalidURLError("credentials in url are not allowed", kind="userinfo-present")

    port = _split_port(parts.netloc)
    if port:
        if not PORT_RE.match(port) or not 1 <= int(port) <= 65535:
            raise InvalidURLError(f"invalid port: {port}", kind="bad-port")

    host = hostname.lower()
    if ":" in host:
        host = f"[{host}]"
    else:
        try:
            host = host.encode("idna").decode("ascii")
        except UnicodeError as e:
            raise InvalidURLError(f"url has no valid host: {e}", kind="bad-host") from e
    netloc = f"{host}:{port}" if port else host

    # only path, query and fragment are taken from the quoted form
    quoted = urlsplit(norm_url(urlunsplit((scheme, "host.invalid", parts.path, parts.query, parts.fragment))))
    path = quoted.path if parts.path else ""
    canonical = urlunsplit((scheme, netloc, path, quoted.query, quoted.fragment))
    log.debug("[urlcheck] accepted %r as %s", raw, canonical)
    return canonical
