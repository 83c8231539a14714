# errors.py - typed failures raised by the analysis core
from __future__ import annotations


class PageAnalyzerError(Exception):
    """Base class; `kind` is a stable machine-readable code."""

    kind = "error"

    def __init__(self, message: str = "", kind: str | None = None):
        super().__init__(message or self.__class__.__doc__ or self.kind)
        if kind:
            self.kind = kind


# -----------------------------------------------------------
# Input validation
# -----------------------------------------------------------

class InvalidURLError(PageAnalyzerError):
    """URL rejected before any work is done."""

    kind = "invalid-url"


# -----------------------------------------------------------
# Fetch stage
# -----------------------------------------------------------

class FetchError(PageAnalyzerError):
    kind = "fetch-error"


class UnsupportedSchemeError(FetchError):
    kind = "unsupported-scheme"


class ResolutionError(FetchError):
    kind = "resolution-failed"


class SSRFBlockedError(FetchError):
    kind = "ssrf-blocked"

    def __init__(self, message: str = "refusing to fetch private address"):
        super().__init__(message)


class RequestBuildError(FetchError):
    kind = "request-build-failed"


class TransportError(FetchError):
    kind = "transport-error"


# -----------------------------------------------------------
# After fetch
# -----------------------------------------------------------

class UpstreamStatusError(PageAnalyzerError):
    kind = "upstream-status"

    def __init__(self, status_code: int):
        self.status_code = status_code
        super().__init__(f"upstream returned {status_code}")


class ParseError(PageAnalyzerError):
    kind = "parse-error"
