# models.py - records passed between the analysis stages
from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List

HEADING_LEVELS = ("h1", "h2", "h3", "h4", "h5", "h6")


def empty_headings() -> Dict[str, int]:
    return {tag: 0 for tag in HEADING_LEVELS}


# -------------------------------------------------------------------
# Public report
# -------------------------------------------------------------------

@dataclass
class AnalyzeParams:
    url: str
    fetch_timeout_seconds: int = 0


@dataclass
class AnalyzeResult:
    """
    The report returned for one analyzed page.

    Always fully populated: a failed stage leaves zero values behind and
    explains itself in `errors`.
    """
    url: str
    html_version: str = ""
    title: str = ""
    headings: Dict[str, int] = field(default_factory=empty_headings)
    links_internal: int = 0
    links_external: int = 0
    links_inaccessible: int = 0
    login_form_present: bool = False
    warnings: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


# -------------------------------------------------------------------
# Internal records
# -------------------------------------------------------------------

@dataclass
class ParsedPage:
    html_version: str = "unknown"
    title: str = ""
    headings: Dict[str, int] = field(default_factory=empty_headings)
    # absolute URLs, source order, duplicates kept
    links: List[str] = field(default_factory=list)
    login_form_present: bool = False


@dataclass
class LinkProbeResult:
    url: str
    accessible: bool = False
    status_code: int = 0
    error: str = ""
