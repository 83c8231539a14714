from typing import Dict, List, Optional

from pydantic import BaseModel, Field

MAX_TIMEOUT_SECONDS = 3600


class AnalyzeRequest(BaseModel):
    url: str = Field(..., description="Page URL to analyze (scheme optional)")
    timeout_seconds: Optional[int] = Field(
        None, gt=0, le=MAX_TIMEOUT_SECONDS, description="Per-request analysis timeout in seconds"
    )


class AnalyzeResponse(BaseModel):
    url: str
    html_version: str
    title: str
    headings: Dict[str, int]
    links_internal: int
    links_external: int
    links_inaccessible: int
    login_form_present: bool
    warnings: List[str] = Field(default_factory=list)
    errors: List[str] = Field(default_factory=list)


class ErrorResponse(BaseModel):
    error: str
