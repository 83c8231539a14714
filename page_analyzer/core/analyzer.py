# analyzer.py - fetch -> parse -> classify -> validate -> aggregate
from __future__ import annotations

import asyncio
import logging
import time
from typing import List, Optional, Tuple
from urllib.parse import urlsplit

import httpx

from .errors import FetchError, PageAnalyzerError, ParseError, UpstreamStatusError
from .extractor import inspect_page
from .fetcher import Fetcher
from .linkcheck import LinkChecker
from .models import AnalyzeParams, AnalyzeResult
from .utils import same_host

log = logging.getLogger(__name__)


class Analyzer:
    """
    Runs one page analysis end to end.

    The fetcher and the probe client are shared across calls; a LinkChecker
    is built per call from the configured limits.
    """

    def __init__(
        self,
        fetcher: Fetcher,
        default_timeout: float = 30.0,
        global_limit: int = 10,
        per_host_limit: int = 2,
        probe_client: Optional[httpx.AsyncClient] = None,
    ):
        self.fetcher = fetcher
        self.default_timeout = float(default_timeout)
        self.global_limit = global_limit
        self.per_host_limit = per_host_limit
        self.probe_client = probe_client

    def effective_timeout(self, params: AnalyzeParams) -> float:
        if params.fetch_timeout_seconds and params.fetch_timeout_seconds > 0:
            return float(params.fetch_timeout_seconds)
        return self.default_timeout

    def link_checker(self) -> LinkChecker:
        return LinkChecker(
            global_limit=self.global_limit,
            per_host_limit=self.per_host_limit,
            timeout=self.default_timeout / 2,
            client=self.probe_client,
            guard=self.fetcher.guard,
        )

    async def _validate_links(self, links: List[str], deadline: float) -> int:
        checker = self.link_checker()
        try:
            results = await checker.validate(links, deadline)
        finally:
            await checker.aclose()
        return sum(1 for r in results if not r.accessible)

    async def analyze(self, params: AnalyzeParams) -> Tuple[AnalyzeResult, Optional[PageAnalyzerError]]:
        """
        Analyze `params.url` (already canonical).

        Always returns a fully populated result; the second element is the
        error that stopped the pipeline early, or None.
        """
        timeout = self.effective_timeout(params)
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout

        start = time.perf_counter()
        log.info("[analyze] started url=%s timeout=%ss", params.url, timeout)

        res = AnalyzeResult(url=params.url)

        # 1) Fetch
        try:
            fetched = await self.fetcher.get(params.url, deadline)
        except FetchError as e:
            log.error("[analyze] fetch failed url=%s err=%s", params.url, e)
            res.errors.append(str(e))
            return res, e

        async with fetched:
            if not 200 <= fetched.status_code < 400:
                log.warning("[analyze] upstream returned non-2xx url=%s status=%d", params.url, fetched.status_code)
                res.errors.append(f"upstream status: {fetched.status_code}")
                return res, UpstreamStatusError(fetched.status_code)

            if 300 <= fetched.status_code < 400:
                res.warnings.append(
                    f"stopped after {fetched.redirects} redirect(s) with status {fetched.status_code}"
                )

            # 2) Parse
            try:
                body = await fetched.body.read()
                parsed = inspect_page(body, params.url, fetched.encoding)
            except (FetchError, ParseError) as e:
                log.error("[analyze] parse failed url=%s err=%s", params.url, e)
                res.errors.append(str(e))
                return res, e

            if fetched.body.truncated:
                res.warnings.append(f"body truncated at {self.fetcher.max_bytes} bytes")

        res.html_version = parsed.html_version
        res.title = parsed.title
        res.headings = parsed.headings
        res.login_form_present = parsed.login_form_present

        # 3) Classify
        page_host = urlsplit(params.url).netloc
        links: List[str] = []
        for link in parsed.links:
            try:
                host = urlsplit(link).netloc
            except ValueError:
                continue
            links.append(link)
            if same_host(page_host, host):
                res.links_internal += 1
            else:
                res.links_external += 1

        # 4) Validate
        if links:
            log.debug("[analyze] validating links url=%s count=%d", params.url, len(links))
            res.links_inaccessible = await self._validate_links(links, deadline)
            log.info("[analyze] link validation complete url=%s bad_links=%d", params.url, res.links_inaccessible)

        log.info(
            "[analyze] finished url=%s duration_ms=%d title=%r",
            params.url, int((time.perf_counter() - start) * 1000), res.title,
        )
        return res, None
