# linkcheck.py - bounded concurrent reachability probe
from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Dict, List, Optional, Sequence

import httpx

from .errors import FetchError
from .models import LinkProbeResult
from .utils import USER_AGENT, host_of

log = logging.getLogger(__name__)

CANCELLED = "context cancelled"
DEFAULT_MAX_REDIRECTS = 10

# Raises FetchError when a URL must not be contacted
Guard = Callable[[str], Awaitable[None]]


def make_probe_client() -> httpx.AsyncClient:
    """
    Client for HEAD probes. httpx's own timeouts are disabled: the checker
    enforces its per-probe timeout and the caller's deadline itself.
    """
    return httpx.AsyncClient(
        headers={"User-Agent": USER_AGENT},
        timeout=None,
        follow_redirects=False,
    )


class LinkChecker:
    """
    Probe URLs with HEAD under two caps: `global_limit` probes overall and
    `per_host_limit` probes per hostname. Each probe, redirects included,
    is bounded by `timeout` seconds and by the caller's deadline.

    Redirects are followed up to `max_redirects`; when `guard` is given it
    runs before every hop.
    """

    def __init__(
        self,
        global_limit: int = 10,
        per_host_limit: int = 2,
        timeout: float = 15.0,
        client: Optional[httpx.AsyncClient] = None,
        guard: Optional[Guard] = None,
        max_redirects: int = DEFAULT_MAX_REDIRECTS,
    ):
        if global_limit < 1 or per_host_limit < 1:
            raise ValueError("concurrency limits must be positive")
        self.global_limit = global_limit
        self.per_host_limit = per_host_limit
        self.timeout = float(timeout)
        self.guard = guard
        self.max_redirects = max_redirects
        self._owns_client = client is None
        self.client = client or make_probe_client()

    async def aclose(self) -> None:
        if self._owns_client:
            await self.client.aclose()

    async def _head(self, url: str) -> httpx.Response:
        current = url
        redirects = 0
        while True:
            if self.guard is not None:
                await self.guard(current)
            resp = await self.client.head(
                current, headers={"User-Agent": USER_AGENT}, follow_redirects=False
            )
            if resp.next_request is None:
                return resp
            if redirects >= self.max_redirects:
                raise httpx.TooManyRedirects(
                    f"stopped after {self.max_redirects} redirects", request=resp.request
                )
            current = str(resp.next_request.url)
            redirects += 1

    async def _probe(self, url: str, deadline: Optional[float]) -> LinkProbeResult:
        loop = asyncio.get_running_loop()
        probe_deadline = loop.time() + self.timeout
        # the caller's deadline binds before our own per-probe timeout
        caller_bound = deadline is not None and deadline <= probe_deadline
        if caller_bound:
            probe_deadline = deadline

        try:
            async with asyncio.timeout_at(probe_deadline):
                resp = await self._head(url)
        except TimeoutError:
            if caller_bound:
                return LinkProbeResult(url=url, error=CANCELLED)
            return LinkProbeResult(url=url, error=f"timeout after {self.timeout:g}s")
        except FetchError as e:
            log.warning("[linkcheck] refused url=%s kind=%s err=%s", url, e.kind, e)
            return LinkProbeResult(url=url, error=str(e))
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            log.error("[linkcheck] probe failed url=%s err=%s", url, e)
            return LinkProbeResult(url=url, error=str(e) or e.__class__.__name__)

        ok = 200 <= resp.status_code < 400
        log.debug("[linkcheck] validated url=%s status=%d ok=%s", url, resp.status_code, ok)
        return LinkProbeResult(url=url, accessible=ok, status_code=resp.status_code)

    async def _worker(
        self,
        i: int,
        url: str,
        results: List[LinkProbeResult],
        global_sem: asyncio.BoundedSemaphore,
        host_sems: Dict[str, asyncio.BoundedSemaphore],
        deadline: Optional[float],
    ) -> None:
        try:
            async with asyncio.timeout_at(deadline):
                await global_sem.acquire()
        except TimeoutError:
            log.warning("[linkcheck] cancelled waiting for global slot url=%s", url)
            results[i] = LinkProbeResult(url=url, error=CANCELLED)
            return

        try:
            host = host_of(url)
            host_sem = host_sems.setdefault(host, asyncio.BoundedSemaphore(self.per_host_limit))
            try:
                async with asyncio.timeout_at(deadline):
                    await host_sem.acquire()
            except TimeoutError:
                log.warning("[linkcheck] cancelled waiting for host slot url=%s host=%s", url, host)
                results[i] = LinkProbeResult(url=url, error=CANCELLED)
                return

            try:
                results[i] = await self._probe(url, deadline)
            finally:
                host_sem.release()
        finally:
            global_sem.release()

    async def validate(self, urls: Sequence[str], deadline: Optional[float] = None) -> List[LinkProbeResult]:
        """
        Probe every URL and return results in input order.

        `deadline` is an absolute event loop time; probes still waiting for
        a slot or in flight when it passes are reported with
        error="context cancelled".
        """
        results = [LinkProbeResult(url=u) for u in urls]
        if not urls:
            return results

        global_sem = asyncio.BoundedSemaphore(self.global_limit)
        host_sems: Dict[str, asyncio.BoundedSemaphore] = {}

        await asyncio.gather(*(
            self._worker(i, u, results, global_sem, host_sems, deadline)
            for i, u in enumerate(urls)
        ))
        return results
