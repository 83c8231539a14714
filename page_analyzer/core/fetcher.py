# fetcher.py - one-shot bounded GET with an SSRF guard
from __future__ import annotations

import asyncio
import ipaddress
import logging
import socket
from dataclasses import dataclass
from typing import AsyncIterator, Awaitable, Callable, List, Optional
from urllib.parse import urlsplit

import httpx

from .errors import (
    RequestBuildError,
    ResolutionError,
    SSRFBlockedError,
    TransportError,
    UnsupportedSchemeError,
)
from .utils import USER_AGENT

log = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0
HEADER_TIMEOUT = 30.0
DEFAULT_MAX_REDIRECTS = 5
DEFAULT_MAX_BYTES = 4 << 20

Resolver = Callable[[str], Awaitable[List[str]]]


# -----------------------------------------------------------
# Address checks
# -----------------------------------------------------------

async def system_resolve(host: str) -> List[str]:
    loop = asyncio.get_running_loop()
    infos = await loop.getaddrinfo(host, None, type=socket.SOCK_STREAM)
    return [info[4][0] for info in infos]


def is_public_address(addr: str) -> bool:
    try:
        ip = ipaddress.ip_address(addr.split("%", 1)[0])
    except ValueError:
        return False
    if isinstance(ip, ipaddress.IPv6Address) and ip.ipv4_mapped is not None:
        ip = ip.ipv4_mapped
    return not (
        ip.is_loopback
        or ip.is_private
        or ip.is_link_local
        or ip.is_multicast
        or ip.is_unspecified
        or ip.is_reserved
    )


# -----------------------------------------------------------
# Bounded body
# -----------------------------------------------------------

class BoundedBody:
    """
    Reader over a streamed response body that yields at most `max_bytes`.

    Reads past the cap return b"" as if the body had ended. `truncated`
    turns True once bytes beyond the cap were seen. Reads stop with a
    TransportError when `deadline` (event loop time) passes.
    """

    def __init__(self, response: httpx.Response, max_bytes: int, deadline: Optional[float] = None):
        self._response = response
        self._chunks: AsyncIterator[bytes] = response.aiter_bytes()
        self._buffer = b""
        self._remaining = max_bytes
        self._exhausted = False
        self.deadline = deadline
        self.truncated = False

    async def _next_chunk(self) -> bytes:
        while True:
            try:
                chunk = await self._chunks.__anext__()
            except StopAsyncIteration:
                self._exhausted = True
                return b""
            if chunk:
                return chunk

    async def _read(self, n: int) -> bytes:
        out = bytearray()
        while self._remaining > 0 and (n < 0 or len(out) < n):
            if not self._buffer:
                if self._exhausted:
                    break
                self._buffer = await self._next_chunk()
                if not self._buffer:
                    break
            want = self._remaining if n < 0 else min(self._remaining, n - len(out))
            piece, self._buffer = self._buffer[:want], self._buffer[want:]
            out += piece
            self._remaining -= len(piece)

        if self._remaining == 0 and not self.truncated:
            if not self._buffer and not self._exhausted:
                self._buffer = await self._next_chunk()
            if self._buffer:
                self.truncated = True
                self._buffer = b""
        return bytes(out)

    async def read(self, n: int = -1) -> bytes:
        """Read up to n bytes (everything up to the cap when n < 0)."""
        try:
            async with asyncio.timeout_at(self.deadline):
                return await self._read(n)
        except TimeoutError as e:
            raise TransportError("timeout while reading response body") from e
        except httpx.HTTPError as e:
            raise TransportError(f"reading response body: {e}") from e

    async def aclose(self) -> None:
        await self._response.aclose()


@dataclass
class FetchResponse:
    url: str
    status_code: int
    headers: httpx.Headers
    body: BoundedBody
    redirects: int = 0
    encoding: Optional[str] = None

    async def aclose(self) -> None:
        await self.body.aclose()

    async def __aenter__(self) -> "FetchResponse":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.aclose()


# -----------------------------------------------------------
# Fetcher
# -----------------------------------------------------------

class Fetcher:
    """
    Safe GET for user supplied URLs.

    Every hop (the first request and each redirect) is resolved and refused
    when any address is loopback, private, link-local, multicast or
    otherwise non-public, unless `allow_local` is set (tests).
    """

    def __init__(
        self,
        timeout: float = DEFAULT_TIMEOUT,
        max_redirects: int = DEFAULT_MAX_REDIRECTS,
        max_bytes: int = DEFAULT_MAX_BYTES,
        allow_local: bool = False,
        client: Optional[httpx.AsyncClient] = None,
        resolver: Optional[Resolver] = None,
    ):
        self.timeout = float(timeout)
        self.max_redirects = int(max_redirects)
        self.max_bytes = int(max_bytes)
        self.allow_local = allow_local
        self.resolver: Resolver = resolver or system_resolve
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(
            headers={"User-Agent": USER_AGENT},
            timeout=httpx.Timeout(self.timeout, read=HEADER_TIMEOUT),
            follow_redirects=False,
        )

    async def aclose(self) -> None:
        if self._owns_client:
            await self.client.aclose()

    async def guard(self, url: str) -> None:
        try:
            parts = urlsplit(url)
            host = parts.hostname
        except ValueError as e:
            raise RequestBuildError(f"parsing {url}: {e}") from e
        if parts.scheme not in ("http", "https"):
            raise UnsupportedSchemeError(f"unsupported scheme: {parts.scheme!r}")
        if not host:
            raise RequestBuildError(f"no host in url: {url}")

        try:
            addrs = await self.resolver(host)
        except OSError as e:
            raise ResolutionError(f"lookup {host}: {e}") from e
        if not addrs:
            raise ResolutionError(f"lookup {host}: no addresses")

        if self.allow_local:
            return
        for addr in addrs:
            if not is_public_address(addr):
                log.warning("[fetch] blocked fetch to private address host=%s ip=%s", host, addr)
                raise SSRFBlockedError()

    def _build_request(self, url: str) -> httpx.Request:
        try:
            return self.client.build_request("GET", url, headers={"User-Agent": USER_AGENT})
        except (httpx.InvalidURL, httpx.UnsupportedProtocol, ValueError) as e:
            raise RequestBuildError(f"building request for {url}: {e}") from e

    async def _follow(self, url: str) -> tuple[httpx.Response, int]:
        current = url
        redirects = 0
        response: Optional[httpx.Response] = None
        try:
            while True:
                await self.guard(current)
                request = self._build_request(current)
                log.debug("[fetch] GET %s", current)
                response = await self.client.send(request, stream=True, follow_redirects=False)

                if response.next_request is None:
                    return response, redirects
                if redirects >= self.max_redirects:
                    log.info("[fetch] redirect limit %d reached at %s", self.max_redirects, current)
                    return response, redirects

                current = str(response.next_request.url)
                await response.aclose()
                response = None
                redirects += 1
        except BaseException:
            if response is not None:
                await response.aclose()
            raise

    async def get(self, url: str, deadline: Optional[float] = None) -> FetchResponse:
        """
        GET `url` and return the response with a bounded body.

        `deadline` is an absolute event loop time; the fetcher's own total
        timeout applies on top of it. Non-2xx statuses are returned, not
        raised. The caller must close the result.
        """
        loop = asyncio.get_running_loop()
        own_deadline = loop.time() + self.timeout
        deadline = own_deadline if deadline is None else min(deadline, own_deadline)

        try:
            async with asyncio.timeout_at(deadline):
                response, redirects = await self._follow(url)
        except TimeoutError as e:
            log.error("[fetch] timeout url=%s", url)
            raise TransportError(f"timeout fetching {url}") from e
        except httpx.HTTPError as e:
            log.error("[fetch] failed url=%s err=%s", url, e)
            raise TransportError(str(e) or e.__class__.__name__) from e

        log.debug("[fetch] completed url=%s status=%s redirects=%d", url, response.status_code, redirects)
        return FetchResponse(
            url=str(response.url),
            status_code=response.status_code,
            headers=response.headers,
            body=BoundedBody(response, self.max_bytes, deadline),
            redirects=redirects,
            encoding=response.charset_encoding,
        )
