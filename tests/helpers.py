"""Fake upstreams (httpx.MockTransport or a loopback server) and a resolver that never touches DNS."""

import asyncio
from contextlib import asynccontextmanager
from typing import Callable, Dict, List, Optional

import httpx

PUBLIC_IP = "93.184.216.34"


def make_resolver(table: Optional[Dict[str, List[str]]] = None, default: Optional[List[str]] = None):
    """Resolver returning `table[host]`, else `default` (a public address)."""
    table = table or {}
    default = default if default is not None else [PUBLIC_IP]

    async def resolve(host: str) -> List[str]:
        if host in table:
            return table[host]
        return list(default)

    return resolve


def mock_client(handler: Callable) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def html_page(body: str, status_code: int = 200, headers: Optional[Dict[str, str]] = None) -> httpx.Response:
    hdrs = {"Content-Type": "text/html; charset=utf-8"}
    hdrs.update(headers or {})
    return httpx.Response(status_code, content=body.encode("utf-8"), headers=hdrs)


@asynccontextmanager
async def loopback_server(delay: float, status_line: bytes = b"HTTP/1.1 200 OK"):
    """Real HTTP server on 127.0.0.1 that waits `delay` seconds before answering."""

    async def handle(reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        try:
            await reader.readuntil(b"\r\n\r\n")
            await asyncio.sleep(delay)
            writer.write(status_line + b"\r\nContent-Length: 0\r\nConnection: close\r\n\r\n")
            await writer.drain()
        except (asyncio.IncompleteReadError, ConnectionError):
            pass
        finally:
            writer.close()

    server = await asyncio.start_server(handle, "127.0.0.1", 0)
    port = server.sockets[0].getsockname()[1]
    try:
        yield f"http://127.0.0.1:{port}/"
    finally:
        server.close()
        await server.wait_closed()
