# page_analyzer/app/main.py

from __future__ import annotations

import logging
import time
from contextlib import asynccontextmanager
from typing import Optional

import httpx
from fastapi import FastAPI, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse, Response
from starlette.exceptions import HTTPException as StarletteHTTPException

from page_analyzer import __version__
from page_analyzer.core.errors import InvalidURLError
from page_analyzer.core.fetcher import Fetcher

from .metrics import observe_request, render_latest
from .schemas import AnalyzeRequest, AnalyzeResponse, ErrorResponse
from .service import build_analyzer, build_fetcher, build_probe_client, run_analysis
from .settings import Settings, load_settings

log = logging.getLogger("page_analyzer.api")


# ---------------------------------------------------------------------------
# Error bodies: always {"error": "..."}
# ---------------------------------------------------------------------------

def _validation_message(exc: RequestValidationError) -> str:
    parts = []
    for err in exc.errors():
        if err.get("type") == "json_invalid":
            return "invalid JSON"
        loc = ".".join(str(x) for x in err.get("loc", ()) if x != "body")
        parts.append(f"{loc}: {err.get('msg')}" if loc else str(err.get("msg")))
    return "; ".join(parts) or "invalid request"


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse({"error": _validation_message(exc)}, status_code=status.HTTP_400_BAD_REQUEST)


async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return JSONResponse({"error": str(exc.detail)}, status_code=exc.status_code, headers=exc.headers)


# ---------------------------------------------------------------------------
# App factory
# ---------------------------------------------------------------------------

def create_app(
    settings: Optional[Settings] = None,
    fetcher: Optional[Fetcher] = None,
    probe_client: Optional[httpx.AsyncClient] = None,
) -> FastAPI:
    """
    Build the API. `fetcher` and `probe_client` are created at startup
    (and closed at shutdown) unless supplied by the caller.
    """
    settings = settings or load_settings()
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        f = fetcher or build_fetcher(settings)
        pc = probe_client or build_probe_client()
        app.state.analyzer = build_analyzer(settings, f, pc)
        log.info(
            "analyzer ready (timeout=%ss, max_redirects=%d, max_bytes=%d, allow_private=%s)",
            settings.fetch_timeout_seconds, settings.fetch_max_redirects,
            settings.fetch_max_bytes, f.allow_local,
        )
        try:
            yield
        finally:
            if fetcher is None:
                await f.aclose()
            if probe_client is None:
                await pc.aclose()

    app = FastAPI(title="Page Analyzer API", version=__version__, lifespan=lifespan)
    app.state.settings = settings

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=settings.allowed_origins != ["*"],
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
    )

    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_error_handler)

    @app.middleware("http")
    async def log_and_measure(request: Request, call_next):
        start = time.perf_counter()
        status_code = 500
        try:
            response = await call_next(request)
            status_code = response.status_code
            return response
        finally:
            duration = time.perf_counter() - start
            log.info(
                "request completed method=%s path=%s status=%d duration_ms=%d remote_addr=%s",
                request.method, request.url.path, status_code, int(duration * 1000),
                request.client.host if request.client else "unknown",
            )
            observe_request(request.url.path, request.method, status_code, duration)

    # -----------------------------------------------------------------------
    # Routes
    # -----------------------------------------------------------------------

    @app.post(
        "/api/analyze",
        response_model=AnalyzeResponse,
        responses={400: {"model": ErrorResponse}, 502: {"model": AnalyzeResponse}},
    )
    async def analyze(req: AnalyzeRequest, request: Request) -> JSONResponse:
        log.info("[/api/analyze] url=%r timeout=%s", req.url, req.timeout_seconds)
        try:
            code, result = await run_analysis(
                request.app.state.analyzer, req, settings.request_timeout_seconds
            )
        except InvalidURLError as e:
            log.info("[/api/analyze] rejected url=%r kind=%s", req.url, e.kind)
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

        log.info(
            "[/api/analyze] %s (url=%s, errors=%d)",
            "OK" if code == 200 else "FAILED", result.url, len(result.errors),
        )
        return JSONResponse(result.to_dict(), status_code=code)

    @app.get("/healthz", response_class=PlainTextResponse)
    def healthz() -> str:
        return "ok"

    @app.get("/metrics")
    def metrics() -> Response:
        payload, content_type = render_latest()
        return Response(content=payload, media_type=content_type)

    return app


app = create_app()
