"""FastAPI app for the Edge Router."""

from __future__ import annotations

import logging
import uuid
from contextlib import asynccontextmanager
from typing import Optional

import httpx
from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse

from .routes import diagnostics as diagnostics_routes
from .routes import health as health_routes
from .routes import proxy as proxy_routes
from .. import config
from ..engine import upstream
from ..errors import EntryDocumentMissing, ReservedPrefix, StaticAssetError, UpstreamError
from ..routing.table import RouteTable, describe, route_table_for_profile
from ..services.static_bundle import StaticBundle
from ..utils.redact import redact_headers, redact_secrets

logger = logging.getLogger(__name__)
# Start-up banner stays at INFO in quiet mode too.
banner_logger = logging.getLogger("edge.banner")


def _request_id(request: Request) -> str:
    return getattr(request.state, "request_id", None) or str(uuid.uuid4())


def _json_error(request: Request, status_code: int, payload: dict[str, object]) -> JSONResponse:
    request_id = _request_id(request)
    payload = {**payload, "request_id": request_id}
    resp = JSONResponse(status_code=status_code, content=payload)
    resp.headers["X-Request-ID"] = request_id
    return resp


def _log_banner(app: FastAPI) -> None:
    state = app.state
    base = f"http://localhost:{state.port}"
    banner_logger.info("%s running on port %s (profile=%s)", state.service_name, state.port, config.EDGE_PROFILE)
    banner_logger.info("Frontend: %s (bundle %s)", base, state.static_bundle.directory)
    for line in describe(state.route_table):
        banner_logger.info("Route: %s", line)
    banner_logger.info("Health Check: %s/health", base)
    if state.verbose:
        banner_logger.info("Debug Backend Test: %s/debug/test-backends", base)
        banner_logger.info("Detailed request logging enabled")


def create_app(
    route_table: Optional[RouteTable] = None,
    *,
    verbose: Optional[bool] = None,
    static_dir: Optional[str] = None,
    port: Optional[int] = None,
    service_name: Optional[str] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> FastAPI:
    """Build the router. The route table is fixed for the lifetime of the app."""
    verbose = config.EDGE_VERBOSE if verbose is None else verbose

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        client = upstream.build_client(transport)
        upstream.set_client(client)
        _log_banner(app)
        try:
            yield
        finally:
            upstream.set_client(None)
            await client.aclose()

    app = FastAPI(title="Edge Router", lifespan=lifespan, docs_url=None, redoc_url=None, openapi_url=None)
    app.state.route_table = route_table if route_table is not None else route_table_for_profile(config.EDGE_PROFILE)
    app.state.verbose = verbose
    app.state.port = port if port is not None else config.PORT
    app.state.service_name = service_name or config.SERVICE_NAME
    app.state.static_bundle = StaticBundle(
        static_dir or config.STATIC_DIR,
        entry_document=config.STATIC_ENTRY_DOCUMENT,
        cache_control=config.STATIC_CACHE_CONTROL,
    )

    @app.middleware("http")
    async def add_request_id(request: Request, call_next):
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        request.state.request_id = request_id
        if verbose:
            client = request.client.host if request.client else "-"
            target = request.url.path + (f"?{request.url.query}" if request.url.query else "")
            logger.info("%s %s - From: %s", request.method, redact_secrets(target), client)
            logger.info("Headers: %s", redact_headers(request.headers.items()))
        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        return response

    @app.exception_handler(UpstreamError)
    async def upstream_error_handler(request: Request, exc: UpstreamError):
        return _json_error(request, exc.status_code, exc.to_payload())

    @app.exception_handler(ReservedPrefix)
    async def reserved_prefix_handler(request: Request, exc: ReservedPrefix):
        return _json_error(request, 502, {"error": exc.message})

    @app.exception_handler(StaticAssetError)
    async def static_asset_handler(request: Request, exc: StaticAssetError):
        logger.error("static_read_error path=%s reason=%s", exc.path, exc.reason)
        return _json_error(request, 500, {"error": "Static asset unavailable", "details": exc.reason})

    @app.exception_handler(EntryDocumentMissing)
    async def entry_document_handler(request: Request, exc: EntryDocumentMissing):
        logger.error("entry_document_missing %s", exc)
        return _json_error(request, 503, {"error": "Frontend not available"})

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException):
        detail = exc.detail if isinstance(exc.detail, str) else "Request failed"
        logger.info("HTTPException %s request_id=%s detail=%s", exc.status_code, _request_id(request), detail)
        return _json_error(request, exc.status_code, {"detail": detail})

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        logger.exception("Unhandled exception request_id=%s", _request_id(request))
        return _json_error(
            request, 500, {"detail": "Internal server error", "error_code": "internal_server_error"}
        )

    app.include_router(health_routes.router)
    if verbose:
        app.include_router(diagnostics_routes.router)
    # Catch-all must be registered last.
    app.include_router(proxy_routes.router)
    return app


app = create_app()
