"""
API middleware stack.

- RequestContextMiddleware: X-Request-ID in and out, request id bound to
  every log line of the request, one access log entry per request
- Exception handlers: JSON bodies for 404 and unhandled errors
- CORS for the read endpoints and admin console
"""
from __future__ import annotations

import time
import uuid

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from shared.config import get_settings
from shared.utils.logging import bind_context, get_logger

logger = get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"
UNLOGGED_PATHS = frozenset({"/health", "/ready", "/metrics"})


def _request_id(request: Request) -> str:
    return getattr(request.state, "request_id", "unknown")


class RequestContextMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex[:16]
        request.state.request_id = request_id
        path = request.url.path
        start = time.perf_counter()

        with bind_context(request_id=request_id):
            try:
                response = await call_next(request)
            except Exception:
                logger.error(
                    "http_request_error",
                    method=request.method,
                    path=path,
                    duration_ms=round((time.perf_counter() - start) * 1000, 2),
                    exc_info=True,
                )
                raise
            if path not in UNLOGGED_PATHS:
                logger.info(
                    "http_request",
                    method=request.method,
                    path=path,
                    status=response.status_code,
                    duration_ms=round((time.perf_counter() - start) * 1000, 2),
                    client=request.client.host if request.client else "unknown",
                )

        response.headers[REQUEST_ID_HEADER] = request_id
        return response


def setup_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        if exc.status_code != 404:
            return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail}, headers=exc.headers)
        message = exc.detail if isinstance(exc.detail, str) and exc.detail != "Not Found" else "Resource not found"
        return JSONResponse(status_code=404, content={"error": "not_found", "message": message})

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
        request_id = _request_id(request)
        logger.error(
            "unhandled_exception",
            path=request.url.path,
            error=str(exc),
            request_id=request_id,
            exc_info=True,
        )
        return JSONResponse(
            status_code=500,
            content={
                "error": "internal_server_error",
                "message": "An unexpected error occurred",
                "request_id": request_id,
            },
        )


def setup_middleware(app: FastAPI) -> None:
    """Register handlers and middleware; CORS is added last so it wraps everything."""
    setup_exception_handlers(app)
    app.add_middleware(RequestContextMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=get_settings().cors_origins,
        allow_credentials=False,
        allow_methods=["GET", "POST", "PUT", "OPTIONS"],
        allow_headers=["*"],
        expose_headers=[REQUEST_ID_HEADER],
    )
