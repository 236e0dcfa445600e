# pagebot/transport/middleware.py
import time
import uuid
from typing import Callable

from fastapi import Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from pagebot.infra.logging_config import get_logger, LogContext

logger = get_logger(__name__)

WEBHOOK_PATH = "/webhook"

# Polled by the orchestrator; logged at DEBUG only
PROBE_PATHS = frozenset({"/health", "/ready"})


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Reuse the caller's X-Request-ID or mint one, and echo it back."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex
        request.state.request_id = request_id

        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        return response


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    def __init__(self, app: ASGIApp, enabled: bool = True):
        super().__init__(app)
        self.enabled = enabled

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if not self.enabled:
            return await call_next(request)

        log_ctx = LogContext(logger, request_id=getattr(request.state, "request_id", "unknown"))
        route = f"{request.method} {request.url.path}"
        started = time.perf_counter()

        try:
            response = await call_next(request)
        except Exception as exc:
            elapsed_ms = (time.perf_counter() - started) * 1000
            log_ctx.error(f"{route} raised {exc.__class__.__name__} after {elapsed_ms:.1f}ms")
            raise

        elapsed_ms = (time.perf_counter() - started) * 1000
        message = f"{route} -> {response.status_code} in {elapsed_ms:.1f}ms"
        if request.url.path in PROBE_PATHS:
            log_ctx.debug(message)
        else:
            log_ctx.info(message)
        return response


class ErrorHandlingMiddleware(BaseHTTPMiddleware):
    """
    Last-resort handler for exceptions escaping a route.

    POST /webhook is still answered with 200 so the platform does not keep
    redelivering the same events; every other path gets a JSON 500 carrying
    the request id.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        try:
            return await call_next(request)
        except Exception as exc:
            request_id = getattr(request.state, "request_id", "unknown")
            logger.error(
                f"Unhandled exception on {request.method} {request.url.path}: "
                f"{exc.__class__.__name__}: {exc}",
                extra={"request_id": request_id},
                exc_info=True,
            )

            if request.method == "POST" and request.url.path == WEBHOOK_PATH:
                return JSONResponse({"success": False}, status_code=200)

            return JSONResponse(
                {"error": "Internal server error", "request_id": request_id},
                status_code=500,
            )
