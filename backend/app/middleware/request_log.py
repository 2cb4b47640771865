import logging
import time
import uuid
from typing import Awaitable, Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from app.core.logging_config import request_id_ctx_var
from app.core.security import decode_token

logger = logging.getLogger("app.request")

_QUIET_PATHS = frozenset({"/api/v1/health", "/api/v1/health/ready"})


def _request_user(request: Request) -> str:
    header = request.headers.get("authorization") or ""
    scheme, _, credentials = header.partition(" ")
    token = credentials if scheme.lower() == "bearer" else request.cookies.get("access_token")
    payload = decode_token(token) if token else None
    return str(payload["sub"]) if payload and payload.get("sub") else "-"


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Tags each request with an id and logs one line per response.

    An incoming ``X-Request-ID`` is reused so ids can be traced across services;
    health probes log at DEBUG and server errors at WARNING.
    """

    async def dispatch(self, request: Request, call_next: Callable[[Request], Awaitable[Response]]) -> Response:
        request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex
        request.state.request_id = request_id
        ctx_token = request_id_ctx_var.set(request_id)
        started = time.perf_counter()
        try:
            response = await call_next(request)
            response.headers["X-Request-ID"] = request_id
            if request.url.path in _QUIET_PATHS:
                level = logging.DEBUG
            elif response.status_code >= 500:
                level = logging.WARNING
            else:
                level = logging.INFO
            logger.log(
                level,
                "request",
                extra={
                    "method": request.method,
                    "path": request.url.path,
                    "status_code": response.status_code,
                    "duration_ms": round((time.perf_counter() - started) * 1000, 1),
                    "user_id": _request_user(request),
                },
            )
            return response
        finally:
            request_id_ctx_var.reset(ctx_token)
