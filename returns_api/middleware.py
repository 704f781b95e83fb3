"""
HTTP middleware.

``RequestIDMiddleware`` tags each request with an ``X-Request-ID`` (the
caller's, or a fresh UUID4) and exposes it to logging for the lifetime of
the request.  ``RequestTimingMiddleware`` reports handler latency in
``X-Process-Time`` and flags slow requests in the log.
"""

import logging
import time
import uuid

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from returns_api.core.logging import request_id_var

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"
PROCESS_TIME_HEADER = "X-Process-Time"
SLOW_REQUEST_MS = 500


class RequestIDMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())
        request.state.request_id = request_id
        token = request_id_var.set(request_id)
        try:
            response = await call_next(request)
        finally:
            request_id_var.reset(token)
        response.headers[REQUEST_ID_HEADER] = request_id
        return response


class RequestTimingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        started = time.perf_counter()
        response = await call_next(request)
        elapsed_ms = (time.perf_counter() - started) * 1000
        response.headers[PROCESS_TIME_HEADER] = f"{elapsed_ms:.2f}ms"

        slow = elapsed_ms > SLOW_REQUEST_MS
        logger.log(
            logging.WARNING if slow else logging.DEBUG,
            "%s %s -> %d in %.2fms%s",
            request.method,
            request.url.path,
            response.status_code,
            elapsed_ms,
            " (slow)" if slow else "",
            extra={
                "method": request.method,
                "path": request.url.path,
                "status_code": response.status_code,
                "elapsed_ms": round(elapsed_ms, 2),
            },
        )
        return response
