"""
Heimursaga API — Request Logging Middleware
=============================================

What:  One access-log line per request on the `saga.access` logger.
Logged: method, path, status, duration, request id, client IP.
Not logged: bodies, cookies, Authorization headers.

Level by status: 5xx → ERROR, 4xx → WARNING, otherwise INFO.
Health checks are logged at DEBUG so load balancer checks stay quiet.
"""

import logging
import time

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from saga.middleware.request_id import request_id_var

logger = logging.getLogger("saga.access")

QUIET_PATHS = {"/health"}


def client_ip_of(request: Request) -> str:
    """Client IP, preferring the first X-Forwarded-For hop when behind a proxy."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        start_time = time.perf_counter()
        client_ip = client_ip_of(request)
        method = request.method
        path = request.url.path

        response = await call_next(request)

        duration_ms = (time.perf_counter() - start_time) * 1000
        status = response.status_code
        if path in QUIET_PATHS:
            log_level = logging.DEBUG
        elif status >= 500:
            log_level = logging.ERROR
        elif status >= 400:
            log_level = logging.WARNING
        else:
            log_level = logging.INFO

        rid = request_id_var.get("")
        logger.log(
            log_level,
            "%s %s %d %.1fms [%s] from %s",
            method,
            path,
            status,
            duration_ms,
            rid,
            client_ip,
            extra={
                "request_id": rid,
                "method": method,
                "path": path,
                "status": status,
                "duration_ms": round(duration_ms, 2),
                "client_ip": client_ip,
            },
        )
        return response
