"""
Alter Compatibility Backend — Request Logging Middleware
=========================================================

What:  One access log line per request on the "altermatch.access" logger.
How:   Measures wall time around call_next and picks the level from the
       status code (5xx ERROR, 4xx WARNING, otherwise INFO).
When:  Runs inside RequestIDMiddleware so the request ID is available.

Logged: method, path, status, duration, client IP, request ID.
Never logged: request bodies. Profiles are personal data.
"""

import logging
import time

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from altermatch.middleware.request_id import request_id_var

logger = logging.getLogger("altermatch.access")


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    Logs each HTTP request with its outcome and duration.

    Typical durations:
        - GET /health: a few ms
        - POST /api/compatibility/calculate, cache hit: 10-50ms
        - POST /api/compatibility/calculate, cache miss: 1-10s (LLM call)
    """

    # Probed every few seconds; logging them drowns the useful lines
    SILENT_PATHS = {"/health"}

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        path = request.url.path
        if path in self.SILENT_PATHS:
            return await call_next(request)

        start_time = time.perf_counter()
        client_ip = request.client.host if request.client else "unknown"
        method = request.method

        response = await call_next(request)

        duration_ms = (time.perf_counter() - start_time) * 1000
        rid = request_id_var.get("")
        status = response.status_code
        if status >= 500:
            log_level = logging.ERROR
        elif status >= 400:
            log_level = logging.WARNING
        else:
            log_level = logging.INFO

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
