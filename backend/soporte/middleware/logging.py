"""
Soporte API — Access Log Middleware
=====================================

What:  One log line per HTTP request with method, path, status and duration.
How:   Level follows the status class (5xx ERROR, 4xx WARNING, else INFO).
       The request ID comes from the log format (RequestIDLogFilter); it is
       also passed in `extra` for structured handlers.
When:  Inside RequestIDMiddleware, so the correlation ID is already set.

Example:
    2024-06-10T09:15:02 [INFO] [3f9c1a2b] soporte.access: POST /api/computadores 201 84.2ms 143B from 10.0.0.7

Privacy:
    Request bodies are never logged; they carry base64 images and personal
    data of the equipment's responsable.
"""

import logging
import time

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from soporte.middleware.request_id import request_id_var

logger = logging.getLogger("soporte.access")

# Probed every few seconds by the platform; logging them drowns real traffic
SKIPPED_PATHS = {"/api/health"}


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Logs method, path, status, duration and client IP of every request."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        path = request.url.path
        if path in SKIPPED_PATHS:
            return await call_next(request)

        start_time = time.perf_counter()
        client_ip = request.client.host if request.client else "unknown"
        rid = request_id_var.get("")

        response = await call_next(request)

        duration_ms = (time.perf_counter() - start_time) * 1000
        status = response.status_code
        if status >= 500:
            log_level = logging.ERROR
        elif status >= 400:
            log_level = logging.WARNING
        else:
            log_level = logging.INFO

        logger.log(
            log_level,
            "%s %s %d %.1fms %sB from %s",
            request.method,
            path,
            status,
            duration_ms,
            response.headers.get("content-length", "?"),
            client_ip,
            extra={
                "request_id": rid,
                "method": request.method,
                "path": path,
                "status": status,
                "duration_ms": round(duration_ms, 2),
                "client_ip": client_ip,
            },
        )
        return response
