"""
Soporte API — Request Body Size Limit
=======================================

What:  Rejects requests whose declared body exceeds MAX_BODY_SIZE with 413.
Why:   Records carry their images inline as base64 JSON, so bodies are large.
       The cap (50MB by default) fits the forms the frontend sends.
How:   Checks the Content-Length header before the body is read. Requests
       without a declared length pass through untouched.
"""

import logging

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from soporte.middleware.request_id import request_id_var

logger = logging.getLogger(__name__)


class BodySizeLimitMiddleware(BaseHTTPMiddleware):
    """
    Args:
        max_body_size: Largest accepted Content-Length in bytes.
    """

    def __init__(self, app, max_body_size: int, **kwargs):
        super().__init__(app, **kwargs)
        self.max_body_size = max_body_size

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        declared = request.headers.get("content-length")
        if declared and declared.isdigit() and int(declared) > self.max_body_size:
            rid = request_id_var.get("")
            logger.warning(
                "[%s] Body of %s bytes rejected on %s %s (limit %d)",
                rid, declared, request.method, request.url.path, self.max_body_size,
            )
            return JSONResponse(
                status_code=413,
                content={
                    "error": "payload_too_large",
                    "message": "El cuerpo de la solicitud excede el tamaño máximo permitido",
                    "details": {"max_body_size": self.max_body_size},
                    "request_id": rid,
                },
            )
        return await call_next(request)
