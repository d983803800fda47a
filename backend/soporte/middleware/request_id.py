"""
Soporte API — Request ID Middleware
=====================================

What:  Gives every request a correlation ID, returns it in `X-Request-ID`,
       and stamps it on every log record emitted while the request runs.
How:   A client-supplied `X-Request-ID` is reused only when it is a short
       token of letters, digits, `-` or `_`; anything else (spaces, newlines,
       oversized values) is replaced by a fresh 8-char ID so it cannot end up
       verbatim in logs or response headers.

Log correlation:
    `RequestIDLogFilter` is installed on the root handler by `setup_logging`,
    so `%(request_id)s` is available to the log format. Lines logged outside
    a request (startup, shutdown) show "-".
"""

import logging
import re
import uuid
from contextvars import ContextVar
from typing import Optional

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

REQUEST_ID_HEADER = "X-Request-ID"

_VALID_REQUEST_ID = re.compile(r"^[A-Za-z0-9_-]{1,64}$")

request_id_var: ContextVar[str] = ContextVar("request_id", default="")


def new_request_id() -> str:
    return uuid.uuid4().hex[:8]


def accept_request_id(candidate: Optional[str]) -> str:
    """The client's ID when it is a safe token, otherwise a new one."""
    if candidate and _VALID_REQUEST_ID.match(candidate):
        return candidate
    return new_request_id()


class RequestIDLogFilter(logging.Filter):
    """Adds `request_id` to every record passing through the handler."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = request_id_var.get("") or "-"
        return True


class RequestIDMiddleware(BaseHTTPMiddleware):

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        rid = accept_request_id(request.headers.get(REQUEST_ID_HEADER))
        token = request_id_var.set(rid)
        request.state.request_id = rid
        try:
            response = await call_next(request)
        finally:
            request_id_var.reset(token)
        response.headers[REQUEST_ID_HEADER] = rid
        return response
