"""API middleware for cross-cutting concerns."""

import logging
import re
from collections.abc import Callable
from contextvars import ContextVar

from fastapi import Request, Response
from nanoid import generate
from starlette.middleware.base import BaseHTTPMiddleware

# Context variable for request ID - accessible from anywhere in the request
request_id_var: ContextVar[str | None] = ContextVar("request_id", default=None)

# Client-supplied IDs end up in every log line of the request
_VALID_REQUEST_ID = re.compile(r"^[A-Za-z0-9._-]{1,64}$")


def get_request_id() -> str | None:
    """Get the current request ID from context."""
    return request_id_var.get()


def resolve_request_id(header: str | None) -> str:
    """Reuse a well-formed ``X-Request-ID`` header or mint a new ID."""
    if header and _VALID_REQUEST_ID.match(header):
        return header
    return generate(size=16)


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Tag each request with an ID so a sign-in can be traced across its requests.

    The ID is echoed back in the ``X-Request-ID`` response header.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = resolve_request_id(request.headers.get("X-Request-ID"))
        token = request_id_var.set(request_id)

        try:
            response = await call_next(request)
            response.headers["X-Request-ID"] = request_id
            return response
        finally:
            request_id_var.reset(token)


class RequestContextFilter(logging.Filter):
    """Logging filter that stamps records with the current request ID."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = get_request_id() or "-"
        return True
