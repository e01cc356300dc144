"""Request id propagation.

The id comes from ``X-Request-ID`` when the caller sends a short token and
is generated otherwise. It is echoed on the response and kept in
``request_id_ctx`` for log records and error envelopes.
"""

from __future__ import annotations

import re
import uuid
from contextvars import ContextVar

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

REQUEST_ID_HEADER = "X-Request-ID"
# Caller ids end up in every log line; anything else is replaced.
_TOKEN = re.compile(r"[A-Za-z0-9._:-]{1,128}")

request_id_ctx: ContextVar[str | None] = ContextVar("request_id", default=None)


def resolve_request_id(header: str | None) -> str:
    """Return ``header`` if it is a usable token, else a fresh id."""
    if header and _TOKEN.fullmatch(header):
        return header
    return uuid.uuid4().hex


def current_request_id() -> str | None:
    return request_id_ctx.get(None)


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Bind a request id for the duration of each HTTP request."""

    async def dispatch(self, request: Request, call_next):
        req_id = resolve_request_id(request.headers.get(REQUEST_ID_HEADER))
        request.state.request_id = req_id
        token = request_id_ctx.set(req_id)
        try:
            response = await call_next(request)
        finally:
            request_id_ctx.reset(token)
        response.headers[REQUEST_ID_HEADER] = req_id
        return response
