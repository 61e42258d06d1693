"""
Request Tracker: Request ID Middleware
=======================================

What:  Gives every request a correlation ID and echoes it in the response.
How:   A client-supplied X-Request-ID is kept only when it is a short token
       of safe characters; anything else is replaced by a generated short
       UUID. The ID is published through `request_id_var` and
       request.state.request_id.
Who:   Registered outermost by the app factory. RequestTrackingMiddleware
       copies the ID into the `request` event; the app's error handler
       returns it in 500 responses.

The ID ends up in collector records, so client input is never stored as-is:
    "checkout-7f3a"        kept
    "<script>..."          replaced
    "x" * 200              replaced
"""

import re
import uuid
from contextvars import ContextVar
from typing import Optional

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

REQUEST_ID_HEADER = "X-Request-ID"

_VALID_REQUEST_ID = re.compile(r"[A-Za-z0-9._\-]{1,64}")

request_id_var: ContextVar[str] = ContextVar("request_id", default="")


def resolve_request_id(candidate: Optional[str]) -> str:
    """Return `candidate` if it is a safe correlation token, else a new ID."""
    if candidate and _VALID_REQUEST_ID.fullmatch(candidate):
        return candidate
    return uuid.uuid4().hex[:8]


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Publishes the request's correlation ID and sets X-Request-ID."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        rid = resolve_request_id(request.headers.get(REQUEST_ID_HEADER))
        request_id_var.set(rid)
        request.state.request_id = rid

        response = await call_next(request)
        response.headers[REQUEST_ID_HEADER] = rid
        return response
