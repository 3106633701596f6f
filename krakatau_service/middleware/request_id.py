from __future__ import annotations

"""
Request ID & trace propagation.

- Propagates an inbound ``X-Request-Id`` or generates one (uuid4 hex).
- Honors W3C ``traceparent``: keeps the inbound trace-id with a fresh span-id,
  or starts a new trace.
- Stores ``request_id`` / ``trace_id`` on ``request.state`` and binds them into
  structlog contextvars for the duration of the request.
- Echoes ``X-Request-Id`` and ``traceparent`` on the response.
"""

import re
import secrets
import uuid
from typing import Optional, Tuple

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

from krakatau_service.logging import bind_request_context, clear_request_context

REQUEST_ID_HEADER = "X-Request-Id"
TRACEPARENT_HEADER = "traceparent"

_TRACEPARENT_RE = re.compile(
    r"^(?P<ver>[0-9a-f]{2})-(?P<trace_id>[0-9a-f]{32})-(?P<span_id>[0-9a-f]{16})-(?P<flags>[0-9a-f]{2})$"
)
_REQUEST_ID_RE = re.compile(r"^[A-Za-z0-9._:-]{1,128}$")


def parse_traceparent(value: str) -> Optional[Tuple[str, str, str]]:
    """Return ``(trace_id, parent_span_id, flags)`` or None when invalid."""
    m = _TRACEPARENT_RE.match(value.strip())
    if not m:
        return None
    trace_id, span_id = m.group("trace_id"), m.group("span_id")
    if trace_id == "0" * 32 or span_id == "0" * 16:
        return None
    return trace_id, span_id, m.group("flags")


class RequestIdMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next) -> Response:
        req_id = request.headers.get(REQUEST_ID_HEADER.lower()) or ""
        if not _REQUEST_ID_RE.match(req_id):
            req_id = uuid.uuid4().hex

        parsed = parse_traceparent(request.headers.get(TRACEPARENT_HEADER) or "")
        if parsed:
            trace_id, _, flags = parsed
        else:
            trace_id, flags = secrets.token_hex(16), "01"
        span_id = secrets.token_hex(8)

        request.state.request_id = req_id
        request.state.trace_id = trace_id

        bind_request_context(request_id=req_id, trace_id=trace_id)
        try:
            response = await call_next(request)
        finally:
            clear_request_context("request_id", "trace_id")

        response.headers[REQUEST_ID_HEADER] = req_id
        response.headers[TRACEPARENT_HEADER] = f"00-{trace_id}-{span_id}-{flags}"
        return response


__all__ = ["RequestIdMiddleware", "parse_traceparent", "REQUEST_ID_HEADER"]
