from __future__ import annotations

import uuid

from opentelemetry import trace
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

from stagepipe.core.context import RequestContext, bind_correlation_id


MAX_CORRELATION_ID_LENGTH = 128


def _incoming_correlation_id(request: Request) -> str | None:
    value = (request.headers.get("x-correlation-id") or "").strip()
    if not value or len(value) > MAX_CORRELATION_ID_LENGTH:
        return None
    return value


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    """Bind one correlation id per request to logs, spans, error bodies and the response headers."""

    async def dispatch(self, request: Request, call_next):  # type: ignore[no-untyped-def]
        request_id = str(uuid.uuid4())
        correlation_id = _incoming_correlation_id(request) or request_id
        request.state.correlation_id = correlation_id
        request.state.context = RequestContext(
            request_id=request_id,
            correlation_id=correlation_id,
            principal_id=None,
        )
        span = trace.get_current_span()
        if span is not None and span.is_recording():
            span.set_attribute("correlation_id", correlation_id)
        with bind_correlation_id(correlation_id):
            response = await call_next(request)

        response.headers["x-correlation-id"] = correlation_id
        response.headers["x-request-id"] = request_id
        return response
