from __future__ import annotations

import re
import uuid

from opentelemetry import trace
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

from salesdesk.context import bound_correlation_id


HEADER = "X-Correlation-Id"
_ACCEPTED = re.compile(r"^[A-Za-z0-9._:-]{1,128}$")


def _incoming_or_new(request: Request) -> str:
    supplied = request.headers.get(HEADER, "").strip()
    # Anything that could break a log line or header is replaced.
    return supplied if _ACCEPTED.match(supplied) else str(uuid.uuid4())


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):  # type: ignore[no-untyped-def]
        correlation_id = _incoming_or_new(request)
        request.state.correlation_id = correlation_id
        span = trace.get_current_span()
        if span.is_recording():
            span.set_attribute("correlation_id", correlation_id)

        with bound_correlation_id(correlation_id):
            response = await call_next(request)

        response.headers[HEADER] = correlation_id
        return response
