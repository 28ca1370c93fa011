from __future__ import annotations

import math
import threading
import time
import uuid
from dataclasses import dataclass

from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

from salesdesk.context import get_correlation_id
from salesdesk.core.auth import bearer_token, client_ip
from salesdesk.core.config import get_settings
from salesdesk.core.errors import AuthenticationError
from salesdesk.core.security import decode_token


@dataclass
class _BucketState:
    tokens: float
    last_refill: float


class _TokenBucketLimiter:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._buckets: dict[str, _BucketState] = {}

    def take(self, client_key: str, capacity: int, window_seconds: int) -> tuple[bool, int]:
        if capacity <= 0:
            return False, window_seconds

        now = time.monotonic()
        refill_rate = capacity / float(window_seconds)

        with self._lock:
            current = self._buckets.get(client_key)
            if current is None:
                current = _BucketState(tokens=float(capacity), last_refill=now)
                self._buckets[client_key] = current

            elapsed = max(0.0, now - current.last_refill)
            current.tokens = min(float(capacity), current.tokens + (elapsed * refill_rate))
            current.last_refill = now

            if current.tokens < 1.0:
                retry_after = max(1, math.ceil((1.0 - current.tokens) / refill_rate))
                return False, retry_after

            current.tokens -= 1.0
            return True, 0

    def clear(self) -> None:
        with self._lock:
            self._buckets.clear()


_limiter = _TokenBucketLimiter()


class ApiRateLimitMiddleware(BaseHTTPMiddleware):
    """Token bucket per client over every ``/api`` request."""

    async def dispatch(self, request: Request, call_next):  # type: ignore[no-untyped-def]
        settings = get_settings()
        if settings.rate_limit_disabled or not request.url.path.startswith("/api"):
            return await call_next(request)

        allowed, retry_after = _limiter.take(
            client_key=_resolve_client_key(request),
            capacity=settings.rate_limit_max_requests,
            window_seconds=settings.rate_limit_window_seconds,
        )
        if allowed:
            return await call_next(request)

        correlation_id = (
            get_correlation_id()
            or getattr(request.state, "correlation_id", None)
            or request.headers.get("x-correlation-id")
            or str(uuid.uuid4())
        )
        response = JSONResponse(
            status_code=429,
            content={
                "success": False,
                "code": "rate_limited",
                "message": "Too many requests from this client, please try again later.",
                "correlationId": correlation_id,
            },
        )
        response.headers["Retry-After"] = str(retry_after)
        response.headers["X-Correlation-Id"] = correlation_id
        return response


def _token_subject(token: str) -> str | None:
    try:
        return decode_token(token, "access")
    except AuthenticationError:
        # Rejected later by the auth dependency; bucket by address until then.
        return None


def _resolve_client_key(request: Request) -> str:
    token = bearer_token(request)
    subject = _token_subject(token) if token else None
    if subject is not None:
        return f"user:{subject}"
    return f"ip:{client_ip(request) or 'unknown'}"


def reset_rate_limiter() -> None:
    _limiter.clear()
