from __future__ import annotations

import uuid

from fastapi import Depends
from sqlalchemy.orm import Session
from starlette.requests import Request

from salesdesk.core.context import CallerContext
from salesdesk.core.database import get_db
from salesdesk.core.errors import AuthenticationError
from salesdesk.core.security import decode_token
from salesdesk.identity.models import User


def bearer_token(request: Request) -> str:
    auth_header = request.headers.get("authorization", "")
    return auth_header[len("Bearer ") :].strip() if auth_header.startswith("Bearer ") else ""


def client_ip(request: Request) -> str | None:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else None


def get_current_user(request: Request, db: Session = Depends(get_db)) -> CallerContext:
    """Resolve the bearer token to an active user and build the caller context."""

    token = bearer_token(request)
    if not token:
        raise AuthenticationError("Access denied. No token provided.")

    subject = decode_token(token, "access")
    try:
        user_id = uuid.UUID(subject)
    except ValueError as exc:
        raise AuthenticationError("Invalid token") from exc

    user = db.get(User, user_id)
    if user is None:
        raise AuthenticationError("Invalid token. User not found.")
    if not user.is_active:
        raise AuthenticationError("Account is deactivated.")

    return CallerContext(
        user_id=user.id,
        role="admin" if user.role == "admin" else "agent",
        correlation_id=getattr(request.state, "correlation_id", None),
        ip_address=client_ip(request),
        user_agent=request.headers.get("user-agent"),
    )
