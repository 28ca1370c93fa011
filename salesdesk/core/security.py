from __future__ import annotations

import hashlib
import hmac
import secrets
from datetime import datetime, timedelta, timezone
from typing import Any, Literal

from jose import ExpiredSignatureError, JWTError, jwt

from salesdesk.core.config import get_settings
from salesdesk.core.errors import AuthenticationError


TokenType = Literal["access", "refresh"]

_HASH_SCHEME = "pbkdf2_sha256"
_HASH_ITERATIONS = 240_000


def hash_password(password: str, *, salt: str | None = None, iterations: int = _HASH_ITERATIONS) -> str:
    resolved_salt = salt or secrets.token_hex(16)
    digest = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), resolved_salt.encode("utf-8"), iterations).hex()
    return f"{_HASH_SCHEME}${iterations}${resolved_salt}${digest}"


def verify_password(password: str, password_hash: str) -> bool:
    try:
        scheme, iterations_raw, salt, expected = password_hash.split("$", 3)
        iterations = int(iterations_raw)
    except ValueError:
        return False
    if scheme != _HASH_SCHEME:
        return False
    candidate = hash_password(password, salt=salt, iterations=iterations)
    return hmac.compare_digest(candidate.rsplit("$", 1)[1], expected)


def _secret_for(token_type: TokenType) -> str:
    settings = get_settings()
    return settings.jwt_refresh_secret if token_type == "refresh" else settings.jwt_secret


def create_token(user_id: str, token_type: TokenType, *, now: datetime | None = None) -> str:
    settings = get_settings()
    issued_at = now or datetime.now(timezone.utc)
    if token_type == "refresh":
        expires_at = issued_at + timedelta(days=settings.refresh_token_expire_days)
    else:
        expires_at = issued_at + timedelta(minutes=settings.access_token_expire_minutes)
    payload = {
        "sub": user_id,
        "type": token_type,
        "iat": int(issued_at.timestamp()),
        "exp": int(expires_at.timestamp()),
        "jti": secrets.token_hex(8),
    }
    return jwt.encode(payload, _secret_for(token_type), algorithm=settings.jwt_algorithm)


def create_token_pair(user_id: str) -> dict[str, str]:
    return {
        "accessToken": create_token(user_id, "access"),
        "refreshToken": create_token(user_id, "refresh"),
    }


def decode_token(token: str, token_type: TokenType) -> str:
    """Validate signature, expiry and token type; return the subject user id."""

    settings = get_settings()
    try:
        payload: dict[str, Any] = jwt.decode(token, _secret_for(token_type), algorithms=[settings.jwt_algorithm])
    except ExpiredSignatureError as exc:
        raise AuthenticationError("Token expired") from exc
    except JWTError as exc:
        raise AuthenticationError("Invalid token") from exc

    if payload.get("type") != token_type:
        raise AuthenticationError("Invalid token")
    subject = payload.get("sub")
    if not isinstance(subject, str) or not subject:
        raise AuthenticationError("Invalid token")
    return subject
