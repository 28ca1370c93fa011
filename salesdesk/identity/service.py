from __future__ import annotations

import logging
import uuid
from typing import Any

from sqlalchemy import or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from salesdesk.activity.service import activity_log
from salesdesk.core.clock import utcnow
from salesdesk.core.context import CallerContext
from salesdesk.core.errors import AuthenticationError, ConflictError, NotFoundError, ValidationError
from salesdesk.core.pagination import PageParams, paginate
from salesdesk.core.security import create_token_pair, decode_token, hash_password, verify_password
from salesdesk.identity.models import User
from salesdesk.identity.schemas import (
    LoginResult,
    ProfileUpdate,
    RegisterRequest,
    TokenPair,
    UserRead,
    UserUpdate,
)


logger = logging.getLogger("salesdesk.auth")

_INVALID_CREDENTIALS = "Invalid credentials"


def _to_read(user: User) -> UserRead:
    return UserRead.model_validate(user)


def _set_fields(payload: dict[str, Any]) -> dict[str, Any]:
    # Explicit nulls on non-nullable columns mean "leave unchanged".
    return {key: value for key, value in payload.items() if value is not None}


def _caller_for(user: User, ip_address: str | None, user_agent: str | None) -> CallerContext:
    return CallerContext(
        user_id=user.id,
        role="admin" if user.role == "admin" else "agent",
        ip_address=ip_address,
        user_agent=user_agent,
    )


class AuthService:
    def login(
        self,
        session: Session,
        email: str,
        password: str,
        *,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> LoginResult:
        user = session.scalar(select(User).where(User.email == email.lower()))
        if user is None or not verify_password(password, user.password_hash):
            logger.warning("auth.login_failed", extra={"reason": "bad_credentials"})
            raise AuthenticationError(_INVALID_CREDENTIALS)
        if not user.is_active:
            logger.warning("auth.login_failed", extra={"reason": "inactive", "user_id": str(user.id)})
            raise AuthenticationError(_INVALID_CREDENTIALS)

        user.last_login = utcnow()
        session.commit()
        tokens = create_token_pair(str(user.id))
        result = LoginResult(
            user=_to_read(user),
            access_token=tokens["accessToken"],
            refresh_token=tokens["refreshToken"],
        )

        activity_log.record(
            session,
            _caller_for(user, ip_address, user_agent),
            action="User Login",
            entity_type="User",
            entity_id=user.id,
            details={"ipAddress": ip_address},
        )
        logger.info("auth.login", extra={"user_id": str(user.id)})
        return result

    def refresh(self, session: Session, refresh_token: str) -> TokenPair:
        subject = decode_token(refresh_token, "refresh")
        try:
            user_id = uuid.UUID(subject)
        except ValueError as exc:
            raise AuthenticationError("Invalid token") from exc

        user = session.get(User, user_id)
        if user is None or not user.is_active:
            raise AuthenticationError("Invalid token")
        tokens = create_token_pair(str(user.id))
        return TokenPair(access_token=tokens["accessToken"], refresh_token=tokens["refreshToken"])

    def register(self, session: Session, caller: CallerContext, dto: RegisterRequest) -> UserRead:
        if session.scalar(select(User.id).where(User.email == dto.email)) is not None:
            raise ConflictError("User with this email already exists")

        user = User(
            email=dto.email,
            password_hash=hash_password(dto.password),
            first_name=dto.first_name,
            last_name=dto.last_name,
            role=dto.role,
        )
        session.add(user)
        try:
            session.commit()
        except IntegrityError as exc:
            session.rollback()
            raise ConflictError("User with this email already exists") from exc

        result = _to_read(user)
        activity_log.record(
            session,
            caller,
            action="User Created",
            entity_type="User",
            entity_id=user.id,
            details={"email": user.email, "role": user.role},
        )
        return result


class UserService:
    def list_users(
        self,
        session: Session,
        filters: dict[str, Any],
        params: PageParams,
    ) -> tuple[list[UserRead], int]:
        stmt = select(User)
        if filters.get("role"):
            stmt = stmt.where(User.role == filters["role"])
        if filters.get("is_active") is not None:
            stmt = stmt.where(User.is_active == filters["is_active"])
        if filters.get("search"):
            pattern = f"%{filters['search']}%"
            stmt = stmt.where(
                or_(User.email.ilike(pattern), User.first_name.ilike(pattern), User.last_name.ilike(pattern))
            )

        rows, total = paginate(session, stmt.order_by(User.created_at.desc(), User.id), params)
        return [_to_read(row) for row in rows], total

    def get_user(self, session: Session, user_id: uuid.UUID) -> UserRead:
        return _to_read(self._load(session, user_id))

    def update_user(self, session: Session, caller: CallerContext, user_id: uuid.UUID, dto: UserUpdate) -> UserRead:
        user = self._load(session, user_id)
        payload = _set_fields(dto.model_dump(exclude_unset=True))
        if user.id == caller.user_id and payload.get("is_active") is False:
            raise ValidationError.for_field("isActive", "You cannot deactivate your own account")

        for key, value in payload.items():
            setattr(user, key, value)
        session.commit()

        result = _to_read(user)
        activity_log.record(
            session,
            caller,
            action="User Updated",
            entity_type="User",
            entity_id=user.id,
            details={"updatedFields": list(dto.model_dump(by_alias=True, exclude_unset=True).keys())},
        )
        return result

    def delete_user(self, session: Session, caller: CallerContext, user_id: uuid.UUID) -> None:
        user = self._load(session, user_id)
        if user.id == caller.user_id:
            raise ValidationError.for_field("id", "You cannot delete your own account")

        details = {"email": user.email, "role": user.role}
        deleted_id = user.id
        session.delete(user)
        session.commit()

        activity_log.record(
            session,
            caller,
            action="User Deleted",
            entity_type="User",
            entity_id=deleted_id,
            details=details,
        )

    def get_profile(self, session: Session, caller: CallerContext) -> UserRead:
        return _to_read(self._load(session, caller.user_id))

    def update_profile(self, session: Session, caller: CallerContext, dto: ProfileUpdate) -> UserRead:
        user = self._load(session, caller.user_id)
        for key, value in _set_fields(dto.model_dump(exclude_unset=True)).items():
            setattr(user, key, value)
        session.commit()

        result = _to_read(user)
        activity_log.record(
            session,
            caller,
            action="Profile Updated",
            entity_type="User",
            entity_id=user.id,
            details={"updatedFields": list(dto.model_dump(by_alias=True, exclude_unset=True).keys())},
        )
        return result

    def ensure_exists(self, session: Session, user_id: uuid.UUID, field: str) -> None:
        """Reject a reference to a user id that does not exist."""

        if session.get(User, user_id) is None:
            raise ValidationError.for_field(field, "Referenced user does not exist")

    def _load(self, session: Session, user_id: uuid.UUID) -> User:
        user = session.get(User, user_id)
        if user is None:
            raise NotFoundError("User not found")
        return user


auth_service = AuthService()
user_service = UserService()
