from __future__ import annotations

from typing import Any


class CRMError(Exception):
    """Base class for failures that map onto a client-facing HTTP status."""

    status_code = 500
    code = "internal_error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_payload(self) -> dict[str, Any]:
        return {"success": False, "code": self.code, "message": self.message}


class ValidationError(CRMError):
    """Malformed or out-of-range input. Carries every violation, not just the first."""

    status_code = 400
    code = "validation_error"

    def __init__(self, message: str = "Validation failed", errors: list[dict[str, str]] | None = None) -> None:
        super().__init__(message)
        self.errors = errors or []

    def to_payload(self) -> dict[str, Any]:
        payload = super().to_payload()
        if self.errors:
            payload["errors"] = self.errors
        return payload

    @classmethod
    def for_field(cls, field: str, message: str) -> ValidationError:
        return cls(message, errors=[{"field": field, "message": message}])


class AuthenticationError(CRMError):
    status_code = 401
    code = "authentication_failed"


class AuthorizationError(CRMError):
    status_code = 403
    code = "access_denied"

    def __init__(self, message: str = "Access denied") -> None:
        super().__init__(message)


class NotFoundError(CRMError):
    status_code = 404
    code = "not_found"


class ConflictError(CRMError):
    """A uniqueness invariant would be violated."""

    status_code = 409
    code = "conflict"


class InvalidStateTransitionError(CRMError):
    status_code = 400
    code = "invalid_state_transition"


class InternalError(CRMError):
    """Unexpected store or configuration failure. The message is never shown to clients."""

    status_code = 500
    code = "internal_error"

    def to_payload(self) -> dict[str, Any]:
        return {"success": False, "code": self.code, "message": "Internal server error"}
