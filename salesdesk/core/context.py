from __future__ import annotations

import uuid
from dataclasses import dataclass
from typing import Literal


Role = Literal["admin", "agent"]


@dataclass(frozen=True, slots=True)
class CallerContext:
    """Identity of the authenticated caller, passed explicitly into every service call."""

    user_id: uuid.UUID
    role: Role
    correlation_id: str | None = None
    ip_address: str | None = None
    user_agent: str | None = None

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"
