from __future__ import annotations

import uuid
from typing import Any, Literal

from salesdesk.core.schemas import ApiModel, UtcDatetime


EntityType = Literal["Lead", "Customer", "Task", "User"]


class ActorRead(ApiModel):
    id: uuid.UUID
    first_name: str
    last_name: str
    email: str


class ActivityRead(ApiModel):
    id: uuid.UUID
    user: uuid.UUID
    actor: ActorRead | None = None
    action: str
    entity_type: EntityType
    entity_id: uuid.UUID
    # Shape depends on ``action``, e.g. {"updatedFields": [...]} for updates.
    details: dict[str, Any]
    ip_address: str | None = None
    user_agent: str | None = None
    created_at: UtcDatetime


class ActionCount(ApiModel):
    entity_type: EntityType
    count: int


class UserActivitySummary(ApiModel):
    total_actions: int
    actions_by_type: list[ActionCount]
    recent_actions: list[ActivityRead]
