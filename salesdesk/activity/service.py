from __future__ import annotations

import logging
import uuid
from collections.abc import Iterable
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from salesdesk.activity.models import Activity
from salesdesk.activity.schemas import ActionCount, ActivityRead, ActorRead, UserActivitySummary
from salesdesk.core.context import CallerContext
from salesdesk.core.pagination import PageParams, paginate
from salesdesk.core.scope import apply_scope, ensure_record_access, scoped_filters
from salesdesk.identity.models import User
from salesdesk.metrics import observe_activity_log_failure


logger = logging.getLogger("salesdesk.activity")

RECENT_LIMIT = 10
SUMMARY_RECENT_LIMIT = 5


class ActivityLogService:
    """Writes and queries the audit trail.

    Writes happen after the primary mutation has been committed. A failed
    write is logged and counted but never surfaces to the caller, because
    the change it describes has already happened.
    """

    def record(
        self,
        session: Session,
        caller: CallerContext,
        *,
        action: str,
        entity_type: str,
        entity_id: uuid.UUID,
        details: dict[str, Any] | None = None,
    ) -> Activity | None:
        entry = Activity(
            user_id=caller.user_id,
            action=action,
            entity_type=entity_type,
            entity_id=entity_id,
            details=details or {},
            ip_address=caller.ip_address,
            user_agent=caller.user_agent,
        )
        try:
            self._persist(session, entry)
        except SQLAlchemyError as exc:
            session.rollback()
            observe_activity_log_failure(entity_type)
            logger.exception(
                "activity.write_failed",
                extra={
                    "action": action,
                    "entity_type": entity_type,
                    "entity_id": str(entity_id),
                    "user_id": str(caller.user_id),
                    "error": str(exc),
                },
            )
            return None
        return entry

    def _persist(self, session: Session, entry: Activity) -> None:
        session.add(entry)
        session.commit()

    def list_activities(
        self,
        session: Session,
        caller: CallerContext,
        filters: dict[str, Any],
        params: PageParams,
    ) -> tuple[list[ActivityRead], int]:
        allowed = scoped_filters(caller, filters, owner_keys=("user_id",))
        stmt = apply_scope(select(Activity), caller, Activity.user_id)

        if allowed.get("user_id"):
            stmt = stmt.where(Activity.user_id == allowed["user_id"])
        if allowed.get("entity_type"):
            stmt = stmt.where(Activity.entity_type == allowed["entity_type"])
        if allowed.get("entity_id"):
            stmt = stmt.where(Activity.entity_id == allowed["entity_id"])
        if allowed.get("action"):
            stmt = stmt.where(Activity.action.ilike(f"%{allowed['action']}%"))

        rows, total = paginate(session, stmt.order_by(Activity.created_at.desc(), Activity.id), params)
        return self._to_reads(session, rows), total

    def recent(self, session: Session, caller: CallerContext, limit: int = RECENT_LIMIT) -> list[ActivityRead]:
        stmt = apply_scope(select(Activity), caller, Activity.user_id)
        rows = session.scalars(stmt.order_by(Activity.created_at.desc(), Activity.id).limit(limit)).all()
        return self._to_reads(session, rows)

    def for_entity(
        self,
        session: Session,
        caller: CallerContext,
        entity_type: str,
        entity_id: uuid.UUID,
        params: PageParams,
    ) -> tuple[list[ActivityRead], int]:
        return self.list_activities(
            session,
            caller,
            {"entity_type": entity_type, "entity_id": entity_id},
            params,
        )

    def user_summary(self, session: Session, caller: CallerContext, user_id: uuid.UUID) -> UserActivitySummary:
        ensure_record_access(caller, "activity", user_id)

        total = session.scalar(select(func.count()).select_from(Activity).where(Activity.user_id == user_id)) or 0
        counts = session.execute(
            select(Activity.entity_type, func.count().label("count"))
            .where(Activity.user_id == user_id)
            .group_by(Activity.entity_type)
            .order_by(func.count().desc(), Activity.entity_type)
        ).all()
        recent_rows = session.scalars(
            select(Activity)
            .where(Activity.user_id == user_id)
            .order_by(Activity.created_at.desc(), Activity.id)
            .limit(SUMMARY_RECENT_LIMIT)
        ).all()

        return UserActivitySummary(
            total_actions=int(total),
            actions_by_type=[ActionCount(entity_type=row.entity_type, count=int(row.count)) for row in counts],
            recent_actions=self._to_reads(session, recent_rows),
        )

    def _to_reads(self, session: Session, rows: Iterable[Activity]) -> list[ActivityRead]:
        items = list(rows)
        actor_ids = {item.user_id for item in items}
        actors: dict[uuid.UUID, User] = {}
        if actor_ids:
            actors = {user.id: user for user in session.scalars(select(User).where(User.id.in_(actor_ids)))}
        return [self._to_read(item, actors.get(item.user_id)) for item in items]

    def _to_read(self, item: Activity, actor: User | None) -> ActivityRead:
        return ActivityRead(
            id=item.id,
            user=item.user_id,
            actor=(
                ActorRead(id=actor.id, first_name=actor.first_name, last_name=actor.last_name, email=actor.email)
                if actor is not None
                else None
            ),
            action=item.action,
            entity_type=item.entity_type,
            entity_id=item.entity_id,
            details=dict(item.details or {}),
            ip_address=item.ip_address,
            user_agent=item.user_agent,
            created_at=item.created_at,
        )


activity_log = ActivityLogService()
