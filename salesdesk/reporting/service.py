from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
from datetime import datetime, time, timedelta, timezone
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.orm import Session
from sqlalchemy.sql import Select

from salesdesk.activity.service import activity_log
from salesdesk.core.clock import as_utc, utcnow
from salesdesk.core.context import CallerContext
from salesdesk.core.scope import apply_scope
from salesdesk.crm.models import LEAD_STATUSES, Customer, Lead, Task
from salesdesk.reporting.schemas import DashboardSummary, DayCount, StatusCount


def _count(session: Session, stmt: Select[Any]) -> int:
    return int(session.scalar(select(func.count()).select_from(stmt.subquery())) or 0)


@dataclass(slots=True)
class DashboardService:
    """On-demand rollups, scoped exactly like the list endpoints."""

    trailing_days: int = 14

    def summary(self, session: Session, caller: CallerContext, *, now: datetime | None = None) -> DashboardSummary:
        current = as_utc(now) if now is not None else utcnow()

        leads = apply_scope(select(Lead.id).where(Lead.is_archived.is_(False)), caller, Lead.assigned_agent_id)
        customers = apply_scope(select(Customer.id), caller, Customer.owner_user_id)
        open_tasks = apply_scope(
            select(Task.id).where(Task.status != "Done"),
            caller,
            Task.owner_user_id,
            Task.assigned_to_user_id,
        )

        return DashboardSummary(
            total_leads=_count(session, leads),
            total_customers=_count(session, customers),
            open_tasks=_count(session, open_tasks),
            overdue_tasks=_count(session, open_tasks.where(Task.due_date < current)),
            leads_by_status=self._leads_by_status(session, caller),
            leads_created_per_day=self._leads_per_day(session, caller, current),
            recent_activity=activity_log.recent(session, caller),
        )

    def _leads_by_status(self, session: Session, caller: CallerContext) -> list[StatusCount]:
        stmt = apply_scope(
            select(Lead.status, func.count().label("count")).where(Lead.is_archived.is_(False)),
            caller,
            Lead.assigned_agent_id,
        ).group_by(Lead.status)
        counts = {row.status: int(row.count) for row in session.execute(stmt)}
        return [StatusCount(status=status, count=counts.get(status, 0)) for status in LEAD_STATUSES]

    def _leads_per_day(self, session: Session, caller: CallerContext, current: datetime) -> list[DayCount]:
        first_day = current.date() - timedelta(days=self.trailing_days - 1)
        window_start = datetime.combine(first_day, time.min, tzinfo=timezone.utc)
        stmt = apply_scope(
            select(Lead.created_at).where(Lead.is_archived.is_(False), Lead.created_at >= window_start),
            caller,
            Lead.assigned_agent_id,
        )
        per_day = Counter(as_utc(created_at).date() for created_at in session.scalars(stmt))
        days = [first_day + timedelta(days=offset) for offset in range(self.trailing_days)]
        return [DayCount(date=day, count=per_day.get(day, 0)) for day in days]


dashboard_service = DashboardService()
