from __future__ import annotations

import datetime as dt

from salesdesk.activity.schemas import ActivityRead
from salesdesk.core.schemas import ApiModel
from salesdesk.crm.schemas import LeadStatus


class StatusCount(ApiModel):
    status: LeadStatus
    count: int


class DayCount(ApiModel):
    date: dt.date
    count: int


class DashboardSummary(ApiModel):
    total_leads: int
    total_customers: int
    open_tasks: int
    overdue_tasks: int
    leads_by_status: list[StatusCount]
    leads_created_per_day: list[DayCount]
    recent_activity: list[ActivityRead]
