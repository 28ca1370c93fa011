from __future__ import annotations

import uuid
from datetime import date
from typing import Annotated, Literal

from pydantic import AfterValidator, Field, StringConstraints

from salesdesk.core.schemas import ApiModel, Email, UtcDatetime


LeadStatus = Literal["New", "In Progress", "Closed Won", "Closed Lost"]
DealStatus = Literal["Open", "Won", "Lost"]
TaskStatus = Literal["Open", "In Progress", "Done"]
TaskPriority = Literal["Low", "Medium", "High"]

Tag = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=30)]

# Duplicates collapse to the first occurrence.
TagList = Annotated[list[Tag], AfterValidator(lambda tags: list(dict.fromkeys(tags)))]


# Leads


class LeadCreate(ApiModel):
    name: str = Field(min_length=1, max_length=100)
    email: Email
    phone: str = Field(min_length=1, max_length=20)
    source: str = Field(min_length=1, max_length=50)
    status: LeadStatus = "New"
    assigned_agent: uuid.UUID | None = None
    notes: str | None = Field(default=None, max_length=1000)


class LeadUpdate(ApiModel):
    name: str | None = Field(default=None, min_length=1, max_length=100)
    email: Email | None = None
    phone: str | None = Field(default=None, min_length=1, max_length=20)
    source: str | None = Field(default=None, min_length=1, max_length=50)
    status: LeadStatus | None = None
    assigned_agent: uuid.UUID | None = None
    notes: str | None = Field(default=None, max_length=1000)


class LeadRead(ApiModel):
    id: uuid.UUID
    name: str
    email: str
    phone: str
    status: LeadStatus
    source: str
    assigned_agent: uuid.UUID | None = None
    notes: str | None = None
    is_archived: bool
    converted_to_customer: uuid.UUID | None = None
    converted_at: UtcDatetime | None = None
    created_at: UtcDatetime
    updated_at: UtcDatetime


# Customers


class DealIn(ApiModel):
    title: str = Field(min_length=1, max_length=200)
    value: float = Field(ge=0)
    status: DealStatus = "Open"
    expected_close_date: date


class DealRead(ApiModel):
    title: str
    value: float
    status: DealStatus
    expected_close_date: date


class NoteCreate(ApiModel):
    content: str = Field(min_length=1, max_length=1000)


class NoteRead(ApiModel):
    content: str
    created_by: uuid.UUID
    created_at: UtcDatetime


class CustomerCreate(ApiModel):
    name: str = Field(min_length=1, max_length=100)
    company: str = Field(min_length=1, max_length=100)
    email: Email
    phone: str = Field(min_length=1, max_length=20)
    tags: TagList = Field(default_factory=list)
    deals: list[DealIn] = Field(default_factory=list)
    owner: uuid.UUID | None = None


class CustomerUpdate(ApiModel):
    name: str | None = Field(default=None, min_length=1, max_length=100)
    company: str | None = Field(default=None, min_length=1, max_length=100)
    email: Email | None = None
    phone: str | None = Field(default=None, min_length=1, max_length=20)
    tags: TagList | None = None
    deals: list[DealIn] | None = None
    owner: uuid.UUID | None = None


class CustomerRead(ApiModel):
    id: uuid.UUID
    name: str
    company: str
    email: str
    phone: str
    tags: list[str]
    owner: uuid.UUID
    notes: list[NoteRead]
    deals: list[DealRead]
    converted_from_lead: uuid.UUID | None = None
    created_at: UtcDatetime
    updated_at: UtcDatetime


class LeadConvertRequest(ApiModel):
    company: str = Field(min_length=1, max_length=100)
    tags: TagList = Field(default_factory=list)
    deals: list[DealIn] = Field(default_factory=list)


class LeadConversionResult(ApiModel):
    customer: CustomerRead
    lead: LeadRead


# Tasks


class LeadRef(ApiModel):
    type: Literal["Lead"]
    id: uuid.UUID


class CustomerRef(ApiModel):
    type: Literal["Customer"]
    id: uuid.UUID


RelatedTo = Annotated[LeadRef | CustomerRef, Field(discriminator="type")]


class TaskCreate(ApiModel):
    title: str = Field(min_length=1, max_length=200)
    description: str | None = Field(default=None, max_length=1000)
    due_date: UtcDatetime
    status: TaskStatus = "Open"
    priority: TaskPriority = "Medium"
    related_to: RelatedTo
    assigned_to: uuid.UUID | None = None


class TaskUpdate(ApiModel):
    title: str | None = Field(default=None, min_length=1, max_length=200)
    description: str | None = Field(default=None, max_length=1000)
    due_date: UtcDatetime | None = None
    status: TaskStatus | None = None
    priority: TaskPriority | None = None
    related_to: RelatedTo | None = None
    assigned_to: uuid.UUID | None = None


class TaskRead(ApiModel):
    id: uuid.UUID
    title: str
    description: str | None = None
    due_date: UtcDatetime
    status: TaskStatus
    priority: TaskPriority
    related_to: RelatedTo
    owner: uuid.UUID
    assigned_to: uuid.UUID | None = None
    completed_at: UtcDatetime | None = None
    is_overdue: bool
    created_at: UtcDatetime
    updated_at: UtcDatetime
