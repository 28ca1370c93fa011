from __future__ import annotations

import uuid
from datetime import date, datetime

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from salesdesk.core.auth import get_current_user
from salesdesk.core.context import CallerContext
from salesdesk.core.database import get_db
from salesdesk.core.pagination import PageParams, page_params, pagination_for
from salesdesk.core.schemas import DataResponse, ListResponse, MessageResponse, MutationResponse
from salesdesk.crm.schemas import (
    CustomerCreate,
    CustomerRead,
    CustomerUpdate,
    LeadConversionResult,
    LeadConvertRequest,
    LeadCreate,
    LeadRead,
    LeadStatus,
    LeadUpdate,
    NoteCreate,
    NoteRead,
    TaskCreate,
    TaskPriority,
    TaskRead,
    TaskStatus,
    TaskUpdate,
)
from salesdesk.crm.service import customer_service, lead_service, task_service


leads_router = APIRouter(prefix="/api/leads", tags=["crm.leads"])
customers_router = APIRouter(prefix="/api/customers", tags=["crm.customers"])
tasks_router = APIRouter(prefix="/api/tasks", tags=["crm.tasks"])


def _parse_str_list(raw: str | None) -> list[str]:
    if raw is None:
        return []
    return [item.strip() for item in raw.split(",") if item.strip()]


# Leads


@leads_router.get("", response_model=ListResponse[LeadRead])
def list_leads(
    status_filter: LeadStatus | None = Query(default=None, alias="status"),
    search: str | None = Query(default=None, max_length=100),
    assigned_agent: uuid.UUID | None = Query(default=None, alias="assignedAgent"),
    created_from: datetime | None = Query(default=None, alias="createdFrom"),
    created_to: datetime | None = Query(default=None, alias="createdTo"),
    params: PageParams = Depends(page_params),
    db: Session = Depends(get_db),
    caller: CallerContext = Depends(get_current_user),
) -> ListResponse[LeadRead]:
    items, total = lead_service.list_leads(
        db,
        caller,
        filters={
            "status": status_filter,
            "search": search,
            "assigned_agent": assigned_agent,
            "created_from": created_from,
            "created_to": created_to,
        },
        params=params,
    )
    return ListResponse[LeadRead](data=items, pagination=pagination_for(params, total))


@leads_router.post("", response_model=MutationResponse[LeadRead], status_code=status.HTTP_201_CREATED)
def create_lead(
    dto: LeadCreate,
    db: Session = Depends(get_db),
    caller: CallerContext = Depends(get_current_user),
) -> MutationResponse[LeadRead]:
    return MutationResponse[LeadRead](message="Lead created successfully", data=lead_service.create_lead(db, caller, dto))


@leads_router.get("/{lead_id}", response_model=DataResponse[LeadRead])
def get_lead(
    lead_id: uuid.UUID,
    db: Session = Depends(get_db),
    caller: CallerContext = Depends(get_current_user),
) -> DataResponse[LeadRead]:
    return DataResponse[LeadRead](data=lead_service.get_lead(db, caller, lead_id))


@leads_router.patch("/{lead_id}", response_model=MutationResponse[LeadRead])
def update_lead(
    lead_id: uuid.UUID,
    dto: LeadUpdate,
    db: Session = Depends(get_db),
    caller: CallerContext = Depends(get_current_user),
) -> MutationResponse[LeadRead]:
    return MutationResponse[LeadRead](
        message="Lead updated successfully",
        data=lead_service.update_lead(db, caller, lead_id, dto),
    )


@leads_router.delete("/{lead_id}", response_model=MessageResponse)
def archive_lead(
    lead_id: uuid.UUID,
    db: Session = Depends(get_db),
    caller: CallerContext = Depends(get_current_user),
) -> MessageResponse:
    lead_service.archive_lead(db, caller, lead_id)
    return MessageResponse(message="Lead archived successfully")


@leads_router.post("/{lead_id}/convert", response_model=MutationResponse[LeadConversionResult])
def convert_lead(
    lead_id: uuid.UUID,
    dto: LeadConvertRequest,
    db: Session = Depends(get_db),
    caller: CallerContext = Depends(get_current_user),
) -> MutationResponse[LeadConversionResult]:
    return MutationResponse[LeadConversionResult](
        message="Lead converted to customer successfully",
        data=lead_service.convert_lead(db, caller, lead_id, dto),
    )


# Customers


@customers_router.get("", response_model=ListResponse[CustomerRead])
def list_customers(
    search: str | None = Query(default=None, max_length=100),
    tags: str | None = Query(default=None, description="Comma-separated; matches any"),
    owner: uuid.UUID | None = Query(default=None),
    created_from: datetime | None = Query(default=None, alias="createdFrom"),
    created_to: datetime | None = Query(default=None, alias="createdTo"),
    params: PageParams = Depends(page_params),
    db: Session = Depends(get_db),
    caller: CallerContext = Depends(get_current_user),
) -> ListResponse[CustomerRead]:
    items, total = customer_service.list_customers(
        db,
        caller,
        filters={
            "search": search,
            "tags": _parse_str_list(tags),
            "owner": owner,
            "created_from": created_from,
            "created_to": created_to,
        },
        params=params,
    )
    return ListResponse[CustomerRead](data=items, pagination=pagination_for(params, total))


@customers_router.post("", response_model=MutationResponse[CustomerRead], status_code=status.HTTP_201_CREATED)
def create_customer(
    dto: CustomerCreate,
    db: Session = Depends(get_db),
    caller: CallerContext = Depends(get_current_user),
) -> MutationResponse[CustomerRead]:
    return MutationResponse[CustomerRead](
        message="Customer created successfully",
        data=customer_service.create_customer(db, caller, dto),
    )


@customers_router.get("/{customer_id}", response_model=DataResponse[CustomerRead])
def get_customer(
    customer_id: uuid.UUID,
    db: Session = Depends(get_db),
    caller: CallerContext = Depends(get_current_user),
) -> DataResponse[CustomerRead]:
    return DataResponse[CustomerRead](data=customer_service.get_customer(db, caller, customer_id))


@customers_router.patch("/{customer_id}", response_model=MutationResponse[CustomerRead])
def update_customer(
    customer_id: uuid.UUID,
    dto: CustomerUpdate,
    db: Session = Depends(get_db),
    caller: CallerContext = Depends(get_current_user),
) -> MutationResponse[CustomerRead]:
    return MutationResponse[CustomerRead](
        message="Customer updated successfully",
        data=customer_service.update_customer(db, caller, customer_id, dto),
    )


@customers_router.delete("/{customer_id}", response_model=MessageResponse)
def delete_customer(
    customer_id: uuid.UUID,
    db: Session = Depends(get_db),
    caller: CallerContext = Depends(get_current_user),
) -> MessageResponse:
    customer_service.delete_customer(db, caller, customer_id)
    return MessageResponse(message="Customer deleted successfully")


@customers_router.post("/{customer_id}/notes", response_model=MutationResponse[list[NoteRead]])
def add_customer_note(
    customer_id: uuid.UUID,
    dto: NoteCreate,
    db: Session = Depends(get_db),
    caller: CallerContext = Depends(get_current_user),
) -> MutationResponse[list[NoteRead]]:
    return MutationResponse[list[NoteRead]](
        message="Note added successfully",
        data=customer_service.add_note(db, caller, customer_id, dto.content),
    )


# Tasks


@tasks_router.get("", response_model=ListResponse[TaskRead])
def list_tasks(
    status_filter: TaskStatus | None = Query(default=None, alias="status"),
    priority: TaskPriority | None = Query(default=None),
    owner: uuid.UUID | None = Query(default=None),
    assigned_to: uuid.UUID | None = Query(default=None, alias="assignedTo"),
    due_date: date | None = Query(default=None, alias="dueDate"),
    overdue: bool = Query(default=False),
    search: str | None = Query(default=None, max_length=100),
    params: PageParams = Depends(page_params),
    db: Session = Depends(get_db),
    caller: CallerContext = Depends(get_current_user),
) -> ListResponse[TaskRead]:
    items, total = task_service.list_tasks(
        db,
        caller,
        filters={
            "status": status_filter,
            "priority": priority,
            "owner": owner,
            "assigned_to": assigned_to,
            "due_date": due_date,
            "overdue": overdue,
            "search": search,
        },
        params=params,
    )
    return ListResponse[TaskRead](data=items, pagination=pagination_for(params, total))


@tasks_router.post("", response_model=MutationResponse[TaskRead], status_code=status.HTTP_201_CREATED)
def create_task(
    dto: TaskCreate,
    db: Session = Depends(get_db),
    caller: CallerContext = Depends(get_current_user),
) -> MutationResponse[TaskRead]:
    return MutationResponse[TaskRead](message="Task created successfully", data=task_service.create_task(db, caller, dto))


@tasks_router.get("/{task_id}", response_model=DataResponse[TaskRead])
def get_task(
    task_id: uuid.UUID,
    db: Session = Depends(get_db),
    caller: CallerContext = Depends(get_current_user),
) -> DataResponse[TaskRead]:
    return DataResponse[TaskRead](data=task_service.get_task(db, caller, task_id))


@tasks_router.patch("/{task_id}", response_model=MutationResponse[TaskRead])
def update_task(
    task_id: uuid.UUID,
    dto: TaskUpdate,
    db: Session = Depends(get_db),
    caller: CallerContext = Depends(get_current_user),
) -> MutationResponse[TaskRead]:
    return MutationResponse[TaskRead](
        message="Task updated successfully",
        data=task_service.update_task(db, caller, task_id, dto),
    )


@tasks_router.delete("/{task_id}", response_model=MessageResponse)
def delete_task(
    task_id: uuid.UUID,
    db: Session = Depends(get_db),
    caller: CallerContext = Depends(get_current_user),
) -> MessageResponse:
    task_service.delete_task(db, caller, task_id)
    return MessageResponse(message="Task deleted successfully")
