from __future__ import annotations

import logging
import uuid
from datetime import datetime, time, timedelta, timezone
from decimal import Decimal
from typing import Any

from sqlalchemy import case, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.sql import Select

from salesdesk.activity.service import activity_log
from salesdesk.core.clock import as_utc, utcnow
from salesdesk.core.context import CallerContext
from salesdesk.core.errors import (
    AuthorizationError,
    ConflictError,
    InvalidStateTransitionError,
    NotFoundError,
    ValidationError,
)
from salesdesk.core.pagination import PageParams, paginate
from salesdesk.core.scope import apply_scope, ensure_record_access, scoped_filters
from salesdesk.crm.models import (
    TERMINAL_LEAD_STATUSES,
    Customer,
    CustomerDeal,
    CustomerNote,
    CustomerTag,
    Lead,
    Task,
)
from salesdesk.crm.schemas import (
    CustomerCreate,
    CustomerRead,
    CustomerRef,
    CustomerUpdate,
    DealIn,
    DealRead,
    LeadConversionResult,
    LeadConvertRequest,
    LeadCreate,
    LeadRead,
    LeadRef,
    LeadUpdate,
    NoteRead,
    TaskCreate,
    TaskRead,
    TaskUpdate,
)
from salesdesk.identity.service import user_service
from salesdesk.metrics import observe_lead_conversion, observe_scope_denied
from salesdesk.otel import workflow_span


logger = logging.getLogger("salesdesk.crm")

MAX_CUSTOMER_NOTES = 5
NOTE_PREVIEW_LENGTH = 100

_NON_NULLABLE_LEAD_FIELDS = {"name", "email", "phone", "source", "status", "assigned_agent"}
_NON_NULLABLE_CUSTOMER_FIELDS = {"name", "company", "email", "phone", "tags", "deals", "owner"}
_NON_NULLABLE_TASK_FIELDS = {"title", "due_date", "status", "priority", "related_to", "assigned_to"}


def _changes(dto: Any, non_nullable: set[str]) -> dict[str, Any]:
    # An explicit null on a required field means "leave unchanged".
    payload = dto.model_dump(exclude_unset=True)
    return {key: value for key, value in payload.items() if value is not None or key not in non_nullable}


def _updated_fields(dto: Any) -> list[str]:
    return list(dto.model_dump(by_alias=True, exclude_unset=True).keys())


def _search_clause(term: str, *columns: Any) -> Any:
    pattern = f"%{term}%"
    return or_(*(column.ilike(pattern) for column in columns))


def _apply_created_range(stmt: Select[Any], column: Any, filters: dict[str, Any]) -> Select[Any]:
    if filters.get("created_from"):
        stmt = stmt.where(column >= as_utc(filters["created_from"]))
    if filters.get("created_to"):
        stmt = stmt.where(column <= as_utc(filters["created_to"]))
    return stmt


def _deal_rows(deals: list[DealIn]) -> list[CustomerDeal]:
    return [
        CustomerDeal(
            title=deal.title,
            value=Decimal(str(deal.value)),
            status=deal.status,
            expected_close_date=deal.expected_close_date,
        )
        for deal in deals
    ]


class LeadService:
    entity_type = "Lead"

    def create_lead(self, session: Session, caller: CallerContext, dto: LeadCreate) -> LeadRead:
        assigned_agent_id = caller.user_id
        if caller.is_admin and dto.assigned_agent is not None:
            user_service.ensure_exists(session, dto.assigned_agent, "assignedAgent")
            assigned_agent_id = dto.assigned_agent

        self._ensure_email_available(session, dto.email)
        lead = Lead(
            name=dto.name,
            email=dto.email,
            phone=dto.phone,
            source=dto.source,
            status=dto.status,
            assigned_agent_id=assigned_agent_id,
            notes=dto.notes,
        )
        session.add(lead)
        self._commit(session)

        result = self._to_read(lead)
        activity_log.record(
            session,
            caller,
            action="Lead Created",
            entity_type=self.entity_type,
            entity_id=lead.id,
            details={"name": lead.name, "email": lead.email, "source": lead.source},
        )
        return result

    def list_leads(
        self,
        session: Session,
        caller: CallerContext,
        filters: dict[str, Any],
        params: PageParams,
    ) -> tuple[list[LeadRead], int]:
        allowed = scoped_filters(caller, filters, owner_keys=("assigned_agent",))
        stmt = apply_scope(select(Lead).where(Lead.is_archived.is_(False)), caller, Lead.assigned_agent_id)

        if allowed.get("status"):
            stmt = stmt.where(Lead.status == allowed["status"])
        if allowed.get("assigned_agent"):
            stmt = stmt.where(Lead.assigned_agent_id == allowed["assigned_agent"])
        if allowed.get("search"):
            stmt = stmt.where(_search_clause(allowed["search"], Lead.name, Lead.email, Lead.phone, Lead.source))
        stmt = _apply_created_range(stmt, Lead.created_at, allowed)

        rows, total = paginate(session, stmt.order_by(Lead.created_at.desc(), Lead.id), params)
        return [self._to_read(row) for row in rows], total

    def get_lead(self, session: Session, caller: CallerContext, lead_id: uuid.UUID) -> LeadRead:
        return self._to_read(self._load_accessible(session, caller, lead_id))

    def update_lead(self, session: Session, caller: CallerContext, lead_id: uuid.UUID, dto: LeadUpdate) -> LeadRead:
        lead = self._load_accessible(session, caller, lead_id)
        changes = _changes(dto, _NON_NULLABLE_LEAD_FIELDS)

        if "assigned_agent" in changes:
            requested_agent = changes.pop("assigned_agent")
            if not caller.is_admin and requested_agent != caller.user_id:
                observe_scope_denied("lead")
                raise AuthorizationError("Agents cannot reassign leads")
            if requested_agent != lead.assigned_agent_id:
                user_service.ensure_exists(session, requested_agent, "assignedAgent")
            lead.assigned_agent_id = requested_agent

        if "email" in changes and changes["email"] != lead.email:
            self._ensure_email_available(session, changes["email"], exclude_id=lead.id)

        for key, value in changes.items():
            setattr(lead, key, value)
        self._commit(session)

        result = self._to_read(lead)
        activity_log.record(
            session,
            caller,
            action="Lead Updated",
            entity_type=self.entity_type,
            entity_id=lead.id,
            details={"updatedFields": _updated_fields(dto)},
        )
        return result

    def archive_lead(self, session: Session, caller: CallerContext, lead_id: uuid.UUID) -> None:
        lead = self._load_accessible(session, caller, lead_id)
        lead.is_archived = True
        session.commit()

        activity_log.record(
            session,
            caller,
            action="Lead Archived",
            entity_type=self.entity_type,
            entity_id=lead.id,
            details={"name": lead.name},
        )

    def convert_lead(
        self,
        session: Session,
        caller: CallerContext,
        lead_id: uuid.UUID,
        dto: LeadConvertRequest,
    ) -> LeadConversionResult:
        """Turn a live, non-terminal lead into a customer owned by the caller.

        The customer insert and the lead update share one transaction: either
        both are committed or neither is. The activity entry is written after
        the commit.
        """

        with workflow_span("crm.lead.convert", caller.correlation_id, lead_id=str(lead_id)) as span:
            lead = self._load_accessible(session, caller, lead_id)
            if lead.status in TERMINAL_LEAD_STATUSES:
                observe_lead_conversion("rejected")
                raise InvalidStateTransitionError(f"Lead is already {lead.status} and cannot be converted")

            if session.scalar(select(Customer.id).where(Customer.email == lead.email)) is not None:
                observe_lead_conversion("conflict")
                raise ConflictError("Customer with this email already exists")

            customer = Customer(
                name=lead.name,
                company=dto.company,
                email=lead.email,
                phone=lead.phone,
                owner_user_id=caller.user_id,
                converted_from_lead_id=lead.id,
                tag_rows=[CustomerTag(value=tag) for tag in dto.tags],
                deals=_deal_rows(dto.deals),
            )
            session.add(customer)
            try:
                session.flush()
                lead.status = "Closed Won"
                lead.converted_to_customer_id = customer.id
                lead.converted_at = utcnow()
                session.commit()
            except IntegrityError as exc:
                session.rollback()
                observe_lead_conversion("conflict")
                raise ConflictError("Customer with this email already exists") from exc

            span.set_attribute("customer_id", str(customer.id))
            observe_lead_conversion("converted")
            result = LeadConversionResult(
                customer=customer_service._to_read(customer),
                lead=self._to_read(lead),
            )

        logger.info(
            "crm.lead_converted",
            extra={"lead_id": str(lead_id), "customer_id": str(result.customer.id), "user_id": str(caller.user_id)},
        )
        activity_log.record(
            session,
            caller,
            action="Lead Converted to Customer",
            entity_type=self.entity_type,
            entity_id=lead_id,
            details={"customerId": str(result.customer.id), "company": dto.company},
        )
        return result

    def _load_accessible(self, session: Session, caller: CallerContext, lead_id: uuid.UUID) -> Lead:
        lead = session.get(Lead, lead_id)
        if lead is None or lead.is_archived:
            raise NotFoundError("Lead not found")
        ensure_record_access(caller, "lead", lead.assigned_agent_id)
        return lead

    def _ensure_email_available(self, session: Session, email: str, exclude_id: uuid.UUID | None = None) -> None:
        stmt = select(Lead.id).where(Lead.email == email, Lead.is_archived.is_(False))
        if exclude_id is not None:
            stmt = stmt.where(Lead.id != exclude_id)
        if session.scalar(stmt) is not None:
            raise ConflictError("Lead with this email already exists")

    def _commit(self, session: Session) -> None:
        try:
            session.commit()
        except IntegrityError as exc:
            session.rollback()
            raise ConflictError("Lead with this email already exists") from exc

    def _to_read(self, lead: Lead) -> LeadRead:
        return LeadRead(
            id=lead.id,
            name=lead.name,
            email=lead.email,
            phone=lead.phone,
            status=lead.status,
            source=lead.source,
            assigned_agent=lead.assigned_agent_id,
            notes=lead.notes,
            is_archived=lead.is_archived,
            converted_to_customer=lead.converted_to_customer_id,
            converted_at=lead.converted_at,
            created_at=lead.created_at,
            updated_at=lead.updated_at,
        )


class CustomerService:
    entity_type = "Customer"

    def create_customer(self, session: Session, caller: CallerContext, dto: CustomerCreate) -> CustomerRead:
        owner_user_id = caller.user_id
        if caller.is_admin and dto.owner is not None:
            user_service.ensure_exists(session, dto.owner, "owner")
            owner_user_id = dto.owner

        self._ensure_email_available(session, dto.email)
        customer = Customer(
            name=dto.name,
            company=dto.company,
            email=dto.email,
            phone=dto.phone,
            owner_user_id=owner_user_id,
            tag_rows=[CustomerTag(value=tag) for tag in dto.tags],
            deals=_deal_rows(dto.deals),
        )
        session.add(customer)
        self._commit(session)

        result = self._to_read(customer)
        activity_log.record(
            session,
            caller,
            action="Customer Created",
            entity_type=self.entity_type,
            entity_id=customer.id,
            details={"name": customer.name, "company": customer.company, "email": customer.email},
        )
        return result

    def list_customers(
        self,
        session: Session,
        caller: CallerContext,
        filters: dict[str, Any],
        params: PageParams,
    ) -> tuple[list[CustomerRead], int]:
        allowed = scoped_filters(caller, filters, owner_keys=("owner",))
        stmt = apply_scope(select(Customer), caller, Customer.owner_user_id)

        if allowed.get("owner"):
            stmt = stmt.where(Customer.owner_user_id == allowed["owner"])
        if allowed.get("tags"):
            stmt = stmt.where(Customer.tag_rows.any(CustomerTag.value.in_(allowed["tags"])))
        if allowed.get("search"):
            stmt = stmt.where(
                _search_clause(allowed["search"], Customer.name, Customer.company, Customer.email, Customer.phone)
            )
        stmt = _apply_created_range(stmt, Customer.created_at, allowed)

        rows, total = paginate(session, stmt.order_by(Customer.created_at.desc(), Customer.id), params)
        return [self._to_read(row) for row in rows], total

    def get_customer(self, session: Session, caller: CallerContext, customer_id: uuid.UUID) -> CustomerRead:
        return self._to_read(self._load_accessible(session, caller, customer_id))

    def update_customer(
        self,
        session: Session,
        caller: CallerContext,
        customer_id: uuid.UUID,
        dto: CustomerUpdate,
    ) -> CustomerRead:
        customer = self._load_accessible(session, caller, customer_id)
        changes = _changes(dto, _NON_NULLABLE_CUSTOMER_FIELDS)

        if "owner" in changes:
            requested_owner = changes.pop("owner")
            if not caller.is_admin and requested_owner != caller.user_id:
                observe_scope_denied("customer")
                raise AuthorizationError("Agents cannot reassign customers")
            if requested_owner != customer.owner_user_id:
                user_service.ensure_exists(session, requested_owner, "owner")
            customer.owner_user_id = requested_owner

        if "email" in changes and changes["email"] != customer.email:
            self._ensure_email_available(session, changes["email"], exclude_id=customer.id)

        if "tags" in changes:
            existing = {row.value: row for row in customer.tag_rows}
            customer.tag_rows = [existing.get(tag) or CustomerTag(value=tag) for tag in changes.pop("tags")]
        if "deals" in changes:
            changes.pop("deals")
            customer.deals = _deal_rows(dto.deals or [])

        for key, value in changes.items():
            setattr(customer, key, value)
        self._commit(session)

        result = self._to_read(customer)
        activity_log.record(
            session,
            caller,
            action="Customer Updated",
            entity_type=self.entity_type,
            entity_id=customer.id,
            details={"updatedFields": _updated_fields(dto)},
        )
        return result

    def delete_customer(self, session: Session, caller: CallerContext, customer_id: uuid.UUID) -> None:
        customer = self._load_accessible(session, caller, customer_id)
        details = {"name": customer.name, "company": customer.company}
        deleted_id = customer.id
        session.delete(customer)
        session.commit()

        activity_log.record(
            session,
            caller,
            action="Customer Deleted",
            entity_type=self.entity_type,
            entity_id=deleted_id,
            details=details,
        )

    def add_note(self, session: Session, caller: CallerContext, customer_id: uuid.UUID, content: str) -> list[NoteRead]:
        """Append a note and keep only the newest :data:`MAX_CUSTOMER_NOTES`."""

        customer = self._load_accessible(session, caller, customer_id)
        customer.notes.append(CustomerNote(content=content, created_by=caller.user_id))
        overflow = len(customer.notes) - MAX_CUSTOMER_NOTES
        if overflow > 0:
            # delete-orphan removes the dropped rows on flush
            del customer.notes[:overflow]
        session.commit()

        notes = [self._note_read(note) for note in customer.notes]
        activity_log.record(
            session,
            caller,
            action="Note Added to Customer",
            entity_type=self.entity_type,
            entity_id=customer.id,
            details={"noteContent": content[:NOTE_PREVIEW_LENGTH]},
        )
        return notes

    def _load_accessible(self, session: Session, caller: CallerContext, customer_id: uuid.UUID) -> Customer:
        customer = session.get(Customer, customer_id)
        if customer is None:
            raise NotFoundError("Customer not found")
        ensure_record_access(caller, "customer", customer.owner_user_id)
        return customer

    def _ensure_email_available(self, session: Session, email: str, exclude_id: uuid.UUID | None = None) -> None:
        stmt = select(Customer.id).where(Customer.email == email)
        if exclude_id is not None:
            stmt = stmt.where(Customer.id != exclude_id)
        if session.scalar(stmt) is not None:
            raise ConflictError("Customer with this email already exists")

    def _commit(self, session: Session) -> None:
        try:
            session.commit()
        except IntegrityError as exc:
            session.rollback()
            raise ConflictError("Customer with this email already exists") from exc

    def _note_read(self, note: CustomerNote) -> NoteRead:
        return NoteRead(content=note.content, created_by=note.created_by, created_at=note.created_at)

    def _to_read(self, customer: Customer) -> CustomerRead:
        return CustomerRead(
            id=customer.id,
            name=customer.name,
            company=customer.company,
            email=customer.email,
            phone=customer.phone,
            tags=customer.tags,
            owner=customer.owner_user_id,
            notes=[self._note_read(note) for note in customer.notes],
            deals=[
                DealRead(
                    title=deal.title,
                    value=float(deal.value),
                    status=deal.status,
                    expected_close_date=deal.expected_close_date,
                )
                for deal in customer.deals
            ],
            converted_from_lead=customer.converted_from_lead_id,
            created_at=customer.created_at,
            updated_at=customer.updated_at,
        )


class TaskService:
    entity_type = "Task"

    priority_rank = case(
        (Task.priority == "High", 3),
        (Task.priority == "Medium", 2),
        else_=1,
    )

    def create_task(self, session: Session, caller: CallerContext, dto: TaskCreate) -> TaskRead:
        self._ensure_related_exists(session, dto.related_to)
        assigned_to = caller.user_id
        if dto.assigned_to is not None and dto.assigned_to != caller.user_id:
            user_service.ensure_exists(session, dto.assigned_to, "assignedTo")
            assigned_to = dto.assigned_to

        task = Task(
            title=dto.title,
            description=dto.description,
            due_date=dto.due_date,
            status=dto.status,
            priority=dto.priority,
            related_type=dto.related_to.type,
            related_id=dto.related_to.id,
            owner_user_id=caller.user_id,
            assigned_to_user_id=assigned_to,
            completed_at=utcnow() if dto.status == "Done" else None,
        )
        session.add(task)
        session.commit()

        result = self._to_read(task)
        activity_log.record(
            session,
            caller,
            action="Task Created",
            entity_type=self.entity_type,
            entity_id=task.id,
            details={"title": task.title, "dueDate": result.due_date.isoformat(), "priority": task.priority},
        )
        return result

    def list_tasks(
        self,
        session: Session,
        caller: CallerContext,
        filters: dict[str, Any],
        params: PageParams,
        *,
        now: datetime | None = None,
    ) -> tuple[list[TaskRead], int]:
        current = now or utcnow()
        allowed = scoped_filters(caller, filters, owner_keys=("owner", "assigned_to"))
        stmt = apply_scope(select(Task), caller, Task.owner_user_id, Task.assigned_to_user_id)

        if allowed.get("status"):
            stmt = stmt.where(Task.status == allowed["status"])
        if allowed.get("priority"):
            stmt = stmt.where(Task.priority == allowed["priority"])
        if allowed.get("owner"):
            stmt = stmt.where(Task.owner_user_id == allowed["owner"])
        if allowed.get("assigned_to"):
            stmt = stmt.where(Task.assigned_to_user_id == allowed["assigned_to"])
        if allowed.get("due_date"):
            day_start = datetime.combine(allowed["due_date"], time.min, tzinfo=timezone.utc)
            stmt = stmt.where(Task.due_date >= day_start, Task.due_date < day_start + timedelta(days=1))
        if allowed.get("overdue"):
            stmt = stmt.where(Task.due_date < current, Task.status != "Done")
        if allowed.get("search"):
            stmt = stmt.where(_search_clause(allowed["search"], Task.title, Task.description))

        stmt = stmt.order_by(Task.due_date.asc(), self.priority_rank.desc(), Task.created_at, Task.id)
        rows, total = paginate(session, stmt, params)
        return [self._to_read(row, now=current) for row in rows], total

    def get_task(self, session: Session, caller: CallerContext, task_id: uuid.UUID) -> TaskRead:
        return self._to_read(self._load_accessible(session, caller, task_id))

    def update_task(self, session: Session, caller: CallerContext, task_id: uuid.UUID, dto: TaskUpdate) -> TaskRead:
        task = self._load_accessible(session, caller, task_id)
        changes = _changes(dto, _NON_NULLABLE_TASK_FIELDS)

        if "related_to" in changes:
            changes.pop("related_to")
            related = dto.related_to
            self._ensure_related_exists(session, related)
            task.related_type = related.type
            task.related_id = related.id
        if "assigned_to" in changes:
            assigned_to = changes.pop("assigned_to")
            if assigned_to != task.assigned_to_user_id:
                user_service.ensure_exists(session, assigned_to, "assignedTo")
            task.assigned_to_user_id = assigned_to
        if "status" in changes:
            new_status = changes["status"]
            if new_status == "Done" and task.status != "Done":
                task.completed_at = utcnow()
            elif new_status != "Done":
                task.completed_at = None

        for key, value in changes.items():
            setattr(task, key, value)
        session.commit()

        result = self._to_read(task)
        activity_log.record(
            session,
            caller,
            action="Task Updated",
            entity_type=self.entity_type,
            entity_id=task.id,
            details={"updatedFields": _updated_fields(dto)},
        )
        return result

    def delete_task(self, session: Session, caller: CallerContext, task_id: uuid.UUID) -> None:
        task = self._load_accessible(session, caller, task_id)
        title = task.title
        deleted_id = task.id
        session.delete(task)
        session.commit()

        activity_log.record(
            session,
            caller,
            action="Task Deleted",
            entity_type=self.entity_type,
            entity_id=deleted_id,
            details={"title": title},
        )

    def _load_accessible(self, session: Session, caller: CallerContext, task_id: uuid.UUID) -> Task:
        task = session.get(Task, task_id)
        if task is None:
            raise NotFoundError("Task not found")
        ensure_record_access(caller, "task", task.owner_user_id, task.assigned_to_user_id)
        return task

    def _ensure_related_exists(self, session: Session, related: LeadRef | CustomerRef) -> None:
        if related.type == "Lead":
            lead = session.get(Lead, related.id)
            found = lead is not None and not lead.is_archived
        else:
            found = session.get(Customer, related.id) is not None
        if not found:
            raise ValidationError.for_field("relatedTo", f"Related {related.type} not found")

    def _to_read(self, task: Task, *, now: datetime | None = None) -> TaskRead:
        current = now or utcnow()
        due_date = as_utc(task.due_date)
        related: LeadRef | CustomerRef
        if task.related_type == "Lead":
            related = LeadRef(type="Lead", id=task.related_id)
        else:
            related = CustomerRef(type="Customer", id=task.related_id)
        return TaskRead(
            id=task.id,
            title=task.title,
            description=task.description,
            due_date=due_date,
            status=task.status,
            priority=task.priority,
            related_to=related,
            owner=task.owner_user_id,
            assigned_to=task.assigned_to_user_id,
            completed_at=task.completed_at,
            is_overdue=task.status != "Done" and due_date < current,
            created_at=task.created_at,
            updated_at=task.updated_at,
        )


lead_service = LeadService()
customer_service = CustomerService()
task_service = TaskService()
