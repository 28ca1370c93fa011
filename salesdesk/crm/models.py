from __future__ import annotations

import uuid
from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    Uuid,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from salesdesk.core.clock import utcnow
from salesdesk.core.database import Base


LEAD_STATUSES = ("New", "In Progress", "Closed Won", "Closed Lost")
TERMINAL_LEAD_STATUSES = frozenset({"Closed Won", "Closed Lost"})
DEAL_STATUSES = ("Open", "Won", "Lost")
TASK_STATUSES = ("Open", "In Progress", "Done")
TASK_PRIORITIES = ("Low", "Medium", "High")


class Lead(Base):
    __tablename__ = "crm_lead"

    id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    email: Mapped[str] = mapped_column(String(255), nullable=False)
    phone: Mapped[str] = mapped_column(String(20), nullable=False)
    status: Mapped[str] = mapped_column(String(32), nullable=False, default="New", server_default="New")
    source: Mapped[str] = mapped_column(String(50), nullable=False)
    assigned_agent_id: Mapped[uuid.UUID | None] = mapped_column(Uuid(as_uuid=True), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_archived: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default=text("false"))
    converted_to_customer_id: Mapped[uuid.UUID | None] = mapped_column(Uuid(as_uuid=True), nullable=True)
    converted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        onupdate=utcnow,
    )

    __table_args__ = (
        # At most one live lead per email; archived leads do not count.
        Index(
            "uq_crm_lead_active_email",
            "email",
            unique=True,
            postgresql_where=text("NOT is_archived"),
            sqlite_where=text("is_archived = 0"),
        ),
        Index("ix_crm_lead_agent_status", "assigned_agent_id", "status"),
        Index("ix_crm_lead_created", "created_at"),
    )


class Customer(Base):
    __tablename__ = "crm_customer"

    id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    company: Mapped[str] = mapped_column(String(100), nullable=False)
    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    phone: Mapped[str] = mapped_column(String(20), nullable=False)
    owner_user_id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), nullable=False)
    converted_from_lead_id: Mapped[uuid.UUID | None] = mapped_column(Uuid(as_uuid=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        onupdate=utcnow,
    )

    notes: Mapped[list[CustomerNote]] = relationship(
        "CustomerNote",
        back_populates="customer",
        cascade="all, delete-orphan",
        order_by="CustomerNote.id",
    )
    deals: Mapped[list[CustomerDeal]] = relationship(
        "CustomerDeal",
        back_populates="customer",
        cascade="all, delete-orphan",
        order_by="CustomerDeal.id",
    )
    tag_rows: Mapped[list[CustomerTag]] = relationship(
        "CustomerTag",
        back_populates="customer",
        cascade="all, delete-orphan",
        order_by="CustomerTag.id",
    )

    __table_args__ = (
        Index("ix_crm_customer_owner", "owner_user_id"),
        Index("ix_crm_customer_created", "created_at"),
    )

    @property
    def tags(self) -> list[str]:
        return [row.value for row in self.tag_rows]


class CustomerNote(Base):
    __tablename__ = "crm_customer_note"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    customer_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("crm_customer.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    content: Mapped[str] = mapped_column(Text, nullable=False)
    created_by: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)

    customer: Mapped[Customer] = relationship("Customer", back_populates="notes")


class CustomerDeal(Base):
    __tablename__ = "crm_customer_deal"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    customer_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("crm_customer.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    value: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="Open", server_default="Open")
    expected_close_date: Mapped[date] = mapped_column(Date, nullable=False)

    customer: Mapped[Customer] = relationship("Customer", back_populates="deals")


class CustomerTag(Base):
    __tablename__ = "crm_customer_tag"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    customer_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("crm_customer.id", ondelete="CASCADE"),
        nullable=False,
    )
    value: Mapped[str] = mapped_column(String(30), nullable=False)

    customer: Mapped[Customer] = relationship("Customer", back_populates="tag_rows")

    __table_args__ = (
        UniqueConstraint("customer_id", "value", name="uq_crm_customer_tag_value"),
        Index("ix_crm_customer_tag_value", "value"),
    )


class Task(Base):
    __tablename__ = "crm_task"

    id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    due_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="Open", server_default="Open")
    priority: Mapped[str] = mapped_column(String(16), nullable=False, default="Medium", server_default="Medium")
    related_type: Mapped[str] = mapped_column(String(16), nullable=False)
    related_id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), nullable=False)
    owner_user_id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), nullable=False)
    assigned_to_user_id: Mapped[uuid.UUID | None] = mapped_column(Uuid(as_uuid=True), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        onupdate=utcnow,
    )

    __table_args__ = (
        Index("ix_crm_task_owner_status", "owner_user_id", "status"),
        Index("ix_crm_task_assignee_status", "assigned_to_user_id", "status"),
        Index("ix_crm_task_due", "due_date"),
        Index("ix_crm_task_related", "related_type", "related_id"),
    )
