"""create salesdesk schema

Revision ID: 202610190001
Revises:
Create Date: 2026-10-19 00:01:00
"""

from collections.abc import Sequence

from alembic import op
import sqlalchemy as sa


revision: str = "202610190001"
down_revision: str | None = None
branch_labels: Sequence[str] | None = None
depends_on: Sequence[str] | None = None


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("password_hash", sa.String(length=255), nullable=False),
        sa.Column("first_name", sa.String(length=50), nullable=False),
        sa.Column("last_name", sa.String(length=50), nullable=False),
        sa.Column("role", sa.String(length=16), nullable=False, server_default="agent"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("last_login", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)

    op.create_table(
        "crm_lead",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("phone", sa.String(length=20), nullable=False),
        sa.Column("status", sa.String(length=32), nullable=False, server_default="New"),
        sa.Column("source", sa.String(length=50), nullable=False),
        sa.Column("assigned_agent_id", sa.Uuid(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("is_archived", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("converted_to_customer_id", sa.Uuid(), nullable=True),
        sa.Column("converted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "uq_crm_lead_active_email",
        "crm_lead",
        ["email"],
        unique=True,
        postgresql_where=sa.text("NOT is_archived"),
        sqlite_where=sa.text("is_archived = 0"),
    )
    op.create_index("ix_crm_lead_agent_status", "crm_lead", ["assigned_agent_id", "status"], unique=False)
    op.create_index("ix_crm_lead_created", "crm_lead", ["created_at"], unique=False)

    op.create_table(
        "crm_customer",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("company", sa.String(length=100), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("phone", sa.String(length=20), nullable=False),
        sa.Column("owner_user_id", sa.Uuid(), nullable=False),
        sa.Column("converted_from_lead_id", sa.Uuid(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("email"),
    )
    op.create_index("ix_crm_customer_owner", "crm_customer", ["owner_user_id"], unique=False)
    op.create_index("ix_crm_customer_created", "crm_customer", ["created_at"], unique=False)

    op.create_table(
        "crm_customer_note",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("customer_id", sa.Uuid(), sa.ForeignKey("crm_customer.id", ondelete="CASCADE"), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("created_by", sa.Uuid(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_crm_customer_note_customer_id", "crm_customer_note", ["customer_id"], unique=False)

    op.create_table(
        "crm_customer_deal",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("customer_id", sa.Uuid(), sa.ForeignKey("crm_customer.id", ondelete="CASCADE"), nullable=False),
        sa.Column("title", sa.String(length=200), nullable=False),
        sa.Column("value", sa.Numeric(14, 2), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="Open"),
        sa.Column("expected_close_date", sa.Date(), nullable=False),
    )
    op.create_index("ix_crm_customer_deal_customer_id", "crm_customer_deal", ["customer_id"], unique=False)

    op.create_table(
        "crm_customer_tag",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("customer_id", sa.Uuid(), sa.ForeignKey("crm_customer.id", ondelete="CASCADE"), nullable=False),
        sa.Column("value", sa.String(length=30), nullable=False),
        sa.UniqueConstraint("customer_id", "value", name="uq_crm_customer_tag_value"),
    )
    op.create_index("ix_crm_customer_tag_value", "crm_customer_tag", ["value"], unique=False)

    op.create_table(
        "crm_task",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("title", sa.String(length=200), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("due_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="Open"),
        sa.Column("priority", sa.String(length=16), nullable=False, server_default="Medium"),
        sa.Column("related_type", sa.String(length=16), nullable=False),
        sa.Column("related_id", sa.Uuid(), nullable=False),
        sa.Column("owner_user_id", sa.Uuid(), nullable=False),
        sa.Column("assigned_to_user_id", sa.Uuid(), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_crm_task_owner_status", "crm_task", ["owner_user_id", "status"], unique=False)
    op.create_index("ix_crm_task_assignee_status", "crm_task", ["assigned_to_user_id", "status"], unique=False)
    op.create_index("ix_crm_task_due", "crm_task", ["due_date"], unique=False)
    op.create_index("ix_crm_task_related", "crm_task", ["related_type", "related_id"], unique=False)

    op.create_table(
        "activity_log",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("user_id", sa.Uuid(), nullable=False),
        sa.Column("action", sa.String(length=100), nullable=False),
        sa.Column("entity_type", sa.String(length=16), nullable=False),
        sa.Column("entity_id", sa.Uuid(), nullable=False),
        sa.Column("details", sa.JSON(), nullable=False),
        sa.Column("ip_address", sa.String(length=64), nullable=True),
        sa.Column("user_agent", sa.String(length=512), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_activity_log_user_created", "activity_log", ["user_id", "created_at"], unique=False)
    op.create_index("ix_activity_log_entity", "activity_log", ["entity_type", "entity_id"], unique=False)
    op.create_index("ix_activity_log_created", "activity_log", ["created_at"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_activity_log_created", table_name="activity_log")
    op.drop_index("ix_activity_log_entity", table_name="activity_log")
    op.drop_index("ix_activity_log_user_created", table_name="activity_log")
    op.drop_table("activity_log")

    op.drop_index("ix_crm_task_related", table_name="crm_task")
    op.drop_index("ix_crm_task_due", table_name="crm_task")
    op.drop_index("ix_crm_task_assignee_status", table_name="crm_task")
    op.drop_index("ix_crm_task_owner_status", table_name="crm_task")
    op.drop_table("crm_task")

    op.drop_index("ix_crm_customer_tag_value", table_name="crm_customer_tag")
    op.drop_table("crm_customer_tag")
    op.drop_index("ix_crm_customer_deal_customer_id", table_name="crm_customer_deal")
    op.drop_table("crm_customer_deal")
    op.drop_index("ix_crm_customer_note_customer_id", table_name="crm_customer_note")
    op.drop_table("crm_customer_note")
    op.drop_index("ix_crm_customer_created", table_name="crm_customer")
    op.drop_index("ix_crm_customer_owner", table_name="crm_customer")
    op.drop_table("crm_customer")

    op.drop_index("ix_crm_lead_created", table_name="crm_lead")
    op.drop_index("ix_crm_lead_agent_status", table_name="crm_lead")
    op.drop_index("uq_crm_lead_active_email", table_name="crm_lead")
    op.drop_table("crm_lead")

    op.drop_index("ix_users_email", table_name="users")
    op.drop_table("users")
