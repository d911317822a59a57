"""crm schema

Revision ID: 20261019_0001
Revises:
Create Date: 2026-10-19
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = "20261019_0001"
down_revision = None
branch_labels = None
depends_on = None


client_stage = postgresql.ENUM(
    "prospect", "connected", "replied", "meeting", "proposal", "closed", "lost", name="client_stage", create_type=False
)
event_type = postgresql.ENUM("meeting", "sync", "block", "personal", name="event_type", create_type=False)
task_status = postgresql.ENUM("pending", "in_progress", "completed", name="task_status", create_type=False)
task_priority = postgresql.ENUM("low", "medium", "high", name="task_priority", create_type=False)
grant_permission = postgresql.ENUM("view", "edit", name="grant_permission", create_type=False)
budget_period = postgresql.ENUM("weekly", "monthly", "quarterly", "yearly", name="budget_period", create_type=False)
payment_status = postgresql.ENUM(
    "pending", "completed", "failed", "cancelled", "refunded", name="payment_status", create_type=False
)
payment_method = postgresql.ENUM(
    "bank_transfer", "credit_card", "paypal", "check", "cash", name="payment_method", create_type=False
)
expense_status = postgresql.ENUM("pending", "approved", "rejected", name="expense_status", create_type=False)
vendor_status = postgresql.ENUM("active", "inactive", "suspended", name="vendor_status", create_type=False)
report_job_status = postgresql.ENUM("completed", "failed", name="report_job_status", create_type=False)

ENUM_TYPES = (
    client_stage,
    event_type,
    task_status,
    task_priority,
    grant_permission,
    budget_period,
    payment_status,
    payment_method,
    expense_status,
    vendor_status,
    report_job_status,
)


def _uuid() -> postgresql.UUID:
    return postgresql.UUID(as_uuid=True)


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    ]


def upgrade() -> None:
    for enum_type in ENUM_TYPES:
        enum_type.create(op.get_bind(), checkfirst=True)

    op.create_table(
        "users",
        sa.Column("id", _uuid(), primary_key=True, nullable=False),
        sa.Column("email", sa.String(length=320), nullable=False, unique=True),
        sa.Column("full_name", sa.String(length=255), nullable=False),
        sa.Column("role", sa.String(length=50), nullable=False, server_default="user"),
        *_timestamps(),
    )

    op.create_table(
        "clients",
        sa.Column("id", _uuid(), primary_key=True, nullable=False),
        sa.Column("company_name", sa.String(length=255), nullable=False),
        sa.Column("contact_name", sa.String(length=255), nullable=True),
        sa.Column("email", sa.String(length=320), nullable=True),
        sa.Column("phone", sa.String(length=50), nullable=True),
        sa.Column("stage", client_stage, nullable=False, server_default="prospect"),
        sa.Column("deal_value", sa.Numeric(12, 2), nullable=True),
        sa.Column("assigned_to", _uuid(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("last_contact", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_clients_stage", "clients", ["stage"])
    op.create_index("ix_clients_assigned_to", "clients", ["assigned_to"])

    op.create_table(
        "vendors",
        sa.Column("id", _uuid(), primary_key=True, nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("contact_person", sa.String(length=255), nullable=True),
        sa.Column("email", sa.String(length=320), nullable=True),
        sa.Column("phone", sa.String(length=50), nullable=True),
        sa.Column("category", sa.String(length=100), nullable=True),
        sa.Column("payment_terms", sa.String(length=100), nullable=True),
        sa.Column("status", vendor_status, nullable=False, server_default="active"),
        sa.Column("created_by", _uuid(), sa.ForeignKey("users.id"), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_vendors_status", "vendors", ["status"])

    op.create_table(
        "calendar_events",
        sa.Column("id", _uuid(), primary_key=True, nullable=False),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("start_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("end_time", sa.DateTime(timezone=True), nullable=True),
        sa.Column("type", event_type, nullable=False, server_default="meeting"),
        sa.Column("location", sa.String(length=255), nullable=True),
        sa.Column("meeting_url", sa.String(length=1000), nullable=True),
        sa.Column("client_id", _uuid(), sa.ForeignKey("clients.id"), nullable=True),
        sa.Column("is_shared", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("owner_id", _uuid(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("created_by", _uuid(), sa.ForeignKey("users.id"), nullable=False),
        *_timestamps(),
        sa.CheckConstraint(
            "((is_shared AND owner_id IS NULL) OR (NOT is_shared AND owner_id IS NOT NULL))",
            name="ck_calendar_events_shared_xor_owner",
        ),
    )
    op.create_index("ix_calendar_events_start_time", "calendar_events", ["start_time"])
    op.create_index("ix_calendar_events_owner_id", "calendar_events", ["owner_id"])

    op.create_table(
        "tasks",
        sa.Column("id", _uuid(), primary_key=True, nullable=False),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("status", task_status, nullable=False, server_default="pending"),
        sa.Column("priority", task_priority, nullable=False, server_default="medium"),
        sa.Column("due_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("assignee_id", _uuid(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("client_id", _uuid(), sa.ForeignKey("clients.id"), nullable=True),
        sa.Column("is_shared", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("created_by", _uuid(), sa.ForeignKey("users.id"), nullable=False),
        *_timestamps(),
    )
    op.create_index("ix_tasks_assignee_id", "tasks", ["assignee_id"])
    op.create_index("ix_tasks_status", "tasks", ["status"])
    op.create_index("ix_tasks_due_date", "tasks", ["due_date"])

    op.create_table(
        "shared_task_grants",
        sa.Column("id", _uuid(), primary_key=True, nullable=False),
        sa.Column("task_id", _uuid(), sa.ForeignKey("tasks.id", ondelete="CASCADE"), nullable=False),
        sa.Column("grantee_id", _uuid(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("permission_level", grant_permission, nullable=False, server_default="view"),
        sa.Column("granted_by", _uuid(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("task_id", "grantee_id", name="uq_shared_task_grants_task_grantee"),
    )
    op.create_index("ix_shared_task_grants_grantee_id", "shared_task_grants", ["grantee_id"])

    op.create_table(
        "budgets",
        sa.Column("id", _uuid(), primary_key=True, nullable=False),
        sa.Column("client_id", _uuid(), sa.ForeignKey("clients.id"), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("total_amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("period", budget_period, nullable=False, server_default="monthly"),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("end_date", sa.Date(), nullable=True),
        sa.Column("category", sa.String(length=100), nullable=True),
        sa.Column("status", sa.String(length=32), nullable=False, server_default="active"),
        sa.Column("created_by", _uuid(), sa.ForeignKey("users.id"), nullable=True),
        *_timestamps(),
        sa.CheckConstraint("total_amount >= 0", name="ck_budgets_total_amount_non_negative"),
    )
    op.create_index("ix_budgets_client_id", "budgets", ["client_id"])
    op.create_index("ix_budgets_date_range", "budgets", ["start_date", "end_date"])

    op.create_table(
        "payments",
        sa.Column("id", _uuid(), primary_key=True, nullable=False),
        sa.Column("client_id", _uuid(), sa.ForeignKey("clients.id"), nullable=False),
        sa.Column("budget_id", _uuid(), sa.ForeignKey("budgets.id"), nullable=True),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("currency", sa.String(length=3), nullable=False, server_default="USD"),
        sa.Column("status", payment_status, nullable=False, server_default="pending"),
        sa.Column("payment_method", payment_method, nullable=False, server_default="bank_transfer"),
        sa.Column("payment_date", sa.Date(), nullable=False),
        sa.Column("invoice_number", sa.String(length=100), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("created_by", _uuid(), sa.ForeignKey("users.id"), nullable=True),
        *_timestamps(),
        sa.CheckConstraint("amount >= 0", name="ck_payments_amount_non_negative"),
    )
    op.create_index("ix_payments_client_id", "payments", ["client_id"])
    op.create_index("ix_payments_status_date", "payments", ["status", "payment_date"])

    op.create_table(
        "expenses",
        sa.Column("id", _uuid(), primary_key=True, nullable=False),
        sa.Column("client_id", _uuid(), sa.ForeignKey("clients.id"), nullable=True),
        sa.Column("budget_id", _uuid(), sa.ForeignKey("budgets.id"), nullable=True),
        sa.Column("vendor_id", _uuid(), sa.ForeignKey("vendors.id"), nullable=True),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("currency", sa.String(length=3), nullable=False, server_default="USD"),
        sa.Column("category", sa.String(length=100), nullable=False),
        sa.Column("status", expense_status, nullable=False, server_default="pending"),
        sa.Column("expense_date", sa.Date(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("created_by", _uuid(), sa.ForeignKey("users.id"), nullable=True),
        *_timestamps(),
        sa.CheckConstraint("amount >= 0", name="ck_expenses_amount_non_negative"),
    )
    op.create_index("ix_expenses_client_id", "expenses", ["client_id"])
    op.create_index("ix_expenses_budget_id", "expenses", ["budget_id"])
    op.create_index("ix_expenses_vendor_id", "expenses", ["vendor_id"])
    op.create_index("ix_expenses_status_date", "expenses", ["status", "expense_date"])

    op.create_table(
        "report_jobs",
        sa.Column("id", _uuid(), primary_key=True, nullable=False),
        sa.Column("report_type", sa.String(length=64), nullable=False),
        sa.Column("report_name", sa.String(length=255), nullable=False),
        sa.Column("format", sa.String(length=16), nullable=False, server_default="json"),
        sa.Column("status", report_job_status, nullable=False, server_default="completed"),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("end_date", sa.Date(), nullable=False),
        sa.Column("payload", postgresql.JSONB(), nullable=False),
        sa.Column("created_by", _uuid(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("downloaded_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("download_count", sa.Integer(), nullable=False, server_default="0"),
    )
    op.create_index("ix_report_jobs_created_at", "report_jobs", ["created_at"])
    op.create_index("ix_report_jobs_report_type", "report_jobs", ["report_type"])


def downgrade() -> None:
    op.drop_index("ix_report_jobs_report_type", table_name="report_jobs")
    op.drop_index("ix_report_jobs_created_at", table_name="report_jobs")
    op.drop_table("report_jobs")

    op.drop_index("ix_expenses_status_date", table_name="expenses")
    op.drop_index("ix_expenses_vendor_id", table_name="expenses")
    op.drop_index("ix_expenses_budget_id", table_name="expenses")
    op.drop_index("ix_expenses_client_id", table_name="expenses")
    op.drop_table("expenses")

    op.drop_index("ix_payments_status_date", table_name="payments")
    op.drop_index("ix_payments_client_id", table_name="payments")
    op.drop_table("payments")

    op.drop_index("ix_budgets_date_range", table_name="budgets")
    op.drop_index("ix_budgets_client_id", table_name="budgets")
    op.drop_table("budgets")

    op.drop_index("ix_shared_task_grants_grantee_id", table_name="shared_task_grants")
    op.drop_table("shared_task_grants")

    op.drop_index("ix_tasks_due_date", table_name="tasks")
    op.drop_index("ix_tasks_status", table_name="tasks")
    op.drop_index("ix_tasks_assignee_id", table_name="tasks")
    op.drop_table("tasks")

    op.drop_index("ix_calendar_events_owner_id", table_name="calendar_events")
    op.drop_index("ix_calendar_events_start_time", table_name="calendar_events")
    op.drop_table("calendar_events")

    op.drop_index("ix_vendors_status", table_name="vendors")
    op.drop_table("vendors")

    op.drop_index("ix_clients_assigned_to", table_name="clients")
    op.drop_index("ix_clients_stage", table_name="clients")
    op.drop_table("clients")

    op.drop_table("users")

    for enum_type in reversed(ENUM_TYPES):
        enum_type.drop(op.get_bind(), checkfirst=True)
