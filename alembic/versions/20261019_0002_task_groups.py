"""task groups and ordered group membership

Revision ID: 20261019_0002
Revises: 20261019_0001
Create Date: 2026-10-19
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision = "20261019_0002"
down_revision = "20261019_0001"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "task_groups",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("created_by", postgresql.UUID(as_uuid=True), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_task_groups_created_by", "task_groups", ["created_by"])
    op.create_index("ix_task_groups_created_at", "task_groups", ["created_at"])

    op.create_table(
        "task_group_members",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column(
            "task_group_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("task_groups.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "task_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("tasks.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("order_index", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("task_group_id", "task_id", name="uq_task_group_members_group_task"),
        sa.CheckConstraint("order_index >= 0", name="ck_task_group_members_order_index_non_negative"),
    )
    op.create_index("ix_task_group_members_task_id", "task_group_members", ["task_id"])
    op.create_index("ix_task_group_members_order", "task_group_members", ["task_group_id", "order_index"])


def downgrade() -> None:
    op.drop_index("ix_task_group_members_order", table_name="task_group_members")
    op.drop_index("ix_task_group_members_task_id", table_name="task_group_members")
    op.drop_table("task_group_members")

    op.drop_index("ix_task_groups_created_at", table_name="task_groups")
    op.drop_index("ix_task_groups_created_by", table_name="task_groups")
    op.drop_table("task_groups")
