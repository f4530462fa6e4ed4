"""create task templates table"""
from __future__ import annotations

from alembic import op
import sqlalchemy as sa

revision = "0001_create_task_templates"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "task_templates",
        sa.Column("id", sa.String(length=64), primary_key=True),
        sa.Column("title", sa.String(length=200), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="todo"),
        sa.Column("priority", sa.Integer(), nullable=False, server_default="5"),
        sa.Column("anchor_date", sa.Date(), nullable=True),
        sa.Column("assignee_ids", sa.JSON(), nullable=False),
        sa.Column("project_id", sa.String(length=64), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_task_templates_status", "task_templates", ["status"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_task_templates_status", table_name="task_templates")
    op.drop_table("task_templates")
