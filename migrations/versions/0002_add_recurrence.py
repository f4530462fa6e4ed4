"""add recurrence rule columns"""
from __future__ import annotations

from alembic import op
import sqlalchemy as sa

revision = "0002_add_recurrence"
down_revision = "0001_create_task_templates"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.add_column("task_templates", sa.Column("recurrence_frequency", sa.String(length=20), nullable=True))
    op.add_column(
        "task_templates",
        sa.Column("recurrence_interval", sa.Integer(), nullable=False, server_default="1"),
    )
    op.add_column(
        "task_templates",
        sa.Column("recurrence_end_condition", sa.String(length=10), nullable=False, server_default="never"),
    )
    op.add_column("task_templates", sa.Column("recurrence_end_count", sa.Integer(), nullable=True))
    op.add_column("task_templates", sa.Column("recurrence_end_date", sa.Date(), nullable=True))
    op.create_index(
        "ix_task_templates_recurrence_frequency",
        "task_templates",
        ["recurrence_frequency"],
        unique=False,
    )


def downgrade() -> None:
    op.drop_index("ix_task_templates_recurrence_frequency", table_name="task_templates")
    op.drop_column("task_templates", "recurrence_end_date")
    op.drop_column("task_templates", "recurrence_end_count")
    op.drop_column("task_templates", "recurrence_end_condition")
    op.drop_column("task_templates", "recurrence_interval")
    op.drop_column("task_templates", "recurrence_frequency")
