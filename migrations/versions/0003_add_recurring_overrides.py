"""add recurring overrides table"""
from __future__ import annotations

from alembic import op
import sqlalchemy as sa

revision = "0003_add_recurring_overrides"
down_revision = "0002_add_recurrence"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "recurring_overrides",
        sa.Column("id", sa.String(length=128), primary_key=True),
        sa.Column("task_id", sa.String(length=64), nullable=False),
        sa.Column("date", sa.String(length=10), nullable=False),
        sa.Column("overrides", sa.JSON(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_recurring_overrides_task_id", "recurring_overrides", ["task_id"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_recurring_overrides_task_id", table_name="recurring_overrides")
    op.drop_table("recurring_overrides")
