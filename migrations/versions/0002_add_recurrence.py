"""add recurrence and postpone fields"""
from __future__ import annotations

from alembic import op
import sqlalchemy as sa

revision = "0002_add_recurrence"
down_revision = "0001_create_tasks"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.add_column(
        "tasks",
        sa.Column("recurrence_rule", sa.String(length=20), nullable=False, server_default="none"),
    )
    op.add_column("tasks", sa.Column("postpone_date", sa.DateTime(), nullable=True))


def downgrade() -> None:
    op.drop_column("tasks", "postpone_date")
    op.drop_column("tasks", "recurrence_rule")
