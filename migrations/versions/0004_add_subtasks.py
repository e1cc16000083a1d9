"""add parent task reference for subtasks"""
from __future__ import annotations

from alembic import op
import sqlalchemy as sa

revision = "0004_add_subtasks"
down_revision = "0003_add_categories"
branch_labels = None
depends_on = None


def upgrade() -> None:
    with op.batch_alter_table("tasks") as batch:
        batch.add_column(sa.Column("parent_id", sa.Integer(), nullable=True))
        batch.create_foreign_key(
            "fk_tasks_parent_id", "tasks", ["parent_id"], ["id"], ondelete="CASCADE"
        )
        batch.create_index("ix_tasks_parent_id", ["parent_id"], unique=False)


def downgrade() -> None:
    with op.batch_alter_table("tasks") as batch:
        batch.drop_index("ix_tasks_parent_id")
        batch.drop_constraint("fk_tasks_parent_id", type_="foreignkey")
        batch.drop_column("parent_id")
