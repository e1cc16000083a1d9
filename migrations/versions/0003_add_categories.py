"""add categories table"""
from __future__ import annotations

from alembic import op
import sqlalchemy as sa

revision = "0003_add_categories"
down_revision = "0002_add_recurrence"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "categories",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("color_hex", sa.String(length=9), nullable=False, server_default="#007AFF"),
        sa.Column("icon", sa.String(length=50), nullable=False, server_default="folder"),
        sa.Column("sort_order", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    with op.batch_alter_table("tasks") as batch:
        batch.add_column(sa.Column("category_id", sa.Integer(), nullable=True))
        batch.create_foreign_key(
            "fk_tasks_category_id", "categories", ["category_id"], ["id"], ondelete="CASCADE"
        )
        batch.create_index("ix_tasks_category_id", ["category_id"], unique=False)


def downgrade() -> None:
    with op.batch_alter_table("tasks") as batch:
        batch.drop_index("ix_tasks_category_id")
        batch.drop_constraint("fk_tasks_category_id", type_="foreignkey")
        batch.drop_column("category_id")
    op.drop_table("categories")
