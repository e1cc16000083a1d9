from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String, Text

from .db import Base


def now() -> datetime:
    return datetime.now()


class CategoryModel(Base):
    __tablename__ = "categories"

    id = Column(Integer, primary_key=True)
    name = Column(String(100), nullable=False)
    color_hex = Column(String(9), nullable=False, default="#007AFF")
    icon = Column(String(50), nullable=False, default="folder")
    sort_order = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, nullable=False, default=now)


class TaskModel(Base):
    __tablename__ = "tasks"

    id = Column(Integer, primary_key=True)
    title = Column(String(200), nullable=False)
    notes = Column(Text, nullable=True)
    due_date = Column(DateTime, nullable=True, index=True)
    is_completed = Column(Boolean, nullable=False, default=False, index=True)
    priority = Column(Integer, nullable=False, default=1)
    recurrence_rule = Column(String(20), nullable=False, default="none")
    postpone_date = Column(DateTime, nullable=True)
    category_id = Column(
        Integer, ForeignKey("categories.id", ondelete="CASCADE"), nullable=True, index=True
    )
    parent_id = Column(Integer, ForeignKey("tasks.id", ondelete="CASCADE"), nullable=True, index=True)
    created_at = Column(DateTime, nullable=False, default=now)
    updated_at = Column(DateTime, nullable=False, default=now, onupdate=now)
    completed_at = Column(DateTime, nullable=True)
