from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from .enums import RecurrenceRule, TaskPriority


@dataclass(frozen=True)
class TaskEntity:
    id: int | None
    title: str
    notes: str | None
    due_date: Optional[datetime]
    is_completed: bool
    priority: TaskPriority
    recurrence_rule: RecurrenceRule
    postpone_date: Optional[datetime]
    category_id: int | None
    parent_id: int | None
    created_at: datetime
    updated_at: datetime
    completed_at: Optional[datetime]

    @property
    def has_recurrence(self) -> bool:
        return self.recurrence_rule != RecurrenceRule.NONE

    def is_overdue(self, now: datetime | None = None) -> bool:
        if self.due_date is None or self.is_completed:
            return False
        return self.due_date < (now or datetime.now(self.due_date.tzinfo))

    def is_due_today(self, now: datetime | None = None) -> bool:
        if self.due_date is None:
            return False
        now = now or datetime.now(self.due_date.tzinfo)
        return self.due_date.date() == now.date()

    def is_due_tomorrow(self, now: datetime | None = None) -> bool:
        if self.due_date is None:
            return False
        now = now or datetime.now(self.due_date.tzinfo)
        return self.due_date.date() == now.date() + timedelta(days=1)


@dataclass(frozen=True)
class CategoryEntity:
    id: int | None
    name: str
    color_hex: str
    icon: str
    sort_order: int
    created_at: datetime
