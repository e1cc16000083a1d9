from __future__ import annotations

from enum import IntEnum, StrEnum


class RecurrenceRule(StrEnum):
    NONE = "none"
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"


class TaskPriority(IntEnum):
    LOW = 0
    MEDIUM = 1
    HIGH = 2


class TaskState(StrEnum):
    """Notification lifecycle of a single task, derived from its fields."""

    UNSCHEDULED = "unscheduled"
    SCHEDULED = "scheduled"
    OVERDUE = "overdue"
    FIRED = "fired"
