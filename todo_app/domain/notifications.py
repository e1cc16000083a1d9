"""Badge counting and notification command computation.

Nothing in this module talks to a notification service. The functions turn
task snapshots into ``Cancel``/``Schedule`` commands and a badge integer, and
the caller decides where to send them.
"""
from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime

from .entities import TaskEntity
from .enums import RecurrenceRule, TaskPriority, TaskState
from .recurrence import next_due_date, normalize_recurrence

DEFAULT_BODY = "Task is due"
DEFAULT_BODY_LIMIT = 50
THREAD_ID = "task-notifications"

_PRIORITY_STYLES = {
    TaskPriority.HIGH: ("HIGH_PRIORITY_TASK", "critical"),
    TaskPriority.MEDIUM: ("MEDIUM_PRIORITY_TASK", "default"),
    TaskPriority.LOW: ("LOW_PRIORITY_TASK", "default"),
}


@dataclass(frozen=True)
class NotificationPayload:
    title: str
    body: str
    category_id: str
    sound: str
    thread_id: str = THREAD_ID
    badge: int | None = None


@dataclass(frozen=True)
class Cancel:
    task_id: int


@dataclass(frozen=True)
class Schedule:
    task_id: int
    fire_at: datetime
    payload: NotificationPayload


NotificationCommand = Cancel | Schedule


def _resolve_now(now: datetime | None, reference: datetime | None) -> datetime:
    if now is not None:
        return now
    return datetime.now(reference.tzinfo if reference is not None else None)


def classify(task: TaskEntity, now: datetime | None = None, delivered: bool = False) -> TaskState:
    if task.is_completed or task.due_date is None:
        return TaskState.UNSCHEDULED
    if task.due_date > _resolve_now(now, task.due_date):
        return TaskState.SCHEDULED
    return TaskState.FIRED if delivered else TaskState.OVERDUE


def recompute_badge(tasks: Iterable[TaskEntity], now: datetime | None = None) -> int:
    """Count incomplete tasks whose due date is strictly before ``now``."""
    return sum(1 for task in tasks if task.is_overdue(now))


def build_payload(
    task: TaskEntity,
    badge_count: int = 0,
    body_limit: int = DEFAULT_BODY_LIMIT,
) -> NotificationPayload:
    category_id, sound = _PRIORITY_STYLES.get(task.priority, _PRIORITY_STYLES[TaskPriority.MEDIUM])
    body = DEFAULT_BODY
    if task.notes and len(task.notes) <= body_limit:
        body = task.notes
    return NotificationPayload(
        title=task.title or "Task",
        body=body,
        category_id=category_id,
        sound=sound,
        badge=max(badge_count, 0) + 1,
    )


def reconcile_notifications(
    task: TaskEntity,
    previous_state: TaskState | str,
    *,
    now: datetime | None = None,
    deleted: bool = False,
    badge_count: int = 0,
    body_limit: int = DEFAULT_BODY_LIMIT,
) -> list[NotificationCommand]:
    """Commands that bring the notification service in line with ``task``.

    ``task`` is the snapshot after the mutation and ``previous_state`` the
    state it had before. Completing a recurring task yields a ``Schedule`` for
    its next occurrence, keyed by the same id. A task that was already
    completed only gets its alerts cancelled.
    """
    if task.id is None:
        return []
    if deleted:
        return [Cancel(task.id)]

    previous_state = TaskState(previous_state)
    current = classify(task, now)

    if current == TaskState.SCHEDULED:
        payload = build_payload(task, badge_count, body_limit)
        return [Cancel(task.id), Schedule(task.id, task.due_date, payload)]

    if current == TaskState.OVERDUE:
        # A pending alert can only outlive the due date when the date was edited.
        return [Cancel(task.id)] if previous_state == TaskState.SCHEDULED else []

    if task.is_completed:
        commands: list[NotificationCommand] = [Cancel(task.id)]
        rule = normalize_recurrence(task.recurrence_rule, task.due_date)
        # Only the completion itself moves a recurring task on; edits to an
        # already completed task keep it silent.
        if rule != RecurrenceRule.NONE and previous_state != TaskState.UNSCHEDULED:
            next_due = next_due_date(rule, task.due_date)
            if next_due > _resolve_now(now, next_due):
                payload = build_payload(task, badge_count, body_limit)
                commands.append(Schedule(task.id, next_due, payload))
        return commands

    if previous_state == TaskState.UNSCHEDULED:
        return []
    return [Cancel(task.id)]
