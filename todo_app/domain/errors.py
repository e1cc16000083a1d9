from __future__ import annotations


class TaskError(Exception):
    """Base class for errors raised by the to-do core."""


class InvalidRecurrenceConfiguration(TaskError):
    def __init__(self, rule: str) -> None:
        super().__init__(f"Recurrence rule {rule!r} requires a due date")
        self.rule = rule


class StoreQueryFailure(TaskError):
    """The task store could not be read or written."""


class NotificationDispatchFailure(TaskError):
    def __init__(self, task_id: int, reason: str) -> None:
        super().__init__(f"Notification command for task {task_id} rejected: {reason}")
        self.task_id = task_id
        self.reason = reason
