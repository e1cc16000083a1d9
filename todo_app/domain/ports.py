"""Interfaces the core expects from its collaborators."""
from __future__ import annotations

from datetime import datetime
from typing import Optional, Protocol

from .entities import TaskEntity
from .filters import TaskFilters
from .notifications import NotificationPayload


class TaskStore(Protocol):
    """Read side of the task store."""

    def list_tasks(self, filters: TaskFilters) -> list[TaskEntity]:
        ...

    def get_task(self, task_id: int) -> Optional[TaskEntity]:
        ...


class NotificationService(Protocol):
    """Local time-based alerts keyed by task id, plus the application badge."""

    def schedule(self, task_id: int, fire_at: datetime, payload: NotificationPayload) -> None:
        ...

    def cancel(self, task_id: int) -> None:
        """Remove both the pending and the delivered alert for ``task_id``."""
        ...

    def pending_ids(self) -> list[int]:
        ...

    def delivered_ids(self) -> list[int]:
        ...

    def remove_all_pending(self) -> None:
        ...

    def remove_all_delivered(self) -> None:
        ...

    def set_badge(self, count: int) -> None:
        ...
