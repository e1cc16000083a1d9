from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Iterable
from datetime import datetime

from todo_app.config import SETTINGS
from todo_app.domain.entities import TaskEntity
from todo_app.domain.enums import TaskState
from todo_app.domain.errors import NotificationDispatchFailure, StoreQueryFailure
from todo_app.domain.filters import TaskFilters
from todo_app.domain.notifications import (
    Cancel,
    NotificationCommand,
    Schedule,
    recompute_badge,
    reconcile_notifications,
)
from todo_app.domain.ports import NotificationService, TaskStore

logger = logging.getLogger(__name__)


class NotificationDispatcher:
    """Executes notification commands, one task id at a time.

    Commands for the same id run under that id's lock, so a cancel and the
    schedule that follows it are never interleaved with another caller's.
    """

    def __init__(self, service: NotificationService) -> None:
        self._service = service
        # task id -> [lock, number of callers holding or waiting on it]
        self._locks: dict[int, list] = {}
        self._registry_lock = threading.Lock()

    def dispatch(self, commands: Iterable[NotificationCommand]) -> int:
        """Run ``commands`` and return how many of them failed."""
        grouped: dict[int, list[NotificationCommand]] = {}
        for command in commands:
            grouped.setdefault(command.task_id, []).append(command)

        failures = 0
        for task_id, task_commands in grouped.items():
            lock = self._acquire(task_id)
            try:
                with lock:
                    for command in task_commands:
                        if not self._execute(command):
                            failures += 1
            finally:
                self._release(task_id)
        return failures

    def _acquire(self, task_id: int) -> threading.Lock:
        with self._registry_lock:
            entry = self._locks.setdefault(task_id, [threading.Lock(), 0])
            entry[1] += 1
            return entry[0]

    def _release(self, task_id: int) -> None:
        with self._registry_lock:
            entry = self._locks[task_id]
            entry[1] -= 1
            if entry[1] == 0:
                del self._locks[task_id]

    def _execute(self, command: NotificationCommand) -> bool:
        try:
            if isinstance(command, Schedule):
                self._service.schedule(command.task_id, command.fire_at, command.payload)
                logger.info("Scheduled alert for task %s at %s", command.task_id, command.fire_at)
            elif isinstance(command, Cancel):
                self._service.cancel(command.task_id)
                logger.debug("Cancelled alerts for task %s", command.task_id)
        except NotificationDispatchFailure as exc:
            logger.warning("%s", exc)
            return False
        except Exception as exc:  # noqa: BLE001
            logger.warning("Notification service failed on %s: %s", command, exc)
            return False
        return True


class BadgeReconciler:
    """Keeps the badge and the pending alerts in line with the task store.

    The host decides when to call it: after every task mutation, when the
    application comes to the foreground and on a periodic timer.
    """

    def __init__(
        self,
        store: TaskStore,
        notifications: NotificationService,
        enabled: bool = SETTINGS.notifications_enabled,
        body_limit: int = SETTINGS.notification_body_limit,
    ) -> None:
        self._store = store
        self._notifications = notifications
        self._dispatcher = NotificationDispatcher(notifications)
        self._enabled = enabled
        self._body_limit = body_limit
        self._badge = 0

    @property
    def badge(self) -> int:
        return self._badge

    @property
    def notifications(self) -> NotificationService:
        return self._notifications

    def refresh(self, now: datetime | None = None) -> int:
        try:
            tasks = self._store.list_tasks(TaskFilters(filter_key="incomplete"))
        except StoreQueryFailure as exc:
            logger.warning("Badge refresh skipped, keeping %s: %s", self._badge, exc)
            return self._badge

        count = recompute_badge(tasks, now)
        if count != self._badge:
            logger.info("Badge changed from %s to %s", self._badge, count)
        self._badge = count
        self._call("set badge", lambda: self._notifications.set_badge(count))
        return count

    def reconcile(
        self,
        task: TaskEntity,
        previous_state: TaskState,
        deleted: bool = False,
        now: datetime | None = None,
        refresh: bool = True,
    ) -> list[NotificationCommand]:
        commands: list[NotificationCommand] = []
        if self._enabled:
            commands = reconcile_notifications(
                task,
                previous_state,
                now=now,
                deleted=deleted,
                badge_count=self._badge,
                body_limit=self._body_limit,
            )
            self._dispatcher.dispatch(commands)
        if refresh:
            self.refresh(now)
        return commands

    def on_foreground(self, now: datetime | None = None) -> int:
        self._call("clear delivered alerts", self._notifications.remove_all_delivered)
        return self.refresh(now)

    def reschedule_all(self, now: datetime | None = None) -> int:
        """Drop every alert and schedule one per open task with a future due date."""
        self.clear_all()
        try:
            tasks = self._store.list_tasks(TaskFilters(filter_key="incomplete"))
        except StoreQueryFailure as exc:
            logger.warning("Rescheduling skipped: %s", exc)
            return 0

        scheduled = 0
        if self._enabled:
            for task in tasks:
                commands = reconcile_notifications(
                    task,
                    TaskState.UNSCHEDULED,
                    now=now,
                    badge_count=self._badge,
                    body_limit=self._body_limit,
                )
                attempted = sum(1 for command in commands if isinstance(command, Schedule))
                failures = self._dispatcher.dispatch(commands)
                scheduled += max(attempted - failures, 0)
        logger.info("Rescheduled %s alerts for %s open tasks", scheduled, len(tasks))
        self.refresh(now)
        return scheduled

    def clear_all(self) -> None:
        self._call("clear pending alerts", self._notifications.remove_all_pending)
        self._call("clear delivered alerts", self._notifications.remove_all_delivered)
        self._badge = 0
        self._call("clear badge", lambda: self._notifications.set_badge(0))

    def _call(self, description: str, action: Callable[[], None]) -> None:
        try:
            action()
        except Exception as exc:  # noqa: BLE001
            logger.warning("Could not %s: %s", description, exc)
