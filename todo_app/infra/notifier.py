from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime

from todo_app.domain.errors import NotificationDispatchFailure
from todo_app.domain.notifications import NotificationPayload

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NotificationRequest:
    task_id: int
    fire_at: datetime
    payload: NotificationPayload


class InMemoryNotificationCenter:
    """Process-local alert queue for hosts without a native notification API.

    Requests stay pending until ``deliver_due`` is called with a time at or
    after their fire date; they are then moved to the delivered list and
    handed to ``on_deliver``.
    """

    def __init__(
        self,
        on_deliver: Callable[[NotificationRequest], None] | None = None,
        authorized: bool = True,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.authorized = authorized
        self._clock = clock
        self.badge = 0
        self.on_deliver = on_deliver
        self._pending: dict[int, NotificationRequest] = {}
        self._delivered: dict[int, NotificationRequest] = {}
        self._lock = threading.Lock()

    def schedule(self, task_id: int, fire_at: datetime, payload: NotificationPayload) -> None:
        if not self.authorized:
            raise NotificationDispatchFailure(task_id, "notifications are not authorized")
        if fire_at <= self._now(fire_at):
            raise NotificationDispatchFailure(task_id, f"fire date {fire_at} is in the past")
        with self._lock:
            self._pending[task_id] = NotificationRequest(task_id, fire_at, payload)
        logger.debug("Scheduled alert for task %s at %s", task_id, fire_at)

    def cancel(self, task_id: int) -> None:
        with self._lock:
            self._pending.pop(task_id, None)
            self._delivered.pop(task_id, None)

    def pending_ids(self) -> list[int]:
        with self._lock:
            return list(self._pending)

    def delivered_ids(self) -> list[int]:
        with self._lock:
            return list(self._delivered)

    def pending_request(self, task_id: int) -> NotificationRequest | None:
        with self._lock:
            return self._pending.get(task_id)

    def remove_all_pending(self) -> None:
        with self._lock:
            self._pending.clear()

    def remove_all_delivered(self) -> None:
        with self._lock:
            self._delivered.clear()

    def set_badge(self, count: int) -> None:
        self.badge = max(count, 0)

    def deliver_due(self, now: datetime | None = None) -> list[NotificationRequest]:
        with self._lock:
            due = [
                request
                for request in self._pending.values()
                if request.fire_at <= (now or self._now(request.fire_at))
            ]
            for request in due:
                del self._pending[request.task_id]
                self._delivered[request.task_id] = request

        for request in sorted(due, key=lambda item: item.fire_at):
            logger.info("Delivered alert for task %s: %s", request.task_id, request.payload.title)
            if self.on_deliver:
                self.on_deliver(request)
        return due

    def _now(self, reference: datetime) -> datetime:
        if self._clock is not None:
            return self._clock()
        return datetime.now(reference.tzinfo)
