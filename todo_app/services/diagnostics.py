from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime

from todo_app.domain.errors import StoreQueryFailure
from todo_app.domain.filters import TaskFilters
from todo_app.domain.notifications import recompute_badge
from todo_app.domain.ports import NotificationService
from todo_app.infra.repository import TaskRepository

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BadgeDiagnostic:
    total: int
    completed: int
    with_due_date: int
    overdue: int
    due_today: int
    pending_alerts: int
    delivered_alerts: int
    current_badge: int
    calculated_badge: int

    @property
    def mismatch(self) -> bool:
        return self.current_badge != self.calculated_badge


def run_badge_diagnostic(
    repo: TaskRepository,
    notifications: NotificationService,
    current_badge: int,
    now: datetime | None = None,
) -> BadgeDiagnostic | None:
    """Compare the displayed badge with what the task store says it should be."""
    now = now or datetime.now()
    try:
        stats = repo.get_stats(now)
        open_tasks = repo.list_tasks(TaskFilters(filter_key="incomplete"), now)
    except StoreQueryFailure as exc:
        logger.error("Badge diagnostic aborted: %s", exc)
        return None

    report = BadgeDiagnostic(
        total=stats["total"],
        completed=stats["completed"],
        with_due_date=stats["with_due_date"],
        overdue=stats["overdue"],
        due_today=stats["due_today"],
        pending_alerts=len(notifications.pending_ids()),
        delivered_alerts=len(notifications.delivered_ids()),
        current_badge=current_badge,
        calculated_badge=recompute_badge(open_tasks, now),
    )

    logger.info(
        "Badge diagnostic: total=%s completed=%s with_due=%s overdue=%s due_today=%s "
        "pending=%s delivered=%s badge=%s expected=%s",
        report.total,
        report.completed,
        report.with_due_date,
        report.overdue,
        report.due_today,
        report.pending_alerts,
        report.delivered_alerts,
        report.current_badge,
        report.calculated_badge,
    )
    if report.mismatch:
        logger.warning(
            "Badge mismatch: showing %s, expected %s",
            report.current_badge,
            report.calculated_badge,
        )
    for task in open_tasks:
        if task.is_overdue(now):
            logger.debug("Overdue task %s %r due %s", task.id, task.title, task.due_date)
    return report
