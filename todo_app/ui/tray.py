from __future__ import annotations

import logging
from datetime import datetime, timedelta

from PySide6.QtCore import QObject, QRect, Qt, QTimer
from PySide6.QtGui import QColor, QFont, QIcon, QPainter
from PySide6.QtWidgets import QApplication, QMenu, QStyle, QSystemTrayIcon

from todo_app.config import SETTINGS
from todo_app.domain.filters import TaskFilters
from todo_app.infra.notifier import InMemoryNotificationCenter, NotificationRequest
from todo_app.infra.repository import TaskRepository
from todo_app.services.badge_service import BadgeReconciler
from todo_app.services.diagnostics import run_badge_diagnostic
from todo_app.services.task_service import TaskService

logger = logging.getLogger(__name__)

POSTPONE_STEP = timedelta(hours=1)
OVERDUE_MENU_LIMIT = 10


def _badge_icon(base: QIcon, count: int) -> QIcon:
    pixmap = base.pixmap(64, 64)
    if count <= 0:
        return QIcon(pixmap)
    painter = QPainter(pixmap)
    painter.setRenderHint(QPainter.Antialiasing)
    painter.setBrush(QColor("#DC2626"))
    painter.setPen(Qt.NoPen)
    painter.drawEllipse(QRect(28, 0, 36, 36))
    painter.setPen(QColor("#FFFFFF"))
    painter.setFont(QFont("Arial", 18, QFont.Bold))
    painter.drawText(QRect(28, 0, 36, 36), Qt.AlignCenter, "99+" if count > 99 else str(count))
    painter.end()
    return QIcon(pixmap)


class TrayHost(QObject):
    """Desktop host: shows alerts and the badge in the system tray.

    Owns the two timers of the application: one moves due alerts from the
    notification center to the screen, the other re-runs the badge
    reconciliation so tasks crossing their due date are picked up.
    """

    def __init__(
        self,
        app: QApplication,
        service: TaskService,
        reconciler: BadgeReconciler,
        center: InMemoryNotificationCenter,
        repo: TaskRepository,
    ) -> None:
        super().__init__(app)
        self.app = app
        self.service = service
        self.reconciler = reconciler
        self.center = center
        self.repo = repo
        self.center.on_deliver = self.show_alert

        self._base_icon = app.style().standardIcon(QStyle.SP_FileDialogDetailedView)
        self.tray = QSystemTrayIcon(self._base_icon, self)
        self.menu = QMenu()
        self.overdue_menu = self.menu.addMenu("Overdue")
        self.menu.addSeparator()
        self.menu.addAction("Refresh badge", self.refresh_badge)
        self.menu.addAction("Reschedule all alerts", self.reschedule_all)
        self.menu.addAction("Clear delivered alerts", self.on_foreground)
        self.menu.addAction("Clear completed tasks", self.clear_completed)
        self.menu.addAction("Run badge diagnostic", self.run_diagnostic)
        self.menu.addSeparator()
        self.menu.addAction("Quit", app.quit)
        self.tray.setContextMenu(self.menu)
        self.tray.activated.connect(self._on_activated)

        self.badge_timer = QTimer(self)
        self.badge_timer.setInterval(SETTINGS.badge_refresh_seconds * 1000)
        self.badge_timer.timeout.connect(self.refresh_badge)

        self.delivery_timer = QTimer(self)
        self.delivery_timer.setInterval(SETTINGS.delivery_poll_ms)
        self.delivery_timer.timeout.connect(self._deliver_due)

        app.applicationStateChanged.connect(self._on_state_changed)

    def start(self) -> None:
        self.tray.show()
        self.reschedule_all()
        self.badge_timer.start()
        self.delivery_timer.start()
        logger.info("Tray host started")

    def show_alert(self, request: NotificationRequest) -> None:
        payload = request.payload
        icon = QSystemTrayIcon.Critical if payload.sound == "critical" else QSystemTrayIcon.Information
        self.tray.showMessage(payload.title, payload.body, icon, 10_000)

    def refresh_badge(self) -> None:
        self._show_badge(self.reconciler.refresh())

    def reschedule_all(self) -> None:
        self.reconciler.reschedule_all()
        self._show_badge(self.reconciler.badge)

    def on_foreground(self) -> None:
        self._show_badge(self.reconciler.on_foreground())

    def clear_completed(self) -> None:
        removed = self.service.clear_completed()
        logger.info("Cleared %s completed tasks", removed)
        self._show_badge(self.reconciler.badge)

    def run_diagnostic(self) -> None:
        report = run_badge_diagnostic(self.repo, self.center, self.reconciler.badge)
        if report is None:
            self.tray.showMessage("Badge diagnostic", "Task store is unavailable", QSystemTrayIcon.Warning)
            return
        status = "mismatch" if report.mismatch else "ok"
        self.tray.showMessage(
            "Badge diagnostic",
            f"Badge {report.current_badge}, expected {report.calculated_badge} ({status})",
        )

    def _deliver_due(self) -> None:
        if self.center.deliver_due():
            self.refresh_badge()

    def _show_badge(self, count: int) -> None:
        self.tray.setIcon(_badge_icon(self._base_icon, count))
        self.tray.setToolTip(f"{count} overdue" if count else "Nothing overdue")
        self._rebuild_overdue_menu()

    def _rebuild_overdue_menu(self) -> None:
        self.overdue_menu.clear()
        try:
            overdue = self.service.list_tasks(TaskFilters(filter_key="overdue"))
        except Exception as exc:  # noqa: BLE001
            logger.warning("Could not list overdue tasks: %s", exc)
            overdue = []
        self.overdue_menu.setEnabled(bool(overdue))
        for task in overdue[:OVERDUE_MENU_LIMIT]:
            submenu = self.overdue_menu.addMenu(task.title)
            submenu.addAction("Complete", lambda checked=False, task_id=task.id: self._complete(task_id))
            submenu.addAction("Postpone 1 hour", lambda checked=False, task_id=task.id: self._postpone(task_id))

    def _complete(self, task_id: int) -> None:
        self.service.complete_task(task_id)
        self._show_badge(self.reconciler.badge)

    def _postpone(self, task_id: int) -> None:
        self.service.postpone_task(task_id, datetime.now() + POSTPONE_STEP)
        self._show_badge(self.reconciler.badge)

    def _on_activated(self, reason) -> None:
        if reason == QSystemTrayIcon.Trigger:
            self.on_foreground()

    def _on_state_changed(self, state) -> None:
        if state == Qt.ApplicationActive:
            self.on_foreground()
