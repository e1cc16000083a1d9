from __future__ import annotations

import logging
import sys

from PySide6.QtWidgets import QApplication, QMessageBox, QSystemTrayIcon

from todo_app.config import SETTINGS
from todo_app.infra.db import init_db
from todo_app.infra.logging import setup_logging
from todo_app.infra.notifier import InMemoryNotificationCenter
from todo_app.infra.repository import CategoryRepository, TaskRepository
from todo_app.services.badge_service import BadgeReconciler
from todo_app.services.task_service import TaskService
from todo_app.ui.tray import TrayHost

logger = logging.getLogger(__name__)


def main() -> None:
    setup_logging()
    try:
        init_db()
    except Exception as exc:  # noqa: BLE001
        app = QApplication(sys.argv)
        QMessageBox.critical(None, "DB error", str(exc))
        return

    app = QApplication(sys.argv)
    app.setQuitOnLastWindowClosed(False)
    if not QSystemTrayIcon.isSystemTrayAvailable():
        logger.error("System tray is not available")
        QMessageBox.critical(None, "Tray error", "System tray is not available on this desktop.")
        return

    center = InMemoryNotificationCenter(authorized=SETTINGS.notifications_enabled)
    repo = TaskRepository()
    reconciler = BadgeReconciler(repo, center)
    service = TaskService(repo, reconciler, CategoryRepository())

    host = TrayHost(app, service, reconciler, center, repo)
    host.start()
    sys.exit(app.exec())


if __name__ == "__main__":
    main()
