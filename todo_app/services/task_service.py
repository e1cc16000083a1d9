from __future__ import annotations

import logging
from datetime import datetime
from enum import Enum

from todo_app.config import SETTINGS
from todo_app.domain.entities import CategoryEntity, TaskEntity
from todo_app.domain.enums import RecurrenceRule, TaskState
from todo_app.domain.filters import TaskFilters
from todo_app.domain.notifications import classify
from todo_app.domain.recurrence import next_due_date, normalize_recurrence, validate_recurrence
from todo_app.infra.repository import CategoryRepository, TaskRepository

from .badge_service import BadgeReconciler

logger = logging.getLogger(__name__)


class TaskService:
    def __init__(
        self,
        repo: TaskRepository,
        reconciler: BadgeReconciler | None = None,
        category_repo: CategoryRepository | None = None,
        strict_recurrence: bool = SETTINGS.strict_recurrence,
    ) -> None:
        self._repo = repo
        self._reconciler = reconciler
        self._category_repo = category_repo
        self._strict_recurrence = strict_recurrence

    def list_tasks(self, filters: TaskFilters) -> list[TaskEntity]:
        return self._repo.list_tasks(filters)

    def get_task(self, task_id: int) -> TaskEntity | None:
        return self._repo.get_task(task_id)

    def list_subtasks(self, task_id: int) -> list[TaskEntity]:
        return self._repo.list_subtasks(task_id)

    def get_stats(self) -> dict[str, int]:
        return self._repo.get_stats()

    def create_task(self, data: dict) -> TaskEntity:
        normalized = self._normalize_data(data)
        normalized.setdefault("recurrence_rule", RecurrenceRule.NONE.value)
        if normalized.get("is_completed"):
            normalized.setdefault("completed_at", datetime.now())
        task = self._repo.create_task(normalized)
        self._reconcile(task, TaskState.UNSCHEDULED)
        self._sync_parent(task)
        return task

    def create_subtask(self, parent_id: int, data: dict) -> TaskEntity:
        return self.create_task({**data, "parent_id": parent_id})

    def update_task(self, task_id: int, data: dict) -> TaskEntity | None:
        before = self._repo.get_task(task_id)
        if not before:
            return None

        normalized = self._normalize_data(data, before)
        completion = normalized.pop("is_completed", None)
        task = before
        if normalized:
            task = self._repo.update_task(task_id, normalized)
            self._reconcile(task, classify(before))

        if completion is True:
            return self.complete_task(task_id)
        if completion is False:
            return self.uncomplete_task(task_id)
        return task

    def complete_task(self, task_id: int) -> TaskEntity | None:
        before = self._repo.get_task(task_id)
        if not before or before.is_completed:
            return before

        task = self._repo.update_task(task_id, {"is_completed": True, "completed_at": datetime.now()})
        self._reconcile(task, classify(before))
        if task.has_recurrence and task.due_date is not None:
            return self._advance_recurrence(task)
        self._sync_parent(task)
        return task

    def uncomplete_task(self, task_id: int) -> TaskEntity | None:
        before = self._repo.get_task(task_id)
        if not before or not before.is_completed:
            return before

        task = self._repo.update_task(task_id, {"is_completed": False, "completed_at": None})
        self._reconcile(task, TaskState.UNSCHEDULED)
        self._sync_parent(task)
        return task

    def toggle_completion(self, task_id: int) -> TaskEntity | None:
        task = self._repo.get_task(task_id)
        if not task:
            return None
        if task.is_completed:
            return self.uncomplete_task(task_id)
        return self.complete_task(task_id)

    def postpone_task(self, task_id: int, new_due_date: datetime) -> TaskEntity | None:
        before = self._repo.get_task(task_id)
        if not before:
            return None
        task = self._repo.update_task(
            task_id,
            {"due_date": new_due_date, "postpone_date": datetime.now()},
        )
        logger.info("Postponed task %s from %s to %s", task_id, before.due_date, new_due_date)
        self._reconcile(task, classify(before))
        return task

    def delete_task(self, task_id: int) -> None:
        self.delete_tasks([task_id])

    def delete_tasks(self, task_ids: list[int]) -> None:
        doomed: dict[int, TaskEntity] = {}
        for task_id in task_ids:
            task = self._repo.get_task(task_id)
            if task:
                self._collect_tree(task, doomed)
        if not doomed:
            return

        for task in doomed.values():
            self._reconcile(task, classify(task), deleted=True, refresh=False)
        self._repo.delete_tasks(list(doomed))
        logger.info("Deleted %s tasks", len(doomed))
        self._refresh_badge()

    def clear_completed(self) -> int:
        completed = self._repo.list_tasks(TaskFilters(filter_key="completed"))
        self.delete_tasks([task.id for task in completed])
        return len(completed)

    def completion_percentage(self, task_id: int) -> float:
        task = self._repo.get_task(task_id)
        if not task:
            return 0.0
        subtasks = self._repo.list_subtasks(task_id)
        if not subtasks:
            return 1.0 if task.is_completed else 0.0
        done = sum(1 for subtask in subtasks if subtask.is_completed)
        return done / len(subtasks)

    def list_categories(self) -> list[CategoryEntity]:
        return self._categories().list_categories()

    def create_category(self, data: dict) -> CategoryEntity:
        return self._categories().create_category(dict(data))

    def update_category(self, category_id: int, data: dict) -> CategoryEntity | None:
        return self._categories().update_category(category_id, dict(data))

    def delete_category(self, category_id: int) -> None:
        tasks = self._repo.list_tasks(TaskFilters(category_id=category_id))
        for task in tasks:
            self._reconcile(task, classify(task), deleted=True, refresh=False)
        self._categories().delete_category(category_id)
        logger.info("Deleted category %s with %s tasks", category_id, len(tasks))
        self._refresh_badge()

    def _categories(self) -> CategoryRepository:
        if self._category_repo is None:
            raise RuntimeError("TaskService was created without a category repository")
        return self._category_repo

    def _normalize_data(self, data: dict, current: TaskEntity | None = None) -> dict:
        normalized = dict(data)
        for key, value in normalized.items():
            if isinstance(value, Enum):
                normalized[key] = value.value

        if "recurrence_rule" in normalized or "due_date" in normalized:
            rule = normalized.get(
                "recurrence_rule",
                current.recurrence_rule if current else None,
            )
            if "due_date" in normalized:
                due_date = normalized["due_date"]
            else:
                due_date = current.due_date if current else None
            if self._strict_recurrence:
                checked = validate_recurrence(rule, due_date)
            else:
                checked = normalize_recurrence(rule, due_date)
            normalized["recurrence_rule"] = checked.value
        return normalized

    def _advance_recurrence(self, task: TaskEntity) -> TaskEntity:
        next_due = next_due_date(task.recurrence_rule, task.due_date)
        # completed_at keeps the last completion; "done" is is_completed only.
        advanced = self._repo.update_task(task.id, {"due_date": next_due, "is_completed": False})
        logger.info("Recurring task %s advanced to %s", task.id, next_due)
        self._refresh_badge()
        return advanced

    def _sync_parent(self, task: TaskEntity) -> None:
        if task.parent_id is None:
            return
        parent = self._repo.get_task(task.parent_id)
        if not parent:
            return
        subtasks = self._repo.list_subtasks(parent.id)
        all_done = all(subtask.is_completed for subtask in subtasks)
        if all_done and not parent.is_completed:
            self.complete_task(parent.id)
        elif not all_done and parent.is_completed:
            self.uncomplete_task(parent.id)

    def _collect_tree(self, task: TaskEntity, into: dict[int, TaskEntity]) -> None:
        if task.id in into:
            return
        into[task.id] = task
        for subtask in self._repo.list_subtasks(task.id):
            self._collect_tree(subtask, into)

    def _reconcile(
        self,
        task: TaskEntity | None,
        previous_state: TaskState,
        deleted: bool = False,
        refresh: bool = True,
    ) -> None:
        if self._reconciler is None or task is None:
            return
        self._reconciler.reconcile(task, previous_state, deleted=deleted, refresh=refresh)

    def _refresh_badge(self) -> None:
        if self._reconciler is not None:
            self._reconciler.refresh()
