from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timedelta

import pytest

from todo_app.domain.entities import CategoryEntity, TaskEntity
from todo_app.domain.enums import RecurrenceRule, TaskPriority
from todo_app.domain.errors import InvalidRecurrenceConfiguration
from todo_app.domain.filters import TaskFilters
from todo_app.domain.recurrence import parse_rule
from todo_app.infra.notifier import InMemoryNotificationCenter
from todo_app.services.badge_service import BadgeReconciler
from todo_app.services.task_service import TaskService


class FakeRepo:
    def __init__(self) -> None:
        self.tasks: list[TaskEntity] = []
        self._id = 1

    def list_tasks(self, filters: TaskFilters, now: datetime | None = None) -> list[TaskEntity]:
        tasks = self.tasks
        if filters.filter_key == "incomplete":
            tasks = [t for t in tasks if not t.is_completed]
        elif filters.filter_key == "completed":
            tasks = [t for t in tasks if t.is_completed]
        elif filters.filter_key == "overdue":
            tasks = [t for t in tasks if t.is_overdue(now)]
        if filters.category_id is not None:
            tasks = [t for t in tasks if t.category_id == filters.category_id]
        return list(tasks)

    def get_task(self, task_id: int) -> TaskEntity | None:
        return next((t for t in self.tasks if t.id == task_id), None)

    def list_subtasks(self, parent_id: int) -> list[TaskEntity]:
        return [t for t in self.tasks if t.parent_id == parent_id]

    def create_task(self, data: dict) -> TaskEntity:
        now = datetime.now()
        task = TaskEntity(
            id=self._id,
            title=data.get("title", ""),
            notes=data.get("notes"),
            due_date=data.get("due_date"),
            is_completed=data.get("is_completed", False),
            priority=TaskPriority(data.get("priority", 1)),
            recurrence_rule=parse_rule(data.get("recurrence_rule")),
            postpone_date=data.get("postpone_date"),
            category_id=data.get("category_id"),
            parent_id=data.get("parent_id"),
            created_at=now,
            updated_at=now,
            completed_at=data.get("completed_at"),
        )
        self.tasks.append(task)
        self._id += 1
        return task

    def update_task(self, task_id: int, data: dict) -> TaskEntity | None:
        task = self.get_task(task_id)
        if not task:
            return None
        changes = dict(data)
        if "priority" in changes:
            changes["priority"] = TaskPriority(changes["priority"])
        if "recurrence_rule" in changes:
            changes["recurrence_rule"] = parse_rule(changes["recurrence_rule"])
        updated = replace(task, updated_at=datetime.now(), **changes)
        self.tasks = [updated if t.id == task_id else t for t in self.tasks]
        return updated

    def delete_task(self, task_id: int) -> None:
        self.delete_tasks([task_id])

    def delete_tasks(self, task_ids: list[int]) -> None:
        self.tasks = [t for t in self.tasks if t.id not in task_ids]

    def get_stats(self) -> dict[str, int]:
        return {
            "total": len(self.tasks),
            "completed": 0,
            "with_due_date": 0,
            "overdue": 0,
            "due_today": 0,
        }


class FakeCategoryRepo:
    def __init__(self, task_repo: FakeRepo) -> None:
        self.task_repo = task_repo
        self.categories: list[CategoryEntity] = []

    def list_categories(self) -> list[CategoryEntity]:
        return list(self.categories)

    def create_category(self, data: dict) -> CategoryEntity:
        category = CategoryEntity(
            id=len(self.categories) + 1,
            name=data["name"],
            color_hex=data.get("color_hex", "#007AFF"),
            icon=data.get("icon", "folder"),
            sort_order=len(self.categories) + 1,
            created_at=datetime.now(),
        )
        self.categories.append(category)
        return category

    def delete_category(self, category_id: int) -> None:
        self.categories = [c for c in self.categories if c.id != category_id]
        self.task_repo.tasks = [t for t in self.task_repo.tasks if t.category_id != category_id]


def _hour_from_now(hours: int) -> datetime:
    return (datetime.now() + timedelta(hours=hours)).replace(microsecond=0)


def _service(**kwargs) -> tuple[TaskService, FakeRepo, InMemoryNotificationCenter]:
    repo = FakeRepo()
    center = InMemoryNotificationCenter()
    reconciler = BadgeReconciler(repo, center, enabled=True)
    service = TaskService(repo, reconciler, FakeCategoryRepo(repo), **kwargs)
    return service, repo, center


def test_recurring_task_advances_same_instance() -> None:
    service, repo, center = _service()
    due = _hour_from_now(2)
    task = service.create_task({
        "title": "Water plants",
        "due_date": due,
        "recurrence_rule": RecurrenceRule.DAILY,
    })
    assert center.pending_request(task.id).fire_at == due

    advanced = service.complete_task(task.id)

    assert len(repo.tasks) == 1
    assert advanced.due_date == due + timedelta(days=1)
    assert advanced.is_completed is False
    assert advanced.completed_at is not None
    assert center.pending_request(task.id).fire_at == due + timedelta(days=1)


def test_monthly_recurrence_without_notifications_clamps_day() -> None:
    repo = FakeRepo()
    service = TaskService(repo)
    task = repo.create_task({
        "title": "Pay rent",
        "due_date": datetime(2023, 1, 31, 9, 0),
        "recurrence_rule": RecurrenceRule.MONTHLY.value,
    })

    service.complete_task(task.id)

    assert repo.tasks[0].due_date == datetime(2023, 2, 28, 9, 0)


def test_completing_overdue_task_clears_badge_and_alert() -> None:
    service, repo, center = _service()
    task = service.create_task({"title": "Call bank", "due_date": _hour_from_now(-24)})
    assert center.badge == 1

    service.complete_task(task.id)

    assert center.badge == 0
    assert center.pending_ids() == []
    assert repo.tasks[0].is_completed is True


def test_uncomplete_reschedules_future_task() -> None:
    service, _, center = _service()
    task = service.create_task({"title": "Gym", "due_date": _hour_from_now(3)})
    service.complete_task(task.id)
    assert center.pending_ids() == []

    reopened = service.toggle_completion(task.id)

    assert reopened.is_completed is False
    assert reopened.completed_at is None
    assert center.pending_ids() == [task.id]


def test_update_with_completion_flag_routes_to_complete() -> None:
    service, _, center = _service()
    task = service.create_task({"title": "Read", "due_date": _hour_from_now(3)})

    updated = service.update_task(task.id, {"title": "Read a book", "is_completed": True})

    assert updated.title == "Read a book"
    assert updated.is_completed is True
    assert center.pending_ids() == []


def test_removing_due_date_cancels_alert() -> None:
    service, _, center = _service()
    task = service.create_task({"title": "Dentist", "due_date": _hour_from_now(5)})
    assert center.pending_ids() == [task.id]

    service.update_task(task.id, {"due_date": None})

    assert center.pending_ids() == []


def test_recurrence_without_due_date_is_degraded() -> None:
    service, _, _ = _service()
    task = service.create_task({"title": "Someday", "recurrence_rule": "weekly"})
    assert task.recurrence_rule == RecurrenceRule.NONE

    service.update_task(task.id, {"recurrence_rule": RecurrenceRule.DAILY})
    assert service.get_task(task.id).recurrence_rule == RecurrenceRule.NONE


def test_strict_mode_rejects_recurrence_without_due_date() -> None:
    service, repo, _ = _service(strict_recurrence=True)
    with pytest.raises(InvalidRecurrenceConfiguration):
        service.create_task({"title": "Someday", "recurrence_rule": "monthly"})
    assert repo.tasks == []


def test_postpone_stamps_date_and_moves_alert() -> None:
    service, _, center = _service()
    task = service.create_task({"title": "Report", "due_date": _hour_from_now(-1)})
    assert center.badge == 1
    new_due = _hour_from_now(4)

    postponed = service.postpone_task(task.id, new_due)

    assert postponed.due_date == new_due
    assert postponed.postpone_date is not None
    assert center.pending_request(task.id).fire_at == new_due
    assert center.badge == 0


def test_delete_cancels_alerts_of_task_and_subtasks() -> None:
    service, repo, center = _service()
    parent = service.create_task({"title": "Move house", "due_date": _hour_from_now(10)})
    child = service.create_subtask(parent.id, {"title": "Pack books", "due_date": _hour_from_now(5)})
    other = service.create_task({"title": "Unrelated", "due_date": _hour_from_now(7)})
    assert sorted(center.pending_ids()) == sorted([parent.id, child.id, other.id])

    service.delete_task(parent.id)

    assert [t.id for t in repo.tasks] == [other.id]
    assert center.pending_ids() == [other.id]


def test_parent_follows_subtask_completion() -> None:
    service, repo, _ = _service()
    parent = service.create_task({"title": "Trip"})
    first = service.create_subtask(parent.id, {"title": "Tickets"})
    second = service.create_subtask(parent.id, {"title": "Hotel"})

    service.complete_task(first.id)
    assert repo.get_task(parent.id).is_completed is False
    assert service.completion_percentage(parent.id) == 0.5

    service.complete_task(second.id)
    assert repo.get_task(parent.id).is_completed is True

    service.uncomplete_task(first.id)
    assert repo.get_task(parent.id).is_completed is False


def test_completion_percentage_without_subtasks() -> None:
    service, _, _ = _service()
    task = service.create_task({"title": "Solo"})
    assert service.completion_percentage(task.id) == 0.0
    service.complete_task(task.id)
    assert service.completion_percentage(task.id) == 1.0


def test_clear_completed_removes_only_completed() -> None:
    service, repo, _ = _service()
    done = service.create_task({"title": "Done"})
    service.create_task({"title": "Open"})
    service.complete_task(done.id)

    assert service.clear_completed() == 1
    assert [t.title for t in repo.tasks] == ["Open"]


def test_delete_category_cancels_its_tasks() -> None:
    service, repo, center = _service()
    category = service.create_category({"name": "Work"})
    work = service.create_task({"title": "Deploy", "category_id": category.id, "due_date": _hour_from_now(2)})
    home = service.create_task({"title": "Cook", "due_date": _hour_from_now(3)})

    service.delete_category(category.id)

    assert service.list_categories() == []
    assert [t.id for t in repo.tasks] == [home.id]
    assert work.id not in center.pending_ids()
    assert center.pending_ids() == [home.id]


def test_editing_completed_recurring_task_keeps_it_silent() -> None:
    service, repo, center = _service()
    task = service.create_task({"title": "Gym", "due_date": _hour_from_now(1)})
    service.complete_task(task.id)

    service.update_task(task.id, {"recurrence_rule": "daily"})
    service.update_task(task.id, {"title": "Gym session"})

    stored = repo.get_task(task.id)
    assert stored.is_completed is True
    assert stored.recurrence_rule == RecurrenceRule.DAILY
    assert center.pending_ids() == []


def test_creating_completed_recurring_task_schedules_nothing() -> None:
    service, _, center = _service()
    task = service.create_task({
        "title": "Archived chore",
        "due_date": _hour_from_now(1),
        "recurrence_rule": RecurrenceRule.WEEKLY,
        "is_completed": True,
    })

    assert task.is_completed is True
    assert center.pending_ids() == []


def test_advanced_recurring_task_is_not_counted_as_completed() -> None:
    service, repo, _ = _service()
    task = service.create_task({
        "title": "Stretch",
        "due_date": _hour_from_now(2),
        "recurrence_rule": RecurrenceRule.DAILY,
    })

    service.complete_task(task.id)

    advanced = repo.get_task(task.id)
    assert advanced.completed_at is not None
    assert advanced.is_completed is False
    assert repo.list_tasks(TaskFilters(filter_key="completed")) == []
