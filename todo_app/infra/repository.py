from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import delete, func, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from todo_app.domain.entities import CategoryEntity, TaskEntity
from todo_app.domain.enums import RecurrenceRule, TaskPriority
from todo_app.domain.errors import StoreQueryFailure
from todo_app.domain.filters import TaskFilters
from todo_app.domain.recurrence import parse_rule

from .db import SessionLocal
from .models import CategoryModel, TaskModel

logger = logging.getLogger(__name__)


def _to_priority(value: int | None) -> TaskPriority:
    try:
        return TaskPriority(value)
    except ValueError:
        return TaskPriority.MEDIUM


def _to_rule(value: str | None) -> RecurrenceRule:
    try:
        return parse_rule(value)
    except ValueError:
        logger.warning("Unknown recurrence rule %r in task store, treating as none", value)
        return RecurrenceRule.NONE


def _to_entity(model: TaskModel) -> TaskEntity:
    return TaskEntity(
        id=model.id,
        title=model.title,
        notes=model.notes,
        due_date=model.due_date,
        is_completed=bool(model.is_completed),
        priority=_to_priority(model.priority),
        recurrence_rule=_to_rule(model.recurrence_rule),
        postpone_date=model.postpone_date,
        category_id=model.category_id,
        parent_id=model.parent_id,
        created_at=model.created_at,
        updated_at=model.updated_at,
        completed_at=model.completed_at,
    )


def _to_category(model: CategoryModel) -> CategoryEntity:
    return CategoryEntity(
        id=model.id,
        name=model.name,
        color_hex=model.color_hex,
        icon=model.icon,
        sort_order=model.sort_order,
        created_at=model.created_at,
    )


def _day_bounds(day_offset: int, now: datetime) -> tuple[datetime, datetime]:
    start = datetime.combine(now.date(), datetime.min.time()) + timedelta(days=day_offset)
    return start, start + timedelta(days=1)


def _apply_filters(stmt, filters: TaskFilters, now: datetime) -> object:
    if filters.filter_key == "incomplete":
        stmt = stmt.where(TaskModel.is_completed.is_(False))
    elif filters.filter_key == "completed":
        stmt = stmt.where(TaskModel.is_completed.is_(True))
    elif filters.filter_key == "overdue":
        stmt = stmt.where(
            TaskModel.is_completed.is_(False),
            TaskModel.due_date.is_not(None),
            TaskModel.due_date < now,
        )
    elif filters.filter_key in ("today", "tomorrow"):
        start, end = _day_bounds(0 if filters.filter_key == "today" else 1, now)
        stmt = stmt.where(TaskModel.due_date >= start, TaskModel.due_date < end)

    if filters.category_id is not None:
        stmt = stmt.where(TaskModel.category_id == filters.category_id)

    if filters.parent_id is not None:
        stmt = stmt.where(TaskModel.parent_id == filters.parent_id)

    if filters.search:
        pattern = f"%{filters.search}%"
        stmt = stmt.where(
            or_(
                TaskModel.title.ilike(pattern),
                TaskModel.notes.ilike(pattern),
            )
        )

    return stmt


class _SessionRepository:
    def __init__(self, session_factory: sessionmaker = SessionLocal) -> None:
        self._session_factory = session_factory

    @contextmanager
    def _session(self) -> Iterator[Session]:
        try:
            with self._session_factory() as session:
                yield session
        except SQLAlchemyError as exc:
            logger.error("Task store error: %s", exc)
            raise StoreQueryFailure(str(exc)) from exc


class TaskRepository(_SessionRepository):
    def list_tasks(self, filters: TaskFilters, now: datetime | None = None) -> list[TaskEntity]:
        now = now or datetime.now()
        with self._session() as session:
            stmt = select(TaskModel)
            stmt = _apply_filters(stmt, filters, now)
            stmt = stmt.order_by(
                TaskModel.is_completed.asc(),
                TaskModel.due_date.is_(None),
                TaskModel.due_date.asc(),
                TaskModel.priority.desc(),
                TaskModel.created_at.desc(),
            )
            return [_to_entity(task) for task in session.scalars(stmt)]

    def get_task(self, task_id: int) -> Optional[TaskEntity]:
        with self._session() as session:
            task = session.get(TaskModel, task_id)
            return _to_entity(task) if task else None

    def list_subtasks(self, parent_id: int) -> list[TaskEntity]:
        with self._session() as session:
            stmt = (
                select(TaskModel)
                .where(TaskModel.parent_id == parent_id)
                .order_by(TaskModel.created_at.asc(), TaskModel.id.asc())
            )
            return [_to_entity(task) for task in session.scalars(stmt)]

    def create_task(self, data: dict) -> TaskEntity:
        with self._session() as session:
            task = TaskModel(**data)
            session.add(task)
            session.commit()
            session.refresh(task)
            return _to_entity(task)

    def update_task(self, task_id: int, data: dict) -> Optional[TaskEntity]:
        with self._session() as session:
            task = session.get(TaskModel, task_id)
            if not task:
                return None
            for key, value in data.items():
                setattr(task, key, value)
            session.commit()
            session.refresh(task)
            return _to_entity(task)

    def delete_task(self, task_id: int) -> None:
        self.delete_tasks([task_id])

    def delete_tasks(self, task_ids: list[int]) -> None:
        if not task_ids:
            return
        with self._session() as session:
            session.execute(delete(TaskModel).where(TaskModel.id.in_(task_ids)))
            session.commit()

    def get_stats(self, now: datetime | None = None) -> dict[str, int]:
        now = now or datetime.now()
        start, end = _day_bounds(0, now)
        with self._session() as session:
            total = session.scalar(select(func.count()).select_from(TaskModel)) or 0
            completed = session.scalar(
                select(func.count()).select_from(TaskModel).where(TaskModel.is_completed.is_(True))
            ) or 0
            with_due_date = session.scalar(
                select(func.count()).select_from(TaskModel).where(TaskModel.due_date.is_not(None))
            ) or 0
            overdue = session.scalar(
                select(func.count())
                .select_from(TaskModel)
                .where(
                    TaskModel.is_completed.is_(False),
                    TaskModel.due_date.is_not(None),
                    TaskModel.due_date < now,
                )
            ) or 0
            due_today = session.scalar(
                select(func.count())
                .select_from(TaskModel)
                .where(
                    TaskModel.is_completed.is_(False),
                    TaskModel.due_date >= start,
                    TaskModel.due_date < end,
                )
            ) or 0
            return {
                "total": total,
                "completed": completed,
                "with_due_date": with_due_date,
                "overdue": overdue,
                "due_today": due_today,
            }


class CategoryRepository(_SessionRepository):
    def list_categories(self) -> list[CategoryEntity]:
        with self._session() as session:
            stmt = select(CategoryModel).order_by(CategoryModel.sort_order.asc(), CategoryModel.name.asc())
            return [_to_category(category) for category in session.scalars(stmt)]

    def get_category(self, category_id: int) -> Optional[CategoryEntity]:
        with self._session() as session:
            category = session.get(CategoryModel, category_id)
            return _to_category(category) if category else None

    def create_category(self, data: dict) -> CategoryEntity:
        with self._session() as session:
            if data.get("sort_order") is None:
                max_order = session.scalar(select(func.max(CategoryModel.sort_order)))
                data["sort_order"] = (max_order or 0) + 1
            category = CategoryModel(**data)
            session.add(category)
            session.commit()
            session.refresh(category)
            return _to_category(category)

    def update_category(self, category_id: int, data: dict) -> Optional[CategoryEntity]:
        with self._session() as session:
            category = session.get(CategoryModel, category_id)
            if not category:
                return None
            for key, value in data.items():
                setattr(category, key, value)
            session.commit()
            session.refresh(category)
            return _to_category(category)

    def delete_category(self, category_id: int) -> None:
        with self._session() as session:
            session.execute(delete(TaskModel).where(TaskModel.category_id == category_id))
            session.execute(delete(CategoryModel).where(CategoryModel.id == category_id))
            session.commit()
