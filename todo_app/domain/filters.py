from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class TaskFilters:
    filter_key: str = "all"
    search: str | None = None
    category_id: int | None = None
    parent_id: int | None = None
