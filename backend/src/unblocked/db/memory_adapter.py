"""In-process record store used when no database is configured.

Records are plain dicts kept per table key. ``where`` clauses are equality
matches joined with AND.
"""

import copy
import itertools
import uuid
from collections.abc import Mapping
from typing import Any

from .registry import SchemaRegistry


def generate_id() -> str:
    return uuid.uuid4().hex


class MemoryAdapter:
    """Async CRUD over in-memory tables.

    Returned records are copies; mutating them never changes stored state.
    """

    id = "memory"

    def __init__(self, registry: SchemaRegistry | None = None, use_number_id: bool = False):
        self._registry = registry
        self._use_number_id = use_number_id
        self._tables: dict[str, list[dict[str, Any]]] = {}
        self._counter = itertools.count(1)

    def _rows(self, model: str) -> list[dict[str, Any]]:
        if self._registry is not None and model not in self._registry:
            raise KeyError(f"Unknown table: {model}")
        return self._tables.setdefault(model, [])

    @staticmethod
    def _matches(row: Mapping[str, Any], where: Mapping[str, Any] | None) -> bool:
        return all(row.get(key) == value for key, value in (where or {}).items())

    async def create(self, model: str, data: Mapping[str, Any]) -> dict[str, Any]:
        row = dict(data)
        if row.get("id") is None:
            row["id"] = next(self._counter) if self._use_number_id else generate_id()
        self._rows(model).append(row)
        return copy.deepcopy(row)

    async def find_one(self, model: str, where: Mapping[str, Any]) -> dict[str, Any] | None:
        for row in self._rows(model):
            if self._matches(row, where):
                return copy.deepcopy(row)
        return None

    async def find_many(
        self,
        model: str,
        where: Mapping[str, Any] | None = None,
        limit: int | None = None,
        offset: int = 0,
        sort_by: str | None = None,
        descending: bool = False,
    ) -> list[dict[str, Any]]:
        rows = [row for row in self._rows(model) if self._matches(row, where)]
        if sort_by is not None:
            rows.sort(key=lambda r: r.get(sort_by), reverse=descending)
        end = None if limit is None else offset + limit
        return [copy.deepcopy(row) for row in rows[offset:end]]

    async def count(self, model: str, where: Mapping[str, Any] | None = None) -> int:
        return sum(1 for row in self._rows(model) if self._matches(row, where))

    async def update(self, model: str, where: Mapping[str, Any], values: Mapping[str, Any]) -> dict[str, Any] | None:
        """Update the first matching row; returns the updated row or None."""
        for row in self._rows(model):
            if self._matches(row, where):
                row.update(values)
                return copy.deepcopy(row)
        return None

    async def update_many(self, model: str, where: Mapping[str, Any], values: Mapping[str, Any]) -> int:
        updated = 0
        for row in self._rows(model):
            if self._matches(row, where):
                row.update(values)
                updated += 1
        return updated

    async def delete(self, model: str, where: Mapping[str, Any]) -> bool:
        rows = self._rows(model)
        for index, row in enumerate(rows):
            if self._matches(row, where):
                del rows[index]
                return True
        return False

    async def delete_many(self, model: str, where: Mapping[str, Any]) -> int:
        rows = self._rows(model)
        kept = [row for row in rows if not self._matches(row, where)]
        deleted = len(rows) - len(kept)
        rows[:] = kept
        return deleted
