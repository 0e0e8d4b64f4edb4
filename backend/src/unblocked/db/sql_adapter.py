"""SQLAlchemy Core storage adapter.

Same interface as ``MemoryAdapter``. Callers use logical table keys and
field keys; the adapter translates them to the physical table and column
names produced by ``build_metadata``.
"""

import uuid
from collections.abc import Mapping
from typing import Any

from sqlalchemy import Table, delete, func, insert, select, update
from sqlalchemy.ext.asyncio import AsyncEngine

from ..core.logging import get_logger
from .metadata import build_metadata
from .registry import SchemaRegistry

logger = get_logger(__name__)


class SQLAlchemyAdapter:
    id = "sqlalchemy"

    def __init__(self, engine: AsyncEngine, registry: SchemaRegistry, use_number_id: bool = False):
        self.engine = engine
        self.registry = registry
        self.use_number_id = use_number_id
        self.metadata = build_metadata(registry, use_number_id)

    def _table(self, model: str) -> Table:
        return self.metadata.tables[self.registry.model_name(model)]

    def _column_names(self, model: str) -> dict[str, str]:
        """Logical field key to physical column name, including ``id``."""
        names = {key: attr.physical_name(key) for key, attr in self.registry[model].fields.items()}
        names["id"] = "id"
        return names

    def _to_row(self, model: str, data: Mapping[str, Any]) -> dict[str, Any]:
        names = self._column_names(model)
        return {names[key]: value for key, value in data.items() if key in names}

    def _from_row(self, model: str, row: Mapping[str, Any]) -> dict[str, Any]:
        names = self._column_names(model)
        return {key: row[column] for key, column in names.items() if column in row}

    def _where(self, model: str, where: Mapping[str, Any] | None) -> list:
        table = self._table(model)
        return [table.c[column] == value for column, value in self._to_row(model, where or {}).items()]

    async def create(self, model: str, data: Mapping[str, Any]) -> dict[str, Any]:
        values = self._to_row(model, data)
        if values.get("id") is None:
            values.pop("id", None)
            if not self.use_number_id:
                values["id"] = uuid.uuid4().hex
        table = self._table(model)
        async with self.engine.begin() as conn:
            result = await conn.execute(insert(table).values(**values).returning(*table.c))
            row = result.mappings().one()
        return self._from_row(model, row)

    async def find_one(self, model: str, where: Mapping[str, Any]) -> dict[str, Any] | None:
        table = self._table(model)
        async with self.engine.connect() as conn:
            row = (await conn.execute(select(table).where(*self._where(model, where)).limit(1))).mappings().first()
        return self._from_row(model, row) if row is not None else None

    async def find_many(
        self,
        model: str,
        where: Mapping[str, Any] | None = None,
        limit: int | None = None,
        offset: int = 0,
        sort_by: str | None = None,
        descending: bool = False,
    ) -> list[dict[str, Any]]:
        table = self._table(model)
        stmt = select(table).where(*self._where(model, where))
        if sort_by is not None:
            column = table.c[self._column_names(model)[sort_by]]
            stmt = stmt.order_by(column.desc() if descending else column.asc())
        if offset:
            stmt = stmt.offset(offset)
        if limit is not None:
            stmt = stmt.limit(limit)
        async with self.engine.connect() as conn:
            rows = (await conn.execute(stmt)).mappings().all()
        return [self._from_row(model, row) for row in rows]

    async def count(self, model: str, where: Mapping[str, Any] | None = None) -> int:
        table = self._table(model)
        async with self.engine.connect() as conn:
            result = await conn.execute(select(func.count()).select_from(table).where(*self._where(model, where)))
            return int(result.scalar_one())

    async def update(self, model: str, where: Mapping[str, Any], values: Mapping[str, Any]) -> dict[str, Any] | None:
        existing = await self.find_one(model, where)
        if existing is None:
            return None
        table = self._table(model)
        async with self.engine.begin() as conn:
            await conn.execute(update(table).where(table.c.id == existing["id"]).values(**self._to_row(model, values)))
        return {**existing, **values}

    async def update_many(self, model: str, where: Mapping[str, Any], values: Mapping[str, Any]) -> int:
        table = self._table(model)
        async with self.engine.begin() as conn:
            result = await conn.execute(
                update(table).where(*self._where(model, where)).values(**self._to_row(model, values))
            )
            return result.rowcount

    async def delete(self, model: str, where: Mapping[str, Any]) -> bool:
        existing = await self.find_one(model, where)
        if existing is None:
            return False
        table = self._table(model)
        async with self.engine.begin() as conn:
            await conn.execute(delete(table).where(table.c.id == existing["id"]))
        return True

    async def delete_many(self, model: str, where: Mapping[str, Any]) -> int:
        table = self._table(model)
        async with self.engine.begin() as conn:
            result = await conn.execute(delete(table).where(*self._where(model, where)))
            return result.rowcount
