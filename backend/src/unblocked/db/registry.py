"""Schema registry: merges built-in tables with plugin schema fragments.

The registry is built once during composition and is read-only afterwards.
Fragments are folded in plugin registration order. Fields of the same table
are unioned; redeclaring a field keeps the latest definition unless its type
or default changes, which is rejected as a conflict.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Iterable, Iterator, Mapping
from types import MappingProxyType
from typing import TYPE_CHECKING

from ..core.exceptions import ConfigurationError, SchemaConflictError
from .fields import FieldAttribute, TableDefinition
from .tables import RATE_LIMIT_TABLE, get_builtin_tables, get_rate_limit_table

if TYPE_CHECKING:
    from ..options import RateLimitOptions
    from ..plugins.base import Plugin

logger = logging.getLogger(__name__)

CORE_CONTRIBUTOR = "core"


class SchemaRegistry(Mapping[str, TableDefinition]):
    """Read-only mapping of table key to merged ``TableDefinition``."""

    def __init__(self, tables: dict[str, TableDefinition], contributors: dict[tuple[str, str], str]):
        self._tables = MappingProxyType(tables)
        self._contributors = MappingProxyType(contributors)

    def __getitem__(self, key: str) -> TableDefinition:
        return self._tables[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._tables)

    def __len__(self) -> int:
        return len(self._tables)

    def model_name(self, key: str) -> str:
        return self._tables[key].model_name or key

    def contributor(self, table: str, field: str) -> str | None:
        """Id of the contributor whose definition of ``table.field`` is in effect."""
        return self._contributors.get((table, field))

    def creation_order(self) -> list[str]:
        """Table keys sorted by ``order``; ties and unordered tables keep registration order."""
        keys = list(self._tables)
        return sorted(keys, key=lambda k: (_order_of(self._tables[k]), keys.index(k)))

    def fields_of(self, key: str) -> dict[str, FieldAttribute]:
        table = self._tables.get(key)
        return dict(table.fields) if table else {}


def _order_of(table: TableDefinition) -> float:
    return math.inf if table.order is None else table.order


class _SchemaAccumulator:
    def __init__(self) -> None:
        self.tables: dict[str, TableDefinition] = {}
        self.contributors: dict[tuple[str, str], str] = {}

    def add(self, contributor: str, key: str, fragment: TableDefinition) -> None:
        existing = self.tables.get(key)
        if existing is None:
            table = TableDefinition(
                fields={},
                model_name=fragment.model_name or key,
                disable_migrations=fragment.disable_migrations,
                order=fragment.order,
            )
            self.tables[key] = table
        else:
            table = existing
            if fragment.model_name:
                table.model_name = fragment.model_name
            if fragment.order is not None:
                table.order = fragment.order
            table.disable_migrations = table.disable_migrations or fragment.disable_migrations

        for field_key, attr in fragment.fields.items():
            previous = table.fields.get(field_key)
            if previous is not None:
                self._check_compatible(key, field_key, previous, attr, contributor)
                logger.debug(
                    "Field redeclared",
                    extra={"table": key, "field": field_key, "plugin_id": contributor},
                )
            table.fields[field_key] = attr
            self.contributors[(key, field_key)] = contributor

    def _check_compatible(
        self,
        table: str,
        field_key: str,
        previous: FieldAttribute,
        attr: FieldAttribute,
        contributor: str,
    ) -> None:
        first = self.contributors.get((table, field_key), CORE_CONTRIBUTOR)
        if previous.type != attr.type:
            raise SchemaConflictError(table, field_key, first, contributor, "type")
        if previous.default_value != attr.default_value:
            raise SchemaConflictError(table, field_key, first, contributor, "default value")


def merge_schema(
    plugins: Iterable[Plugin] = (),
    rate_limit: RateLimitOptions | None = None,
    base_tables: Mapping[str, TableDefinition] | None = None,
) -> SchemaRegistry:
    """Fold plugin schema fragments over the built-in tables.

    Args:
        plugins: Plugins in registration order.
        rate_limit: When its storage is ``database`` a ``rateLimit`` counter
            table is appended, honouring ``model_name`` and ``fields`` overrides.
        base_tables: Replaces the built-in table set (used by tests and tooling).

    Raises:
        SchemaConflictError: A field is redeclared with a different type or default.
        ConfigurationError: A reference points at an unknown table or at a
            table created after the referencing one.

    """
    acc = _SchemaAccumulator()
    base = get_builtin_tables() if base_tables is None else base_tables
    for key, table in base.items():
        acc.add(CORE_CONTRIBUTOR, key, table)

    for plugin in plugins:
        for key, fragment in (plugin.schema or {}).items():
            acc.add(plugin.id, key, fragment)
        if plugin.schema:
            logger.debug(
                "Merged plugin schema",
                extra={"plugin_id": plugin.id, "tables": ",".join(plugin.schema)},
            )

    if rate_limit is not None and rate_limit.storage == "database":
        acc.add(CORE_CONTRIBUTOR, RATE_LIMIT_TABLE, get_rate_limit_table(rate_limit.model_name, rate_limit.fields))

    registry = SchemaRegistry(acc.tables, acc.contributors)
    validate_references(registry)
    return registry


def validate_references(registry: SchemaRegistry) -> None:
    """Every referenced table must be created before the table that references it."""
    position = {key: index for index, key in enumerate(registry.creation_order())}
    by_model_name = {registry.model_name(key): key for key in registry}
    for key, table in registry.items():
        for field_key, attr in table.fields.items():
            if attr.references is None:
                continue
            target = attr.references.model
            if target not in registry:
                # Accept the physical name as well as the registry key
                target = by_model_name.get(target, target)
            if target not in registry:
                raise ConfigurationError(
                    f"Field '{field_key}' of table '{key}' references unknown table '{attr.references.model}'",
                    details={"table": key, "field": field_key},
                )
            if target != key and position[target] > position[key]:
                raise ConfigurationError(
                    f"Table '{key}' references '{target}', which is ordered after it",
                    details={"table": key, "field": field_key, "references": target},
                )
