"""Declarative field and table model.

A ``TableDefinition`` is the unit every contributor (built-in tables and
plugins) hands to the schema registry. Fields keep their declaration order,
which is also the column order of generated artifacts.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass, field, replace
from typing import Any, Literal

from ..core.exceptions import ConfigurationError, ValidationError

PrimitiveType = Literal["string", "number", "boolean", "date"]
# A tuple of literal values declares an enumeration, e.g. ("public", "private")
FieldType = PrimitiveType | tuple[str, ...]
OnDelete = Literal["cascade", "restrict", "set null"]

PRIMITIVE_TYPES: frozenset[str] = frozenset({"string", "number", "boolean", "date"})


@dataclass(frozen=True)
class FieldReference:
    """Foreign key edge: ``model`` is a registry key until projected to physical names."""

    model: str
    field: str = "id"
    on_delete: OnDelete = "cascade"


@dataclass(frozen=True)
class FieldAttribute:
    """One column of a logical table.

    ``default_value`` may be a static value or a zero-argument callable that
    is evaluated each time a row is created.
    """

    type: FieldType
    required: bool = True
    unique: bool = False
    default_value: Any = None
    references: FieldReference | None = None
    field_name: str | None = None
    bigint: bool = False
    # Shaping flags: input=False ignores client-supplied values,
    # returned=False hides the field from responses
    input: bool = True
    returned: bool = True
    transform_input: Callable[[Any], Any] | None = None
    transform_output: Callable[[Any], Any] | None = None

    def __post_init__(self) -> None:
        if isinstance(self.type, tuple):
            if not self.type or not all(isinstance(v, str) for v in self.type):
                raise ConfigurationError("Enumeration fields need at least one string literal value")
        elif self.type not in PRIMITIVE_TYPES:
            raise ConfigurationError(f"Unknown field type: {self.type!r}")

    @property
    def is_enum(self) -> bool:
        return isinstance(self.type, tuple)

    def physical_name(self, key: str) -> str:
        return self.field_name or key

    def resolve_default(self) -> Any:
        if callable(self.default_value):
            return self.default_value()
        return self.default_value


@dataclass
class TableDefinition:
    """A named logical table.

    ``order`` only sequences generated migrations; a table that references
    another must not be ordered before it.
    """

    fields: dict[str, FieldAttribute] = field(default_factory=dict)
    model_name: str | None = None
    disable_migrations: bool = False
    order: int | None = None

    def copy(self) -> TableDefinition:
        return replace(self, fields=dict(self.fields))


def _input_value(key: str, attr: FieldAttribute, value: Any) -> Any:
    if value is None and attr.required:
        raise ValidationError(f"{key} is required", details={"field": key})
    if attr.is_enum and value is not None and value not in attr.type:
        raise ValidationError(
            f"{key} must be one of: {', '.join(attr.type)}",
            details={"field": key, "allowed": list(attr.type)},
        )
    if attr.transform_input is not None and value is not None:
        return attr.transform_input(value)
    return value


def parse_input(
    data: Mapping[str, Any] | None,
    fields: Mapping[str, FieldAttribute],
    action: Literal["create", "update"] = "create",
) -> dict[str, Any]:
    """Shape client input against a table's fields.

    Keys that are not declared fields are dropped. On create, missing fields
    get their default, and a missing required field without a default raises
    ``ValidationError``. On update only the supplied keys are returned. A
    required field never accepts ``None``.
    Enumeration values outside the declared literals are rejected.
    """
    data = data or {}
    parsed: dict[str, Any] = {}
    for key, attr in fields.items():
        if key in data and attr.input:
            parsed[key] = _input_value(key, attr, data[key])
            continue
        if action != "create":
            continue
        if attr.default_value is not None:
            parsed[key] = attr.resolve_default()
            continue
        if attr.required and attr.input:
            raise ValidationError(f"{key} is required", details={"field": key})
    return parsed


def parse_output(data: Mapping[str, Any], fields: Mapping[str, FieldAttribute]) -> dict[str, Any]:
    """Drop fields marked ``returned=False``; undeclared keys pass through."""
    parsed: dict[str, Any] = {}
    for key, value in data.items():
        attr = fields.get(key)
        if attr is None:
            parsed[key] = value
            continue
        if not attr.returned:
            continue
        parsed[key] = attr.transform_output(value) if attr.transform_output and value is not None else value
    return parsed


def rename_schema(
    schema: Mapping[str, TableDefinition],
    overrides: Mapping[str, Mapping[str, Any]] | None,
) -> dict[str, TableDefinition]:
    """Apply ``{table: {"model_name": ..., "fields": {key: physical_name}}}`` overrides.

    Lets a plugin's users rename its tables and columns without touching the
    plugin itself. Unknown tables and fields in ``overrides`` are ignored.
    """
    renamed = {key: table.copy() for key, table in schema.items()}
    for table_key, override in (overrides or {}).items():
        table = renamed.get(table_key)
        if table is None:
            continue
        if override.get("model_name"):
            table.model_name = override["model_name"]
        for field_key, physical in (override.get("fields") or {}).items():
            if field_key in table.fields:
                table.fields[field_key] = replace(table.fields[field_key], field_name=physical)
    return renamed
