"""Physical projection of the schema registry and its SQLAlchemy rendering.

Logical tables are keyed by registry key and use logical field keys; the
physical schema is keyed by ``model_name`` and uses ``field_name`` overrides,
with references rewritten to the referenced table's physical name.
"""

import math
from dataclasses import dataclass, field, replace

from sqlalchemy import (
    BigInteger,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    MetaData,
    String,
    Table,
    Text,
)
from sqlalchemy.types import TypeEngine

from .fields import FieldAttribute, FieldReference
from .registry import SchemaRegistry


@dataclass
class PhysicalTable:
    name: str
    fields: dict[str, FieldAttribute] = field(default_factory=dict)
    order: float = math.inf
    disable_migrations: bool = False


def get_physical_schema(registry: SchemaRegistry) -> dict[str, PhysicalTable]:
    """Project the registry onto physical table and column names.

    Tables that share a ``model_name`` are merged into one physical table.
    """
    schema: dict[str, PhysicalTable] = {}
    for key in registry.creation_order():
        table = registry[key]
        name = registry.model_name(key)
        physical_fields: dict[str, FieldAttribute] = {}
        for field_key, attr in table.fields.items():
            if attr.references is not None and attr.references.model in registry:
                ref = attr.references
                target = registry[ref.model]
                target_attr = target.fields.get(ref.field)
                attr = replace(
                    attr,
                    references=FieldReference(
                        model=registry.model_name(ref.model),
                        field=target_attr.physical_name(ref.field) if target_attr else ref.field,
                        on_delete=ref.on_delete,
                    ),
                )
            physical_fields[attr.physical_name(field_key)] = attr

        if name in schema:
            schema[name].fields.update(physical_fields)
            schema[name].disable_migrations = schema[name].disable_migrations or table.disable_migrations
            continue
        schema[name] = PhysicalTable(
            name=name,
            fields=physical_fields,
            order=math.inf if table.order is None else table.order,
            disable_migrations=table.disable_migrations,
        )
    return schema


def column_type(attr: FieldAttribute, use_number_id: bool = False) -> TypeEngine:
    """Map a field to its SQLAlchemy column type."""
    if attr.references is not None and attr.references.field == "id" and use_number_id:
        return Integer()
    if attr.is_enum:
        return Text()
    if attr.type == "string":
        # Unique text columns need a bounded length on MySQL
        return String(255) if attr.unique else Text()
    if attr.type == "number":
        return BigInteger() if attr.bigint else Integer()
    if attr.type == "boolean":
        return Boolean()
    return DateTime(timezone=True)


_ON_DELETE = {"cascade": "CASCADE", "restrict": "RESTRICT", "set null": "SET NULL"}


def build_column(name: str, attr: FieldAttribute, use_number_id: bool = False) -> Column:
    args = []
    if attr.references is not None:
        ref = attr.references
        args.append(ForeignKey(f"{ref.model}.{ref.field}", ondelete=_ON_DELETE[ref.on_delete]))
    return Column(
        name,
        column_type(attr, use_number_id),
        *args,
        nullable=not attr.required,
        unique=attr.unique or None,
    )


def id_column(use_number_id: bool = False) -> Column:
    if use_number_id:
        return Column("id", Integer(), primary_key=True, autoincrement=True)
    return Column("id", Text(), primary_key=True)


def build_metadata(registry: SchemaRegistry, use_number_id: bool = False) -> MetaData:
    """Render the registry as SQLAlchemy ``MetaData``.

    Tables flagged ``disable_migrations`` are left out. Table definition order
    follows the creation order so dependent tables come last.
    """
    metadata = MetaData()
    for table in get_physical_schema(registry).values():
        if table.disable_migrations:
            continue
        columns = [id_column(use_number_id)]
        columns.extend(
            build_column(name, attr, use_number_id) for name, attr in table.fields.items() if name != "id"
        )
        Table(table.name, metadata, *columns)
    return metadata
