"""Declarative SQLAlchemy schema module generator."""

from __future__ import annotations

from typing import TYPE_CHECKING

from jinja2 import BaseLoader, Environment, StrictUndefined
from sqlalchemy import Column

from ..db.metadata import build_metadata
from .types import GeneratedArtifact

if TYPE_CHECKING:
    from ..plugins.host import ApplicationContext

DEFAULT_SCHEMA_FILE = "./unblocked_schema.py"

SCHEMA_TEMPLATE = '''"""SQLAlchemy tables for the Unblocked schema. Generated; do not edit."""

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

metadata = MetaData()
{% for table in tables %}

{{ table.variable }} = Table(
    {{ table.name | pprint }},
    metadata,
{%- for column in table.columns %}
    {{ column }},
{%- endfor %}
)
{%- endfor %}
'''

_env = Environment(loader=BaseLoader(), autoescape=False, undefined=StrictUndefined, keep_trailing_newline=True)


def _type_source(column: Column) -> str:
    type_ = column.type
    name = type(type_).__name__
    if name == "String" and type_.length:
        return f"String({type_.length})"
    if name == "DateTime" and type_.timezone:
        return "DateTime(timezone=True)"
    return f"{name}()"


def render_column(column: Column) -> str:
    args = [repr(column.name), _type_source(column)]
    for fk in column.foreign_keys:
        fk_args = [repr(fk.target_fullname)]
        if fk.ondelete:
            fk_args.append(f"ondelete={fk.ondelete!r}")
        args.append(f"ForeignKey({', '.join(fk_args)})")
    if column.primary_key:
        args.append("primary_key=True")
        if column.autoincrement is True:
            args.append("autoincrement=True")
    else:
        args.append(f"nullable={column.nullable!r}")
    if column.unique:
        args.append("unique=True")
    return f"Column({', '.join(args)})"


def _variable_name(table_name: str) -> str:
    cleaned = "".join(ch if ch.isalnum() else "_" for ch in table_name)
    return f"{cleaned[:1].lower()}{cleaned[1:]}_table"


def render_schema_module(context: ApplicationContext) -> str:
    metadata = build_metadata(context.schema, bool(context.options.use_number_id))
    tables = [
        {
            "name": table.name,
            "variable": _variable_name(table.name),
            "columns": [render_column(column) for column in table.columns],
        }
        for table in metadata.tables.values()
    ]
    return _env.from_string(SCHEMA_TEMPLATE).render(tables=tables)


async def generate_sqlalchemy_schema(context: ApplicationContext, file: str | None = None) -> GeneratedArtifact:
    """Render the full schema as a module of SQLAlchemy ``Table`` definitions.

    The whole file is regenerated every time, so the artifact overwrites.
    """
    return GeneratedArtifact(
        file_name=file or DEFAULT_SCHEMA_FILE,
        code=render_schema_module(context),
        overwrite=True,
    )
