"""Migration planner.

Compares the physical schema against a live database and produces the set of
tables to create and columns to add. Columns are never dropped or altered; a
column whose type does not match its field is only reported.
"""

from dataclasses import dataclass, field

from sqlalchemy import Column, MetaData, Table, inspect, types
from sqlalchemy.engine import Connection, Dialect
from sqlalchemy.ext.asyncio import AsyncEngine
from sqlalchemy.schema import CreateColumn, CreateTable

from ..core.logging import get_logger
from .fields import FieldAttribute
from .metadata import PhysicalTable, build_metadata, column_type, get_physical_schema
from .registry import SchemaRegistry

logger = get_logger(__name__)

# Reflected type families accepted for each field type
_TYPE_FAMILIES: dict[str, tuple[type, ...]] = {
    "string": (types.String,),
    "number": (types.Integer, types.Numeric, types.Float),
    "boolean": (types.Boolean, types.Integer),
    "date": (types.DateTime, types.Date, types.Integer),
}


@dataclass
class ColumnAddition:
    table: str
    fields: dict[str, FieldAttribute] = field(default_factory=dict)


@dataclass
class MigrationPlan:
    to_be_created: list[PhysicalTable] = field(default_factory=list)
    to_be_added: list[ColumnAddition] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.to_be_created and not self.to_be_added


def match_type(column_type: types.TypeEngine, attr: FieldAttribute) -> bool:
    """Whether a reflected column type can hold values of ``attr``."""
    family = "string" if attr.is_enum else attr.type
    return isinstance(column_type, _TYPE_FAMILIES[family])


def _introspect(conn: Connection) -> dict[str, dict[str, types.TypeEngine]]:
    inspector = inspect(conn)
    return {
        table: {col["name"]: col["type"] for col in inspector.get_columns(table)}
        for table in inspector.get_table_names()
    }


def diff_schema(
    registry: SchemaRegistry,
    existing: dict[str, dict[str, types.TypeEngine]],
) -> MigrationPlan:
    """Compute the plan for ``registry`` given reflected ``{table: {column: type}}``."""
    plan = MigrationPlan()
    for name, table in get_physical_schema(registry).items():
        if table.disable_migrations:
            continue
        columns = existing.get(name)
        if columns is None:
            plan.to_be_created.append(table)
            continue
        missing: dict[str, FieldAttribute] = {}
        for field_name, attr in table.fields.items():
            if field_name not in columns:
                missing[field_name] = attr
                continue
            if not match_type(columns[field_name], attr):
                logger.warning(
                    f"Field {field_name} in table {name} has a different type in the database. "
                    f"Expected {attr.type} but got {columns[field_name]}."
                )
        if missing:
            plan.to_be_added.append(ColumnAddition(table=name, fields=missing))

    # Stable: equal orders keep registry order
    plan.to_be_created.sort(key=lambda t: t.order)
    return plan


async def plan_migrations(engine: AsyncEngine, registry: SchemaRegistry) -> MigrationPlan:
    """Introspect the database behind ``engine`` and plan the missing DDL."""
    async with engine.connect() as conn:
        existing = await conn.run_sync(_introspect)
    plan = diff_schema(registry, existing)
    logger.debug(
        "Migration plan computed",
        extra={"tables_to_create": len(plan.to_be_created), "tables_to_alter": len(plan.to_be_added)},
    )
    return plan


def compile_plan(
    plan: MigrationPlan,
    registry: SchemaRegistry,
    dialect: Dialect,
    use_number_id: bool = False,
) -> str:
    """Render the plan as SQL DDL for ``dialect``.

    An empty plan compiles to an empty string.
    """
    if plan.is_empty:
        return ""
    metadata = build_metadata(registry, use_number_id)
    preparer = dialect.identifier_preparer
    statements: list[str] = []

    for table in plan.to_be_created:
        statements.append(str(CreateTable(metadata.tables[table.name]).compile(dialect=dialect)).strip())

    for addition in plan.to_be_added:
        # Added columns are nullable so existing rows stay valid
        scratch = Table(
            addition.table,
            MetaData(),
            *(
                Column(name, column_type(attr, use_number_id), nullable=True)
                for name, attr in addition.fields.items()
            ),
        )
        for field_name, attr in addition.fields.items():
            column_sql = str(CreateColumn(scratch.c[field_name]).compile(dialect=dialect)).strip()
            if attr.references is not None:
                ref = attr.references
                column_sql += f" REFERENCES {preparer.quote(ref.model)} ({preparer.quote(ref.field)})"
                column_sql += f" ON DELETE {ref.on_delete.upper()}"
            statements.append(f"ALTER TABLE {preparer.format_table(scratch)} ADD COLUMN {column_sql}")

    return ";\n\n".join(statements) + ";\n"


async def run_migrations(
    engine: AsyncEngine,
    registry: SchemaRegistry,
    use_number_id: bool = False,
) -> MigrationPlan:
    """Plan and apply the migrations in one transaction. Returns the applied plan."""
    plan = await plan_migrations(engine, registry)
    if plan.is_empty:
        logger.info("No migrations needed")
        return plan

    sql = compile_plan(plan, registry, engine.dialect, use_number_id)
    async with engine.begin() as conn:
        for statement in sql.split(";\n"):
            if statement.strip():
                await conn.exec_driver_sql(statement.strip())

    logger.info(
        "Migrations applied",
        extra={
            "created": ",".join(t.name for t in plan.to_be_created),
            "altered": ",".join(a.table for a in plan.to_be_added),
        },
    )
    return plan
