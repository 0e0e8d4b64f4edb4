"""SQL DDL migration generator."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import TYPE_CHECKING

from ..core.exceptions import ConfigurationError
from ..core.logging import get_logger
from ..db.migrations import compile_plan, plan_migrations
from .types import GeneratedArtifact

if TYPE_CHECKING:
    from ..plugins.host import ApplicationContext

logger = get_logger(__name__)


def default_migration_file(now: datetime | None = None) -> str:
    stamp = (now or datetime.now(UTC)).isoformat().replace(":", "-")
    return f"./unblocked_migrations/{stamp}.sql"


async def generate_sql_migrations(context: ApplicationContext, file: str | None = None) -> GeneratedArtifact:
    """Compile the DDL that brings the live database up to the merged schema.

    The artifact's code is the empty string when the database already matches.
    """
    if context.engine is None:
        raise ConfigurationError("The sql generator requires a database_url")
    plan = await plan_migrations(context.engine, context.schema)
    code = compile_plan(plan, context.schema, context.engine.dialect, bool(context.options.use_number_id))
    logger.info(
        "Generated SQL migrations",
        extra={"tables_to_create": len(plan.to_be_created), "tables_to_alter": len(plan.to_be_added)},
    )
    return GeneratedArtifact(file_name=file or default_migration_file(), code=code)
