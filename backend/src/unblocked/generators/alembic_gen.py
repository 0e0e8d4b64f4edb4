"""Alembic revision script generator.

Runs Alembic's autogenerate comparison between the live database and the
merged schema metadata, then renders the operations into a revision module.
Tables in the database that the schema does not know about are left alone.
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from alembic.autogenerate import produce_migrations, render_python_code
from alembic.runtime.migration import MigrationContext
from jinja2 import BaseLoader, Environment, StrictUndefined
from sqlalchemy import MetaData
from sqlalchemy.engine import Connection

from ..core.exceptions import ConfigurationError
from ..core.logging import get_logger
from ..db.metadata import build_metadata
from .types import GeneratedArtifact

if TYPE_CHECKING:
    from ..plugins.host import ApplicationContext

logger = get_logger(__name__)

REVISION_TEMPLATE = '''"""{{ message }}

Revision ID: {{ revision }}
Revises: {{ down_revision or "" }}
Create Date: {{ create_date }}

"""

import sqlalchemy as sa
from alembic import op

revision = {{ revision | pprint }}
down_revision = {{ down_revision | pprint }}
branch_labels = None
depends_on = None


def upgrade() -> None:
{{ upgrade }}


def downgrade() -> None:
{{ downgrade }}
'''

_env = Environment(loader=BaseLoader(), autoescape=False, undefined=StrictUndefined, keep_trailing_newline=True)


def _only_known_tables(obj: Any, name: str | None, type_: str, reflected: bool, compare_to: Any) -> bool:
    return not (type_ == "table" and reflected and compare_to is None)


def _diff(conn: Connection, metadata: MetaData) -> tuple[bool, str, str]:
    migration_context = MigrationContext.configure(conn, opts={"include_object": _only_known_tables})
    script = produce_migrations(migration_context, metadata)
    upgrade = render_python_code(script.upgrade_ops, migration_context=migration_context)
    downgrade = render_python_code(script.downgrade_ops, migration_context=migration_context)
    return script.upgrade_ops.is_empty(), upgrade, downgrade


def render_revision(
    upgrade: str,
    downgrade: str,
    revision: str,
    down_revision: str | None = None,
    message: str = "unblocked schema",
    create_date: datetime | None = None,
) -> str:
    return _env.from_string(REVISION_TEMPLATE).render(
        message=message,
        revision=revision,
        down_revision=down_revision,
        create_date=(create_date or datetime.now(UTC)).isoformat(),
        upgrade=upgrade.rstrip(),
        downgrade=downgrade.rstrip(),
    )


async def generate_alembic_revision(context: ApplicationContext, file: str | None = None) -> GeneratedArtifact:
    """Render an Alembic revision for the difference between database and schema.

    The artifact's code is the empty string when autogenerate finds nothing
    to do.
    """
    if context.engine is None:
        raise ConfigurationError("The alembic generator requires a database_url")
    metadata = build_metadata(context.schema, bool(context.options.use_number_id))
    async with context.engine.connect() as conn:
        is_empty, upgrade, downgrade = await conn.run_sync(_diff, metadata)

    revision = uuid.uuid4().hex[:12]
    file_name = file or f"./migrations/versions/{revision}_unblocked_schema.py"
    if is_empty:
        logger.info("Alembic autogenerate found no changes")
        return GeneratedArtifact(file_name=file_name, code="")
    logger.info("Generated Alembic revision", extra={"revision": revision})
    return GeneratedArtifact(file_name=file_name, code=render_revision(upgrade, downgrade, revision))
