"""Generator dispatch.

``generate`` picks a built-in generator by adapter id. Adapters outside the
built-in set may provide their own ``create_schema(options, file)``; anything
else is rejected with ``UnsupportedAdapterError``.
"""

from __future__ import annotations

import inspect
import sys
from collections.abc import Mapping
from types import MappingProxyType
from typing import Any

from ..core.config import Settings
from ..core.exceptions import UnsupportedAdapterError
from ..core.logging import get_logger
from ..options import UnblockedOptions
from ..plugins.host import compose_async
from .alembic_gen import generate_alembic_revision
from .sql import generate_sql_migrations
from .sqlalchemy_gen import generate_sqlalchemy_schema
from .types import BuiltinGenerator, GeneratedArtifact

logger = get_logger(__name__)

BUILTIN_GENERATORS: Mapping[str, BuiltinGenerator] = MappingProxyType(
    {
        "sql": generate_sql_migrations,
        "alembic": generate_alembic_revision,
        "sqlalchemy": generate_sqlalchemy_schema,
    }
)


async def generate(
    adapter: Any,
    options: UnblockedOptions | None = None,
    file: str | None = None,
    settings: Settings | None = None,
) -> GeneratedArtifact:
    """Produce the schema artifact for ``adapter``.

    Raises:
        UnsupportedAdapterError: ``adapter.id`` is not a built-in generator
            and the adapter has no ``create_schema``.

    """
    options = options or UnblockedOptions()
    adapter_id = getattr(adapter, "id", None) or type(adapter).__name__
    generator = BUILTIN_GENERATORS.get(adapter_id)
    if generator is not None:
        logger.info("Dispatching built-in generator", extra={"adapter_id": adapter_id})
        context = await compose_async(options, settings=settings)
        try:
            return await generator(context, file)
        finally:
            if context.engine is not None:
                await context.engine.dispose()

    create_schema = getattr(adapter, "create_schema", None)
    if create_schema is not None:
        logger.info("Dispatching custom generator", extra={"adapter_id": adapter_id})
        result = create_schema(options, file)
        if inspect.isawaitable(result):
            result = await result
        return GeneratedArtifact.from_result(result, file)

    raise UnsupportedAdapterError(adapter_id)


async def generate_or_exit(
    adapter: Any,
    options: UnblockedOptions | None = None,
    file: str | None = None,
    settings: Settings | None = None,
) -> GeneratedArtifact:
    """Like ``generate`` but logs an unsupported adapter and exits with status 1."""
    try:
        return await generate(adapter, options, file, settings)
    except UnsupportedAdapterError as e:
        logger.error(e.message, extra={"adapter_id": e.adapter_id})
        sys.exit(1)
