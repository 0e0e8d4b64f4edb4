#!/usr/bin/env python3
"""
Command line tooling for Unblocked.

Generates schema artifacts, applies migrations and creates secrets. The
application options are loaded from ``--config module:attribute``, where the
attribute is an ``UnblockedOptions`` instance or a callable returning one.
"""

import argparse
import asyncio
import importlib
import secrets
import sys
from pathlib import Path

from .core.exceptions import ConfigurationError, UnblockedException
from .core.logging import setup_logging
from .db.engine import check_connection
from .db.migrations import run_migrations
from .generators import GeneratorAdapter, generate_or_exit
from .options import UnblockedOptions
from .plugins.host import compose_async


def load_options(spec: str | None) -> UnblockedOptions:
    """Import ``module:attribute`` and return the options it names."""
    if not spec:
        return UnblockedOptions()
    module_name, _, attribute = spec.partition(":")
    try:
        module = importlib.import_module(module_name)
    except ImportError as e:
        raise ConfigurationError(f"Could not import {module_name}: {e}", details={"config": spec}) from e
    attribute = attribute or "options"
    if not hasattr(module, attribute):
        raise ConfigurationError(f"{module_name} has no attribute {attribute!r}", details={"config": spec})
    value = getattr(module, attribute)
    if callable(value) and not isinstance(value, UnblockedOptions):
        value = value()
    if not isinstance(value, UnblockedOptions):
        raise ConfigurationError(
            f"{spec} is {type(value).__name__}, expected UnblockedOptions", details={"config": spec}
        )
    return value


def write_artifact(file_name: str, code: str, overwrite: bool, append: bool, force: bool) -> bool:
    path = Path(file_name)
    if path.exists() and not (overwrite or append or force):
        print(f"Error: {path} already exists. Use --yes to overwrite it.")
        return False
    path.parent.mkdir(parents=True, exist_ok=True)
    if append and path.exists():
        with path.open("a", encoding="utf-8") as f:
            f.write(code)
    else:
        path.write_text(code, encoding="utf-8")
    return True


async def generate_command(args) -> int:
    options = load_options(args.config)
    artifact = await generate_or_exit(GeneratorAdapter(args.adapter), options, args.output)
    if artifact.is_empty:
        print("Your schema is already up to date.")
        return 0
    if not write_artifact(artifact.file_name, artifact.code, artifact.overwrite, artifact.append, args.yes):
        return 1
    print(f"Schema written to {artifact.file_name}")
    return 0


async def migrate_command(args) -> int:
    context = await compose_async(load_options(args.config))
    if context.engine is None:
        print("Error: UNBLOCKED_DATABASE_URL not configured")
        print("Please set UNBLOCKED_DATABASE_URL or pass database_url in your options")
        return 1
    try:
        if not await check_connection(context.engine):
            print("Error: could not connect to the database")
            return 1
        plan = await run_migrations(context.engine, context.schema, bool(context.options.use_number_id))
    finally:
        await context.engine.dispose()
    if plan.is_empty:
        print("No migrations needed.")
    else:
        print(f"Created {len(plan.to_be_created)} table(s), altered {len(plan.to_be_added)} table(s).")
    return 0


def secret_command(args) -> int:
    print(secrets.token_hex(32))
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="unblocked", description="Unblocked Tool")
    subparsers = parser.add_subparsers(dest="command", required=True)

    generate = subparsers.add_parser("generate", help="Generate schema or migration code")
    generate.add_argument("--adapter", "-a", default="sql", help="Generator id: sql, alembic or sqlalchemy")
    generate.add_argument("--config", "-c", help="Options to load, as module:attribute")
    generate.add_argument("--output", "-o", help="Target file")
    generate.add_argument("--yes", "-y", action="store_true", help="Overwrite an existing file")

    migrate = subparsers.add_parser("migrate", help="Apply pending migrations to the database")
    migrate.add_argument("--config", "-c", help="Options to load, as module:attribute")

    subparsers.add_parser("secret", help="Print a new random secret")
    return parser


def main(argv: list[str] | None = None) -> int:
    """Main function."""
    args = build_parser().parse_args(argv)
    setup_logging()
    try:
        if args.command == "generate":
            return asyncio.run(generate_command(args))
        if args.command == "migrate":
            return asyncio.run(migrate_command(args))
        return secret_command(args)
    except UnblockedException as e:
        print(f"Error: {e.message}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
