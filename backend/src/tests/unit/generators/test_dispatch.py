"""
Unit tests for generator dispatch and the built-in generators.
"""

from datetime import UTC, datetime
from types import SimpleNamespace

import pytest
from sqlalchemy import text

from unblocked.core.exceptions import ConfigurationError, UnsupportedAdapterError
from unblocked.db.engine import create_engine
from unblocked.db.memory_adapter import MemoryAdapter
from unblocked.db.metadata import build_metadata
from unblocked.db.migrations import run_migrations
from unblocked.db.registry import merge_schema
from unblocked.generators import BUILTIN_GENERATORS, GeneratedArtifact, GeneratorAdapter, generate, generate_or_exit
from unblocked.generators.alembic_gen import _only_known_tables, render_revision
from unblocked.generators.sql import default_migration_file
from unblocked.generators.sqlalchemy_gen import DEFAULT_SCHEMA_FILE
from unblocked.options import UnblockedOptions


class TestDispatch:
    def test_builtin_generators(self):
        assert set(BUILTIN_GENERATORS) == {"sql", "alembic", "sqlalchemy"}
        with pytest.raises(TypeError):
            BUILTIN_GENERATORS["custom"] = None

    @pytest.mark.asyncio
    async def test_unknown_adapter_is_rejected(self, test_settings):
        with pytest.raises(UnsupportedAdapterError) as exc_info:
            await generate(GeneratorAdapter("prisma"), settings=test_settings)

        assert exc_info.value.adapter_id == "prisma"
        assert "prisma" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_memory_adapter_is_rejected(self, test_settings):
        with pytest.raises(UnsupportedAdapterError):
            await generate(MemoryAdapter(), settings=test_settings)

    @pytest.mark.asyncio
    async def test_generate_or_exit_exits_non_zero(self, test_settings):
        with pytest.raises(SystemExit) as exc_info:
            await generate_or_exit(GeneratorAdapter("prisma"), settings=test_settings)

        assert exc_info.value.code == 1

    @pytest.mark.asyncio
    async def test_custom_create_schema(self, test_settings):
        calls = []

        def create_schema(options, file):
            calls.append((options, file))
            return {"code": "schema", "path": file or "./custom.schema", "overwrite": True}

        options = UnblockedOptions(app_name="custom")
        artifact = await generate(GeneratorAdapter("prisma", create_schema), options, settings=test_settings)

        assert artifact == GeneratedArtifact(file_name="./custom.schema", code="schema", overwrite=True)
        assert calls == [(options, None)]

    @pytest.mark.asyncio
    async def test_async_create_schema_object_result(self, test_settings):
        async def create_schema(options, file):
            return SimpleNamespace(code="model {}", file_name="schema.prisma", append=True)

        artifact = await generate(SimpleNamespace(id="prisma", create_schema=create_schema), settings=test_settings)

        assert artifact.file_name == "schema.prisma"
        assert artifact.append is True
        assert artifact.overwrite is False

    @pytest.mark.asyncio
    async def test_custom_result_needs_a_file_name(self, test_settings):
        adapter = GeneratorAdapter("prisma", lambda options, file: {"code": "x"})

        with pytest.raises(ConfigurationError):
            await generate(adapter, settings=test_settings)

    @pytest.mark.asyncio
    async def test_builtin_ids_take_precedence_over_create_schema(self, test_settings):
        adapter = GeneratorAdapter("sqlalchemy", lambda options, file: {"code": "custom", "path": "x"})

        artifact = await generate(adapter, settings=test_settings)

        assert artifact.file_name == DEFAULT_SCHEMA_FILE


class TestArtifact:
    def test_empty_code(self):
        assert GeneratedArtifact(file_name="a.sql", code="").is_empty
        assert GeneratedArtifact(file_name="a.sql").is_empty
        assert not GeneratedArtifact(file_name="a.sql", code="SELECT 1;").is_empty

    def test_passes_artifacts_through(self):
        artifact = GeneratedArtifact(file_name="a.sql", code="x")

        assert GeneratedArtifact.from_result(artifact) is artifact

    def test_file_argument_is_the_fallback_name(self):
        assert GeneratedArtifact.from_result({"code": "x"}, "given.sql").file_name == "given.sql"


class TestSqlGenerator:
    def test_default_file_name(self):
        name = default_migration_file(datetime(2024, 5, 1, 12, 30, 15, tzinfo=UTC))

        assert name == "./unblocked_migrations/2024-05-01T12-30-15+00-00.sql"

    @pytest.mark.asyncio
    async def test_requires_database(self, test_settings):
        with pytest.raises(ConfigurationError):
            await generate(GeneratorAdapter("sql"), settings=test_settings)

    @pytest.mark.asyncio
    async def test_second_run_after_applying_is_empty(self, test_settings, sqlite_url):
        options = UnblockedOptions(database_url=sqlite_url)

        first = await generate(GeneratorAdapter("sql"), options, file="out.sql", settings=test_settings)
        engine = create_engine(sqlite_url)
        try:
            await run_migrations(engine, merge_schema())
        finally:
            await engine.dispose()
        second = await generate(GeneratorAdapter("sql"), options, file="out.sql", settings=test_settings)

        assert first.file_name == "out.sql"
        assert 'CREATE TABLE "Chat"' in first.code
        assert first.code.index('CREATE TABLE "Chat"') < first.code.index('CREATE TABLE "Message"')
        assert second.code == ""
        assert second.is_empty


class TestAlembicGenerator:
    def test_unknown_reflected_tables_are_ignored(self):
        assert _only_known_tables(None, "legacy", "table", True, None) is False
        assert _only_known_tables(None, "Chat", "table", False, None) is True
        assert _only_known_tables(None, "title", "column", True, None) is True

    def test_revision_renders_valid_python(self):
        code = render_revision("    pass", "    pass", "abc123", create_date=datetime(2024, 1, 1, tzinfo=UTC))

        compile(code, "revision.py", "exec")
        assert "revision = 'abc123'" in code
        assert "down_revision = None" in code

    @pytest.mark.asyncio
    async def test_fresh_database(self, test_settings, sqlite_url):
        engine = create_engine(sqlite_url)
        try:
            async with engine.begin() as conn:
                await conn.execute(text("CREATE TABLE legacy (id INTEGER PRIMARY KEY)"))
        finally:
            await engine.dispose()

        artifact = await generate(
            GeneratorAdapter("alembic"), UnblockedOptions(database_url=sqlite_url), settings=test_settings
        )

        assert artifact.file_name.startswith("./migrations/versions/")
        assert artifact.file_name.endswith("_unblocked_schema.py")
        assert "op.create_table('Chat'" in artifact.code
        assert "legacy" not in artifact.code
        compile(artifact.code, artifact.file_name, "exec")

    @pytest.mark.asyncio
    async def test_up_to_date_database_yields_empty_revision(self, test_settings, sqlite_url):
        engine = create_engine(sqlite_url)
        try:
            await run_migrations(engine, merge_schema())
        finally:
            await engine.dispose()

        artifact = await generate(
            GeneratorAdapter("alembic"), UnblockedOptions(database_url=sqlite_url), settings=test_settings
        )

        assert artifact.code == ""
        assert artifact.is_empty


class TestSqlalchemyGenerator:
    @pytest.mark.asyncio
    async def test_schema_module(self, test_settings):
        artifact = await generate(GeneratorAdapter("sqlalchemy"), file="models.py", settings=test_settings)
        namespace = {}
        exec(compile(artifact.code, artifact.file_name, "exec"), namespace)

        assert artifact.overwrite is True
        assert artifact.file_name == "models.py"
        assert list(namespace["metadata"].tables) == list(build_metadata(merge_schema()).tables)
        assert namespace["chat_table"].c["title"].nullable is False

    @pytest.mark.asyncio
    async def test_storage_adapter_id_selects_generator(self, test_settings, sqlite_url):
        from unblocked.db.sql_adapter import SQLAlchemyAdapter

        engine = create_engine(sqlite_url)
        try:
            adapter = SQLAlchemyAdapter(engine, merge_schema())
            artifact = await generate(adapter, settings=test_settings)
        finally:
            await engine.dispose()

        assert artifact.file_name == DEFAULT_SCHEMA_FILE
        assert "message_table = Table(" in artifact.code
