"""
Schema revisions: the initial revision builds the tables the models declare
and takes them down again.
"""
import importlib.util
from pathlib import Path

import pytest
from alembic.migration import MigrationContext
from alembic.operations import Operations
from sqlalchemy import inspect
from sqlalchemy.ext.asyncio import create_async_engine

from backoffice.core.database import Base
from backoffice.models import catalog, menu  # noqa: F401

REVISION_FILE = Path(__file__).resolve().parents[1] / "alembic" / "versions" / "0001_initial.py"


def _load_revision():
    spec = importlib.util.spec_from_file_location("revision_0001_initial", REVISION_FILE)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


def _run(connection, step):
    with Operations.context(MigrationContext.configure(connection)):
        step()


def _schema(connection):
    inspector = inspect(connection)
    return {
        table: {column["name"] for column in inspector.get_columns(table)}
        for table in inspector.get_table_names()
    }


def _unique_indexes(connection, table):
    return {ix["name"] for ix in inspect(connection).get_indexes(table) if ix["unique"]}


@pytest.fixture
async def bare_engine():
    engine = create_async_engine("sqlite+aiosqlite://")
    yield engine
    await engine.dispose()


class TestInitialRevision:
    async def test_upgrade_matches_models(self, bare_engine):
        revision = _load_revision()
        expected = {t.name: {c.name for c in t.columns} for t in Base.metadata.sorted_tables}

        async with bare_engine.begin() as conn:
            await conn.run_sync(_run, revision.upgrade)
            assert await conn.run_sync(_schema) == expected
            assert await conn.run_sync(_unique_indexes, "dish_catalog") == {"ix_dish_catalog_title_key"}

    async def test_downgrade_removes_everything(self, bare_engine):
        revision = _load_revision()
        async with bare_engine.begin() as conn:
            await conn.run_sync(_run, revision.upgrade)
            await conn.run_sync(_run, revision.downgrade)
            assert await conn.run_sync(_schema) == {}
