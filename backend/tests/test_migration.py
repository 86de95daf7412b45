"""Tests for the initial Alembic migration — structure and completeness."""

from __future__ import annotations

import importlib
import inspect
from typing import TYPE_CHECKING

import pytest

if TYPE_CHECKING:
    import types

from app.models.db import Base


@pytest.fixture
def migration() -> types.ModuleType:
    """Import the initial migration module."""
    return importlib.import_module("migrations.versions.001_initial_schema")


class TestMigrationStructure:
    def test_revision_id(self, migration: types.ModuleType) -> None:
        assert migration.revision == "001"

    def test_down_revision_is_none(self, migration: types.ModuleType) -> None:
        assert migration.down_revision is None

    def test_upgrade_and_downgrade_callable(self, migration: types.ModuleType) -> None:
        assert callable(migration.upgrade)
        assert callable(migration.downgrade)


class TestMigrationCompleteness:
    def test_all_tables_represented(self, migration: types.ModuleType) -> None:
        """Every model table is created by the migration."""
        source = inspect.getsource(migration.upgrade)
        for table_name in Base.metadata.tables:
            assert f'"{table_name}"' in source

    def test_all_columns_represented(self, migration: types.ModuleType) -> None:
        source = inspect.getsource(migration.upgrade)
        for column in Base.metadata.tables["projects"].columns:
            assert f'"{column.name}"' in source, column.name

    def test_status_constrained(self, migration: types.ModuleType) -> None:
        source = inspect.getsource(migration.upgrade)
        assert "'draft', 'completed', 'archived'" in source

    def test_downgrade_drops_table(self, migration: types.ModuleType) -> None:
        assert 'drop_table("projects")' in inspect.getsource(migration.downgrade)
