"""Tests for Alembic migrations."""

from __future__ import annotations

from pathlib import Path

import pytest
import sqlalchemy as sa
from alembic.config import Config
from sqlalchemy import inspect
from sqlalchemy.orm import sessionmaker

from alembic import command
from edgelab.backtest.simulator import simulate
from edgelab.backtest.store import SqlResultStore
from edgelab.models import Base
from tests.factories import ScriptedGenerator, buy, make_config, make_series

ROOT_DIR = Path(__file__).resolve().parent.parent.parent


@pytest.fixture()
def db_file(tmp_path: Path) -> Path:
    return tmp_path / "test_migration.db"


@pytest.fixture()
def alembic_config(db_file: Path) -> Config:
    """Alembic config pointing to a temp database.

    Built without the ini file so the test run's logging stays untouched.
    """
    config = Config()
    config.set_main_option("script_location", str(ROOT_DIR / "alembic"))
    config.set_main_option("sqlalchemy.url", f"sqlite:///{db_file}")
    return config


@pytest.fixture()
def migrated_engine(alembic_config: Config, db_file: Path) -> sa.engine.Engine:
    """Run migrations and return engine for verification."""
    command.upgrade(alembic_config, "head")
    return sa.create_engine(f"sqlite:///{db_file}")


class TestMigrationUpgrade:
    """Migrations create the schema the ORM models expect."""

    def test_upgrade_from_empty(self, alembic_config: Config) -> None:
        command.upgrade(alembic_config, "head")

    def test_all_tables_exist(self, migrated_engine: sa.engine.Engine) -> None:
        table_names = set(inspect(migrated_engine).get_table_names())
        expected = {"backtest_run", "backtest_trade", "walk_forward_period"}
        assert expected.issubset(table_names), f"Missing tables: {expected - table_names}"

    def test_columns_match_models(self, migrated_engine: sa.engine.Engine) -> None:
        inspector = inspect(migrated_engine)
        for table in Base.metadata.sorted_tables:
            migrated = {col["name"] for col in inspector.get_columns(table.name)}
            assert migrated == set(table.columns.keys()), table.name

    def test_key_indexes_exist(self, migrated_engine: sa.engine.Engine) -> None:
        inspector = inspect(migrated_engine)
        trade_indexes = {idx["name"] for idx in inspector.get_indexes("backtest_trade")}
        period_indexes = {idx["name"] for idx in inspector.get_indexes("walk_forward_period")}
        assert "ix_backtest_trade_run" in trade_indexes
        assert "ix_walk_forward_period_analysis" in period_indexes

    def test_store_writes_to_migrated_database(self, migrated_engine: sa.engine.Engine) -> None:
        bars = make_series(["1.1000", "1.1000", "1.1050", "1.1100"])
        result = simulate(make_config(), bars, ScriptedGenerator({1: [buy()]}))
        store = SqlResultStore(sessionmaker(migrated_engine, expire_on_commit=False))
        assert store.persist(result) == 1


class TestMigrationDowngrade:
    """Downgrade to base removes every result table."""

    def test_downgrade_to_base(self, alembic_config: Config, migrated_engine: sa.engine.Engine) -> None:
        command.downgrade(alembic_config, "base")
        table_names = set(inspect(migrated_engine).get_table_names())
        assert not table_names & {"backtest_run", "backtest_trade", "walk_forward_period"}
