"""Alembic migrations — upgrade/downgrade against the URL from Settings."""

from pathlib import Path

import pytest
from alembic import command
from alembic.config import Config
from sqlalchemy import create_engine, inspect

from opgate.config import get_settings

SCRIPTS = Path(__file__).resolve().parents[2] / "alembic"


@pytest.fixture
def alembic_config(tmp_path, monkeypatch):
    db_path = tmp_path / "migrated.db"
    monkeypatch.setenv("DATABASE_URL", f"sqlite+aiosqlite:///{db_path}")
    get_settings.cache_clear()
    config = Config()
    config.set_main_option("script_location", str(SCRIPTS))
    yield config, db_path
    get_settings.cache_clear()


def _tables(db_path) -> set[str]:
    engine = create_engine(f"sqlite:///{db_path}")
    try:
        return set(inspect(engine).get_table_names())
    finally:
        engine.dispose()


def test_upgrade_creates_audit_entries_at_settings_url(alembic_config):
    config, db_path = alembic_config
    command.upgrade(config, "head")
    assert "audit_entries" in _tables(db_path)


def test_downgrade_drops_audit_entries(alembic_config):
    config, db_path = alembic_config
    command.upgrade(config, "head")
    command.downgrade(config, "base")
    assert "audit_entries" not in _tables(db_path)
