"""
Tests du démarrage : Store unique migré, migration échouée fatale.
"""

import logging

import pytest

from mytpq.config import Settings
from mytpq.database import Store
from mytpq.exceptions import MigrationError
from mytpq.main import create_store
from mytpq.migrations import LATEST_VERSION


def test_create_store_migre_la_base(tmp_path):
    settings = Settings(DATABASE_URL=f"sqlite:///{tmp_path / 'tpq_database.db'}", LOG_LEVEL="debug")

    store = create_store(settings)

    assert store.current_schema_version() == LATEST_VERSION
    assert (tmp_path / "tpq_database.db").exists()
    store.dispose()


def test_create_store_migration_echouee(monkeypatch, caplog):
    def failing_migrate(self):
        raise MigrationError("code élève en double")

    monkeypatch.setattr(Store, "migrate", failing_migrate)

    with caplog.at_level(logging.CRITICAL):
        with pytest.raises(MigrationError):
            create_store(Settings(DATABASE_URL="sqlite://"))

    assert any(r.levelno == logging.CRITICAL for r in caplog.records)
