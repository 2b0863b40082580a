"""Shared pytest fixtures."""

from __future__ import annotations

import logging

import pytest

from lore.db.connection import Database
from lore.db.repository import Repository
from lore.db.schema import initialize


@pytest.fixture
def tmp_db(tmp_path):
    """File-based DB in tmp_path with schema initialized, closed after test."""
    db = Database(tmp_path / ".lore.db")
    conn = db.connect()
    initialize(conn)
    yield conn
    conn.close()


@pytest.fixture
def repo(tmp_db):
    return Repository(tmp_db)


@pytest.fixture(autouse=True)
def _isolate_env(monkeypatch, tmp_path):
    """Keep LORE_* overrides and the real ~/.lore out of tests."""
    for var in ("LORE_DB", "LORE_EMBEDDING_MODEL", "LORE_GENERATION_MODEL"):
        monkeypatch.delenv(var, raising=False)
    monkeypatch.setattr("lore.config._GLOBAL_CONFIG_PATH", tmp_path / "home" / ".lore" / "config.yaml")


@pytest.fixture(autouse=True)
def _lore_log_propagation(monkeypatch):
    """configure_logging() turns propagation off; caplog needs it on."""
    monkeypatch.setattr(logging.getLogger("lore"), "propagate", True)
