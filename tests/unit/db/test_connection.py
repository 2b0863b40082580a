"""Tests for the Database connection layer."""

from __future__ import annotations

import threading
from pathlib import Path

import pytest

from lore.db.connection import Database


def test_connect_creates_file(tmp_path):
    db_path = tmp_path / ".lore.db"
    conn = Database(db_path).connect()
    conn.close()
    assert db_path.exists()


def test_sqlite_vec_loads(tmp_path):
    conn = Database(tmp_path / ".lore.db").connect()
    version = conn.execute("SELECT vec_version()").fetchone()[0]
    conn.close()
    assert version.startswith("v")


def test_foreign_keys_and_wal(tmp_path):
    conn = Database(tmp_path / ".lore.db").connect()
    fk = conn.execute("PRAGMA foreign_keys").fetchone()[0]
    mode = conn.execute("PRAGMA journal_mode").fetchone()[0]
    conn.close()
    assert fk == 1
    assert mode == "wal"


def test_row_factory_set(tmp_path):
    conn = Database(tmp_path / ".lore.db").connect()
    conn.execute("CREATE TABLE t (x INTEGER)")
    conn.execute("INSERT INTO t VALUES (42)")
    row = conn.execute("SELECT x FROM t").fetchone()
    conn.close()
    assert row["x"] == 42


def test_connection_usable_from_another_thread(tmp_path):
    conn = Database(tmp_path / ".lore.db").connect()
    results = []

    worker = threading.Thread(target=lambda: results.append(conn.execute("SELECT 7").fetchone()[0]))
    worker.start()
    worker.join()
    conn.close()
    assert results == [7]


def test_context_manager_closes_connection(tmp_path):
    db = Database(str(tmp_path / ".lore.db"))
    assert isinstance(db.db_path, Path)
    with db as conn:
        conn.execute("CREATE TABLE t (x INTEGER)")
    with pytest.raises(Exception):
        conn.execute("SELECT 1")
