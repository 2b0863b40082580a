"""Forward-only migration runner for the lore database schema.

The ANN index tables (vec_chunks_*) are NOT migration-managed — see lore.db.vectors.
"""

from __future__ import annotations

import sqlite3

# schema_version is the bootstrap table, created before migrations run.
_CREATE_SCHEMA_VERSION = """
CREATE TABLE IF NOT EXISTS schema_version (
    version     INTEGER NOT NULL,
    applied_at  DATETIME NOT NULL DEFAULT (datetime('now'))
)
"""

_V1_SQL = """
CREATE TABLE IF NOT EXISTS raw_records (
    id              TEXT PRIMARY KEY,
    source          TEXT NOT NULL CHECK (source IN ('chat', 'repository')),
    payload         TEXT NOT NULL,
    processed       INTEGER NOT NULL DEFAULT 0,
    processed_at    DATETIME,
    deleted_at      DATETIME,
    created_at      DATETIME NOT NULL DEFAULT (datetime('now'))
);

CREATE INDEX IF NOT EXISTS raw_records_pending_idx
    ON raw_records (processed, deleted_at, created_at);

CREATE TABLE IF NOT EXISTS cleaned_records (
    id              TEXT PRIMARY KEY,
    raw_id          TEXT NOT NULL UNIQUE REFERENCES raw_records(id) ON DELETE CASCADE,
    source          TEXT NOT NULL,
    body            TEXT NOT NULL,
    timestamp       DATETIME NOT NULL,
    metadata        TEXT NOT NULL DEFAULT '{}',
    created_at      DATETIME NOT NULL DEFAULT (datetime('now'))
);

CREATE TABLE IF NOT EXISTS chunks (
    id              INTEGER PRIMARY KEY,
    cleaned_id      TEXT NOT NULL REFERENCES cleaned_records(id) ON DELETE CASCADE,
    chunk_index     INTEGER NOT NULL,
    body            TEXT NOT NULL,
    token_count     INTEGER NOT NULL,
    source          TEXT NOT NULL,
    chunk_kind      TEXT NOT NULL,
    context         TEXT NOT NULL,
    metadata        TEXT NOT NULL DEFAULT '{}',
    created_at      DATETIME NOT NULL DEFAULT (datetime('now')),
    embedding       TEXT,
    embedded_at     DATETIME,
    UNIQUE (cleaned_id, chunk_index)
);

CREATE INDEX IF NOT EXISTS chunks_cleaned_idx ON chunks (cleaned_id);
CREATE INDEX IF NOT EXISTS chunks_unembedded_idx ON chunks (embedded_at, created_at);
"""

# Single-row table naming the orchestrator instance allowed to run.
_V2_SQL = """
CREATE TABLE IF NOT EXISTS pipeline_lease (
    name            TEXT PRIMARY KEY,
    owner           TEXT NOT NULL,
    heartbeat_at    REAL NOT NULL
);
"""

# Append-only. Each entry: (version: int, sql: str).
# executescript() issues an implicit COMMIT before running.
MIGRATIONS: list[tuple[int, str]] = [
    (1, _V1_SQL),
    (2, _V2_SQL),
]


def run_migrations(conn: sqlite3.Connection) -> None:
    """Apply all pending migrations in ascending version order.

    Idempotent: safe to call on a database at any version.
    """
    conn.execute(_CREATE_SCHEMA_VERSION)
    conn.commit()

    row = conn.execute("SELECT MAX(version) FROM schema_version").fetchone()
    current = row[0] if row[0] is not None else 0

    for version, sql in MIGRATIONS:
        if version > current:
            conn.executescript(sql)
            conn.execute(
                "INSERT INTO schema_version (version) VALUES (?)", (version,)
            )
            conn.commit()
