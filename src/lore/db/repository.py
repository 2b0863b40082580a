"""Repository pattern for all lore database operations.

Single interface for: raw records, cleaned records, chunks, vectors, the ANN
index mirror, and the orchestrator lease. Every "has this advanced?" check is a
predicate evaluated at selection time (``processed = 0``, no chunks,
``embedding IS NULL``); nothing is cached between calls.
"""

from __future__ import annotations

import json
import sqlite3
import uuid
from typing import Any

from lore.db.models import (
    Chunk,
    ChunkKind,
    CleanedRecord,
    Provenance,
    RawRecord,
    SourceKind,
)

_CHUNK_COLUMNS = """
    c.id, c.cleaned_id, c.chunk_index, c.body, c.token_count, c.source, c.chunk_kind,
    c.context, c.metadata, c.created_at, c.embedding, c.embedded_at
"""

_LEASE_NAME = "orchestrator"


class Repository:
    """Data access layer for all lore database entities.

    Wraps an open sqlite3.Connection. The connection is owned by the caller
    and must be closed after use.
    """

    def __init__(self, conn: sqlite3.Connection) -> None:
        """Initialise with an open database connection.

        Args:
            conn: An open sqlite3.Connection with sqlite-vec loaded and schema
                initialised (see lore.db.schema.initialize).
        """
        self._conn = conn

    @property
    def conn(self) -> sqlite3.Connection:
        return self._conn

    # ------------------------------------------------------------------
    # Raw records
    # ------------------------------------------------------------------

    def append_raw(self, source: SourceKind | str, payload: Any) -> str:
        """Append a raw record as received from a producer. Returns its new id.

        Args:
            source: Producer kind (chat or repository).
            payload: JSON-serialisable payload; its shape depends on *source*.
        """
        kind = SourceKind(source)
        record_id = str(uuid.uuid4())
        self._conn.execute(
            "INSERT INTO raw_records (id, source, payload) VALUES (?, ?, ?)",
            (record_id, kind.value, json.dumps(payload)),
        )
        self._conn.commit()
        return record_id

    def get_raw(self, record_id: str) -> RawRecord | None:
        row = self._conn.execute(
            """
            SELECT id, source, payload, processed, processed_at, deleted_at, created_at
            FROM raw_records WHERE id = ?
            """,
            (record_id,),
        ).fetchone()
        return _row_to_raw(row) if row else None

    def list_pending_raw(self, limit: int) -> list[RawRecord]:
        """Return unprocessed, non-deleted raw records, oldest first."""
        rows = self._conn.execute(
            """
            SELECT id, source, payload, processed, processed_at, deleted_at, created_at
            FROM raw_records
            WHERE processed = 0 AND deleted_at IS NULL
            ORDER BY created_at, rowid
            LIMIT ?
            """,
            (limit,),
        ).fetchall()
        return [_row_to_raw(r) for r in rows]

    def soft_delete_raw(self, record_id: str) -> bool:
        """Mark a raw record deleted so it is never polled again.

        Returns:
            True if a live record was marked, False if missing or already deleted.
        """
        cur = self._conn.execute(
            "UPDATE raw_records SET deleted_at = datetime('now') WHERE id = ? AND deleted_at IS NULL",
            (record_id,),
        )
        self._conn.commit()
        return cur.rowcount == 1

    def record_cleaning(self, raw_id: str, cleaned: CleanedRecord | None) -> None:
        """Persist the cleaning outcome for *raw_id* in one transaction.

        The raw record is marked processed whether or not *cleaned* is given,
        so rejected records are never selected again.
        """
        with self._conn:
            if cleaned is not None:
                self._conn.execute(
                    """
                    INSERT INTO cleaned_records (id, raw_id, source, body, timestamp, metadata)
                    VALUES (?, ?, ?, ?, ?, ?)
                    """,
                    (
                        cleaned.id,
                        raw_id,
                        SourceKind(cleaned.source).value,
                        cleaned.body,
                        cleaned.timestamp,
                        cleaned.metadata,
                    ),
                )
            self._conn.execute(
                "UPDATE raw_records SET processed = 1, processed_at = datetime('now') WHERE id = ?",
                (raw_id,),
            )

    # ------------------------------------------------------------------
    # Cleaned records
    # ------------------------------------------------------------------

    def get_cleaned(self, cleaned_id: str) -> CleanedRecord | None:
        row = self._conn.execute(
            "SELECT id, raw_id, source, body, timestamp, metadata, created_at FROM cleaned_records WHERE id = ?",
            (cleaned_id,),
        ).fetchone()
        return _row_to_cleaned(row) if row else None

    def get_cleaned_by_raw(self, raw_id: str) -> CleanedRecord | None:
        row = self._conn.execute(
            "SELECT id, raw_id, source, body, timestamp, metadata, created_at FROM cleaned_records WHERE raw_id = ?",
            (raw_id,),
        ).fetchone()
        return _row_to_cleaned(row) if row else None

    def list_unchunked(self, limit: int) -> list[CleanedRecord]:
        """Return cleaned records that have no chunks yet, oldest first."""
        rows = self._conn.execute(
            """
            SELECT cr.id, cr.raw_id, cr.source, cr.body, cr.timestamp, cr.metadata, cr.created_at
            FROM cleaned_records cr
            WHERE NOT EXISTS (SELECT 1 FROM chunks c WHERE c.cleaned_id = cr.id)
            ORDER BY cr.created_at, cr.rowid
            LIMIT ?
            """,
            (limit,),
        ).fetchall()
        return [_row_to_cleaned(r) for r in rows]

    # ------------------------------------------------------------------
    # Chunks
    # ------------------------------------------------------------------

    def add_chunks(self, chunks: list[Chunk]) -> list[int]:
        """Insert all *chunks* in a single transaction. Returns their new ids.

        A record is considered chunked as soon as one chunk exists, so a
        partial write would be permanent; the transaction prevents that.
        """
        ids: list[int] = []
        with self._conn:
            for chunk in chunks:
                cur = self._conn.execute(
                    """
                    INSERT INTO chunks
                        (cleaned_id, chunk_index, body, token_count, source, chunk_kind, context, metadata)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        chunk.cleaned_id,
                        chunk.chunk_index,
                        chunk.body,
                        chunk.token_count,
                        SourceKind(chunk.source).value,
                        ChunkKind(chunk.kind).value,
                        chunk.context,
                        chunk.metadata,
                    ),
                )
                chunk.id = cur.lastrowid
                ids.append(cur.lastrowid)
        return ids

    def get_chunk(self, chunk_id: int) -> Chunk | None:
        row = self._conn.execute(
            f"SELECT {_CHUNK_COLUMNS} FROM chunks c WHERE c.id = ?", (chunk_id,)
        ).fetchone()
        return _row_to_chunk(row) if row else None

    def list_chunks(self, cleaned_id: str) -> list[Chunk]:
        """Return the chunks of one cleaned record in ordinal order."""
        rows = self._conn.execute(
            f"SELECT {_CHUNK_COLUMNS} FROM chunks c WHERE c.cleaned_id = ? ORDER BY c.chunk_index",
            (cleaned_id,),
        ).fetchall()
        return [_row_to_chunk(r) for r in rows]

    def list_unembedded(self, limit: int) -> list[Chunk]:
        """Return chunks with no vector yet, oldest first."""
        rows = self._conn.execute(
            f"""
            SELECT {_CHUNK_COLUMNS} FROM chunks c
            WHERE c.embedding IS NULL
            ORDER BY c.created_at, c.id
            LIMIT ?
            """,
            (limit,),
        ).fetchall()
        return [_row_to_chunk(r) for r in rows]

    def delete_chunks(self, source: SourceKind | str | None = None) -> int:
        """Delete chunks (optionally only one source kind) and their index entries.

        Used when chunking logic changes: the affected cleaned records become
        eligible for the chunker again.

        Returns:
            Number of chunks deleted.
        """
        where, params = ("WHERE source = ?", [SourceKind(source).value]) if source else ("", [])
        ids = [r[0] for r in self._conn.execute(f"SELECT id FROM chunks {where}", params).fetchall()]
        if not ids:
            return 0

        with self._conn:
            for table in self._index_tables():
                for start in range(0, len(ids), 500):
                    batch = ids[start:start + 500]
                    placeholders = ",".join("?" * len(batch))
                    self._conn.execute(
                        f"DELETE FROM [{table}] WHERE rowid IN ({placeholders})",  # noqa: S608
                        batch,
                    )
            self._conn.execute(f"DELETE FROM chunks {where}", params)
        return len(ids)

    # ------------------------------------------------------------------
    # Vectors
    # ------------------------------------------------------------------

    def set_embedding(
        self, chunk_id: int, embedding: list[float], index_table: str | None = None
    ) -> bool:
        """Attach a vector to a chunk that has none. Never overwrites an existing vector.

        When *index_table* is given the vector is mirrored into the ANN index.

        Returns:
            True if the chunk was updated.
        """
        with self._conn:
            cur = self._conn.execute(
                """
                UPDATE chunks SET embedding = ?, embedded_at = datetime('now')
                WHERE id = ? AND embedding IS NULL
                """,
                (json.dumps(embedding), chunk_id),
            )
            updated = cur.rowcount == 1
            if updated and index_table:
                source = self._conn.execute(
                    "SELECT source FROM chunks WHERE id = ?", (chunk_id,)
                ).fetchone()[0]
                self._conn.execute(
                    f"INSERT INTO {index_table}(rowid, embedding, source) VALUES (?, ?, ?)",
                    (chunk_id, json.dumps(embedding), source),
                )
        return updated

    def search_exact(
        self,
        embedding: list[float],
        limit: int = 5,
        source: SourceKind | str | None = None,
    ) -> list[tuple[Chunk, Provenance, float]]:
        """Exact cosine-distance scan over every embedded chunk.

        Returns (chunk, provenance, distance) sorted by distance, ties by chunk id.
        """
        params: list[Any] = [json.dumps(embedding)]
        filter_sql = ""
        if source:
            filter_sql = "AND c.source = ?"
            params.append(SourceKind(source).value)
        params.append(limit)
        rows = self._conn.execute(
            f"""
            SELECT {_CHUNK_COLUMNS},
                   cr.timestamp AS parent_timestamp, cr.metadata AS parent_metadata,
                   vec_distance_cosine(c.embedding, ?) AS distance
            FROM chunks c
            JOIN cleaned_records cr ON cr.id = c.cleaned_id
            WHERE c.embedding IS NOT NULL {filter_sql}
            ORDER BY distance, c.id
            LIMIT ?
            """,
            params,
        ).fetchall()
        return [(_row_to_chunk(r), _row_to_provenance(r), r["distance"]) for r in rows]

    def search_index(
        self,
        table: str,
        embedding: list[float],
        limit: int = 5,
        source: SourceKind | str | None = None,
    ) -> list[tuple[Chunk, Provenance, float]]:
        """Nearest-neighbour search through the vec0 ANN index.

        Returns (chunk, provenance, distance) sorted by distance.
        """
        params: list[Any] = [json.dumps(embedding), limit]
        filter_sql = ""
        if source:
            filter_sql = "AND source = ?"
            params.append(SourceKind(source).value)
        vec_rows = self._conn.execute(
            f"""
            SELECT rowid, distance FROM {table}
            WHERE embedding MATCH ? AND k = ? {filter_sql}
            ORDER BY distance
            """,
            params,
        ).fetchall()

        results: list[tuple[Chunk, Provenance, float]] = []
        for vec_row in vec_rows:
            row = self._conn.execute(
                f"""
                SELECT {_CHUNK_COLUMNS},
                       cr.timestamp AS parent_timestamp, cr.metadata AS parent_metadata
                FROM chunks c JOIN cleaned_records cr ON cr.id = c.cleaned_id
                WHERE c.id = ?
                """,
                (vec_row["rowid"],),
            ).fetchone()
            if row is not None:
                results.append((_row_to_chunk(row), _row_to_provenance(row), vec_row["distance"]))
        return results

    def count_embedded(self, source: SourceKind | str | None = None) -> int:
        if source:
            return self._conn.execute(
                "SELECT COUNT(*) FROM chunks WHERE embedding IS NOT NULL AND source = ?",
                (SourceKind(source).value,),
            ).fetchone()[0]
        return self._conn.execute(
            "SELECT COUNT(*) FROM chunks WHERE embedding IS NOT NULL"
        ).fetchone()[0]

    def _index_tables(self) -> list[str]:
        # vec0 shadow tables share the prefix but are plain tables
        return [
            r[0]
            for r in self._conn.execute(
                """
                SELECT name FROM sqlite_master
                WHERE type = 'table' AND name LIKE 'vec_chunks_%'
                  AND sql LIKE 'CREATE VIRTUAL TABLE%'
                """
            ).fetchall()
        ]

    # ------------------------------------------------------------------
    # Stats
    # ------------------------------------------------------------------

    def stats(self) -> dict[str, int]:
        """Return per-stage counts for status reporting.

        ``rejected`` counts raw records that were processed but produced no
        cleaned record.
        """
        return {
            "raw": self._count("SELECT COUNT(*) FROM raw_records"),
            "pending": self._count(
                "SELECT COUNT(*) FROM raw_records WHERE processed = 0 AND deleted_at IS NULL"
            ),
            "deleted": self._count("SELECT COUNT(*) FROM raw_records WHERE deleted_at IS NOT NULL"),
            "rejected": self._count(
                """
                SELECT COUNT(*) FROM raw_records r
                WHERE r.processed = 1
                  AND NOT EXISTS (SELECT 1 FROM cleaned_records cr WHERE cr.raw_id = r.id)
                """
            ),
            "cleaned": self._count("SELECT COUNT(*) FROM cleaned_records"),
            "unchunked": self._count(
                """
                SELECT COUNT(*) FROM cleaned_records cr
                WHERE NOT EXISTS (SELECT 1 FROM chunks c WHERE c.cleaned_id = cr.id)
                """
            ),
            "chunks": self._count("SELECT COUNT(*) FROM chunks"),
            "embedded": self._count("SELECT COUNT(*) FROM chunks WHERE embedding IS NOT NULL"),
        }

    def _count(self, sql: str) -> int:
        return self._conn.execute(sql).fetchone()[0]

    # ------------------------------------------------------------------
    # Orchestrator lease
    # ------------------------------------------------------------------

    def acquire_lease(self, owner: str, now: float, ttl: float) -> bool:
        """Claim the orchestrator lease for *owner*.

        Succeeds when no lease exists, when *owner* already holds it, or when
        the current holder's heartbeat is older than *ttl* seconds. The claim
        is a single conditional upsert, so two contenders cannot both win.
        """
        with self._conn:
            self._conn.execute(
                """
                INSERT INTO pipeline_lease (name, owner, heartbeat_at) VALUES (?, ?, ?)
                ON CONFLICT(name) DO UPDATE SET
                    owner = excluded.owner,
                    heartbeat_at = excluded.heartbeat_at
                WHERE pipeline_lease.owner = excluded.owner
                   OR pipeline_lease.heartbeat_at < ?
                """,
                (_LEASE_NAME, owner, now, now - ttl),
            )
        return self.lease_owner() == owner

    def renew_lease(self, owner: str, now: float) -> bool:
        """Refresh the heartbeat. Returns False if *owner* no longer holds the lease."""
        with self._conn:
            cur = self._conn.execute(
                "UPDATE pipeline_lease SET heartbeat_at = ? WHERE name = ? AND owner = ?",
                (now, _LEASE_NAME, owner),
            )
        return cur.rowcount == 1

    def release_lease(self, owner: str) -> None:
        with self._conn:
            self._conn.execute(
                "DELETE FROM pipeline_lease WHERE name = ? AND owner = ?",
                (_LEASE_NAME, owner),
            )

    def lease_owner(self) -> str | None:
        row = self._conn.execute(
            "SELECT owner FROM pipeline_lease WHERE name = ?", (_LEASE_NAME,)
        ).fetchone()
        return row["owner"] if row else None


# ------------------------------------------------------------------
# Row → model helpers
# ------------------------------------------------------------------

def _row_to_raw(row: sqlite3.Row) -> RawRecord:
    return RawRecord(
        id=row["id"],
        source=SourceKind(row["source"]),
        payload=row["payload"],
        processed=bool(row["processed"]),
        processed_at=row["processed_at"],
        deleted_at=row["deleted_at"],
        created_at=row["created_at"],
    )


def _row_to_cleaned(row: sqlite3.Row) -> CleanedRecord:
    return CleanedRecord(
        id=row["id"],
        raw_id=row["raw_id"],
        source=SourceKind(row["source"]),
        body=row["body"],
        timestamp=row["timestamp"],
        metadata=row["metadata"],
        created_at=row["created_at"],
    )


def _row_to_chunk(row: sqlite3.Row) -> Chunk:
    return Chunk(
        id=row["id"],
        cleaned_id=row["cleaned_id"],
        chunk_index=row["chunk_index"],
        body=row["body"],
        token_count=row["token_count"],
        source=SourceKind(row["source"]),
        kind=ChunkKind(row["chunk_kind"]),
        context=row["context"],
        metadata=row["metadata"],
        created_at=row["created_at"],
        embedding=json.loads(row["embedding"]) if row["embedding"] is not None else None,
        embedded_at=row["embedded_at"],
    )


def _row_to_provenance(row: sqlite3.Row) -> Provenance:
    meta = json.loads(row["parent_metadata"] or "{}")
    return Provenance(
        author=meta.get("author"),
        filename=meta.get("filename"),
        timestamp=row["parent_timestamp"],
    )
