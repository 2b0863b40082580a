"""Per-model sqlite-vec ANN index management.

Vectors live on ``chunks.embedding``; the ``vec_chunks_{slug}`` vec0 table is an
optional accelerator (cosine metric, ``source`` metadata column for filtering).
Build it with ``build_index()`` after the initial embedding backfill —
``EmbeddingWriter`` keeps it current from then on.
"""

from __future__ import annotations

import re
import sqlite3


def model_to_slug(model: str) -> str:
    """Convert a provider/model string to a valid table name suffix.

    Examples:
        "gemini/text-embedding-004" -> "gemini_text_embedding_004"
        "openai/text-embedding-3-small" -> "openai_text_embedding_3_small"
    """
    return re.sub(r"[^a-z0-9]", "_", model.lower())


def vec_table_name(model_slug: str) -> str:
    """Return the full vec table name for a model slug."""
    return f"vec_chunks_{model_slug}"


def vec_table_exists(conn: sqlite3.Connection, table: str) -> bool:
    row = conn.execute(
        "SELECT name FROM sqlite_master WHERE type='table' AND name=?", (table,)
    ).fetchone()
    return row is not None


def ensure_vec_table(conn: sqlite3.Connection, model_slug: str, dimensions: int) -> str:
    """Create vec_chunks_{model_slug} virtual table if it doesn't already exist.

    Args:
        conn: Active database connection (sqlite-vec must be loaded).
        model_slug: Sanitized model identifier (use model_to_slug() to generate).
        dimensions: Embedding vector dimensions (e.g. 768 for text-embedding-004).

    Returns:
        The table name (vec_chunks_{model_slug}).
    """
    if not re.fullmatch(r"[a-z0-9_]+", model_slug):
        raise ValueError(
            f"Invalid model_slug '{model_slug}' — use model_to_slug() to sanitize."
        )
    if dimensions < 1:
        raise ValueError(f"dimensions must be >= 1, got {dimensions}")

    table = vec_table_name(model_slug)
    if not vec_table_exists(conn, table):
        conn.execute(
            f"CREATE VIRTUAL TABLE {table} USING vec0("
            f"embedding float[{dimensions}] distance_metric=cosine, "
            f"source text)"
        )
        conn.commit()

    return table


def build_index(conn: sqlite3.Connection, model_slug: str, dimensions: int) -> int:
    """Create the ANN index if needed and backfill every embedded chunk missing from it.

    Returns:
        Number of vectors added to the index.
    """
    table = ensure_vec_table(conn, model_slug, dimensions)
    rows = conn.execute(
        f"""
        SELECT c.id, c.embedding, c.source FROM chunks c
        WHERE c.embedding IS NOT NULL
          AND c.id NOT IN (SELECT rowid FROM {table})
        ORDER BY c.id
        """
    ).fetchall()
    for row in rows:
        conn.execute(
            f"INSERT INTO {table}(rowid, embedding, source) VALUES (?, ?, ?)",
            (row["id"], row["embedding"], row["source"]),
        )
    conn.commit()
    return len(rows)


def drop_index(conn: sqlite3.Connection, model_slug: str) -> bool:
    """Drop the ANN index for *model_slug*. Returns True if a table was dropped."""
    table = vec_table_name(model_slug)
    if not vec_table_exists(conn, table):
        return False
    conn.execute(f"DROP TABLE {table}")
    conn.commit()
    return True
