"""Tests for the per-model sqlite-vec ANN index."""

from __future__ import annotations

import json

import pytest

from lore.db.vectors import (
    build_index,
    drop_index,
    ensure_vec_table,
    model_to_slug,
    vec_table_exists,
    vec_table_name,
)


def _insert_embedded_chunk(conn, chunk_id: int, vector, source: str = "chat") -> None:
    conn.execute(
        "INSERT OR IGNORE INTO raw_records (id, source, payload) VALUES ('r1', 'chat', '{}')"
    )
    conn.execute(
        "INSERT OR IGNORE INTO cleaned_records (id, raw_id, source, body, timestamp) "
        "VALUES ('c1', 'r1', 'chat', 'b', 'now')"
    )
    conn.execute(
        "INSERT INTO chunks (id, cleaned_id, chunk_index, body, token_count, source, chunk_kind, context, embedding) "
        "VALUES (?, 'c1', ?, 'b', 1, ?, 'message', 'ctx', ?)",
        (chunk_id, chunk_id, source, json.dumps(vector) if vector is not None else None),
    )
    conn.commit()


@pytest.mark.parametrize("model,expected", [
    ("gemini/text-embedding-004", "gemini_text_embedding_004"),
    ("openai/text-embedding-3-small", "openai_text_embedding_3_small"),
    ("cohere/embed-english-v3.0", "cohere_embed_english_v3_0"),
])
def test_model_to_slug(model, expected):
    assert model_to_slug(model) == expected


def test_vec_table_name():
    assert vec_table_name("gemini_text_embedding_004") == "vec_chunks_gemini_text_embedding_004"


def test_ensure_vec_table_idempotent(tmp_db):
    slug = model_to_slug("gemini/text-embedding-004")
    assert ensure_vec_table(tmp_db, slug, 768) == ensure_vec_table(tmp_db, slug, 768)
    assert vec_table_exists(tmp_db, vec_table_name(slug))


@pytest.mark.parametrize("slug,dims", [("bad-slug", 3), ("x; DROP TABLE chunks", 3), ("ok", 0)])
def test_ensure_vec_table_rejects_bad_input(tmp_db, slug, dims):
    with pytest.raises(ValueError):
        ensure_vec_table(tmp_db, slug, dims)


def test_build_index_backfills_only_missing(tmp_db):
    _insert_embedded_chunk(tmp_db, 1, [1.0, 0.0, 0.0])
    _insert_embedded_chunk(tmp_db, 2, [0.0, 1.0, 0.0])
    _insert_embedded_chunk(tmp_db, 3, None)

    assert build_index(tmp_db, "m", 3) == 2
    assert build_index(tmp_db, "m", 3) == 0
    assert tmp_db.execute("SELECT COUNT(*) FROM vec_chunks_m").fetchone()[0] == 2


def test_drop_index(tmp_db):
    ensure_vec_table(tmp_db, "m", 3)
    assert drop_index(tmp_db, "m") is True
    assert drop_index(tmp_db, "m") is False
    assert not vec_table_exists(tmp_db, "vec_chunks_m")
