"""Tests for EmbeddingWriter."""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import pytest

from lore.config import EmbeddingCfg
from lore.db.models import SourceKind
from lore.db.vectors import ensure_vec_table, model_to_slug
from lore.ingest.chunker import Chunker
from lore.ingest.cleaner import Cleaner
from lore.ingest.embedding_writer import EmbeddingWriter
from lore.rag.llm_client import EmbeddingRole

_MODEL = "gemini/text-embedding-004"


@pytest.fixture
def cfg():
    return EmbeddingCfg(model=_MODEL, dimensions=3, provider_batch_limit=2, batch_delay=0.5)


def _seed(repo, n: int) -> None:
    for i in range(n):
        repo.append_raw(SourceKind.CHAT, {"content": f"message number {i}", "username": "eve"})
    Cleaner(repo).clean_batch(n)
    Chunker(repo).chunk_batch(n)


def _fake_embedder(calls: list):
    def embed(texts):
        calls.append(list(texts))
        return [[1.0, float(len(calls)), 0.0] for _ in texts]

    return embed


def test_no_chunks_no_calls(repo, cfg):
    embedder = MagicMock()
    assert EmbeddingWriter(repo, cfg, embedder=embedder).embed_batch(10) == 0
    embedder.assert_not_called()


def test_sub_batches_and_pacing(repo, cfg):
    _seed(repo, 5)
    calls: list = []
    sleep = MagicMock()

    written = EmbeddingWriter(repo, cfg, embedder=_fake_embedder(calls), sleep=sleep).embed_batch(10)

    assert written == 5
    assert [len(c) for c in calls] == [2, 2, 1]
    assert sleep.call_count == 2
    sleep.assert_called_with(0.5)
    assert repo.stats()["embedded"] == 5


def test_embeds_context_not_body(repo, cfg):
    _seed(repo, 1)
    calls: list = []
    EmbeddingWriter(repo, cfg, embedder=_fake_embedder(calls), sleep=lambda _: None).embed_batch(10)
    text = calls[0][0]
    assert text.startswith("Chat message from @eve on ")
    assert text.endswith("\n\nmessage number 0")


def test_limit_respected(repo, cfg):
    _seed(repo, 3)
    writer = EmbeddingWriter(repo, cfg, embedder=_fake_embedder([]), sleep=lambda _: None)
    assert writer.embed_batch(2) == 2
    assert writer.embed_batch(2) == 1
    assert writer.embed_batch(2) == 0


def test_dimension_mismatch_raises(repo, cfg):
    _seed(repo, 1)
    writer = EmbeddingWriter(repo, cfg, embedder=lambda texts: [[0.1, 0.2] for _ in texts])
    with pytest.raises(ValueError, match="dimensions"):
        writer.embed_batch(10)
    assert repo.stats()["embedded"] == 0


def test_vector_count_mismatch_raises(repo, cfg):
    _seed(repo, 2)
    writer = EmbeddingWriter(repo, cfg, embedder=lambda texts: [[0.1, 0.2, 0.3]])
    with pytest.raises(ValueError, match="returned 1 vectors for 2 chunks"):
        writer.embed_batch(10)


def test_provider_failure_keeps_earlier_sub_batches(repo, cfg):
    _seed(repo, 3)
    calls = {"n": 0}

    def flaky(texts):
        calls["n"] += 1
        if calls["n"] == 2:
            raise RuntimeError("provider down")
        return [[0.1, 0.2, 0.3] for _ in texts]

    writer = EmbeddingWriter(repo, cfg, embedder=flaky, sleep=lambda _: None)
    with pytest.raises(RuntimeError):
        writer.embed_batch(10)
    assert repo.stats()["embedded"] == 2


def test_existing_vectors_never_overwritten(repo, cfg):
    _seed(repo, 1)
    chunk = repo.list_unembedded(1)[0]
    assert repo.set_embedding(chunk.id, [9.0, 9.0, 9.0])
    assert EmbeddingWriter(repo, cfg, embedder=_fake_embedder([])).embed_batch(10) == 0
    assert repo.get_chunk(chunk.id).embedding == [9.0, 9.0, 9.0]


def test_index_mirrored_when_present(repo, cfg, tmp_db):
    table = ensure_vec_table(tmp_db, model_to_slug(_MODEL), dimensions=3)
    _seed(repo, 2)
    EmbeddingWriter(repo, cfg, embedder=_fake_embedder([]), sleep=lambda _: None).embed_batch(10)
    count = tmp_db.execute(f"SELECT COUNT(*) FROM {table}").fetchone()[0]
    assert count == 2


def test_default_embedder_uses_document_role(repo, cfg):
    _seed(repo, 1)
    with patch(
        "lore.ingest.embedding_writer.llm_client.embed_batch",
        return_value=[[0.1, 0.2, 0.3]],
    ) as mock_embed:
        assert EmbeddingWriter(repo, cfg).embed_batch(10) == 1
    args, kwargs = mock_embed.call_args
    assert args[0] == _MODEL
    assert kwargs["role"] == EmbeddingRole.DOCUMENT
