"""Embedding writer — turn chunk context strings into stored vectors.

What is embedded is each chunk's ``context`` (provenance prefix + blank line
+ body) using the document role. The chunk body itself is never changed.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable

from lore.config import EmbeddingCfg
from lore.db.repository import Repository
from lore.db.vectors import model_to_slug, vec_table_exists, vec_table_name
from lore.rag import llm_client
from lore.rag.llm_client import EmbeddingRole

log = logging.getLogger(__name__)

Embedder = Callable[[list[str]], list[list[float]]]


class EmbeddingWriter:
    """Attach vectors to chunks that have none.

    Chunks are sent to the provider in sub-batches of at most
    ``provider_batch_limit``, with ``batch_delay`` seconds between calls.
    Each chunk is written on its own as soon as its sub-batch returns, and
    only if it still has no vector.

    Args:
        repo:     Open Repository instance.
        config:   Embedding configuration (model, dimensions, batching).
        embedder: Override for the provider call (texts → vectors).
        sleep:    Override for the pacing delay.
    """

    def __init__(
        self,
        repo: Repository,
        config: EmbeddingCfg | None = None,
        embedder: Embedder | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._repo = repo
        self._config = config or EmbeddingCfg()
        self._embedder = embedder or self._embed_documents
        self._sleep = sleep

    def embed_batch(self, limit: int) -> int:
        """Embed up to *limit* unembedded chunks, oldest first.

        A provider failure propagates; sub-batches already written stay written.

        Returns:
            Number of chunks that received a vector.
        """
        chunks = self._repo.list_unembedded(limit)
        if not chunks:
            return 0

        index_table = self._index_table()
        step = self._config.provider_batch_limit
        written = 0
        for start in range(0, len(chunks), step):
            if start:
                self._sleep(self._config.batch_delay)
            batch = chunks[start:start + step]
            vectors = self._embedder([c.context for c in batch])
            if len(vectors) != len(batch):
                raise ValueError(
                    f"Embedding provider returned {len(vectors)} vectors for {len(batch)} chunks"
                )
            for chunk, vector in zip(batch, vectors):
                if len(vector) != self._config.dimensions:
                    raise ValueError(
                        f"Embedding for chunk {chunk.id} has {len(vector)} dimensions, "
                        f"expected {self._config.dimensions} ({self._config.model})"
                    )
                if self._repo.set_embedding(chunk.id, vector, index_table):
                    written += 1
            log.debug("Embedded sub-batch of %d chunk(s)", len(batch))
        return written

    def _embed_documents(self, texts: list[str]) -> list[list[float]]:
        return llm_client.embed_batch(self._config.model, texts, role=EmbeddingRole.DOCUMENT)

    def _index_table(self) -> str | None:
        table = vec_table_name(model_to_slug(self._config.model))
        return table if vec_table_exists(self._repo.conn, table) else None
