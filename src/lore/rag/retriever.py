"""Similarity retriever: rank embedded chunks by cosine distance to a query.

The query is embedded with the query role (documents were embedded with the
document role). Distance comes from sqlite-vec, either through the vec0 ANN
index when ``lore index`` has built it, or by an exact
``vec_distance_cosine`` scan otherwise:

  similarity = 1 - distance / 2      distance ∈ [0, 2]
"""

from __future__ import annotations

import logging
import math
from collections.abc import Sequence
from dataclasses import dataclass, field

from lore.db.models import Chunk, Provenance, SourceKind
from lore.db.repository import Repository
from lore.db.vectors import model_to_slug, vec_table_exists, vec_table_name
from lore.rag import llm_client
from lore.rag.llm_client import EmbeddingRole

log = logging.getLogger(__name__)


@dataclass
class RetrieverConfig:
    """Configuration for the similarity retriever.

    Attributes:
        embedding_model: LiteLLM embedding model string (provider/model format).
            Must match the model the chunks were embedded with.
        top_k: Number of results returned when the caller does not ask.
        similarity_threshold: Results below this similarity are dropped.
    """

    embedding_model: str = "gemini/text-embedding-004"
    top_k: int = 5
    similarity_threshold: float = 0.0


@dataclass
class ScoredChunk:
    """A retrieved chunk with its distance, similarity and parent provenance."""

    chunk: Chunk
    distance: float
    similarity: float
    provenance: Provenance = field(default_factory=Provenance)


def retrieve(
    query: str,
    repo: Repository,
    config: RetrieverConfig,
    source: SourceKind | str | None = None,
    top_k: int | None = None,
) -> list[ScoredChunk]:
    """Embed *query* and return the nearest chunks, most similar first.

    Returns an empty list (without calling the provider) when nothing
    eligible has been embedded.
    """
    if repo.count_embedded(source) == 0:
        return []
    query_embedding = _embed(query, config.embedding_model)
    return rank(query_embedding, repo, config, source=source, top_k=top_k)


def rank(
    query_embedding: list[float],
    repo: Repository,
    config: RetrieverConfig,
    source: SourceKind | str | None = None,
    top_k: int | None = None,
) -> list[ScoredChunk]:
    """Rank eligible chunks against an already-embedded query."""
    k = top_k if top_k is not None else config.top_k
    if k < 1:
        raise ValueError(f"top_k must be >= 1, got {k}")

    table = vec_table_name(model_to_slug(config.embedding_model))
    if vec_table_exists(repo.conn, table):
        rows = repo.search_index(table, query_embedding, limit=k, source=source)
    else:
        rows = repo.search_exact(query_embedding, limit=k, source=source)

    results = [
        ScoredChunk(chunk=chunk, distance=distance, similarity=similarity(distance), provenance=prov)
        for chunk, prov, distance in rows
    ]
    kept = [r for r in results if r.similarity >= config.similarity_threshold]
    if len(kept) < len(results):
        log.debug("Dropped %d result(s) below similarity %.2f", len(results) - len(kept), config.similarity_threshold)
    return kept


def similarity(distance: float) -> float:
    """Map cosine distance (0..2) to similarity (1..0)."""
    return 1.0 - distance / 2.0


def cosine_distance(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosine distance ``1 - cos(a, b)``, matching sqlite-vec's ordering.

    Raises:
        ValueError: If the vectors differ in length or either is all zeros.
    """
    if len(a) != len(b):
        raise ValueError(f"Vector length mismatch: {len(a)} != {len(b)}")
    norm_a = math.sqrt(sum(x * x for x in a))
    norm_b = math.sqrt(sum(y * y for y in b))
    if norm_a == 0.0 or norm_b == 0.0:
        raise ValueError("Cosine distance is undefined for a zero vector")
    dot = sum(x * y for x, y in zip(a, b))
    return 1.0 - dot / (norm_a * norm_b)


def _embed(text: str, model: str) -> list[float]:
    """Embed *text* with the query role."""
    return llm_client.embed(model, text, role=EmbeddingRole.QUERY)
