"""Answerer — retrieve context for a question and hand it to the generator.

Context sent to the model is a list of numbered blocks:

  [Source 1] From chat (@alice on 2024-05-01)
  Relevance: 87.5%
  Content: ...
  ---
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from lore.config import LoreConfig
from lore.db.models import SourceKind
from lore.db.repository import Repository
from lore.ingest.base import date_part, preview
from lore.rag import llm_client
from lore.rag.retriever import RetrieverConfig, ScoredChunk, retrieve

log = logging.getLogger(__name__)

NO_INFORMATION_ANSWER = (
    "I don't have any relevant information in my knowledge base to answer this question. "
    "Please make sure data has been ingested and embedded."
)

_SOURCE_PREVIEW_CHARS = 200

_SYSTEM_PROMPT = """\
You are a helpful assistant with access to a knowledge base of chat conversations \
and repository files.
Answer the question using ONLY the provided context. If the context does not \
contain enough information, say "I don't have enough information in the context \
to answer that".
- Be accurate and cite specific information from the context.
- When referencing code, mention where it came from (chat message or repository file).
- Be concise but thorough, and use markdown formatting."""

_USER_PROMPT = """\
Context from knowledge base:
{context}

Question: {question}

Answer:"""


@dataclass
class AnswerResult:
    """Generated answer plus the sources it was grounded on."""

    answer: str
    sources: list[dict[str, Any]] = field(default_factory=list)


def retriever_config(config: LoreConfig) -> RetrieverConfig:
    return RetrieverConfig(
        embedding_model=config.embedding.model,
        top_k=config.retrieval.top_k,
        similarity_threshold=config.retrieval.similarity_threshold,
    )


def format_context(results: list[ScoredChunk]) -> str:
    """Render retrieved chunks as numbered, provenance-annotated context blocks."""
    blocks: list[str] = []
    for i, result in enumerate(results, start=1):
        prov = result.provenance
        if result.chunk.source == SourceKind.CHAT:
            date = date_part(prov.timestamp) if prov.timestamp else "unknown date"
            origin = f"From chat (@{prov.author or 'unknown'} on {date})"
        else:
            origin = f"From repository ({prov.filename or 'unknown'})"
        blocks.append(
            f"[Source {i}] {origin}\n"
            f"Relevance: {result.similarity * 100:.1f}%\n"
            f"Content: {result.chunk.body}\n"
            "---"
        )
    return "\n\n".join(blocks)


def format_sources(results: list[ScoredChunk]) -> list[dict[str, Any]]:
    sources = []
    for result in results:
        body = result.chunk.body
        sources.append(
            {
                "content": body[:_SOURCE_PREVIEW_CHARS] + ("..." if len(body) > _SOURCE_PREVIEW_CHARS else ""),
                "similarity": result.similarity,
                "kind": result.chunk.kind.value,
                "source_kind": result.chunk.source.value,
            }
        )
    return sources


def generate(question: str, context: str, config: LoreConfig) -> str:
    """Ask the generation model to answer *question* from *context*."""
    return llm_client.complete(
        config.generation.model,
        [
            {"role": "system", "content": _SYSTEM_PROMPT},
            {"role": "user", "content": _USER_PROMPT.format(context=context, question=question)},
        ],
        max_tokens=config.generation.max_tokens,
        temperature=config.generation.temperature,
    )


def answer(
    question: str,
    repo: Repository,
    config: LoreConfig,
    source: SourceKind | str | None = None,
    top_k: int | None = None,
) -> AnswerResult:
    """Answer *question* from the knowledge base.

    With no eligible chunks the canned no-information answer is returned and
    the generator is never called.
    """
    results = retrieve(question, repo, retriever_config(config), source=source, top_k=top_k)
    return _answer_from(question, results, config)


def answer_events(
    question: str,
    repo: Repository,
    config: LoreConfig,
    source: SourceKind | str | None = None,
    top_k: int | None = None,
) -> Iterator[dict[str, Any]]:
    """Yield progress events, then one ``result`` event (or one ``error`` event)."""
    try:
        yield _progress("Searching knowledge base...", 33)
        results = retrieve(question, repo, retriever_config(config), source=source, top_k=top_k)
        yield _progress("Retrieving relevant context...", 66)
        if results:
            yield _progress("Generating answer...", 100)
        result = _answer_from(question, results, config)
    except Exception as exc:
        log.exception("Query failed: %s", preview(question))
        yield {"type": "error", "error": str(exc) or type(exc).__name__}
        return
    yield {
        "type": "result",
        "answer": result.answer,
        "sources": result.sources,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


def _answer_from(question: str, results: list[ScoredChunk], config: LoreConfig) -> AnswerResult:
    if not results:
        log.info("No eligible chunks for query: %s", preview(question))
        return AnswerResult(answer=NO_INFORMATION_ANSWER, sources=[])
    text = generate(question, format_context(results), config)
    return AnswerResult(answer=text, sources=format_sources(results))


def _progress(step: str, progress: int) -> dict[str, Any]:
    return {"type": "progress", "step": step, "progress": progress}
