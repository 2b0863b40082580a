"""Base chunker interface for every cleaned-record kind."""

from __future__ import annotations

import json
import math
from abc import ABC, abstractmethod
from typing import Any

from lore.db.models import Chunk, ChunkKind, CleanedRecord


class BaseChunker(ABC):
    """Abstract base for all chunkers.

    Subclasses implement ``chunk()`` and build each unit with ``_make_chunk()``,
    which attaches the provenance-prefixed context string used as the
    embedding input.

    Token counting uses a 4-chars-per-token approximation; no external
    tokenizer dependency is required.
    """

    def __init__(self, max_tokens: int = 800) -> None:
        if max_tokens < 1:
            raise ValueError("max_tokens must be >= 1")
        self.max_tokens = max_tokens

    @abstractmethod
    def chunk(self, record: CleanedRecord) -> list[Chunk]:
        """Split *record* into Chunk objects.

        Returns:
            Ordered list of unsaved Chunks with ``chunk_index`` 0..n-1.
        """

    @staticmethod
    def count_tokens(text: str) -> int:
        """Approximate token count: characters / 4, rounded up."""
        return math.ceil(len(text) / 4)

    def _make_chunk(
        self,
        record: CleanedRecord,
        index: int,
        body: str,
        kind: ChunkKind,
        prefix: str,
        **metadata: Any,
    ) -> Chunk:
        return Chunk(
            cleaned_id=record.id,
            chunk_index=index,
            body=body,
            token_count=self.count_tokens(body),
            source=record.source,
            kind=kind,
            context=f"{prefix}\n\n{body}",
            metadata=json.dumps({k: v for k, v in metadata.items() if v is not None}),
        )


def date_part(timestamp: str) -> str:
    """``2024-05-01T12:00:00+00:00`` → ``2024-05-01``."""
    return timestamp.split("T", 1)[0]


def preview(text: str, width: int = 50) -> str:
    """Single-line truncated form of *text* for log output."""
    flat = " ".join(text.split())
    return flat if len(flat) <= width else flat[:width] + "..."
