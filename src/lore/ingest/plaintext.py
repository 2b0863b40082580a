"""Plain text chunker — blank-line paragraphs accumulated up to a token cap."""

from __future__ import annotations

import re

from lore.db.models import Chunk, ChunkKind, CleanedRecord
from lore.ingest.base import BaseChunker

_PARAGRAPH_SPLIT_RE = re.compile(r"\n\s*\n")


def split_paragraph_blocks(text: str, max_tokens: int) -> list[str]:
    """Group blank-line separated paragraphs into blocks.

    Paragraphs are appended to the current block until its estimate exceeds
    *max_tokens*, at which point the block (including that paragraph) is
    emitted and a new one started. Blank input yields no blocks.
    """
    blocks: list[str] = []
    current: list[str] = []
    for para in _PARAGRAPH_SPLIT_RE.split(text):
        if not para.strip():
            continue
        current.append(para.strip("\n"))
        if BaseChunker.count_tokens("\n\n".join(current)) > max_tokens:
            blocks.append("\n\n".join(current))
            current = []
    if current:
        blocks.append("\n\n".join(current))
    return blocks


class PlainTextChunker(BaseChunker):
    """Split plain text files into ``plain_text_block`` chunks."""

    def chunk(self, record: CleanedRecord) -> list[Chunk]:
        filename = record.metadata_dict.get("filename") or "unknown"
        return [
            self._make_chunk(record, i, block, ChunkKind.PLAIN_TEXT_BLOCK, f"Text from {filename}")
            for i, block in enumerate(split_paragraph_blocks(record.body, self.max_tokens))
        ]
