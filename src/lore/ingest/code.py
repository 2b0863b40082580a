"""Code chunker — declaration-boundary line scan with a size cap.

The declaration detector is a lexical heuristic, not a parser: a keyword
inside a string or comment can start a new chunk.
"""

from __future__ import annotations

import re

from lore.config import DEFAULT_DECLARATION_PATTERN
from lore.db.models import Chunk, ChunkKind, CleanedRecord
from lore.ingest.base import BaseChunker


class CodeChunker(BaseChunker):
    """Split source files at declaration lines.

    Strategy:
    - Scan line by line. A line matching the declaration pattern flushes the
      accumulated lines and starts a new accumulation at that line.
    - An accumulation that exceeds ``max_tokens`` while holding more than
      ``min_split_lines`` lines is flushed early.
    - Flushed blocks with a captured declaration name are ``function_block``,
      the rest ``generic_block``. Whitespace-only blocks are dropped.
    """

    def __init__(
        self,
        max_tokens: int = 800,
        min_split_lines: int = 10,
        declaration_pattern: str = DEFAULT_DECLARATION_PATTERN,
    ) -> None:
        super().__init__(max_tokens=max_tokens)
        self.min_split_lines = min_split_lines
        self._declaration_re = re.compile(declaration_pattern)

    def chunk(self, record: CleanedRecord) -> list[Chunk]:
        meta = record.metadata_dict
        filename = meta.get("filename") or "unknown"
        language = meta.get("language") or "unknown"

        chunks: list[Chunk] = []
        lines: list[str] = []
        name: str | None = None

        def _flush() -> None:
            body = "\n".join(lines)
            if not body.strip():
                return
            if name:
                kind = ChunkKind.FUNCTION_BLOCK
                prefix = f"Function '{name}' from {filename} ({language})"
            else:
                kind = ChunkKind.GENERIC_BLOCK
                prefix = f"Code section from {filename} ({language})"
            chunks.append(
                self._make_chunk(record, len(chunks), body, kind, prefix, function_name=name)
            )

        for line in record.body.split("\n"):
            declared = self._declaration_name(line)
            if declared is not None and lines:
                _flush()
                lines = [line]
                name = declared
            else:
                lines.append(line)
                if name is None:
                    name = declared

            if (
                self.count_tokens("\n".join(lines)) > self.max_tokens
                and len(lines) > self.min_split_lines
            ):
                _flush()
                lines = []
                name = None

        _flush()
        return chunks

    def _declaration_name(self, line: str) -> str | None:
        match = self._declaration_re.search(line)
        if match is None:
            return None
        if match.groups():
            return next((g for g in match.groups() if g), match.group(0).strip())
        return match.group(0).strip()
