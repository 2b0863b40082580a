"""Markdown chunker — one chunk per heading section, paragraph fallback."""

from __future__ import annotations

from lore.db.models import Chunk, ChunkKind, CleanedRecord
from lore.ingest.base import BaseChunker
from lore.ingest.plaintext import split_paragraph_blocks


class MarkdownChunker(BaseChunker):
    """Split markdown on the sections the cleaner extracted.

    Strategy:
    - Each ``{header, content}`` section becomes one ``markdown_section``
      chunk with body ``# {header}\\n\\n{content}`` and ``header_path`` set to
      the heading text. Text before the first heading is already folded
      into the first section by the cleaner.
    - Documents without headings fall back to paragraph accumulation
      (``markdown_paragraph``), same as PlainTextChunker.
    """

    def chunk(self, record: CleanedRecord) -> list[Chunk]:
        meta = record.metadata_dict
        filename = meta.get("filename") or "unknown"
        sections = meta.get("sections") or []

        if not sections:
            return [
                self._make_chunk(record, i, block, ChunkKind.MARKDOWN_PARAGRAPH, f"Text from {filename}")
                for i, block in enumerate(split_paragraph_blocks(record.body, self.max_tokens))
            ]

        chunks: list[Chunk] = []
        for section in sections:
            header = section.get("header") or ""
            if not header:
                continue
            content = section.get("content") or ""
            body = f"# {header}\n\n{content}".rstrip()
            chunks.append(
                self._make_chunk(
                    record,
                    len(chunks),
                    body,
                    ChunkKind.MARKDOWN_SECTION,
                    f'Markdown section "{header}" from {filename}',
                    header_path=header,
                )
            )
        return chunks
