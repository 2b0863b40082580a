"""Chunker stage — pick a chunker per cleaned record and persist its chunks."""

from __future__ import annotations

import logging

from lore.config import ChunkingCfg
from lore.db.models import Chunk, CleanedRecord, SourceKind
from lore.db.repository import Repository
from lore.ingest.base import BaseChunker, preview
from lore.ingest.chat import ChatChunker
from lore.ingest.code import CodeChunker
from lore.ingest.markdown import MarkdownChunker
from lore.ingest.plaintext import PlainTextChunker

log = logging.getLogger(__name__)


class Chunker:
    """Advance cleaned records that have no chunks yet.

    Args:
        repo:   Open Repository instance.
        config: Chunk sizing and the code declaration pattern.
    """

    def __init__(self, repo: Repository, config: ChunkingCfg | None = None) -> None:
        self._repo = repo
        cfg = config or ChunkingCfg()
        self._chat = ChatChunker(max_tokens=cfg.max_tokens)
        self._code = CodeChunker(
            max_tokens=cfg.max_tokens,
            min_split_lines=cfg.min_split_lines,
            declaration_pattern=cfg.declaration_pattern,
        )
        self._markdown = MarkdownChunker(max_tokens=cfg.max_tokens)
        self._plaintext = PlainTextChunker(max_tokens=cfg.max_tokens)

    def chunker_for(self, record: CleanedRecord) -> BaseChunker:
        if record.source == SourceKind.CHAT:
            return self._chat
        file_kind = record.metadata_dict.get("file_kind")
        if file_kind == "code":
            return self._code
        if file_kind == "markdown":
            return self._markdown
        return self._plaintext

    def chunk_record(self, record: CleanedRecord) -> list[Chunk]:
        """Split *record* without persisting anything."""
        return self.chunker_for(record).chunk(record)

    def chunk_batch(self, limit: int) -> int:
        """Chunk up to *limit* unchunked cleaned records, oldest first.

        All chunks of one record are written in a single transaction.
        Returns the number of records that now have at least one chunk.
        """
        advanced = 0
        for record in self._repo.list_unchunked(limit):
            chunks = self.chunk_record(record)
            if not chunks:
                log.warning(
                    "No chunks produced for cleaned record %s; it will be retried on every batch",
                    record.id,
                )
                continue
            self._repo.add_chunks(chunks)
            advanced += 1
            log.debug(
                "Chunked %s into %d chunk(s): %s", record.id, len(chunks), preview(chunks[0].body)
            )
        return advanced
