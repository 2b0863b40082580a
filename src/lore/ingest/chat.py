"""Chat chunker — one message chunk plus one chunk per code fragment."""

from __future__ import annotations

from lore.db.models import Chunk, ChunkKind, CleanedRecord
from lore.ingest.base import BaseChunker, date_part


class ChatChunker(BaseChunker):
    """Chat messages are short; the whole body is a single ``message`` chunk.

    Code fragments extracted by the cleaner follow as ``code_fragment``
    chunks (indices 1..n), blank fragments skipped.
    """

    def chunk(self, record: CleanedRecord) -> list[Chunk]:
        meta = record.metadata_dict
        author = meta.get("author") or "unknown"
        channel = meta.get("channel") or "unknown"
        date = date_part(record.timestamp)

        chunks = [
            self._make_chunk(
                record,
                0,
                record.body,
                ChunkKind.MESSAGE,
                f"Chat message from @{author} on {date} in channel {channel}",
                participants=[author],
                message_count=1,
            )
        ]
        for fragment in meta.get("code_fragments") or []:
            if not fragment.strip():
                continue
            chunks.append(
                self._make_chunk(
                    record,
                    len(chunks),
                    fragment,
                    ChunkKind.CODE_FRAGMENT,
                    f"Code fragment from @{author}'s message on {date}",
                    participants=[author],
                )
            )
        return chunks
