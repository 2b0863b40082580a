"""Tests for ChatChunker."""

from __future__ import annotations

import json

from lore.db.models import ChunkKind, CleanedRecord, SourceKind
from lore.ingest.chat import ChatChunker


def _record(body: str = "check @user this out: [URL] [CODE_BLOCK]", **meta) -> CleanedRecord:
    metadata = {"author": "alice", "channel": "general", "urls": [], "code_fragments": []}
    metadata.update(meta)
    return CleanedRecord(
        id="cleaned-chat",
        raw_id="raw-chat",
        source=SourceKind.CHAT,
        body=body,
        timestamp="2024-05-01T12:00:00+00:00",
        metadata=json.dumps(metadata),
    )


def test_message_only():
    chunks = ChatChunker().chunk(_record("hello everyone"))
    assert len(chunks) == 1
    chunk = chunks[0]
    assert chunk.kind == ChunkKind.MESSAGE
    assert chunk.chunk_index == 0
    assert chunk.body == "hello everyone"
    assert chunk.context == "Chat message from @alice on 2024-05-01 in channel general\n\nhello everyone"
    assert chunk.metadata_dict == {"participants": ["alice"], "message_count": 1}


def test_code_fragments_follow_message():
    chunks = ChatChunker().chunk(_record(code_fragments=["print(1)", "x = 2"]))
    assert [c.kind for c in chunks] == [
        ChunkKind.MESSAGE,
        ChunkKind.CODE_FRAGMENT,
        ChunkKind.CODE_FRAGMENT,
    ]
    assert [c.chunk_index for c in chunks] == [0, 1, 2]
    assert chunks[1].body == "print(1)"
    assert chunks[1].context == "Code fragment from @alice's message on 2024-05-01\n\nprint(1)"


def test_blank_fragments_skipped():
    chunks = ChatChunker().chunk(_record(code_fragments=["  ", "ok()"]))
    assert [c.chunk_index for c in chunks] == [0, 1]
    assert chunks[1].body == "ok()"


def test_missing_author_and_channel_default_to_unknown():
    record = CleanedRecord(
        id="c",
        raw_id="r",
        source=SourceKind.CHAT,
        body="hello",
        timestamp="2024-01-02T00:00:00+00:00",
        metadata="{}",
    )
    chunk = ChatChunker().chunk(record)[0]
    assert chunk.context.startswith("Chat message from @unknown on 2024-01-02 in channel unknown")
