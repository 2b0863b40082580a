"""Domain models for the lore database layer."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum


class SourceKind(str, Enum):
    """Which producer a raw record came from."""

    CHAT = "chat"
    REPOSITORY = "repository"


class ChunkKind(str, Enum):
    MESSAGE = "message"
    CODE_FRAGMENT = "code_fragment"
    FUNCTION_BLOCK = "function_block"
    GENERIC_BLOCK = "generic_block"
    MARKDOWN_SECTION = "markdown_section"
    MARKDOWN_PARAGRAPH = "markdown_paragraph"
    PLAIN_TEXT_BLOCK = "plain_text_block"


@dataclass
class RawRecord:
    id: str
    source: SourceKind
    payload: str = field(default_factory=lambda: "{}")
    processed: bool = False
    processed_at: str | None = None
    deleted_at: str | None = None
    created_at: str | None = None

    @property
    def payload_data(self) -> object:
        return json.loads(self.payload)


@dataclass
class CleanedRecord:
    """Normalized derivative of exactly one raw record.

    ``metadata`` holds the source-kind-specific fields as JSON text:
    chat records carry author/channel/urls/code_fragments/has_media,
    repository files carry filename/file_kind/extension/is_code/language/sections.
    """

    id: str
    raw_id: str
    source: SourceKind
    body: str
    timestamp: str
    metadata: str = field(default_factory=lambda: "{}")
    created_at: str | None = None

    @property
    def metadata_dict(self) -> dict:
        return json.loads(self.metadata)


@dataclass
class Chunk:
    cleaned_id: str
    chunk_index: int
    body: str
    token_count: int
    source: SourceKind
    kind: ChunkKind
    context: str
    metadata: str = field(default_factory=lambda: "{}")
    created_at: str | None = None
    embedding: list[float] | None = None
    embedded_at: str | None = None
    id: int | None = None  # set after insert; None for unsaved chunks

    @property
    def metadata_dict(self) -> dict:
        return json.loads(self.metadata)


@dataclass
class Provenance:
    """Parent-record fields surfaced alongside a retrieved chunk."""

    author: str | None = None
    filename: str | None = None
    timestamp: str | None = None
