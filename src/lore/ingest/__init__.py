"""lore ingest pipeline — cleaner, chunkers, embedding writer."""

from lore.ingest.base import BaseChunker
from lore.ingest.chat import ChatChunker
from lore.ingest.chunker import Chunker
from lore.ingest.cleaner import Cleaner
from lore.ingest.code import CodeChunker
from lore.ingest.embedding_writer import EmbeddingWriter
from lore.ingest.markdown import MarkdownChunker
from lore.ingest.plaintext import PlainTextChunker

__all__ = [
    "BaseChunker",
    "ChatChunker",
    "Chunker",
    "Cleaner",
    "CodeChunker",
    "EmbeddingWriter",
    "MarkdownChunker",
    "PlainTextChunker",
]
