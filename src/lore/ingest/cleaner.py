"""Cleaner — normalize one raw record into a cleaned record, or reject it.

Chat messages lose platform markup (mentions, custom emoji), with URLs and
fenced code pulled out into metadata. Repository files get trailing
whitespace trimmed, comments stripped when they are code, and heading
sections extracted when they are markdown.
"""

from __future__ import annotations

import json
import logging
import re
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from lore.config import CleaningCfg
from lore.db.models import CleanedRecord, RawRecord, SourceKind
from lore.db.repository import Repository

log = logging.getLogger(__name__)

CODE_PLACEHOLDER = "[CODE_BLOCK]"
URL_PLACEHOLDER = "[URL]"

_CODE_FENCE_RE = re.compile(r"```[\s\S]*?```")
_LANGUAGE_TAG_RE = re.compile(r"[\w+#.-]*")
_URL_RE = re.compile(r"https?://\S+")
_USER_MENTION_RE = re.compile(r"<@!?\d+>")
_ROLE_MENTION_RE = re.compile(r"<@&\d+>")
_CHANNEL_MENTION_RE = re.compile(r"<#\d+>")
_CUSTOM_EMOJI_RE = re.compile(r"<a?:\w+:\d+>")
_WHITESPACE_RE = re.compile(r"\s+")
_MEDIA_RE = re.compile(r"\.(jpg|jpeg|png|gif|webp|mp4|webm|mov)(?:$|[?#])", re.IGNORECASE)

_HEADING_RE = re.compile(r"^(#{1,6})\s+(.+)$")
_FENCE_LINE_RE = re.compile(r"^\s*(```|~~~)")
_LINE_COMMENT_RE = re.compile(r"(?<![:\"'])//.*$", re.MULTILINE)
_BLOCK_COMMENT_RE = re.compile(r"/\*[\s\S]*?\*/")
_HASH_COMMENT_LINE_RE = re.compile(r"^[ \t]*#(?!!).*$", re.MULTILINE)
_TRAILING_WS_RE = re.compile(r"[ \t]+$", re.MULTILINE)
_BLANK_RUN_RE = re.compile(r"\n{3,}")

MARKDOWN_EXTENSIONS = frozenset(["md", "markdown"])

# extension → language name
CODE_LANGUAGES: dict[str, str] = {
    "ts": "typescript",
    "tsx": "typescript",
    "js": "javascript",
    "jsx": "javascript",
    "mjs": "javascript",
    "py": "python",
    "java": "java",
    "kt": "kotlin",
    "scala": "scala",
    "c": "c",
    "h": "c",
    "cpp": "cpp",
    "cc": "cpp",
    "hpp": "cpp",
    "cs": "csharp",
    "go": "go",
    "rs": "rust",
    "swift": "swift",
    "php": "php",
    "rb": "ruby",
    "sh": "shell",
}

_HASH_COMMENT_EXTENSIONS = frozenset(["py", "rb", "sh"])


@dataclass
class CleanResult:
    """Body, timestamp and metadata of an accepted record."""

    body: str
    timestamp: str
    metadata: dict[str, Any] = field(default_factory=dict)


# ---------------------------------------------------------------------------
# Chat messages
# ---------------------------------------------------------------------------


def normalize_timestamp(value: Any) -> str:
    """Return *value* as an ISO-8601 UTC string.

    Accepts ISO-8601 strings (naive ones are taken as UTC), epoch seconds,
    or None (current time).

    Raises:
        ValueError: If *value* is neither.
    """
    if value is None or value == "":
        dt = datetime.now(timezone.utc)
    elif isinstance(value, bool):
        raise ValueError(f"Invalid timestamp: {value!r}")
    elif isinstance(value, (int, float)):
        dt = datetime.fromtimestamp(value, tz=timezone.utc)
    elif isinstance(value, str):
        dt = datetime.fromisoformat(value.strip())
        if dt.tzinfo is None:
            dt = dt.replace(tzinfo=timezone.utc)
    else:
        raise ValueError(f"Invalid timestamp: {value!r}")
    return dt.astimezone(timezone.utc).isoformat()


def _strip_fence(block: str) -> str:
    """Fenced block → bare code, dropping a language tag on the opening line."""
    inner = block[3:-3]
    first, newline, rest = inner.partition("\n")
    if newline and _LANGUAGE_TAG_RE.fullmatch(first.strip()):
        inner = rest
    return inner.strip()


def clean_chat(payload: Any, min_length: int = 3) -> CleanResult | None:
    """Clean one chat message payload.

    Returns None when the message is noise: shorter than *min_length* after
    cleaning, or nothing but a single placeholder.

    Raises:
        ValueError: If the payload is not a mapping or ``content`` is not text.
    """
    if not isinstance(payload, dict):
        raise ValueError(f"chat payload must be an object, got {type(payload).__name__}")
    content = payload.get("content") or ""
    if not isinstance(content, str):
        raise ValueError("chat payload 'content' must be a string")

    code_fragments: list[str] = []

    def _take_code(match: re.Match[str]) -> str:
        code_fragments.append(_strip_fence(match.group(0)))
        return CODE_PLACEHOLDER

    text = _CODE_FENCE_RE.sub(_take_code, content)
    urls = _URL_RE.findall(text)
    text = _URL_RE.sub(URL_PLACEHOLDER, text)
    text = _USER_MENTION_RE.sub("@user", text)
    text = _ROLE_MENTION_RE.sub("@role", text)
    text = _CHANNEL_MENTION_RE.sub("#channel", text)
    text = _CUSTOM_EMOJI_RE.sub("", text)
    text = _WHITESPACE_RE.sub(" ", text).strip()

    if len(text) < min_length or text in (CODE_PLACEHOLDER, URL_PLACEHOLDER):
        return None

    return CleanResult(
        body=text,
        timestamp=normalize_timestamp(payload.get("timestamp")),
        metadata={
            "author": payload.get("username") or "unknown",
            "author_id": str(payload.get("userId") or "unknown"),
            "channel": str(payload.get("channelId") or "unknown"),
            "urls": urls,
            "code_fragments": code_fragments,
            "has_media": any(_MEDIA_RE.search(url) for url in urls),
        },
    )


# ---------------------------------------------------------------------------
# Repository files
# ---------------------------------------------------------------------------


def file_extension(filename: str) -> str:
    """Text after the last dot, lower-cased; empty when there is none."""
    base = filename.rsplit("/", 1)[-1]
    return base.rsplit(".", 1)[-1].lower() if "." in base else ""


def split_markdown_sections(content: str) -> list[dict[str, str]]:
    """Split markdown into ordered ``{header, content}`` sections.

    Headings inside fenced code blocks are ignored. Text before the first
    heading is prepended to the first section's content. Returns an empty
    list when the document has no headings.
    """
    sections: list[dict[str, str]] = []
    header: str | None = None
    preamble = ""
    lines: list[str] = []
    in_fence = False

    def _flush() -> None:
        nonlocal preamble
        body = "\n".join(lines).strip()
        if header is None:
            preamble = body
        else:
            sections.append({"header": header, "content": body})

    for line in content.split("\n"):
        if _FENCE_LINE_RE.match(line):
            in_fence = not in_fence
        match = None if in_fence else _HEADING_RE.match(line)
        if match:
            _flush()
            header = match.group(2).strip()
            lines = []
        else:
            lines.append(line)
    _flush()

    if sections and preamble:
        first = sections[0]
        first["content"] = f"{preamble}\n\n{first['content']}".rstrip()
    return sections


def strip_comments(content: str, extension: str) -> str:
    """Remove comments from source code of the given extension."""
    if extension in _HASH_COMMENT_EXTENSIONS:
        return _HASH_COMMENT_LINE_RE.sub("", content)
    content = _BLOCK_COMMENT_RE.sub("", content)
    return _LINE_COMMENT_RE.sub("", content)


def clean_repository_file(payload: Any, min_length: int = 10) -> CleanResult | None:
    """Clean one repository file payload (``content`` + ``filename``).

    Returns None when the remaining content is shorter than *min_length*.

    Raises:
        ValueError: If the payload is not a mapping or ``content`` is not text.
    """
    if not isinstance(payload, dict):
        raise ValueError(f"repository payload must be an object, got {type(payload).__name__}")
    content = payload.get("content") or ""
    if not isinstance(content, str):
        raise ValueError("repository payload 'content' must be a string")
    filename = str(payload.get("filename") or "unknown")

    extension = file_extension(filename)
    language = CODE_LANGUAGES.get(extension)
    is_code = language is not None
    if extension in MARKDOWN_EXTENSIONS:
        file_kind = "markdown"
    elif is_code:
        file_kind = "code"
    else:
        file_kind = "text"

    if is_code:
        content = strip_comments(content, extension)
    content = _TRAILING_WS_RE.sub("", content)
    if is_code:
        content = _BLANK_RUN_RE.sub("\n\n", content)
    content = content.strip()

    if len(content) < min_length:
        return None

    metadata: dict[str, Any] = {
        "filename": filename,
        "file_kind": file_kind,
        "extension": extension,
        "is_code": is_code,
        "language": language,
    }
    if file_kind == "markdown":
        metadata["sections"] = split_markdown_sections(content)

    return CleanResult(
        body=content,
        timestamp=datetime.now(timezone.utc).isoformat(),
        metadata=metadata,
    )


# ---------------------------------------------------------------------------
# Stage
# ---------------------------------------------------------------------------


class Cleaner:
    """Advance pending raw records to cleaned records.

    Args:
        repo:   Open Repository instance.
        config: Rejection thresholds.
    """

    def __init__(self, repo: Repository, config: CleaningCfg | None = None) -> None:
        self._repo = repo
        self._config = config or CleaningCfg()

    def clean_batch(self, limit: int) -> int:
        """Clean up to *limit* pending raw records, oldest first.

        Every selected record is marked processed. Returns the number that
        produced a cleaned record.
        """
        cleaned = 0
        for raw in self._repo.list_pending_raw(limit):
            result = self.clean_one(raw)
            record = None
            if result is not None:
                record = CleanedRecord(
                    id=str(uuid.uuid4()),
                    raw_id=raw.id,
                    source=raw.source,
                    body=result.body,
                    timestamp=result.timestamp,
                    metadata=json.dumps(result.metadata),
                )
            self._repo.record_cleaning(raw.id, record)
            if record is not None:
                cleaned += 1
                log.debug("Cleaned %s record %s: %s", raw.source.value, raw.id, _preview(record.body))
            else:
                log.info("Skipped %s record %s (empty or invalid content)", raw.source.value, raw.id)
        return cleaned

    def clean_one(self, raw: RawRecord) -> CleanResult | None:
        """Clean a single raw record; malformed payloads are logged and rejected."""
        try:
            payload = raw.payload_data
            if raw.source == SourceKind.CHAT:
                return clean_chat(payload, self._config.min_chat_length)
            return clean_repository_file(payload, self._config.min_file_length)
        except (ValueError, TypeError, OverflowError, OSError) as exc:
            log.warning("Malformed %s payload in raw record %s: %s", raw.source.value, raw.id, exc)
            return None


def _preview(text: str, width: int = 50) -> str:
    return text if len(text) <= width else text[:width] + "..."
