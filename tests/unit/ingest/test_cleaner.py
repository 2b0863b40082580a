"""Tests for the Cleaner: chat and repository-file normalization."""

from __future__ import annotations

import pytest

from lore.config import CleaningCfg
from lore.db.models import SourceKind
from lore.ingest.cleaner import (
    Cleaner,
    clean_chat,
    clean_repository_file,
    file_extension,
    normalize_timestamp,
    split_markdown_sections,
    strip_comments,
)


# ------------------------------------------------------------------
# Chat
# ------------------------------------------------------------------


def test_chat_mention_url_and_code_replaced():
    result = clean_chat(
        {
            "content": "check <@123> this out: https://x.co ```print(1)```",
            "username": "alice",
            "userId": "42",
            "channelId": "general",
            "timestamp": "2024-05-01T12:00:00Z",
        }
    )
    assert result is not None
    assert result.body == "check @user this out: [URL] [CODE_BLOCK]"
    assert result.metadata["urls"] == ["https://x.co"]
    assert result.metadata["code_fragments"] == ["print(1)"]
    assert result.metadata["author"] == "alice"
    assert result.metadata["channel"] == "general"
    assert result.metadata["has_media"] is False


def test_chat_markup_replacements():
    result = clean_chat({"content": "hey <@!9> and <@&7> see <#55> <:wave:123> <a:party:456> ok"})
    assert result.body == "hey @user and @role see #channel ok"


def test_chat_code_fragment_drops_language_tag():
    result = clean_chat({"content": "try this:\n```python\nx = 1\nprint(x)\n```"})
    assert result.metadata["code_fragments"] == ["x = 1\nprint(x)"]
    assert result.body == "try this: [CODE_BLOCK]"


def test_chat_url_inside_code_block_not_extracted():
    result = clean_chat({"content": "see ```curl https://api.example.com``` please"})
    assert result.metadata["urls"] == []
    assert result.metadata["code_fragments"] == ["curl https://api.example.com"]


@pytest.mark.parametrize(
    "content",
    ["", "  ", "ok", "https://x.co", "```print(1)```"],
)
def test_chat_rejects_noise(content):
    assert clean_chat({"content": content}) is None


def test_chat_mention_only_is_kept_as_placeholder_text():
    # "@user" is 5 chars and not one of the lone placeholders
    assert clean_chat({"content": "<@123>"}).body == "@user"


def test_chat_min_length_configurable():
    assert clean_chat({"content": "hello"}, min_length=10) is None


def test_chat_defaults_unknown_author_and_channel():
    result = clean_chat({"content": "hello there"})
    assert result.metadata["author"] == "unknown"
    assert result.metadata["author_id"] == "unknown"
    assert result.metadata["channel"] == "unknown"


def test_chat_has_media():
    result = clean_chat({"content": "look https://cdn.example.com/cat.PNG"})
    assert result.metadata["has_media"] is True


def test_chat_rejects_non_object_payload():
    with pytest.raises(ValueError):
        clean_chat(["not", "a", "dict"])


@pytest.mark.parametrize(
    "value,expected",
    [
        ("2024-05-01T12:00:00Z", "2024-05-01T12:00:00+00:00"),
        ("2024-05-01T14:00:00+02:00", "2024-05-01T12:00:00+00:00"),
        ("2024-05-01T12:00:00", "2024-05-01T12:00:00+00:00"),
        (0, "1970-01-01T00:00:00+00:00"),
    ],
)
def test_normalize_timestamp(value, expected):
    assert normalize_timestamp(value) == expected


def test_normalize_timestamp_missing_is_now():
    assert normalize_timestamp(None).endswith("+00:00")


def test_normalize_timestamp_invalid():
    with pytest.raises(ValueError):
        normalize_timestamp("yesterday")


# ------------------------------------------------------------------
# Repository files
# ------------------------------------------------------------------


@pytest.mark.parametrize(
    "filename,expected",
    [("README.md", "md"), ("src/App.TSX", "tsx"), ("Makefile", ""), ("a.b/c", ""), ("x.tar.gz", "gz")],
)
def test_file_extension(filename, expected):
    assert file_extension(filename) == expected


def test_markdown_preamble_folds_into_first_section():
    content = "Intro text\n\n# Title\nBody one\n## Usage\nRun it\n"
    assert split_markdown_sections(content) == [
        {"header": "Title", "content": "Intro text\n\nBody one"},
        {"header": "Usage", "content": "Run it"},
    ]


def test_markdown_preamble_before_empty_first_section():
    assert split_markdown_sections("Intro\n## Empty\n## Next\nok") == [
        {"header": "Empty", "content": "Intro"},
        {"header": "Next", "content": "ok"},
    ]


def test_markdown_headings_inside_fences_ignored():
    content = "## Setup\n```bash\n# not a heading\nmake\n```\n## Done\nok"
    sections = split_markdown_sections(content)
    assert [s["header"] for s in sections] == ["Setup", "Done"]
    assert "# not a heading" in sections[0]["content"]


def test_markdown_without_headings_has_no_sections():
    assert split_markdown_sections("just a paragraph\n\nand another") == []


def test_markdown_file_cleaning():
    result = clean_repository_file(
        {"filename": "docs/guide.md", "content": "## One   \nfirst part\n## Two\nsecond part\n"}
    )
    meta = result.metadata
    assert meta["file_kind"] == "markdown"
    assert meta["is_code"] is False
    assert meta["language"] is None
    assert [s["header"] for s in meta["sections"]] == ["One", "Two"]
    assert "## One\n" in result.body


def test_code_file_comments_stripped():
    content = (
        "// header comment\n"
        "const url = 'https://example.com';\n"
        "/* block\n   comment */\n"
        "function add(a, b) {   \n"
        "  return a + b; // trailing\n"
        "}\n\n\n\n\n"
        "export default add;\n"
    )
    result = clean_repository_file({"filename": "src/add.js", "content": content})
    assert result.metadata["file_kind"] == "code"
    assert result.metadata["language"] == "javascript"
    assert "header comment" not in result.body
    assert "block" not in result.body
    assert "trailing" not in result.body
    assert "https://example.com" in result.body
    assert "\n\n\n" not in result.body
    assert "function add(a, b) {\n" in result.body


def test_python_hash_comments_stripped_but_floor_division_kept():
    content = "#!/usr/bin/env python\n# a comment\ndef half(n):\n    # inner\n    return n // 2\n"
    body = strip_comments(content, "py")
    assert "a comment" not in body
    assert "inner" not in body
    assert "n // 2" in body
    assert body.startswith("#!/usr/bin/env python")


def test_text_file_kind():
    result = clean_repository_file({"filename": "NOTES.txt", "content": "some plain notes here"})
    assert result.metadata["file_kind"] == "text"
    assert result.metadata["extension"] == "txt"
    assert "sections" not in result.metadata


def test_short_file_rejected():
    assert clean_repository_file({"filename": "a.py", "content": "# only a comment\nx=1"}) is None


def test_repository_payload_must_be_object():
    with pytest.raises(ValueError):
        clean_repository_file("raw text")


# ------------------------------------------------------------------
# Stage
# ------------------------------------------------------------------


def test_clean_batch_persists_and_marks_processed(repo):
    good = repo.append_raw(SourceKind.CHAT, {"content": "hello everyone", "username": "bob"})
    noise = repo.append_raw(SourceKind.CHAT, {"content": "ok"})
    broken = repo.append_raw(SourceKind.REPOSITORY, ["not", "an", "object"])

    assert Cleaner(repo).clean_batch(10) == 1

    assert repo.list_pending_raw(10) == []
    for raw_id in (good, noise, broken):
        assert repo.get_raw(raw_id).processed is True
    cleaned = repo.get_cleaned_by_raw(good)
    assert cleaned.body == "hello everyone"
    assert cleaned.metadata_dict["author"] == "bob"
    assert repo.get_cleaned_by_raw(noise) is None
    assert repo.stats()["rejected"] == 2


def test_clean_batch_respects_limit_and_is_idempotent(repo):
    for i in range(3):
        repo.append_raw(SourceKind.CHAT, {"content": f"message number {i}"})
    cleaner = Cleaner(repo, CleaningCfg())
    assert cleaner.clean_batch(2) == 2
    assert cleaner.clean_batch(2) == 1
    assert cleaner.clean_batch(2) == 0
    assert repo.stats()["cleaned"] == 3


def test_clean_batch_skips_soft_deleted(repo):
    raw_id = repo.append_raw(SourceKind.CHAT, {"content": "hello everyone"})
    repo.soft_delete_raw(raw_id)
    assert Cleaner(repo).clean_batch(10) == 0
    assert repo.get_raw(raw_id).processed is False
