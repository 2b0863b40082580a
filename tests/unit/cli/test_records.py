"""Tests for lore add / lore remove."""

from __future__ import annotations

import json
from pathlib import Path

import pytest
from typer.testing import CliRunner

from lore.cli.main import app
from lore.cli.records import parse_records
from lore.db.connection import Database
from lore.db.models import SourceKind
from lore.db.repository import Repository
from lore.db.schema import initialize

runner = CliRunner()


@pytest.fixture(autouse=True)
def _in_tmp(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.chdir(tmp_path)


def _pending(db_path: Path) -> list:
    conn = Database(db_path).connect()
    try:
        return Repository(conn).list_pending_raw(100)
    finally:
        conn.close()


# ---------------------------------------------------------------------------
# parse_records
# ---------------------------------------------------------------------------


def test_parse_wrapped_array() -> None:
    text = json.dumps(
        [
            {"source": "chat", "payload": {"content": "hi there"}},
            {"source": "repository", "payload": {"filename": "a.md", "content": "# A"}},
        ]
    )
    assert parse_records(text) == [
        (SourceKind.CHAT, {"content": "hi there"}),
        (SourceKind.REPOSITORY, {"filename": "a.md", "content": "# A"}),
    ]


def test_parse_single_object() -> None:
    text = json.dumps({"source": "chat", "payload": {"content": "hi"}})
    assert parse_records(text) == [(SourceKind.CHAT, {"content": "hi"})]


def test_parse_jsonl_bare_payloads_with_source() -> None:
    text = '{"content": "one"}\n\n{"content": "two"}\n'
    assert parse_records(text, SourceKind.CHAT, jsonl=True) == [
        (SourceKind.CHAT, {"content": "one"}),
        (SourceKind.CHAT, {"content": "two"}),
    ]


@pytest.mark.parametrize(
    "text,match",
    [
        ("not json", "Expecting value"),
        ("[1, 2]", "item 1 is not an object"),
        ('[{"payload": {}}]', "needs 'source'"),
        ('[{"source": "chat", "payload": "text"}]', "needs 'source'"),
        ('[{"source": "email", "payload": {}}]', "unknown source 'email'"),
    ],
)
def test_parse_invalid(text: str, match: str) -> None:
    with pytest.raises(ValueError, match=match):
        parse_records(text)


# ---------------------------------------------------------------------------
# lore add
# ---------------------------------------------------------------------------


def test_add_appends_raw_records(tmp_path: Path) -> None:
    records = tmp_path / "records.json"
    records.write_text(
        json.dumps(
            [
                {"source": "chat", "payload": {"content": "hello", "username": "amy"}},
                {"source": "repository", "payload": {"filename": "a.py", "content": "x = 1"}},
            ]
        ),
        encoding="utf-8",
    )
    db_path = tmp_path / "kb.db"

    result = runner.invoke(app, ["add", str(records), "--db", str(db_path)])

    assert result.exit_code == 0, result.output
    assert "Added 2 raw record(s)" in result.output
    pending = _pending(db_path)
    assert [r.source for r in pending] == [SourceKind.CHAT, SourceKind.REPOSITORY]
    assert pending[0].payload_data == {"content": "hello", "username": "amy"}


def test_add_jsonl_with_source(tmp_path: Path) -> None:
    records = tmp_path / "chat.jsonl"
    records.write_text('{"content": "a"}\n{"content": "b"}\n', encoding="utf-8")
    db_path = tmp_path / "kb.db"

    result = runner.invoke(app, ["add", str(records), "--source", "chat", "--db", str(db_path)])

    assert result.exit_code == 0, result.output
    assert "chat: 2" in result.output
    assert len(_pending(db_path)) == 2


def test_add_invalid_file_exits_1_and_writes_nothing(tmp_path: Path) -> None:
    records = tmp_path / "bad.json"
    records.write_text('[{"content": "missing wrapper"}]', encoding="utf-8")
    db_path = tmp_path / "kb.db"

    result = runner.invoke(app, ["add", str(records), "--db", str(db_path)])

    assert result.exit_code == 1
    assert "Cannot read records" in result.output
    assert not db_path.exists()


def test_add_missing_file_is_usage_error(tmp_path: Path) -> None:
    result = runner.invoke(app, ["add", str(tmp_path / "nope.json")])
    assert result.exit_code == 2


# ---------------------------------------------------------------------------
# lore remove
# ---------------------------------------------------------------------------


def test_remove_soft_deletes(tmp_path: Path) -> None:
    db_path = tmp_path / "kb.db"
    conn = Database(db_path).connect()
    initialize(conn)
    record_id = Repository(conn).append_raw(SourceKind.CHAT, {"content": "bye now"})
    conn.close()

    result = runner.invoke(app, ["remove", record_id, "--db", str(db_path)])

    assert result.exit_code == 0, result.output
    assert _pending(db_path) == []

    again = runner.invoke(app, ["remove", record_id, "--db", str(db_path)])
    assert again.exit_code == 1
    assert "No raw record" in again.output


def test_remove_without_db_exits_1(tmp_path: Path) -> None:
    result = runner.invoke(app, ["remove", "abc", "--db", str(tmp_path / "missing.db")])
    assert result.exit_code == 1
    assert "No database found" in result.output
