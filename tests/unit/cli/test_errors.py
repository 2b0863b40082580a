"""Tests for lore rich error messages."""

from __future__ import annotations

import pytest

from lore.cli.errors import (
    err_config,
    err_invalid_records,
    err_lease_held,
    err_no_api_key,
    err_no_db,
    err_no_embeddings,
    err_record_not_found,
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _has_action(msg: str) -> bool:
    """Every error must tell the user what to do next."""
    lower = msg.lower()
    return any(kw in lower for kw in ["run:", "set:", "export ", "lore ", "fix ", "stop ", "expected"])


# ---------------------------------------------------------------------------
# err_no_api_key
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    "provider,env_var",
    [
        ("gemini", "GEMINI_API_KEY"),
        ("openai", "OPENAI_API_KEY"),
        ("voyage", "VOYAGE_API_KEY"),
        ("together_ai", "TOGETHER_AI_API_KEY"),
    ],
)
def test_err_no_api_key_names_env_var(provider: str, env_var: str) -> None:
    msg = err_no_api_key(provider)
    assert provider in msg
    assert f"export {env_var}=" in msg


# ---------------------------------------------------------------------------
# Everything else
# ---------------------------------------------------------------------------


def test_err_no_db_contains_path() -> None:
    msg = err_no_db("/tmp/kb.db")
    assert "/tmp/kb.db" in msg
    assert "lore init" in msg


def test_err_record_not_found_contains_id() -> None:
    assert "abc-123" in err_record_not_found("abc-123")


def test_err_invalid_records_contains_reason() -> None:
    msg = err_invalid_records("in.json", "item 2 is not an object")
    assert "in.json" in msg
    assert "item 2 is not an object" in msg
    assert "--source" in msg


def test_err_no_embeddings_names_model() -> None:
    assert "gemini/text-embedding-004" in err_no_embeddings("gemini/text-embedding-004")


@pytest.mark.parametrize(
    "msg",
    [
        err_no_api_key("gemini"),
        err_no_db(),
        err_config("pipeline.batch_size must be >= 1"),
        err_lease_held("Another pipeline is running."),
        err_invalid_records("x.json", "bad"),
        err_record_not_found("r1"),
        err_no_embeddings("m"),
    ],
)
def test_all_errors_are_actionable(msg: str) -> None:
    assert _has_action(msg)
