"""Helpers shared by the lore CLI commands."""

from __future__ import annotations

import sqlite3
from pathlib import Path

import typer
from rich.console import Console

from lore.cli.errors import err_config, err_no_api_key
from lore.config import ConfigError, LoreConfig, load_config
from lore.db.connection import Database
from lore.db.schema import initialize
from lore.rag import llm_client

console = Console()


def load_cli_config(db: Path | None = None) -> LoreConfig:
    """Load layered config, apply ``--db``, and exit 1 on a config error."""
    try:
        cfg = load_config()
    except ConfigError as exc:
        console.print(err_config(str(exc)))
        raise typer.Exit(1) from exc
    if db is not None:
        cfg.database.path = str(db)
    return cfg


def open_db(db_path: Path | str) -> sqlite3.Connection:
    conn = Database(db_path).connect()
    initialize(conn)
    return conn


def require_api_key(model: str) -> None:
    """Exit 1 with an actionable message when *model*'s provider key is missing."""
    try:
        llm_client.validate_api_key(model)
    except EnvironmentError as exc:
        provider = model.split("/")[0] if "/" in model else "openai"
        console.print(err_no_api_key(provider))
        raise typer.Exit(1) from exc
