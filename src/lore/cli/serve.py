"""lore serve — run the HTTP API with uvicorn."""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
import uvicorn

from lore.api.app import create_app
from lore.cli.common import console, load_cli_config, require_api_key


def serve_cmd(
    host: Annotated[
        str | None,
        typer.Option("--host", help="Bind address (default: api.host)."),
    ] = None,
    port: Annotated[
        int | None,
        typer.Option("--port", "-p", help="Port (default: api.port)."),
    ] = None,
    db: Annotated[
        Path | None,
        typer.Option("--db", help="Path to the lore database."),
    ] = None,
) -> None:
    """Serve /api/query, /api/query-simple, /api/stats, /api/health and /api/records."""
    cfg = load_cli_config(db)
    require_api_key(cfg.embedding.model)
    require_api_key(cfg.generation.model)

    bind_host = host or cfg.api.host
    bind_port = port or cfg.api.port
    console.print(f"[bold]lore API[/] on http://{bind_host}:{bind_port}  (db: {cfg.database.path})")
    uvicorn.run(create_app(cfg), host=bind_host, port=bind_port, log_level="info")
