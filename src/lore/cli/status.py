"""lore status — pipeline progress per stage, index and orchestrator state."""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.panel import Panel
from rich.table import Table

from lore.cli.common import console, load_cli_config, open_db
from lore.config import LoreConfig
from lore.db.repository import Repository
from lore.db.vectors import model_to_slug, vec_table_exists, vec_table_name


def status_cmd(
    db: Annotated[
        Path | None,
        typer.Option("--db", help="Path to the lore database."),
    ] = None,
) -> None:
    """Show how far records have advanced through the pipeline."""
    cfg = load_cli_config(db)
    db_path = Path(cfg.database.path)

    if not db_path.exists():
        console.print(
            Panel(
                "[yellow]No database found.[/]\n"
                "  Run:  lore init",
                title="[bold]Knowledge Base[/]",
                expand=False,
            )
        )
        return

    conn = open_db(db_path)
    try:
        repo = Repository(conn)
        stats = repo.stats()
        table = vec_table_name(model_to_slug(cfg.embedding.model))
        indexed = vec_table_exists(conn, table)
        lease_owner = repo.lease_owner()
    finally:
        conn.close()

    _show_database_panel(db_path, cfg)
    _show_stages_table(stats)

    lines = [
        f"ANN index:     {'[green]✓[/] ' + table if indexed else '[dim]not built (exact scan) — run lore index[/]'}",
        f"Orchestrator:  {lease_owner or '[dim]not running[/]'}",
    ]
    console.print(Panel("\n".join(lines), title="[bold]Retrieval[/]", expand=False))


def _show_database_panel(db_path: Path, cfg: LoreConfig) -> None:
    size_mb = db_path.stat().st_size / (1024 * 1024)
    lines = [
        f"Database:    {db_path} ({size_mb:.1f} MB)",
        f"Embedding:   {cfg.embedding.model} ({cfg.embedding.dimensions} dims)",
        f"Generation:  {cfg.generation.model}",
    ]
    console.print(Panel("\n".join(lines), title="[bold]Project[/]", expand=False))


def _show_stages_table(stats: dict[str, int]) -> None:
    table = Table(title="Pipeline", show_header=True)
    table.add_column("Stage")
    table.add_column("Done", justify="right")
    table.add_column("Waiting", justify="right")
    table.add_column("Notes")
    table.add_row(
        "Raw → cleaned",
        f"{stats['cleaned']:,}",
        f"{stats['pending']:,}",
        f"{stats['rejected']:,} rejected, {stats['deleted']:,} removed",
    )
    table.add_row(
        "Cleaned → chunked",
        f"{stats['cleaned'] - stats['unchunked']:,}",
        f"{stats['unchunked']:,}",
        f"{stats['chunks']:,} chunks",
    )
    table.add_row(
        "Chunks → embedded",
        f"{stats['embedded']:,}",
        f"{stats['chunks'] - stats['embedded']:,}",
        "",
    )
    console.print(table)
