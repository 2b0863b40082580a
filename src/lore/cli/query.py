"""lore query — answer a question from the knowledge base."""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.markdown import Markdown
from rich.panel import Panel
from rich.table import Table

from lore.cli.common import console, load_cli_config, open_db, require_api_key
from lore.db.models import SourceKind
from lore.db.repository import Repository
from lore.rag.answer import answer


def query_cmd(
    question: Annotated[str, typer.Argument(help="Question to answer.")],
    source: Annotated[
        SourceKind | None,
        typer.Option("--source", "-s", help="Only search chunks of this kind."),
    ] = None,
    top_k: Annotated[
        int | None,
        typer.Option("--top-k", "-k", min=1, help="Number of chunks to retrieve."),
    ] = None,
    db: Annotated[
        Path | None,
        typer.Option("--db", help="Path to the lore database."),
    ] = None,
) -> None:
    """Retrieve relevant chunks and generate an answer."""
    cfg = load_cli_config(db)
    require_api_key(cfg.embedding.model)
    require_api_key(cfg.generation.model)

    conn = open_db(cfg.database.path)
    try:
        with console.status("Searching knowledge base…"):
            result = answer(question, Repository(conn), cfg, source=source, top_k=top_k)
    finally:
        conn.close()

    console.print(Panel(Markdown(result.answer), title="[bold]Answer[/]", expand=False))
    if not result.sources:
        return

    table = Table(title=f"Sources ({len(result.sources)})", show_lines=False)
    table.add_column("#", justify="right")
    table.add_column("Similarity", justify="right")
    table.add_column("Kind")
    table.add_column("Preview", overflow="fold")
    for i, src in enumerate(result.sources, start=1):
        table.add_row(
            str(i),
            f"{src['similarity'] * 100:.1f}%",
            f"{src['source_kind']}/{src['kind']}",
            src["content"].replace("\n", " ")[:80],
        )
    console.print(table)
