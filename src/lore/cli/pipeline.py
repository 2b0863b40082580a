"""Pipeline commands: clean, chunk, embed, run, rechunk, index.

``clean``/``chunk``/``embed`` run one stage once over at most ``--limit``
items. ``run`` starts the orchestrator loop (Ctrl-C stops it after the
current tick). ``rechunk`` deletes chunks so the chunker rebuilds them;
``index`` builds the sqlite-vec ANN index once vectors exist.
"""

from __future__ import annotations

import threading
from pathlib import Path
from typing import Annotated

import typer
from rich.progress import Progress, SpinnerColumn, TextColumn

from lore.cli.common import console, load_cli_config, open_db, require_api_key
from lore.cli.errors import err_lease_held, err_no_embeddings
from lore.db.models import SourceKind
from lore.db.repository import Repository
from lore.db.vectors import build_index, drop_index, model_to_slug, vec_table_name
from lore.ingest.chunker import Chunker
from lore.ingest.cleaner import Cleaner
from lore.ingest.embedding_writer import EmbeddingWriter
from lore.orchestrator import LeaseHeldError, Orchestrator, install_signal_handlers

_DbOption = Annotated[
    Path | None,
    typer.Option("--db", help="Path to the lore database (created if missing)."),
]
_LimitOption = Annotated[
    int | None,
    typer.Option("--limit", "-n", min=1, help="Max items to process (default: pipeline.batch_size)."),
]


def clean_cmd(db: _DbOption = None, limit: _LimitOption = None) -> None:
    """Clean pending raw records."""
    cfg = load_cli_config(db)
    conn = open_db(cfg.database.path)
    try:
        count = Cleaner(Repository(conn), cfg.cleaning).clean_batch(limit or cfg.pipeline.batch_size)
    finally:
        conn.close()
    console.print(f"[green]✓[/] Cleaned {count} record(s)")


def chunk_cmd(db: _DbOption = None, limit: _LimitOption = None) -> None:
    """Chunk cleaned records that have no chunks yet."""
    cfg = load_cli_config(db)
    conn = open_db(cfg.database.path)
    try:
        count = Chunker(Repository(conn), cfg.chunking).chunk_batch(limit or cfg.pipeline.batch_size)
    finally:
        conn.close()
    console.print(f"[green]✓[/] Chunked {count} record(s)")


def embed_cmd(db: _DbOption = None, limit: _LimitOption = None) -> None:
    """Embed chunks that have no vector yet."""
    cfg = load_cli_config(db)
    require_api_key(cfg.embedding.model)
    conn = open_db(cfg.database.path)
    try:
        with Progress(SpinnerColumn(), TextColumn("{task.description}"), console=console, transient=True) as progress:
            progress.add_task(f"Embedding with {cfg.embedding.model} …", total=None)
            count = EmbeddingWriter(Repository(conn), cfg.embedding).embed_batch(
                limit or cfg.pipeline.batch_size
            )
    finally:
        conn.close()
    console.print(f"[green]✓[/] Embedded {count} chunk(s)")


def run_cmd(
    db: _DbOption = None,
    once: Annotated[
        bool,
        typer.Option("--once", help="Run a single tick and exit."),
    ] = False,
) -> None:
    """Run the pipeline continuously until interrupted."""
    cfg = load_cli_config(db)
    if cfg.pipeline.enable_embedding:
        require_api_key(cfg.embedding.model)

    conn = open_db(cfg.database.path)
    try:
        orchestrator = Orchestrator(Repository(conn), cfg)
        if once:
            result = orchestrator.run_tick()
            console.print(
                f"[green]✓[/] Cleaned {result.cleaned}, chunked {result.chunked}, "
                f"embedded {result.embedded}"
            )
            return

        stop = threading.Event()
        install_signal_handlers(stop)
        try:
            totals = orchestrator.run_forever(stop)
        except LeaseHeldError as exc:
            console.print(err_lease_held(str(exc)))
            raise typer.Exit(1) from exc
        console.print(f"[bold]Stopped.[/] {totals.summary()}")
    finally:
        conn.close()


def rechunk_cmd(
    db: _DbOption = None,
    source: Annotated[
        SourceKind | None,
        typer.Option("--source", "-s", help="Only rechunk records of this kind."),
    ] = None,
    yes: Annotated[
        bool,
        typer.Option("--yes", "-y", help="Skip confirmation prompt."),
    ] = False,
) -> None:
    """Delete chunks (and their vectors) so they are rebuilt by the chunker."""
    cfg = load_cli_config(db)
    scope = f"{source.value} " if source else ""
    if not yes and not typer.confirm(
        f"Delete all {scope}chunks and vectors? They will be rebuilt and re-embedded.", default=False
    ):
        console.print("[dim]Cancelled.[/]")
        raise typer.Exit(0)

    conn = open_db(cfg.database.path)
    try:
        deleted = Repository(conn).delete_chunks(source)
    finally:
        conn.close()
    console.print(f"[green]✓[/] Deleted {deleted} {scope}chunk(s); run  lore chunk  or  lore run  to rebuild")


def index_cmd(
    db: _DbOption = None,
    drop: Annotated[
        bool,
        typer.Option("--drop", help="Drop the ANN index instead of building it."),
    ] = False,
) -> None:
    """Build (or drop) the sqlite-vec ANN index for the embedding model."""
    cfg = load_cli_config(db)
    slug = model_to_slug(cfg.embedding.model)
    conn = open_db(cfg.database.path)
    try:
        if drop:
            dropped = drop_index(conn, slug)
            console.print(
                f"[green]✓[/] Dropped {vec_table_name(slug)}" if dropped else "[dim]No index to drop.[/]"
            )
            return
        if Repository(conn).count_embedded() == 0:
            console.print(err_no_embeddings(cfg.embedding.model))
            raise typer.Exit(0)
        added = build_index(conn, slug, cfg.embedding.dimensions)
    finally:
        conn.close()
    console.print(f"[green]✓[/] {vec_table_name(slug)}: indexed {added} new vector(s)")
