"""lore init — create the knowledge base and config scaffold.

Creates:
  .lore.db               — empty knowledge base with schema
  lore.yaml              — project config with the pipeline defaults
  ~/.lore/config.yaml    — global model config (created once, mode 0o600)
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer

from lore.cli.common import console, open_db
from lore.config import LoreConfig, ensure_global_config

_DEFAULT_PROJECT_DIR = Path(".")


def init_cmd(
    project_dir: Annotated[
        Path,
        typer.Argument(help="Directory to initialize. Defaults to current directory."),
    ] = _DEFAULT_PROJECT_DIR,
    global_config: Annotated[
        Path | None,
        typer.Option("--global-config", hidden=True, help="Override ~/.lore/config.yaml (for testing)."),
    ] = None,
) -> None:
    """Create the database, lore.yaml and the global config."""
    project_dir = project_dir.resolve()
    project_dir.mkdir(parents=True, exist_ok=True)
    defaults = LoreConfig()

    db_path = project_dir / defaults.database.path
    existed = db_path.exists()
    open_db(db_path).close()
    if existed:
        console.print(f"  [yellow]⚠[/]  {db_path.name} already exists — schema checked, data preserved")
    else:
        console.print(f"  [green]✓[/] {db_path.name}")

    yaml_path = project_dir / "lore.yaml"
    if yaml_path.exists():
        console.print("  [dim]–[/] lore.yaml exists, left unchanged")
    else:
        yaml_path.write_text(_project_yaml(defaults), encoding="utf-8")
        console.print("  [green]✓[/] lore.yaml")

    global_path = ensure_global_config(global_config)
    console.print(f"  [green]✓[/] {global_path}")

    console.print(
        "\n[bold]Next:[/]\n"
        f"  export GEMINI_API_KEY=...   (provider of {defaults.embedding.model})\n"
        "  lore add records.jsonl\n"
        "  lore run"
    )


def _project_yaml(cfg: LoreConfig) -> str:
    return (
        "# lore project configuration. API keys belong in environment variables.\n"
        "\n"
        "pipeline:\n"
        f"  poll_interval: {cfg.pipeline.poll_interval:g}\n"
        f"  batch_size: {cfg.pipeline.batch_size}\n"
        f"  enable_cleaning: {str(cfg.pipeline.enable_cleaning).lower()}\n"
        f"  enable_chunking: {str(cfg.pipeline.enable_chunking).lower()}\n"
        f"  enable_embedding: {str(cfg.pipeline.enable_embedding).lower()}\n"
        "\n"
        "embedding:\n"
        f"  model: {cfg.embedding.model}\n"
        f"  dimensions: {cfg.embedding.dimensions}\n"
        "\n"
        "generation:\n"
        f"  model: {cfg.generation.model}\n"
        "\n"
        "retrieval:\n"
        f"  top_k: {cfg.retrieval.top_k}\n"
        f"  similarity_threshold: {cfg.retrieval.similarity_threshold:g}\n"
    )
