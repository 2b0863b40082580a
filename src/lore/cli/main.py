"""lore CLI entry point."""

from __future__ import annotations

import importlib.metadata
from typing import Annotated

import typer

from lore.cli.common import console
from lore.cli.init import init_cmd
from lore.cli.pipeline import chunk_cmd, clean_cmd, embed_cmd, index_cmd, rechunk_cmd, run_cmd
from lore.cli.query import query_cmd
from lore.cli.records import add_cmd, remove_cmd
from lore.cli.serve import serve_cmd
from lore.cli.status import status_cmd
from lore.log import configure_logging


def _installed_version() -> str:
    try:
        return importlib.metadata.version("lore")
    except importlib.metadata.PackageNotFoundError:
        return "dev"


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"lore {_installed_version()}")
        raise typer.Exit()


app = typer.Typer(
    name="lore",
    help=(
        "lore — chat and repository knowledge base.\n\n"
        "  lore add / run     Append raw records and advance them: clean → chunk → embed.\n"
        "  lore query         Answer a question from the embedded chunks."
    ),
    add_completion=False,
)


@app.callback()
def main_callback(
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            callback=_version_callback,
            is_eager=True,
            help="Show version and exit.",
        ),
    ] = False,
    log_level: Annotated[
        str,
        typer.Option("--log-level", help="DEBUG, INFO, WARNING or ERROR."),
    ] = "INFO",
) -> None:
    """lore — chat and repository knowledge base."""
    try:
        configure_logging(log_level, console=console)
    except ValueError as exc:
        raise typer.BadParameter(str(exc), param_hint="--log-level") from exc


app.command("init")(init_cmd)
app.command("add")(add_cmd)
app.command("remove")(remove_cmd)
app.command("clean")(clean_cmd)
app.command("chunk")(chunk_cmd)
app.command("embed")(embed_cmd)
app.command("run")(run_cmd)
app.command("rechunk")(rechunk_cmd)
app.command("index")(index_cmd)
app.command("query")(query_cmd)
app.command("status")(status_cmd)
app.command("serve")(serve_cmd)


@app.command("version")
def version_cmd() -> None:
    """Show the installed lore version."""
    typer.echo(f"lore {_installed_version()}")


if __name__ == "__main__":
    app()
