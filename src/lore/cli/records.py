"""lore add / lore remove — raw record lifecycle.

``lore add`` is the file-based producer path: it appends raw records from a
JSON object, a JSON array, or JSONL. Each item is either
``{"source": "chat"|"repository", "payload": {...}}`` or, when ``--source``
is given, a bare payload.

``lore remove`` soft-deletes a raw record so the pipeline never picks it up.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Annotated, Any

import typer

from lore.cli.common import console, load_cli_config, open_db
from lore.cli.errors import err_invalid_records, err_no_db, err_record_not_found
from lore.db.models import SourceKind
from lore.db.repository import Repository


def add_cmd(
    file: Annotated[
        Path,
        typer.Argument(help="JSON or JSONL file of records.", exists=True, dir_okay=False),
    ],
    source: Annotated[
        SourceKind | None,
        typer.Option("--source", "-s", help="Treat every item as a bare payload of this kind."),
    ] = None,
    db: Annotated[
        Path | None,
        typer.Option("--db", help="Path to the lore database (created if missing)."),
    ] = None,
) -> None:
    """Append raw records for the pipeline to process."""
    cfg = load_cli_config(db)
    try:
        records = parse_records(file.read_text(encoding="utf-8"), source, jsonl=file.suffix == ".jsonl")
    except ValueError as exc:
        console.print(err_invalid_records(str(file), str(exc)))
        raise typer.Exit(1) from exc

    conn = open_db(cfg.database.path)
    try:
        repo = Repository(conn)
        for kind, payload in records:
            repo.append_raw(kind, payload)
    finally:
        conn.close()

    counts = {kind.value: sum(1 for k, _ in records if k == kind) for kind in SourceKind}
    console.print(
        f"[green]✓[/] Added {len(records)} raw record(s) "
        f"(chat: {counts['chat']}, repository: {counts['repository']})"
    )


def remove_cmd(
    record_id: Annotated[str, typer.Argument(help="Raw record id to soft-delete.")],
    db: Annotated[
        Path | None,
        typer.Option("--db", help="Path to the lore database."),
    ] = None,
) -> None:
    """Soft-delete a raw record so it is never processed."""
    cfg = load_cli_config(db)
    if not Path(cfg.database.path).exists():
        console.print(err_no_db(cfg.database.path))
        raise typer.Exit(1)

    conn = open_db(cfg.database.path)
    try:
        removed = Repository(conn).soft_delete_raw(record_id)
    finally:
        conn.close()

    if not removed:
        console.print(err_record_not_found(record_id))
        raise typer.Exit(1)
    console.print(f"[green]✓[/] Removed raw record {record_id}")


def parse_records(
    text: str, source: SourceKind | None = None, jsonl: bool = False
) -> list[tuple[SourceKind, dict[str, Any]]]:
    """Parse ``lore add`` input into (source, payload) pairs.

    Raises:
        ValueError: On invalid JSON or items of the wrong shape.
    """
    if jsonl:
        items = [json.loads(line) for line in text.splitlines() if line.strip()]
    else:
        data = json.loads(text)
        items = data if isinstance(data, list) else [data]

    records: list[tuple[SourceKind, dict[str, Any]]] = []
    for n, item in enumerate(items, start=1):
        if not isinstance(item, dict):
            raise ValueError(f"item {n} is not an object")
        if source is not None:
            records.append((source, item))
            continue
        if "source" not in item or not isinstance(item.get("payload"), dict):
            raise ValueError(f"item {n} needs 'source' and an object 'payload' (or use --source)")
        try:
            kind = SourceKind(item["source"])
        except ValueError:
            raise ValueError(f"item {n} has unknown source {item['source']!r}") from None
        records.append((kind, item["payload"]))
    return records
