"""FastAPI application exposing lore's query, stats and record-append paths."""

from __future__ import annotations

import json
import logging
import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any

from fastapi import FastAPI, HTTPException
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, Field

from lore.config import LoreConfig
from lore.db.connection import Database
from lore.db.models import SourceKind
from lore.db.repository import Repository
from lore.db.schema import initialize
from lore.rag.answer import answer, answer_events

log = logging.getLogger(__name__)


# ── Request / Response schemas ────────────────────────────────────────
class QueryRequest(BaseModel):
    """Incoming question, optionally restricted to one source kind."""

    question: str = ""
    source: SourceKind | None = None
    top_k: int | None = Field(default=None, ge=1, le=50)


class SourceOut(BaseModel):
    content: str
    similarity: float
    kind: str
    source_kind: str


class QueryResponse(BaseModel):
    """Answer plus the chunks it was grounded on."""

    answer: str
    sources: list[SourceOut] = []
    timestamp: str


class RecordRequest(BaseModel):
    """Raw record appended by a producer."""

    source: SourceKind
    payload: dict[str, Any]


class RecordResponse(BaseModel):
    id: str


def create_app(config: LoreConfig | None = None) -> FastAPI:
    """Build the API bound to the database named in *config*."""
    cfg = config or LoreConfig()
    db_path = cfg.database.path

    with Database(db_path) as conn:
        initialize(conn)

    @contextmanager
    def _repository() -> Iterator[Repository]:
        with Database(db_path) as conn:
            yield Repository(conn)

    app = FastAPI(
        title="lore API",
        version="0.1.0",
        description="Question answering over ingested chat and repository knowledge.",
    )

    # ── Routes ────────────────────────────────────────────────────────
    @app.get("/api/health")
    def health() -> dict[str, str]:
        """Liveness probe."""
        return {"status": "ok", "message": "lore API is running"}

    @app.get("/api/stats")
    def stats() -> dict[str, Any]:
        """Coarse "has any data" probe; never calls the embedding provider."""
        try:
            with _repository() as repo:
                embedded = repo.count_embedded()
        except sqlite3.Error:
            log.exception("Stats query failed")
            return {"status": "error", "has_data": False, "embedded_chunks": None}
        return {"status": "operational", "has_data": embedded > 0, "embedded_chunks": embedded}

    @app.post("/api/query")
    def query(request: QueryRequest) -> StreamingResponse:
        """Answer a question, streaming progress as server-sent events."""
        question = _require_question(request)
        log.info("Query: %r%s", question, f" ({request.source.value} only)" if request.source else "")

        def _events() -> Iterator[str]:
            with _repository() as repo:
                for event in answer_events(question, repo, cfg, source=request.source, top_k=request.top_k):
                    yield "data: " + json.dumps(event) + "\n\n"
                    if event["type"] == "result":
                        yield "data: [DONE]\n\n"

        return StreamingResponse(
            _events(),
            media_type="text/event-stream",
            headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
        )

    @app.post("/api/query-simple", response_model=QueryResponse)
    def query_simple(request: QueryRequest) -> QueryResponse:
        """Answer a question in a single JSON response."""
        question = _require_question(request)
        try:
            with _repository() as repo:
                result = answer(question, repo, cfg, source=request.source, top_k=request.top_k)
        except Exception as exc:
            log.exception("Query failed")
            raise HTTPException(status_code=500, detail=str(exc) or "Internal server error") from exc
        return QueryResponse(
            answer=result.answer,
            sources=[SourceOut(**s) for s in result.sources],
            timestamp=datetime.now(timezone.utc).isoformat(),
        )

    @app.post("/api/records", response_model=RecordResponse, status_code=201)
    def append_record(request: RecordRequest) -> RecordResponse:
        """Append one raw record for the pipeline to pick up."""
        with _repository() as repo:
            record_id = repo.append_raw(request.source, request.payload)
        log.debug("Appended %s record %s", request.source.value, record_id)
        return RecordResponse(id=record_id)

    return app


def _require_question(request: QueryRequest) -> str:
    question = request.question.strip()
    if not question:
        raise HTTPException(status_code=400, detail="Question is required")
    return question
