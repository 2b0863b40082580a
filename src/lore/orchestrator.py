"""Pipeline orchestrator — drive clean → chunk → embed until told to stop.

One tick runs each enabled stage once over at most ``batch_size`` items.
Ticks are separated by a timed wait on a ``threading.Event``; SIGINT and
SIGTERM set the event, so the current tick finishes and the loop exits.
A failing tick is logged and followed by a longer backoff wait.

Only one orchestrator may run against a database at a time: start-up claims
the ``pipeline_lease`` row and renews its heartbeat before each stage.
"""

from __future__ import annotations

import logging
import os
import random
import signal
import socket
import threading
import time
import uuid
from collections.abc import Callable
from dataclasses import dataclass

from lore.config import LoreConfig
from lore.db.repository import Repository
from lore.ingest.chunker import Chunker
from lore.ingest.cleaner import Cleaner
from lore.ingest.embedding_writer import EmbeddingWriter
from lore.rag import llm_client

log = logging.getLogger(__name__)

# Idle ticks report status on roughly one in this many ticks
_IDLE_REPORT_ODDS = 6


class LeaseHeldError(RuntimeError):
    """Raised when another live orchestrator holds the pipeline lease."""


@dataclass
class Totals:
    """Cumulative per-stage counts for the lifetime of the process."""

    cleaned: int = 0
    chunked: int = 0
    embedded: int = 0
    ticks: int = 0
    errors: int = 0

    def summary(self) -> str:
        return (
            f"cleaned={self.cleaned} chunked={self.chunked} embedded={self.embedded} "
            f"ticks={self.ticks} errors={self.errors}"
        )


@dataclass
class TickResult:
    cleaned: int = 0
    chunked: int = 0
    embedded: int = 0

    @property
    def did_work(self) -> bool:
        return bool(self.cleaned or self.chunked or self.embedded)


class Orchestrator:
    """Run the pipeline stages on a fixed cadence.

    Args:
        repo:      Open Repository instance.
        config:    Full lore configuration (pipeline, cleaning, chunking, embedding).
        cleaner, chunker, embedding_writer: Stage overrides; built from *config* when omitted.
        rng:       Random source for the idle status sample.
        clock:     Wall clock used for lease heartbeats.
    """

    def __init__(
        self,
        repo: Repository,
        config: LoreConfig,
        cleaner: Cleaner | None = None,
        chunker: Chunker | None = None,
        embedding_writer: EmbeddingWriter | None = None,
        rng: random.Random | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._repo = repo
        self._config = config
        self._cleaner = cleaner or Cleaner(repo, config.cleaning)
        self._chunker = chunker or Chunker(repo, config.chunking)
        self._embedding_writer = embedding_writer or EmbeddingWriter(repo, config.embedding)
        self._rng = rng or random.Random()
        self._clock = clock
        self.owner = f"{socket.gethostname()}:{os.getpid()}:{uuid.uuid4().hex[:8]}"
        self.totals = Totals()
        self._holds_lease = False

    # ------------------------------------------------------------------
    # Single tick
    # ------------------------------------------------------------------

    def run_tick(self) -> TickResult:
        """Run each enabled stage once, in order. Stage errors propagate.

        While the lease is held its heartbeat is also renewed between stages,
        so a long tick does not let the lease go stale.
        """
        cfg = self._config.pipeline
        result = TickResult()
        if cfg.enable_cleaning:
            result.cleaned = self._cleaner.clean_batch(cfg.batch_size)
            self.totals.cleaned += result.cleaned
        if cfg.enable_chunking:
            self._heartbeat()
            result.chunked = self._chunker.chunk_batch(cfg.batch_size)
            self.totals.chunked += result.chunked
        if cfg.enable_embedding:
            self._heartbeat()
            result.embedded = self._embedding_writer.embed_batch(cfg.batch_size)
            self.totals.embedded += result.embedded
        return result

    # ------------------------------------------------------------------
    # Loop
    # ------------------------------------------------------------------

    def run_forever(self, stop_event: threading.Event | None = None) -> Totals:
        """Tick until *stop_event* is set. Returns the final totals.

        Raises:
            EnvironmentError: If embedding is enabled and the provider key is missing.
            LeaseHeldError: If another orchestrator is running.
        """
        stop = stop_event or threading.Event()
        cfg = self._config.pipeline
        if cfg.enable_embedding:
            llm_client.validate_api_key(self._config.embedding.model)
        self._acquire_lease()

        log.info(
            "Pipeline started (poll every %ss, batch size %d, stages: %s)",
            cfg.poll_interval,
            cfg.batch_size,
            ", ".join(self._enabled_stages()) or "none",
        )
        try:
            while not stop.is_set():
                wait = cfg.poll_interval
                try:
                    self._renew_lease()
                    result = self.run_tick()
                    self._report(result)
                except LeaseHeldError:
                    raise
                except Exception:
                    self.totals.errors += 1
                    log.exception("Pipeline tick failed; retrying in %ss", cfg.error_backoff)
                    wait = cfg.error_backoff
                finally:
                    self.totals.ticks += 1
                stop.wait(wait)
        finally:
            self._repo.release_lease(self.owner)
            self._holds_lease = False
            log.info("Pipeline stopped. Totals: %s", self.totals.summary())
        return self.totals

    def _report(self, result: TickResult) -> None:
        if result.did_work:
            log.info(
                "Tick: cleaned %d, chunked %d, embedded %d (totals: %s)",
                result.cleaned,
                result.chunked,
                result.embedded,
                self.totals.summary(),
            )
        elif self._rng.randrange(_IDLE_REPORT_ODDS) == 0:
            log.info("No new data. Totals: %s", self.totals.summary())

    def _enabled_stages(self) -> list[str]:
        cfg = self._config.pipeline
        stages = [("clean", cfg.enable_cleaning), ("chunk", cfg.enable_chunking), ("embed", cfg.enable_embedding)]
        return [name for name, enabled in stages if enabled]

    # ------------------------------------------------------------------
    # Lease
    # ------------------------------------------------------------------

    def _acquire_lease(self) -> None:
        if not self._repo.acquire_lease(self.owner, self._clock(), self._config.pipeline.lease_ttl):
            raise LeaseHeldError(
                f"Another pipeline ({self._repo.lease_owner()}) is running against this database."
            )
        self._holds_lease = True

    def _renew_lease(self) -> None:
        if not self._repo.renew_lease(self.owner, self._clock()):
            raise LeaseHeldError("Pipeline lease was taken over by another process.")

    def _heartbeat(self) -> None:
        if self._holds_lease:
            self._renew_lease()


def install_signal_handlers(stop_event: threading.Event) -> None:
    """Set *stop_event* on SIGINT/SIGTERM. Must be called from the main thread."""

    def _handler(signum: int, _frame: object) -> None:
        log.info("Received %s, finishing current tick", signal.Signals(signum).name)
        stop_event.set()

    signal.signal(signal.SIGINT, _handler)
    signal.signal(signal.SIGTERM, _handler)
