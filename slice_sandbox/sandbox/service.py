"""
Sandbox service — the operations a front end calls: slice, toggle live
sync, sync now, accept, revert, plus change notifications for buffers.
"""

from __future__ import annotations

import asyncio
import logging
import os
import time
from typing import Callable, Optional, Sequence

from ..config import Config
from ..errors import SandboxError
from ..providers.base import DocumentStore, SymbolProvider
from ..providers.documents import read_text
from ..regions.extractor import RegionExtractor
from ..regions.grammar import render_buffer
from ..regions.models import RegionSet
from .backup import BackupStore
from .metrics import log_sync_metric
from .registry import SessionRegistry
from .scheduler import LiveSyncScheduler, SyncOutcome
from .session import SandboxSession, new_session_id
from .sync_engine import SyncEngine

logger = logging.getLogger(__name__)

ErrorCallback = Callable[[SandboxSession, BaseException], None]


def _write_text(path: str, text: str) -> None:
    with open(path, "w", encoding="utf-8", errors="surrogateescape", newline="") as f:
        f.write(text)


class SandboxService:
    """Wires extractor, sync engine, backups and the session registry.

    Parameters
    ----------
    config:
        Loaded :class:`~slice_sandbox.config.Config`.
    documents:
        Document store holding the origin artifacts.
    symbols:
        Optional symbol provider for boundary detection.
    registry:
        Session registry; a fresh one is created when omitted.
    backups:
        Backup store; defaults to one under ``config.BACKUP_DIR``.
    clock:
        Time source handed to every scheduler.
    on_error:
        Called when a live cycle fails, so the front end can tell the user.
    """

    def __init__(
        self,
        config: Config,
        documents: DocumentStore,
        symbols: Optional[SymbolProvider] = None,
        registry: Optional[SessionRegistry] = None,
        backups: Optional[BackupStore] = None,
        clock: Callable[[], float] = time.monotonic,
        on_error: Optional[ErrorCallback] = None,
    ) -> None:
        self._config = config
        self._extractor = RegionExtractor(
            documents, symbols,
            fallback_margin=config.FALLBACK_MARGIN,
            merge_gap=config.MERGE_GAP,
        )
        self._engine = SyncEngine(documents)
        self.registry = registry if registry is not None else SessionRegistry()
        self.backups = backups or BackupStore(config.BACKUP_DIR)
        self.scratch_dir = os.path.abspath(config.SCRATCH_DIR)
        self._clock = clock
        self._on_error = on_error

    # ------------------------------------------------------------------
    # Slice
    # ------------------------------------------------------------------

    async def slice(self, artifact_path: str, candidate_lines: Sequence[int]) -> Optional[SandboxSession]:
        """Slice *artifact_path* around 0-based *candidate_lines* into a new sandbox.

        Returns None when there is nothing to slice.
        """
        artifact_id = os.path.abspath(artifact_path)
        regions, buffer_text = await self._extractor.extract(artifact_id, candidate_lines)
        if not regions:
            logger.info("[Sandbox] No candidate lines for %s, nothing to slice", artifact_id)
            return None

        session_id = new_session_id()
        stem, ext = os.path.splitext(os.path.basename(artifact_id))
        buffer_id = os.path.join(self.scratch_dir, f"{stem}.{session_id}.sandbox{ext}")
        os.makedirs(self.scratch_dir, exist_ok=True)
        await asyncio.to_thread(_write_text, buffer_id, buffer_text)

        session = SandboxSession(
            session_id=session_id,
            buffer_id=buffer_id,
            artifact_id=artifact_id,
            regions=regions,
        )
        session.backup = self._snapshot(session, regions)
        session.scheduler = LiveSyncScheduler(
            session,
            self._engine,
            read_buffer=lambda: asyncio.to_thread(read_text, buffer_id),
            quiet_period=self._config.quiet_period,
            clock=self._clock,
            on_result=self._record_cycle,
        )
        self.registry.register(session)
        logger.info("[Sandbox] Opened %s", session.describe())
        return session

    def _snapshot(self, session: SandboxSession, regions: RegionSet):
        try:
            return self.backups.snapshot(
                session.session_id, session.artifact_id,
                render_buffer(regions.backup_blocks()),
            )
        except OSError as exc:
            logger.warning(
                "[Backup] Could not write backup for %s (in-memory copy still valid): %s",
                session.artifact_id, exc,
            )
            return None

    # ------------------------------------------------------------------
    # Live sync
    # ------------------------------------------------------------------

    def set_live(self, key: str, enabled: bool) -> SandboxSession:
        session = self.registry.get(key)
        session.is_live = enabled
        if not enabled:
            # An in-flight cycle keeps running; only the pending one is dropped
            session.scheduler.cancel()
        logger.info("[Sandbox] Live sync %s for %s",
                    "enabled" if enabled else "disabled", session.session_id)
        return session

    def toggle_live(self, key: str) -> bool:
        session = self.registry.get(key)
        return self.set_live(key, not session.is_live).is_live

    def on_buffer_changed(self, buffer_id: str) -> bool:
        """Handle a change notification; True if a live cycle was scheduled."""
        session = self.registry.find(os.path.abspath(buffer_id))
        if session is None:
            return False
        return session.scheduler.notify_change()

    def next_deadline(self) -> Optional[float]:
        deadlines = [
            s.scheduler.deadline for s in self.registry
            if s.scheduler.deadline is not None
        ]
        return min(deadlines) if deadlines else None

    def take_due(self) -> list[LiveSyncScheduler]:
        """Claim every expired timer; each returned scheduler owes one cycle."""
        return [s.scheduler for s in self.registry if s.scheduler.take_due()]

    async def fire_due_timers(self) -> list[SyncOutcome]:
        due = self.take_due()
        return list(await asyncio.gather(*(s.run_cycle() for s in due)))

    def _record_cycle(self, session: SandboxSession, outcome: SyncOutcome,
                      error: Optional[BaseException]) -> None:
        self._log_metric(session, outcome.value, error)
        if outcome is SyncOutcome.FAILED and error is not None and self._on_error is not None:
            self._on_error(session, error)

    def _log_metric(self, session: SandboxSession, outcome: str,
                    error: Optional[BaseException] = None) -> None:
        if not self._config.METRICS_ENABLED:
            return
        log_sync_metric({
            "artifact": session.artifact_id,
            "session": session.session_id,
            "outcome": outcome,
            "regions": len(session.regions),
            "error": type(error).__name__ if error is not None else None,
        }, self._config.STATE_DIR)

    # ------------------------------------------------------------------
    # One-shot operations
    # ------------------------------------------------------------------

    async def _write_back(self, session: SandboxSession) -> RegionSet:
        text = await asyncio.to_thread(read_text, session.buffer_id)
        return await self._engine.sync(session.regions, text)

    async def sync_now(self, key: str) -> RegionSet:
        """Write the buffer back immediately; errors propagate to the caller."""
        session = self.registry.get(key)
        try:
            regions = await session.scheduler.run_exclusive(lambda: self._write_back(session))
        except (SandboxError, OSError) as exc:
            session.last_error = str(exc)
            self._log_metric(session, "failed", exc)
            raise
        session.sync_count += 1
        session.last_error = None
        self._log_metric(session, "applied")
        return regions

    async def accept(self, key: str) -> SandboxSession:
        """Final write-back, then drop the backup and the session."""
        session = self.registry.get(key)
        await session.scheduler.run_exclusive(lambda: self._write_back(session))
        self._close(session, "accepted")
        return session

    async def revert(self, key: str) -> SandboxSession:
        """Restore every region's original text, then drop the backup and session."""
        session = self.registry.get(key)
        await session.scheduler.run_exclusive(lambda: self._engine.revert(session.regions))
        self._close(session, "reverted")
        return session

    def _close(self, session: SandboxSession, outcome: str) -> None:
        session.scheduler.cancel()
        self.backups.discard(session.backup)
        self.registry.remove(session.session_id)
        try:
            os.unlink(session.buffer_id)
        except OSError as exc:
            logger.debug("[Sandbox] Could not remove scratch %s: %s", session.buffer_id, exc)
        self._log_metric(session, outcome)
        logger.info("[Sandbox] %s %s", outcome.capitalize(), session.session_id)

    def shutdown(self) -> None:
        """Forget every session. Backups stay on disk for later recovery."""
        self.registry.clear()
