"""
Live-sync scheduler — per-session debounce timer and write-back mutex.

Each change notification pushes the session's deadline out by the quiet
period (cancel-and-replace, never additive). When the deadline passes,
one sync cycle runs. A cycle that finds another cycle still in flight is
dropped, not queued; the next edit schedules a fresh one.
"""

from __future__ import annotations

import logging
import time
from enum import Enum
from typing import Awaitable, Callable, Optional, TypeVar, TYPE_CHECKING

from ..errors import SandboxError, SessionBusyError

if TYPE_CHECKING:
    from .session import SandboxSession
    from .sync_engine import SyncEngine

logger = logging.getLogger(__name__)

T = TypeVar("T")


class SyncOutcome(str, Enum):
    APPLIED = "applied"
    DROPPED = "dropped"
    FAILED = "failed"
    IDLE = "idle"


ResultCallback = Callable[["SandboxSession", SyncOutcome, Optional[BaseException]], None]


class LiveSyncScheduler:
    """Debounce and serialize write-backs for one session.

    Parameters
    ----------
    session:
        The session whose regions are synced.
    engine:
        Sync engine used for each cycle.
    read_buffer:
        Coroutine function returning the scratch buffer's current text;
        awaited when a cycle starts, so the newest edit always wins.
    quiet_period:
        Seconds without edits before a cycle fires.
    clock:
        Monotonic time source; tests pass a fake to advance time by hand.
    on_result:
        Called after every cycle with its outcome and error (if any).
    """

    def __init__(
        self,
        session: "SandboxSession",
        engine: "SyncEngine",
        read_buffer: Callable[[], Awaitable[str]],
        quiet_period: float = 0.25,
        clock: Callable[[], float] = time.monotonic,
        on_result: Optional[ResultCallback] = None,
    ) -> None:
        self._session = session
        self._engine = engine
        self._read_buffer = read_buffer
        self._quiet = quiet_period
        self._clock = clock
        self._on_result = on_result
        self.deadline: Optional[float] = None
        self.busy = False

    # ------------------------------------------------------------------
    # Timer
    # ------------------------------------------------------------------

    def notify_change(self) -> bool:
        """Restart the quiet period. Returns False if the session is not live."""
        if not self._session.is_live:
            return False
        self.deadline = self._clock() + self._quiet
        return True

    def cancel(self) -> None:
        self.deadline = None

    def take_due(self) -> bool:
        """Claim the timer if it has expired; the claimed cycle must be run."""
        if self.deadline is None or self._clock() < self.deadline:
            return False
        self.deadline = None
        return True

    async def fire(self) -> SyncOutcome:
        """Run a cycle if the timer has expired, else report IDLE."""
        if not self.take_due():
            return SyncOutcome.IDLE
        return await self.run_cycle()

    # ------------------------------------------------------------------
    # Cycles
    # ------------------------------------------------------------------

    async def run_cycle(self) -> SyncOutcome:
        """One live parse/apply/reshift cycle. Never raises SandboxError."""
        session = self._session
        if self.busy:
            logger.debug("[LiveSync] %s busy, dropping cycle", session.session_id)
            self._report(SyncOutcome.DROPPED, None)
            return SyncOutcome.DROPPED

        self.busy = True
        try:
            text = await self._read_buffer()
            await self._engine.sync(session.regions, text)
        except (SandboxError, OSError) as exc:
            session.last_error = str(exc)
            logger.warning("[LiveSync] %s: %s", session.session_id, exc)
            self._report(SyncOutcome.FAILED, exc)
            return SyncOutcome.FAILED
        finally:
            self.busy = False

        session.sync_count += 1
        session.last_error = None
        self._report(SyncOutcome.APPLIED, None)
        return SyncOutcome.APPLIED

    async def run_exclusive(self, operation: Callable[[], Awaitable[T]]) -> T:
        """Run a one-shot write-back under the busy flag.

        Cancels any pending timer. Raises SessionBusyError if a cycle is
        already in flight.
        """
        if self.busy:
            raise SessionBusyError(
                f"a sync for {self._session.session_id} is still in progress"
            )
        self.cancel()
        self.busy = True
        try:
            return await operation()
        finally:
            self.busy = False

    def _report(self, outcome: SyncOutcome, error: Optional[BaseException]) -> None:
        if self._on_result is not None:
            self._on_result(self._session, outcome, error)
