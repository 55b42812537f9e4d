"""
Event pump — single-threaded, cooperative dispatch of buffer changes,
user commands and expired debounce timers.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, Union, TYPE_CHECKING

if TYPE_CHECKING:
    from .service import SandboxService

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BufferChanged:
    buffer_id: str


@dataclass(frozen=True)
class Command:
    name: str
    argument: str = ""


Event = Union[BufferChanged, Command]

# Returns False to stop the pump
CommandHandler = Callable[[Command], Awaitable[bool]]


class EventPump:
    """Drain *queue* and fire due sync cycles until a command says stop.

    Sync cycles run as tasks so a slow write-back never blocks event
    handling; overlapping cycles for one session are resolved by its busy
    flag.
    """

    def __init__(
        self,
        service: "SandboxService",
        queue: "asyncio.Queue[Event]",
        on_command: CommandHandler,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._service = service
        self._queue = queue
        self._on_command = on_command
        self._clock = clock
        self._tasks: set[asyncio.Task] = set()

    def _timeout(self) -> Optional[float]:
        deadline = self._service.next_deadline()
        if deadline is None:
            return None
        return max(deadline - self._clock(), 0.0)

    async def run(self) -> None:
        while True:
            try:
                event = await asyncio.wait_for(self._queue.get(), self._timeout())
            except asyncio.TimeoutError:
                event = None

            if isinstance(event, BufferChanged):
                self._service.on_buffer_changed(event.buffer_id)
            elif isinstance(event, Command):
                if not await self._on_command(event):
                    break

            self._start_due_cycles()
        await self.drain()

    def _start_due_cycles(self) -> None:
        for scheduler in self._service.take_due():
            task = asyncio.create_task(scheduler.run_cycle())
            self._tasks.add(task)
            task.add_done_callback(self._cycle_done)

    def _cycle_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error("[LiveSync] Cycle crashed", exc_info=task.exception())

    async def drain(self) -> None:
        """Wait for in-flight cycles to finish."""
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
