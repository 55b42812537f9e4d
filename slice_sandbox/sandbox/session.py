"""One scratch buffer bound to one RegionSet."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional, TYPE_CHECKING

from ..regions.models import RegionSet
from .backup import BackupHandle

if TYPE_CHECKING:
    from .scheduler import LiveSyncScheduler


def new_session_id() -> str:
    return uuid.uuid4().hex[:12]


@dataclass
class SandboxSession:
    """State for one live or idle sandbox.

    The debounce timer and the busy flag belong to the session's
    :class:`~slice_sandbox.sandbox.scheduler.LiveSyncScheduler`; the
    properties below read them through.
    """
    session_id: str
    buffer_id: str
    artifact_id: str
    regions: RegionSet
    is_live: bool = False
    backup: Optional[BackupHandle] = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    sync_count: int = 0
    last_error: Optional[str] = None
    scheduler: Optional["LiveSyncScheduler"] = field(default=None, repr=False)

    @property
    def busy(self) -> bool:
        return self.scheduler is not None and self.scheduler.busy

    @property
    def has_pending_timer(self) -> bool:
        return self.scheduler is not None and self.scheduler.deadline is not None

    def describe(self) -> str:
        spans = ", ".join(
            f"{r.region_id} lines {r.start_line + 1}-{r.end_line + 1}" for r in self.regions
        )
        state = "live" if self.is_live else "manual"
        return f"{self.session_id} [{state}] {self.artifact_id}: {spans}"
