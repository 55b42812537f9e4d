"""Sandbox sessions: sync engine, live scheduling, backups and the service."""

from .backup import BackupHandle, BackupStore
from .events import BufferChanged, Command, EventPump
from .registry import SessionRegistry
from .scheduler import LiveSyncScheduler, SyncOutcome
from .service import SandboxService
from .session import SandboxSession
from .sync_engine import SyncEngine, count_lines, shift_regions

__all__ = [
    "BackupHandle", "BackupStore",
    "BufferChanged", "Command", "EventPump",
    "SessionRegistry",
    "LiveSyncScheduler", "SyncOutcome",
    "SandboxService",
    "SandboxSession",
    "SyncEngine", "count_lines", "shift_regions",
]
