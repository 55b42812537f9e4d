"""
Durable copies of each session's pristine region text.

Backup file format: the original bytes of every region, each under its
own delimiter line in the scratch buffer grammar. A raw concatenation
would lose the region boundaries; with the delimiters,
:func:`~slice_sandbox.regions.grammar.split_buffer` returns each region's
original text byte for byte after a crash.
"""

from __future__ import annotations

import logging
import os
import time
from dataclasses import dataclass
from urllib.parse import quote

logger = logging.getLogger(__name__)

_MAX_NAME = 180
_SUFFIX = ".bak"


@dataclass(frozen=True)
class BackupHandle:
    session_id: str
    path: str


def backup_file_name(artifact_id: str, session_id: str, now: float | None = None) -> str:
    """Sanitized artifact path + creation timestamp (ms) + session id."""
    stamp = int((time.time() if now is None else now) * 1000)
    safe = quote(artifact_id, safe="")[:_MAX_NAME]
    return f"{safe}-{stamp}-{session_id}{_SUFFIX}"


class BackupStore:
    """One file per session under *backup_dir*."""

    def __init__(self, backup_dir: str) -> None:
        self._dir = os.path.abspath(backup_dir)

    @property
    def directory(self) -> str:
        return self._dir

    def snapshot(self, session_id: str, artifact_id: str, text: str) -> BackupHandle:
        """Write *text* durably; raises OSError if it cannot be written."""
        os.makedirs(self._dir, exist_ok=True)
        path = os.path.join(self._dir, backup_file_name(artifact_id, session_id))
        with open(path, "w", encoding="utf-8", errors="surrogateescape", newline="") as f:
            f.write(text)
            f.flush()
            os.fsync(f.fileno())
        logger.debug("[Backup] Wrote %s", path)
        return BackupHandle(session_id=session_id, path=path)

    def restore(self, handle: BackupHandle) -> str:
        with open(handle.path, "r", encoding="utf-8", errors="surrogateescape", newline="") as f:
            return f.read()

    def discard(self, handle: BackupHandle | None) -> None:
        """Delete the backup; storage errors are logged and ignored."""
        if handle is None:
            return
        try:
            os.unlink(handle.path)
            logger.debug("[Backup] Deleted %s", handle.path)
        except OSError as exc:
            logger.debug("[Backup] Could not delete %s: %s", handle.path, exc)

    def list_backups(self) -> list[str]:
        """Backup files currently on disk, oldest first."""
        if not os.path.isdir(self._dir):
            return []
        paths = [
            os.path.join(self._dir, name)
            for name in os.listdir(self._dir)
            if name.endswith(_SUFFIX)
        ]
        return sorted(paths, key=os.path.getmtime)
