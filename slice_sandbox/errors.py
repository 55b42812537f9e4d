"""Error taxonomy for region sandboxes."""

from __future__ import annotations

from typing import Optional


class SandboxError(Exception):
    """Base class for every recoverable sandbox failure."""


class DelimiterMissingError(SandboxError):
    """The scratch buffer lost, duplicated, or renamed a region delimiter.

    Nothing is written back; the user has to restore the delimiter line.
    """

    def __init__(self, message: str, *, expected: Optional[list[str]] = None,
                 found: Optional[list[str]] = None) -> None:
        super().__init__(message)
        self.expected = expected or []
        self.found = found or []


class WriteBackFailedError(SandboxError):
    """The document store refused the composite edit; ranges are unchanged."""


class ArtifactSaveError(SandboxError):
    """The edit was applied but persisting the artifact failed.

    Region ranges already reflect the applied edit.
    """


class UnregisteredSessionError(SandboxError):
    """No sandbox session is registered for the given buffer or session id."""

    def __init__(self, key: str) -> None:
        super().__init__(f"no sandbox session registered for {key}")
        self.key = key


class SessionBusyError(SandboxError):
    """A write-back for this session is already in flight."""
