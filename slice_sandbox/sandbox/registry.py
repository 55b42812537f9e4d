"""Maps scratch buffers (and session ids) to open sandbox sessions."""

from __future__ import annotations

import logging
from typing import Iterator, Optional

from ..errors import UnregisteredSessionError
from .session import SandboxSession

logger = logging.getLogger(__name__)


class SessionRegistry:
    """Process-wide table of open sandbox sessions.

    Owned by whoever builds the :class:`SandboxService` and injected into
    it; :meth:`clear` is called on shutdown.
    """

    def __init__(self) -> None:
        self._by_buffer: dict[str, SandboxSession] = {}
        self._buffer_by_session: dict[str, str] = {}

    def register(self, session: SandboxSession) -> None:
        if session.buffer_id in self._by_buffer:
            raise ValueError(f"buffer {session.buffer_id} already has a session")
        self._by_buffer[session.buffer_id] = session
        self._buffer_by_session[session.session_id] = session.buffer_id
        logger.debug("[Sandbox] Registered %s for %s", session.session_id, session.buffer_id)

    def find(self, key: str) -> Optional[SandboxSession]:
        """Look up by buffer id first, then by session id."""
        session = self._by_buffer.get(key)
        if session is None and key in self._buffer_by_session:
            session = self._by_buffer.get(self._buffer_by_session[key])
        return session

    def get(self, key: str) -> SandboxSession:
        session = self.find(key)
        if session is None:
            raise UnregisteredSessionError(key)
        return session

    def remove(self, key: str) -> Optional[SandboxSession]:
        session = self.find(key)
        if session is None:
            return None
        del self._by_buffer[session.buffer_id]
        self._buffer_by_session.pop(session.session_id, None)
        logger.debug("[Sandbox] Unregistered %s", session.session_id)
        return session

    def clear(self) -> None:
        for session in self._by_buffer.values():
            if session.scheduler is not None:
                session.scheduler.cancel()
        self._by_buffer.clear()
        self._buffer_by_session.clear()

    def sessions(self) -> list[SandboxSession]:
        return list(self._by_buffer.values())

    def __contains__(self, key: str) -> bool:
        return self.find(key) is not None

    def __len__(self) -> int:
        return len(self._by_buffer)

    def __iter__(self) -> Iterator[SandboxSession]:
        return iter(self.sessions())
