"""
Scratch buffer watcher — turns file-system edits to scratch buffers into
BufferChanged events on the asyncio event queue.

Uses watchdog to monitor the scratch directory. Events arrive on the
observer thread and are handed to the loop with ``call_soon_threadsafe``.
"""

from __future__ import annotations

import asyncio
import logging
import os
from typing import Optional

from watchdog.events import FileSystemEventHandler
from watchdog.observers import Observer

from .events import BufferChanged

logger = logging.getLogger(__name__)


class _ScratchEventHandler(FileSystemEventHandler):
    """Watchdog handler forwarding scratch file writes to the watcher."""

    def __init__(self, watcher: "ScratchBufferWatcher") -> None:
        self._watcher = watcher

    def on_modified(self, event):
        if not event.is_directory:
            self._watcher.post(event.src_path)

    def on_created(self, event):
        if not event.is_directory:
            self._watcher.post(event.src_path)

    def on_moved(self, event):
        # Editors that save via rename land here
        if not event.is_directory:
            self._watcher.post(event.dest_path)


class ScratchBufferWatcher:
    """
    Watch *scratch_dir* and post :class:`BufferChanged` events to *queue*.

    Unregistered files are posted too; the service ignores them.

    Usage::

        watcher = ScratchBufferWatcher(service.scratch_dir, loop, queue)
        watcher.start()
        ...
        watcher.stop()
    """

    def __init__(self, scratch_dir: str, loop: asyncio.AbstractEventLoop,
                 queue: "asyncio.Queue") -> None:
        self._dir = os.path.abspath(scratch_dir)
        self._loop = loop
        self._queue = queue
        self._observer: Optional[Observer] = None

    @property
    def is_running(self) -> bool:
        return self._observer is not None

    def post(self, path) -> None:
        buffer_id = os.path.abspath(os.fsdecode(path))
        if buffer_id.endswith(".slicebox_tmp"):
            return
        self._loop.call_soon_threadsafe(self._queue.put_nowait, BufferChanged(buffer_id))

    def start(self) -> None:
        if self._observer is not None:
            return
        os.makedirs(self._dir, exist_ok=True)
        observer = Observer()
        observer.schedule(_ScratchEventHandler(self), self._dir, recursive=False)
        observer.start()
        self._observer = observer
        logger.info("[Watcher] Watching %s", self._dir)

    def stop(self) -> None:
        if self._observer is None:
            return
        self._observer.stop()
        self._observer.join(timeout=5)
        self._observer = None
        logger.info("[Watcher] Stopped")
