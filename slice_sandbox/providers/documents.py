"""
Document store — line-addressable text snapshots and a file-backed store
that applies multi-range edits all-or-nothing and saves atomically.
"""

from __future__ import annotations

import asyncio
import logging
import os
import shutil
from bisect import bisect_right
from typing import Optional, Sequence

from .base import TextEdit, TextRange

logger = logging.getLogger(__name__)


class TextDocument:
    """Immutable text snapshot addressed by 0-based (line, column).

    Line terminators (``\\n`` or ``\\r\\n``) are not part of a line's text.
    An empty document has exactly one empty line.
    """

    __slots__ = ("text", "_line_starts")

    def __init__(self, text: str = "") -> None:
        self.text = text
        starts = [0]
        pos = text.find("\n")
        while pos != -1:
            starts.append(pos + 1)
            pos = text.find("\n", pos + 1)
        self._line_starts = starts

    @property
    def line_count(self) -> int:
        return len(self._line_starts)

    def _line_end(self, line: int) -> int:
        """Offset just past the last character of *line*, terminator excluded."""
        if line + 1 < len(self._line_starts):
            end = self._line_starts[line + 1] - 1
            if end > self._line_starts[line] and self.text[end - 1] == "\r":
                end -= 1
            return end
        return len(self.text)

    def line_text(self, line: int) -> str:
        if not 0 <= line < self.line_count:
            raise IndexError(f"line {line} out of range (0..{self.line_count - 1})")
        return self.text[self._line_starts[line]:self._line_end(line)]

    def line_at_offset(self, offset: int) -> int:
        return bisect_right(self._line_starts, offset) - 1

    def offset_of(self, line: int, col: int) -> int:
        if not 0 <= line < self.line_count:
            raise IndexError(f"line {line} out of range (0..{self.line_count - 1})")
        start = self._line_starts[line]
        if not 0 <= col <= self._line_end(line) - start:
            raise IndexError(f"column {col} out of range on line {line}")
        return start + col

    def full_line_range(self, start_line: int, end_line: int) -> TextRange:
        """Range covering whole lines ``start_line..end_line`` (no trailing terminator)."""
        return TextRange(start_line, 0, end_line, len(self.line_text(end_line)))

    def get_text(self, rng: TextRange) -> str:
        return self.text[self.offset_of(rng.start_line, rng.start_col):
                         self.offset_of(rng.end_line, rng.end_col)]

    def with_edits(self, edits: Sequence[TextEdit]) -> TextDocument:
        """Return a new document with every edit applied.

        Raises ValueError when a range is out of bounds, inverted, or
        overlaps another edit; in that case no edit is applied.
        """
        spans: list[tuple[int, int, str]] = []
        for edit in edits:
            try:
                start = self.offset_of(edit.range.start_line, edit.range.start_col)
                end = self.offset_of(edit.range.end_line, edit.range.end_col)
            except IndexError as exc:
                raise ValueError(f"edit range {edit.range} invalid: {exc}") from exc
            if end < start:
                raise ValueError(f"edit range {edit.range} is inverted")
            spans.append((start, end, edit.new_text))

        spans.sort(key=lambda s: (s[0], s[1]))
        for (_, prev_end, _), (next_start, _, _) in zip(spans, spans[1:]):
            if next_start < prev_end:
                raise ValueError("overlapping edit ranges")

        parts: list[str] = []
        cursor = 0
        for start, end, new_text in spans:
            parts.append(self.text[cursor:start])
            parts.append(new_text)
            cursor = end
        parts.append(self.text[cursor:])
        return TextDocument("".join(parts))


class FileDocumentStore:
    """Document store backed by files on disk.

    Open documents are cached in memory keyed by absolute path; edits land
    in the cache and only reach disk on :meth:`save`. A clean cached copy
    is re-read whenever the file's modification time or size no longer
    match what was last read or written, so outside edits are never
    overwritten by a stale snapshot.
    """

    def __init__(self) -> None:
        self._documents: dict[str, TextDocument] = {}
        self._stamps: dict[str, Optional[tuple[int, int]]] = {}
        self._dirty: set[str] = set()

    @staticmethod
    def artifact_id(path: str) -> str:
        return os.path.abspath(path)

    async def open(self, artifact_id: str) -> TextDocument:
        doc = self._documents.get(artifact_id)
        # Unsaved edits win over the disk until save()
        if doc is not None and artifact_id in self._dirty:
            return doc
        if doc is not None:
            stamp = await asyncio.to_thread(_file_stamp, artifact_id)
            if stamp is not None and stamp == self._stamps.get(artifact_id):
                return doc
            logger.debug("[Documents] %s changed on disk, re-reading", artifact_id)

        stamp, text = await asyncio.to_thread(_read_stamped, artifact_id)
        doc = TextDocument(text)
        self._documents[artifact_id] = doc
        self._stamps[artifact_id] = stamp
        return doc

    async def read(self, artifact_id: str) -> str:
        return (await self.open(artifact_id)).text

    async def apply_ranges(self, artifact_id: str, edits: Sequence[TextEdit]) -> bool:
        doc = await self.open(artifact_id)
        try:
            updated = doc.with_edits(edits)
        except ValueError as exc:
            logger.warning("[Documents] Rejected edit for %s: %s", artifact_id, exc)
            return False
        self._documents[artifact_id] = updated
        self._dirty.add(artifact_id)
        return True

    async def save(self, artifact_id: str) -> None:
        doc = self._documents.get(artifact_id)
        if doc is None:
            return
        await asyncio.to_thread(_safe_write, artifact_id, doc.text)
        self._stamps[artifact_id] = await asyncio.to_thread(_file_stamp, artifact_id)
        self._dirty.discard(artifact_id)
        logger.debug("[Documents] Saved %s", artifact_id)

    def is_dirty(self, artifact_id: str) -> bool:
        return artifact_id in self._dirty

    def forget(self, artifact_id: str) -> None:
        """Drop the cached copy so the next open re-reads the file."""
        self._documents.pop(artifact_id, None)
        self._stamps.pop(artifact_id, None)
        self._dirty.discard(artifact_id)


def _file_stamp(path: str) -> Optional[tuple[int, int]]:
    try:
        st = os.stat(path)
    except OSError:
        return None
    return st.st_mtime_ns, st.st_size


def _read_stamped(path: str) -> tuple[Optional[tuple[int, int]], str]:
    # Stamp first: a write racing the read leaves a stamp that no longer matches
    stamp = _file_stamp(path)
    return stamp, read_text(path)


def read_text(path: str) -> str:
    with open(path, "r", encoding="utf-8", errors="surrogateescape", newline="") as f:
        return f.read()


def _safe_write(file_path: str, content: str) -> None:
    """Write content to file atomically via temp file + rename."""
    abs_path = os.path.abspath(file_path)
    tmp_path = abs_path + ".slicebox_tmp"

    try:
        with open(tmp_path, "w", encoding="utf-8", errors="surrogateescape", newline="") as f:
            f.write(content)

        # On Windows, os.rename fails if destination exists
        if os.path.exists(abs_path):
            shutil.move(tmp_path, abs_path)
        else:
            os.rename(tmp_path, abs_path)
    except Exception:
        try:
            os.unlink(tmp_path)
        except OSError:
            pass
        raise
