"""
Region extractor — turns candidate lines into a RegionSet aligned to
enclosing functions/classes, and renders it as scratch buffer text.
"""

from __future__ import annotations

import logging
from typing import Iterable, Optional, Sequence

from ..providers.base import DocumentStore, SymbolNode, SymbolProvider
from .grammar import render_buffer
from .models import LineRange, Region, RegionSet

logger = logging.getLogger(__name__)

DEFAULT_FALLBACK_MARGIN = 7
DEFAULT_MERGE_GAP = 2


def find_innermost_container(symbols: Sequence[SymbolNode], line: int) -> Optional[SymbolNode]:
    """Return the deepest container-kind symbol whose range holds *line*.

    Non-container symbols are searched through but never returned.
    """
    for symbol in symbols:
        if not symbol.contains(line):
            continue
        deeper = find_innermost_container(symbol.children, line)
        if deeper is not None:
            return deeper
        if symbol.is_container:
            return symbol
    return None


def merge_ranges(ranges: Iterable[LineRange], gap: int = DEFAULT_MERGE_GAP) -> list[LineRange]:
    """Sort *ranges* and merge any that overlap or sit within *gap* lines."""
    ordered = sorted(ranges, key=lambda r: (r.start_line, r.end_line))
    merged: list[LineRange] = []
    for rng in ordered:
        if merged and rng.start_line <= merged[-1].end_line + gap:
            prev = merged[-1]
            merged[-1] = LineRange(prev.start_line, max(prev.end_line, rng.end_line))
        else:
            merged.append(rng)
    return merged


def _clamp(value: int, low: int, high: int) -> int:
    return max(low, min(value, high))


class RegionExtractor:
    """Build a RegionSet and its buffer text from candidate lines.

    Parameters
    ----------
    documents:
        Store the artifact text is read from.
    symbols:
        Optional symbol provider used to snap candidates to enclosing
        functions/classes. Without one every candidate gets the fallback window.
    fallback_margin:
        Lines taken on each side of a candidate that has no enclosing container.
    merge_gap:
        Ranges separated by at most this many lines are merged into one region.
    """

    def __init__(
        self,
        documents: DocumentStore,
        symbols: Optional[SymbolProvider] = None,
        fallback_margin: int = DEFAULT_FALLBACK_MARGIN,
        merge_gap: int = DEFAULT_MERGE_GAP,
    ) -> None:
        self._documents = documents
        self._symbols = symbols
        self._margin = fallback_margin
        self._gap = merge_gap

    async def extract(
        self, artifact_id: str, candidate_lines: Sequence[int]
    ) -> tuple[RegionSet, str]:
        """Slice *artifact_id* around *candidate_lines* (0-based).

        Returns the RegionSet and the rendered scratch buffer text. An empty
        candidate list yields an empty RegionSet and an empty buffer.
        """
        if not candidate_lines:
            return RegionSet(artifact_id), ""

        doc = await self._documents.open(artifact_id)
        last = max(doc.line_count - 1, 0)
        tree = await self._query_symbols(artifact_id)

        ranges: list[LineRange] = []
        for line in candidate_lines:
            line = _clamp(line, 0, last)
            symbol = find_innermost_container(tree, line)
            if symbol is not None:
                start, end = symbol.start_line, symbol.end_line
                logger.debug("[Extract] line %d -> %s %s [%d,%d]",
                             line, symbol.kind.value, symbol.name, start, end)
            else:
                start, end = line - self._margin, line + self._margin
                logger.debug("[Extract] line %d -> fallback window [%d,%d]", line, start, end)
            start = _clamp(start, 0, last)
            ranges.append(LineRange(start, _clamp(end, start, last)))

        regions: list[Region] = []
        for index, rng in enumerate(merge_ranges(ranges, self._gap)):
            text = doc.get_text(doc.full_line_range(rng.start_line, rng.end_line))
            regions.append(Region(f"region_{index}", rng, text))

        region_set = RegionSet(artifact_id, regions)
        logger.info("[Extract] %d candidate line(s) -> %d region(s) in %s",
                    len(candidate_lines), len(region_set), artifact_id)
        return region_set, render_buffer(region_set.backup_blocks())

    async def _query_symbols(self, artifact_id: str) -> list[SymbolNode]:
        if self._symbols is None:
            return []
        try:
            return await self._symbols.query_symbols(artifact_id)
        except (OSError, ValueError) as exc:
            logger.warning("[Extract] Symbol lookup failed for %s: %s", artifact_id, exc)
            return []
