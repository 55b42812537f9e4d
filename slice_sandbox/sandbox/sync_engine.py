"""
Sync engine — writes scratch buffer edits back to the artifact and keeps
every region addressable afterwards.

One composite edit per sync: all regions are replaced together or not at
all. After a successful edit the shift calculus walks the regions in
ascending order with a single running offset, so a region that grew or
shrank moves every region below it.
"""

from __future__ import annotations

import logging
from typing import Mapping, Sequence

from ..errors import ArtifactSaveError, WriteBackFailedError
from ..providers.base import DocumentStore, TextEdit
from ..regions.grammar import parse_buffer
from ..regions.models import LineRange, RegionSet

logger = logging.getLogger(__name__)


def count_lines(code: str) -> int:
    """Number of lines *code* occupies once written (``""`` is one empty line)."""
    return code.count("\n") + 1


def shift_regions(regions: RegionSet, spans: Sequence[LineRange], codes: Sequence[str]) -> None:
    """Move every region to where its new code now sits.

    *spans* are the pre-edit ranges that were replaced, *codes* the text
    written into them, both in region order.
    """
    shift = 0
    for region, span, code in zip(regions, spans, codes):
        new_count = count_lines(code)
        start = span.start_line + shift
        region.move_to(start, start + new_count - 1)
        shift += new_count - span.line_count
    regions.check_order()


class SyncEngine:
    """Parse scratch buffers and apply them to the origin artifact."""

    def __init__(self, documents: DocumentStore) -> None:
        self._documents = documents

    def parse(self, buffer_text: str, regions: RegionSet) -> dict[str, str]:
        """Per-region code from *buffer_text*; raises DelimiterMissingError."""
        return parse_buffer(buffer_text, regions.ids)

    async def sync(self, regions: RegionSet, buffer_text: str) -> RegionSet:
        """Parse *buffer_text* and write it back. Nothing is written on a parse error."""
        return await self.apply(regions, self.parse(buffer_text, regions))

    async def apply(self, regions: RegionSet, parsed: Mapping[str, str]) -> RegionSet:
        """Write *parsed* code over each region's current range, then reshift.

        Raises WriteBackFailedError (ranges untouched) when the document
        store rejects the edit, ArtifactSaveError when saving fails after
        the edit went through.
        """
        codes = [parsed[region.region_id] for region in regions]
        await self._write(regions, codes, label="sync")
        return regions

    async def revert(self, regions: RegionSet) -> None:
        """Put every region's original text back over its current range."""
        await self._write(regions, [r.backup_text for r in regions], label="revert")

    async def _write(self, regions: RegionSet, codes: list[str], *, label: str) -> None:
        artifact_id = regions.artifact_id
        doc = await self._documents.open(artifact_id)
        last = doc.line_count - 1

        spans: list[LineRange] = []
        edits: list[TextEdit] = []
        for region, code in zip(regions, codes):
            if region.start_line > last:
                raise WriteBackFailedError(
                    f"{region.region_id} starts at line {region.start_line} but "
                    f"{artifact_id} now has {doc.line_count} line(s)"
                )
            span = LineRange(region.start_line, min(region.end_line, last))
            spans.append(span)
            edits.append(TextEdit(doc.full_line_range(span.start_line, span.end_line), code))

        if not edits:
            return

        applied = await self._documents.apply_ranges(artifact_id, edits)
        if not applied:
            raise WriteBackFailedError(
                f"document store rejected the {label} edit for {artifact_id}"
            )

        before = regions.ranges()
        shift_regions(regions, spans, codes)
        logger.info("[Sync] %s %d region(s) in %s: %s -> %s", label, len(spans),
                    artifact_id, _fmt(before), _fmt(regions.ranges()))

        try:
            await self._documents.save(artifact_id)
        except OSError as exc:
            raise ArtifactSaveError(f"could not save {artifact_id}: {exc}") from exc


def _fmt(ranges: Sequence[LineRange]) -> str:
    return " ".join(f"[{r.start_line},{r.end_line}]" for r in ranges)
