"""Line ranges sliced from one artifact."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterator, Optional


@dataclass(frozen=True)
class LineRange:
    """Inclusive, 0-based span of lines."""
    start_line: int
    end_line: int

    @property
    def line_count(self) -> int:
        return self.end_line - self.start_line + 1


@dataclass
class Region:
    """One slice of an artifact embedded in a scratch buffer.

    ``current_range`` tracks the region's position in the artifact as it is
    *now*; only the shift calculus moves it. ``backup_text`` is the region's
    text at extraction time and never changes.
    """
    region_id: str
    current_range: LineRange
    _backup_text: str = field(repr=False)

    @property
    def backup_text(self) -> str:
        return self._backup_text

    @property
    def start_line(self) -> int:
        return self.current_range.start_line

    @property
    def end_line(self) -> int:
        return self.current_range.end_line

    def move_to(self, start_line: int, end_line: int) -> None:
        self.current_range = LineRange(start_line, end_line)


class RegionSet:
    """Ordered, non-overlapping regions sliced from one artifact."""

    def __init__(self, artifact_id: str, regions: Optional[list[Region]] = None) -> None:
        self.artifact_id = artifact_id
        self._regions: list[Region] = list(regions or [])
        ids = [r.region_id for r in self._regions]
        if len(set(ids)) != len(ids):
            raise ValueError(f"duplicate region ids in {ids}")
        self.check_order()

    def check_order(self) -> None:
        """Raise ValueError unless regions ascend without overlapping."""
        for prev, nxt in zip(self._regions, self._regions[1:]):
            if nxt.start_line <= prev.end_line:
                raise ValueError(
                    f"{nxt.region_id} {nxt.current_range} overlaps or precedes "
                    f"{prev.region_id} {prev.current_range}"
                )

    def __iter__(self) -> Iterator[Region]:
        return iter(self._regions)

    def __len__(self) -> int:
        return len(self._regions)

    def __bool__(self) -> bool:
        return bool(self._regions)

    def __getitem__(self, index: int) -> Region:
        return self._regions[index]

    @property
    def ids(self) -> list[str]:
        return [r.region_id for r in self._regions]

    def get(self, region_id: str) -> Region:
        for region in self._regions:
            if region.region_id == region_id:
                return region
        raise KeyError(region_id)

    def ranges(self) -> list[LineRange]:
        return [r.current_range for r in self._regions]

    def backup_blocks(self) -> list[tuple[str, str]]:
        return [(r.region_id, r.backup_text) for r in self._regions]

    def __repr__(self) -> str:
        spans = ", ".join(
            f"{r.region_id}=[{r.start_line},{r.end_line}]" for r in self._regions
        )
        return f"RegionSet({self.artifact_id!r}, {spans})"
