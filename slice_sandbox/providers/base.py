"""
The symbol, reference and document providers the region engine consumes,
plus the small value types they exchange.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Protocol, Sequence, TYPE_CHECKING

if TYPE_CHECKING:
    from .documents import TextDocument


class SymbolKind(str, Enum):
    FUNCTION = "function"
    METHOD = "method"
    CLASS = "class"
    CONSTRUCTOR = "constructor"
    VARIABLE = "variable"
    OTHER = "other"


# Only these kinds are usable as region boundaries
CONTAINER_KINDS = frozenset({
    SymbolKind.FUNCTION,
    SymbolKind.METHOD,
    SymbolKind.CLASS,
    SymbolKind.CONSTRUCTOR,
})


@dataclass
class SymbolNode:
    """A named construct and its nested constructs (0-based, inclusive lines)."""
    name: str
    kind: SymbolKind
    start_line: int
    end_line: int
    children: list[SymbolNode] = field(default_factory=list)

    @property
    def is_container(self) -> bool:
        return self.kind in CONTAINER_KINDS

    def contains(self, line: int) -> bool:
        return self.start_line <= line <= self.end_line


@dataclass(frozen=True)
class Location:
    """A position inside an artifact, as returned by a reference provider."""
    artifact_id: str
    line: int
    column: int = 0
    is_definition: bool = False


@dataclass(frozen=True)
class TextRange:
    """A (line, column) span; end is exclusive on the column axis."""
    start_line: int
    start_col: int
    end_line: int
    end_col: int


@dataclass(frozen=True)
class TextEdit:
    range: TextRange
    new_text: str


class SymbolProvider(Protocol):
    async def query_symbols(self, artifact_id: str) -> list[SymbolNode]:
        """Return the top-level symbol tree of *artifact_id* (may be empty)."""
        ...


class ReferenceProvider(Protocol):
    async def resolve(self, artifact_id: str, line: int, column: int) -> list[Location]:
        """Return candidate locations for the construct under the cursor."""
        ...


class DocumentStore(Protocol):
    async def open(self, artifact_id: str) -> TextDocument:
        """Return the latest state of *artifact_id*."""
        ...

    async def apply_ranges(self, artifact_id: str, edits: Sequence[TextEdit]) -> bool:
        """Apply all *edits* atomically; ``False`` means nothing changed."""
        ...

    async def save(self, artifact_id: str) -> None:
        """Persist *artifact_id* to stable storage."""
        ...
