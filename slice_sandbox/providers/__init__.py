"""External collaborators: documents, symbols and references."""

from .base import (
    CONTAINER_KINDS, DocumentStore, Location, ReferenceProvider,
    SymbolKind, SymbolNode, SymbolProvider, TextEdit, TextRange,
)
from .documents import FileDocumentStore, TextDocument
from .references import WordReferenceProvider, identifier_at
from .symbols import TreeSitterSymbolProvider, detect_language, parse_symbols

__all__ = [
    "CONTAINER_KINDS", "DocumentStore", "Location", "ReferenceProvider",
    "SymbolKind", "SymbolNode", "SymbolProvider", "TextEdit", "TextRange",
    "FileDocumentStore", "TextDocument",
    "WordReferenceProvider", "identifier_at",
    "TreeSitterSymbolProvider", "detect_language", "parse_symbols",
]
