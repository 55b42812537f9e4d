"""
Tree-sitter symbol provider — builds a tree of named constructs
(functions, methods, constructors, classes) for an artifact.

Supports: Python, JavaScript, TypeScript, Java, C, C++, Go, Rust, Ruby, PHP, C#

Uses tree-sitter >= 0.22 API with individual language packages.
"""

from __future__ import annotations

import asyncio
import logging
import os
from typing import Optional

from .base import DocumentStore, SymbolKind, SymbolNode

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Language mapping
# ---------------------------------------------------------------------------

EXTENSION_TO_LANGUAGE: dict[str, str] = {
    ".py": "python",
    ".js": "javascript",
    ".mjs": "javascript",
    ".cjs": "javascript",
    ".jsx": "javascript",
    ".ts": "typescript",
    ".tsx": "typescript",
    ".java": "java",
    ".c": "c",
    ".h": "c",
    ".cpp": "cpp",
    ".cc": "cpp",
    ".cxx": "cpp",
    ".hpp": "cpp",
    ".hxx": "cpp",
    ".go": "go",
    ".rs": "rust",
    ".rb": "ruby",
    ".php": "php",
    ".cs": "c_sharp",
}


def detect_language(file_path: str) -> Optional[str]:
    """Return the tree-sitter language name for *file_path*, or None if unsupported."""
    ext = os.path.splitext(file_path)[1].lower()
    return EXTENSION_TO_LANGUAGE.get(ext)


# ---------------------------------------------------------------------------
# Language → (tree-sitter Language object) lookup
# ---------------------------------------------------------------------------

def _get_lang_func(language: str):
    """Return the tree-sitter language() function for *language*, or None."""
    try:
        if language == "python":
            import tree_sitter_python as m  # type: ignore
            return m.language
        elif language == "javascript":
            import tree_sitter_javascript as m  # type: ignore
            return m.language
        elif language == "typescript":
            import tree_sitter_typescript as m  # type: ignore
            return m.language_typescript
        elif language == "java":
            import tree_sitter_java as m  # type: ignore
            return m.language
        elif language == "c":
            import tree_sitter_c as m  # type: ignore
            return m.language
        elif language == "cpp":
            import tree_sitter_cpp as m  # type: ignore
            return m.language
        elif language == "go":
            import tree_sitter_go as m  # type: ignore
            return m.language
        elif language == "rust":
            import tree_sitter_rust as m  # type: ignore
            return m.language
        elif language == "ruby":
            import tree_sitter_ruby as m  # type: ignore
            return m.language
        elif language == "php":
            import tree_sitter_php as m  # type: ignore
            return m.language_php
        elif language == "c_sharp":
            import tree_sitter_c_sharp as m  # type: ignore
            return m.language
    except ImportError:
        logger.debug("No tree-sitter grammar installed for %s", language)
    return None


# Cache parsers to avoid repeated construction
_PARSER_CACHE: dict[str, object] = {}


def _get_ts_parser(language: str):
    """Return a tree-sitter Parser configured for *language*, or None."""
    if language in _PARSER_CACHE:
        return _PARSER_CACHE[language]
    import tree_sitter as ts

    func = _get_lang_func(language)
    if func is None:
        return None
    try:
        parser = ts.Parser(ts.Language(func()))
    except (TypeError, ValueError) as exc:
        logger.warning("Cannot create tree-sitter parser for %s: %s", language, exc)
        return None
    _PARSER_CACHE[language] = parser
    return parser


# ---------------------------------------------------------------------------
# Node type → symbol kind, per language
# ---------------------------------------------------------------------------

_JS_KINDS = {
    "function_declaration": SymbolKind.FUNCTION,
    "generator_function_declaration": SymbolKind.FUNCTION,
    "method_definition": SymbolKind.METHOD,
    "class_declaration": SymbolKind.CLASS,
}

_NODE_KINDS: dict[str, dict[str, SymbolKind]] = {
    "python": {
        "function_definition": SymbolKind.FUNCTION,
        "class_definition": SymbolKind.CLASS,
    },
    "javascript": dict(_JS_KINDS),
    "typescript": {
        **_JS_KINDS,
        "abstract_class_declaration": SymbolKind.CLASS,
        "interface_declaration": SymbolKind.CLASS,
    },
    "java": {
        "method_declaration": SymbolKind.METHOD,
        "constructor_declaration": SymbolKind.CONSTRUCTOR,
        "class_declaration": SymbolKind.CLASS,
        "interface_declaration": SymbolKind.CLASS,
        "enum_declaration": SymbolKind.CLASS,
        "record_declaration": SymbolKind.CLASS,
    },
    "c": {
        "function_definition": SymbolKind.FUNCTION,
        "struct_specifier": SymbolKind.CLASS,
    },
    "cpp": {
        "function_definition": SymbolKind.FUNCTION,
        "class_specifier": SymbolKind.CLASS,
        "struct_specifier": SymbolKind.CLASS,
    },
    "go": {
        "function_declaration": SymbolKind.FUNCTION,
        "method_declaration": SymbolKind.METHOD,
        "type_spec": SymbolKind.CLASS,
    },
    "rust": {
        "function_item": SymbolKind.FUNCTION,
        "struct_item": SymbolKind.CLASS,
        "enum_item": SymbolKind.CLASS,
        "trait_item": SymbolKind.CLASS,
        "impl_item": SymbolKind.CLASS,
    },
    "ruby": {
        "method": SymbolKind.FUNCTION,
        "singleton_method": SymbolKind.METHOD,
        "class": SymbolKind.CLASS,
        "module": SymbolKind.CLASS,
    },
    "php": {
        "function_definition": SymbolKind.FUNCTION,
        "method_declaration": SymbolKind.METHOD,
        "class_declaration": SymbolKind.CLASS,
        "interface_declaration": SymbolKind.CLASS,
        "trait_declaration": SymbolKind.CLASS,
    },
    "c_sharp": {
        "method_declaration": SymbolKind.METHOD,
        "constructor_declaration": SymbolKind.CONSTRUCTOR,
        "class_declaration": SymbolKind.CLASS,
        "interface_declaration": SymbolKind.CLASS,
        "struct_declaration": SymbolKind.CLASS,
        "record_declaration": SymbolKind.CLASS,
    },
}

_CONSTRUCTOR_NAMES = {"__init__", "constructor", "__construct", "initialize"}

# JS/TS `const f = () => ...` style bindings
_FUNCTION_VALUES = {"arrow_function", "function_expression", "function", "generator_function"}


# ---------------------------------------------------------------------------
# Tree walking
# ---------------------------------------------------------------------------

def _text(node) -> str:
    if node is None or node.text is None:
        return ""
    return node.text.decode("utf-8", errors="replace")


def _node_name(node) -> str:
    """Best-effort name of a definition node."""
    name = node.child_by_field_name("name")
    if name is not None:
        return _text(name)
    # impl blocks are named after their type
    impl_type = node.child_by_field_name("type")
    if node.type == "impl_item" and impl_type is not None:
        return _text(impl_type)
    # C/C++ function names hide inside nested declarators
    declarator = node.child_by_field_name("declarator")
    while declarator is not None:
        if declarator.type in ("identifier", "field_identifier", "qualified_identifier",
                               "destructor_name", "operator_name"):
            return _text(declarator)
        declarator = declarator.child_by_field_name("declarator")
    return ""


def _lines(outer, inner=None) -> tuple[int, int]:
    """0-based inclusive line span of *outer* (ending where *inner* ends)."""
    last = inner if inner is not None else outer
    start = outer.start_point[0]
    end_row, end_col = last.end_point[0], last.end_point[1]
    if end_col == 0 and end_row > start:
        end_row -= 1
    return start, end_row


def _classify(node, kinds: dict[str, SymbolKind], language: str):
    """Return (kind, definition_node) for *node*, or (None, None)."""
    if language == "python" and node.type == "decorated_definition":
        definition = node.child_by_field_name("definition")
        if definition is not None and definition.type in kinds:
            return kinds[definition.type], definition
        return None, None

    if node.type == "variable_declarator" and language in ("javascript", "typescript"):
        value = node.child_by_field_name("value")
        if value is not None and value.type in _FUNCTION_VALUES:
            return SymbolKind.FUNCTION, node
        return None, None

    if node.type == "type_spec":
        type_node = node.child_by_field_name("type")
        if type_node is None or type_node.type not in ("struct_type", "interface_type"):
            return None, None
        return SymbolKind.CLASS, node

    if node.type in ("struct_specifier", "class_specifier"):
        if node.child_by_field_name("body") is None:
            return None, None

    kind = kinds.get(node.type)
    if kind is None:
        return None, None
    return kind, node


def _collect(node, language: str, kinds: dict[str, SymbolKind],
             parent_kind: Optional[SymbolKind]) -> list[SymbolNode]:
    symbols: list[SymbolNode] = []
    for child in node.children:
        kind, definition = _classify(child, kinds, language)
        if kind is None:
            symbols.extend(_collect(child, language, kinds, parent_kind))
            continue

        name = _node_name(definition)
        if parent_kind is SymbolKind.CLASS and kind in (SymbolKind.FUNCTION, SymbolKind.METHOD):
            kind = SymbolKind.CONSTRUCTOR if name in _CONSTRUCTOR_NAMES else SymbolKind.METHOD
        elif kind is SymbolKind.METHOD and name in _CONSTRUCTOR_NAMES:
            kind = SymbolKind.CONSTRUCTOR

        start, end = _lines(child, definition)
        symbols.append(SymbolNode(
            name=name,
            kind=kind,
            start_line=start,
            end_line=end,
            children=_collect(definition, language, kinds, kind),
        ))
    return symbols


def parse_symbols(source: bytes, language: str) -> list[SymbolNode]:
    """Return the symbol tree for *source* written in *language*."""
    kinds = _NODE_KINDS.get(language)
    parser = _get_ts_parser(language) if kinds else None
    if parser is None:
        return []
    tree = parser.parse(source)
    return _collect(tree.root_node, language, kinds, None)


class TreeSitterSymbolProvider:
    """Symbol provider backed by tree-sitter grammars.

    Parameters
    ----------
    documents:
        Optional document store. When given, symbols are computed from the
        store's latest (possibly unsaved) text instead of the file on disk.
    """

    def __init__(self, documents: Optional[DocumentStore] = None) -> None:
        self._documents = documents

    async def query_symbols(self, artifact_id: str) -> list[SymbolNode]:
        language = detect_language(artifact_id)
        if language is None:
            logger.debug("[Symbols] Unsupported file type: %s", artifact_id)
            return []

        if self._documents is not None:
            text = (await self._documents.open(artifact_id)).text
            source = text.encode("utf-8", errors="surrogateescape")
        else:
            source = await asyncio.to_thread(_read_bytes, artifact_id)

        symbols = parse_symbols(source, language)
        logger.debug("[Symbols] %d top-level symbols in %s", len(symbols), artifact_id)
        return symbols


def _read_bytes(path: str) -> bytes:
    with open(path, "rb") as f:
        return f.read()
