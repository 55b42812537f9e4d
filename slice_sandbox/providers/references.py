"""
Resolves the identifier under the cursor to its occurrences
(definitions first) in the artifact and any extra files.
"""

from __future__ import annotations

import logging
import os
import re
from typing import Iterable, Optional

from .base import DocumentStore, Location

logger = logging.getLogger(__name__)

_IDENTIFIER = re.compile(r"[A-Za-z_$][\w$]*")

# Declaration keywords that mark a line as defining the identifier that follows
_DEFINITION_PREFIX = (
    r"\b(?:def|class|function|func|fn|struct|interface|type|trait|enum|module)\s+"
    r"(?:\([^)]*\)\s*)?"   # Go method receivers
)


def identifier_at(line_text: str, column: int) -> Optional[str]:
    """Return the identifier covering *column* on *line_text*, if any."""
    for m in _IDENTIFIER.finditer(line_text):
        if m.start() <= column <= m.end() and not m.group(0)[0].isdigit():
            return m.group(0)
    return None


class WordReferenceProvider:
    """Textual reference lookup; no language understanding involved.

    Parameters
    ----------
    documents:
        Store used to read the artifact and every extra file.
    extra_files:
        Additional artifact ids searched after the origin artifact.
    """

    def __init__(self, documents: DocumentStore, extra_files: Iterable[str] = ()) -> None:
        self._documents = documents
        self._extra_files = [os.path.abspath(p) for p in extra_files]

    async def resolve(self, artifact_id: str, line: int, column: int) -> list[Location]:
        doc = await self._documents.open(artifact_id)
        if not 0 <= line < doc.line_count:
            return []
        name = identifier_at(doc.line_text(line), column)
        if name is None:
            return []

        word = re.compile(r"(?<![\w$])" + re.escape(name) + r"(?![\w$])")
        definition = re.compile(_DEFINITION_PREFIX + re.escape(name) + r"(?![\w$])")

        found: list[Location] = []
        seen: set[tuple[str, int, int]] = set()
        targets = [artifact_id] + [p for p in self._extra_files if p != artifact_id]
        for target in targets:
            try:
                target_doc = await self._documents.open(target)
            except OSError as exc:
                logger.warning("[Refs] Cannot read %s: %s", target, exc)
                continue
            for i in range(target_doc.line_count):
                text = target_doc.line_text(i)
                # Only the name right after a declaration keyword is the definition
                def_starts = {d.end() - len(name) for d in definition.finditer(text)}
                for m in word.finditer(text):
                    key = (target, i, m.start())
                    if key in seen:
                        continue
                    seen.add(key)
                    found.append(Location(target, i, m.start(),
                                          is_definition=m.start() in def_starts))

        # Definitions first, then document order
        found.sort(key=lambda loc: (not loc.is_definition,))
        logger.debug("[Refs] %d occurrence(s) of %r", len(found), name)
        return found
