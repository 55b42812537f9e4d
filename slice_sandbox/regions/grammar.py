"""
Scratch buffer grammar — how a RegionSet is laid out as editable text.

    <<<SLICEBOX region_0>>>
    <region 0 code>

    <<<SLICEBOX region_1>>>
    <region 1 code>

Each delimiter sits on its own line; each code block is followed by exactly
one blank line, which parsing strips back off.
"""

from __future__ import annotations

import logging
import re
from typing import Iterable, Sequence

from ..errors import DelimiterMissingError

logger = logging.getLogger(__name__)

DELIMITER_TOKEN = "<<<SLICEBOX"

_DELIMITER_RE = re.compile(
    r"^" + re.escape(DELIMITER_TOKEN) + r" (\S+?)>>>[ \t]*(?:\r?\n|\Z)",
    re.MULTILINE,
)


def delimiter_line(region_id: str) -> str:
    return f"{DELIMITER_TOKEN} {region_id}>>>"


def render_buffer(blocks: Iterable[tuple[str, str]]) -> str:
    """Render ``(region_id, code)`` pairs as scratch buffer text."""
    return "".join(f"{delimiter_line(rid)}\n{code}\n\n" for rid, code in blocks)


def _strip_separator(code: str) -> str:
    """Remove the one trailing blank line the renderer added, nothing more."""
    for suffix in ("\r\n\r\n", "\n\n", "\r\n", "\n"):
        if code.endswith(suffix):
            return code[: -len(suffix)]
    return code


def split_buffer(text: str) -> list[tuple[str, str]]:
    """Split buffer text into ``(region_id, code)`` pairs in buffer order."""
    parts = _DELIMITER_RE.split(text)
    preamble, rest = parts[0], parts[1:]
    if preamble.strip():
        logger.debug("[Grammar] Ignoring %d chars before the first delimiter", len(preamble))
    return [
        (rest[i], _strip_separator(rest[i + 1]))
        for i in range(0, len(rest), 2)
    ]


def parse_buffer(text: str, expected_ids: Sequence[str]) -> dict[str, str]:
    """Parse buffer text back into per-region code.

    Raises DelimiterMissingError unless the buffer holds exactly one
    delimiter for every id in *expected_ids* and no others.
    """
    pairs = split_buffer(text)
    found = [rid for rid, _ in pairs]

    if len(found) != len(expected_ids):
        raise DelimiterMissingError(
            f"expected {len(expected_ids)} region delimiter(s), found {len(found)}",
            expected=list(expected_ids),
            found=found,
        )
    duplicates = sorted({rid for rid in found if found.count(rid) > 1})
    unknown = sorted(set(found) - set(expected_ids))
    if duplicates or unknown:
        raise DelimiterMissingError(
            "region delimiters do not match the session "
            f"(duplicate: {duplicates or '-'}, unknown: {unknown or '-'})",
            expected=list(expected_ids),
            found=found,
        )
    return dict(pairs)
