"""Region model, scratch buffer grammar and extraction."""

from .models import LineRange, Region, RegionSet
from .grammar import DELIMITER_TOKEN, delimiter_line, parse_buffer, render_buffer, split_buffer
from .extractor import RegionExtractor, find_innermost_container, merge_ranges

__all__ = [
    "LineRange", "Region", "RegionSet",
    "DELIMITER_TOKEN", "delimiter_line", "parse_buffer", "render_buffer", "split_buffer",
    "RegionExtractor", "find_innermost_container", "merge_ranges",
]
