"""
Filter mini-language parsing.
"""

from .parser import (
    FilterSpecParser,
    ParseResult,
    parse_filter_spec,
    coerce_value,
    split_top_level,
    MAX_RANDOM_EFFECTS,
)
from .options import (
    GRID_OPTION_KEYS,
    parse_time_value,
    parse_clip_options,
    parse_grid_options,
)

__all__ = [
    "FilterSpecParser",
    "ParseResult",
    "parse_filter_spec",
    "coerce_value",
    "split_top_level",
    "MAX_RANDOM_EFFECTS",
    "GRID_OPTION_KEYS",
    "parse_time_value",
    "parse_clip_options",
    "parse_grid_options",
]
