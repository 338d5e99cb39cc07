"""
Parser for the filter mini-language.

    {bass=10,treble=5}     key=value pairs, applied in order
    {chipmunk+reverb}      '+'-stacked names
    {chipmunk,reverb}      ','-stacked names
    {random} {random=3}    1-5 random effects, combinable with literals
    {noise=mix(a,b),bass=4} parentheses suspend comma splitting
    {negate}               anything else without '=' or '+' is a raw graph
"""

import logging
import random
import re
from dataclasses import dataclass, field
from typing import FrozenSet, Iterable, List, Optional, Tuple

from ..effects import EffectRegistry, build_default_registry
from ..errors import InvalidFilterSyntax, UnknownEffect
from ..models import ClipWindow, EffectInvocation, EffectValue, FilterSpec

logger = logging.getLogger(__name__)

MAX_RANDOM_EFFECTS = 5

_RANDOM_TOKEN = re.compile(r"^random(?:=(.*))?$")
_NUMBER = re.compile(r"^[+-]?(\d+(\.\d*)?|\.\d+)$")

Token = Tuple[str, Optional[EffectValue]]


@dataclass
class ParseResult:
    """A usable spec plus one UnknownEffect per name the registry rejected."""
    spec: FilterSpec
    warnings: List[UnknownEffect] = field(default_factory=list)

    def raise_for_warnings(self) -> None:
        if self.warnings:
            raise self.warnings[0]


def coerce_value(raw: str) -> EffectValue:
    """Numbers become int/float, everything else stays a string."""
    value = raw.strip()
    if len(value) >= 2 and value[0] == value[-1] and value[0] in ("'", '"'):
        return value[1:-1]
    if _NUMBER.match(value):
        number = float(value)
        return int(number) if number.is_integer() and "." not in value else number
    return value


def split_top_level(content: str, separator: str = ",") -> List[str]:
    """Split on ``separator`` outside quotes and parentheses."""
    parts: List[str] = []
    depth = 0
    quote: Optional[str] = None
    start = 0
    for i, char in enumerate(content):
        if quote:
            if char == quote:
                quote = None
            continue
        if char in ("'", '"'):
            quote = char
        elif char == "(":
            depth += 1
        elif char == ")":
            depth = max(0, depth - 1)
        elif char == separator and depth == 0:
            parts.append(content[start:i])
            start = i + 1
    parts.append(content[start:])
    return [p.strip() for p in parts if p.strip()]


def _random_count(token: str) -> int:
    match = _RANDOM_TOKEN.match(token)
    if not match or match.group(1) is None:
        return 1
    try:
        return min(MAX_RANDOM_EFFECTS, max(1, int(match.group(1))))
    except ValueError:
        return 1


def _stack_parts(content: str) -> List[str]:
    """
    Split on top-level ',' and then '+'.

    A '+' right after '=' is a sign, as in ``treble=+3``.
    """
    parts: List[str] = []
    for segment in split_top_level(content, ","):
        pieces = split_top_level(segment, "+")
        merged: List[str] = []
        for piece in pieces:
            if merged and merged[-1].endswith("="):
                merged[-1] += "+" + piece
            else:
                merged.append(piece)
        parts.extend(merged)
    return parts


def _key_value_tokens(parts: Iterable[str]) -> List[Token]:
    tokens: List[Token] = []
    for segment in parts:
        key, sep, value = segment.partition("=")
        key = key.strip().lower()
        if not key:
            continue
        tokens.append((key, coerce_value(value) if sep else None))
    return tokens


class FilterSpecParser:
    """Turns filter text into a FilterSpec using a given registry."""

    def __init__(
        self,
        registry: Optional[EffectRegistry] = None,
        rng: Optional[random.Random] = None,
        ignore: Iterable[str] = (),
    ):
        self.registry = registry if registry is not None else build_default_registry()
        self.rng = rng or random.Random()
        self.ignore: FrozenSet[str] = frozenset(k.lower() for k in ignore)

    def parse(self, text: str, clip: Optional[ClipWindow] = None) -> ParseResult:
        stripped = (text or "").strip()
        if len(stripped) < 2 or not stripped.startswith("{") or not stripped.endswith("}"):
            raise InvalidFilterSyntax(text)

        content = stripped[1:-1].strip()
        if not content:
            raise InvalidFilterSyntax(text, "Filter block is empty")

        parts = _stack_parts(content)
        random_parts = [p for p in parts if _RANDOM_TOKEN.match(p.lower())]
        if random_parts:
            count = min(MAX_RANDOM_EFFECTS, sum(_random_count(p.lower()) for p in random_parts))
            others = [p for p in parts if p not in random_parts]
            return self._stacked(self._random_tokens(count) + _key_value_tokens(others), clip)

        if not any(sep in content for sep in ",=+"):
            if self.registry.resolve(content) is not None or content.lower() in self.ignore:
                return self._stacked([(content.lower(), None)], clip)
            logger.info(f"[Parser] Treating '{content}' as a raw filter graph")
            return ParseResult(spec=FilterSpec(raw=content, clip=clip))

        return self._stacked(_key_value_tokens(parts), clip)

    def _random_tokens(self, count: int) -> List[Token]:
        names = self.registry.random_names(count, self.rng)
        logger.info(f"[Parser] Selected random effects: {', '.join(names)}")
        return [(name, None) for name in names]

    def _stacked(self, tokens: List[Token], clip: Optional[ClipWindow]) -> ParseResult:
        effects: List[EffectInvocation] = []
        warnings: List[UnknownEffect] = []

        for name, value in tokens:
            if name in self.ignore:
                continue
            canonical = self.registry.resolve(name)
            if canonical is None:
                logger.warning(f"[Parser] Unknown effect: {name}")
                warnings.append(UnknownEffect(name))
                continue
            if value is None:
                value = self.registry.alias_default(name)
            definition = self.registry[canonical]
            effects.append(EffectInvocation(name=canonical, type=definition.type, value=value))

        return ParseResult(spec=FilterSpec(effects=tuple(effects), clip=clip), warnings=warnings)


def parse_filter_spec(
    text: str,
    registry: Optional[EffectRegistry] = None,
    rng: Optional[random.Random] = None,
    clip: Optional[ClipWindow] = None,
) -> ParseResult:
    """Parse filter text with a one-off parser."""
    return FilterSpecParser(registry, rng).parse(text, clip)
