"""
Effect registry: name -> EffectDefinition lookup with alias resolution.

The registry is an immutable value. Build one with
``build_default_registry()`` (or from a custom list of definitions in tests)
and pass it to the parser and the chain executor.
"""

import logging
import random
from collections.abc import Mapping
from dataclasses import dataclass
from types import MappingProxyType
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from ..errors import UnknownEffect
from ..models import EffectType, EffectValue

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EffectDefinition:
    """A named effect: its stream classification and fragment generator."""
    name: str
    type: EffectType
    builder: Callable[[Optional[EffectValue]], str]
    validator: Optional[Callable[[EffectValue], bool]] = None
    default: Optional[EffectValue] = None
    description: str = ""
    randomized: bool = False  # Fresh randomness on every apply()

    @property
    def parametric(self) -> bool:
        return self.validator is not None

    def validate(self, value: Optional[EffectValue]) -> bool:
        if value is None or self.validator is None:
            return True
        try:
            return bool(self.validator(value))
        except (TypeError, ValueError):
            return False

    def apply(self, value: Optional[EffectValue] = None) -> str:
        """Return the filter-graph fragment for this effect.

        Values rejected by the validator are replaced with the default.
        """
        if value is None or not self.validate(value):
            value = self.default
        return self.builder(value)

    def split_fragment(self, fragment: str) -> Tuple[str, str]:
        """Split a fragment into (video_chain, audio_chain) by stream type.

        Complex fragments are written as ``video;audio`` and either half may
        be empty.
        """
        if self.type == EffectType.AUDIO:
            return "", fragment
        if self.type == EffectType.VIDEO:
            return fragment, ""
        video, _, audio = fragment.partition(";")
        return video.strip(), audio.strip()


def fixed_effect(name: str, effect_type: EffectType, fragment: str, description: str = "") -> EffectDefinition:
    """Definition for an effect whose fragment ignores its value."""
    return EffectDefinition(
        name=name,
        type=effect_type,
        builder=lambda _value: fragment,
        description=description,
    )


class EffectRegistry(Mapping):
    """Read-only mapping of canonical effect names to definitions."""

    def __init__(
        self,
        definitions: Iterable[EffectDefinition],
        aliases: Optional[Dict[str, str]] = None,
        alias_defaults: Optional[Dict[str, EffectValue]] = None,
    ):
        table: Dict[str, EffectDefinition] = {}
        for definition in definitions:
            key = definition.name.lower()
            if key in table:
                raise ValueError(f"Duplicate effect definition: {key}")
            table[key] = definition

        alias_table: Dict[str, str] = {}
        for alias, target in (aliases or {}).items():
            target = target.lower()
            if target not in table:
                raise ValueError(f"Alias '{alias}' points to unknown effect '{target}'")
            alias_table[alias.lower()] = target

        self._definitions = MappingProxyType(table)
        self._aliases = MappingProxyType(alias_table)
        self._alias_defaults = MappingProxyType(
            {k.lower(): v for k, v in (alias_defaults or {}).items()}
        )

    def __getitem__(self, name: str) -> EffectDefinition:
        canonical = self.resolve(name)
        if canonical is None:
            raise KeyError(name)
        return self._definitions[canonical]

    def __iter__(self):
        return iter(self._definitions)

    def __len__(self) -> int:
        return len(self._definitions)

    @property
    def aliases(self) -> Mapping:
        return self._aliases

    def resolve(self, name: str) -> Optional[str]:
        """Return the canonical name for ``name`` or None if unknown."""
        key = name.strip().lower()
        key = self._aliases.get(key, key)
        return key if key in self._definitions else None

    def alias_default(self, name: str) -> Optional[EffectValue]:
        """Value implied by an alias (``slow`` -> speed 0.75), if any."""
        return self._alias_defaults.get(name.strip().lower())

    def get_definition(self, name: str) -> EffectDefinition:
        canonical = self.resolve(name)
        if canonical is None:
            raise UnknownEffect(name.strip().lower())
        return self._definitions[canonical]

    def names(self, effect_type: Optional[EffectType] = None) -> List[str]:
        return sorted(
            name for name, definition in self._definitions.items()
            if effect_type is None or definition.type == effect_type
        )

    def random_names(
        self,
        count: int,
        rng: Optional[random.Random] = None,
        exclude: Iterable[str] = (),
    ) -> List[str]:
        """Pick up to ``count`` distinct canonical names uniformly at random."""
        rng = rng or random.Random()
        excluded = {name.lower() for name in exclude}
        pool = [name for name in self._definitions if name not in excluded]
        return rng.sample(pool, min(max(count, 0), len(pool)))

    def subset(self, names: Iterable[str]) -> "EffectRegistry":
        """Smaller registry containing only ``names`` (aliases pruned to match)."""
        keep = [self.get_definition(name) for name in names]
        kept = {d.name for d in keep}
        aliases = {a: t for a, t in self._aliases.items() if t in kept}
        defaults = {a: v for a, v in self._alias_defaults.items() if a in aliases}
        return EffectRegistry(keep, aliases, defaults)
