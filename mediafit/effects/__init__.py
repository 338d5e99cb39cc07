"""
Effect catalog and registry.
"""

from .registry import EffectDefinition, EffectRegistry, fixed_effect
from .catalog import (
    AUDIO_EFFECTS,
    VIDEO_EFFECTS,
    EFFECT_ALIASES,
    ALIAS_DEFAULTS,
    atempo_chain,
    build_default_registry,
)

__all__ = [
    "EffectDefinition",
    "EffectRegistry",
    "fixed_effect",
    "AUDIO_EFFECTS",
    "VIDEO_EFFECTS",
    "EFFECT_ALIASES",
    "ALIAS_DEFAULTS",
    "atempo_chain",
    "build_default_registry",
]
