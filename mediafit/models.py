"""
Data models for mediafit
"""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import List, Optional, Tuple, Union

EffectValue = Union[int, float, str]


class EffectType(str, Enum):
    AUDIO = "audio"
    VIDEO = "video"
    COMPLEX = "complex"


class EncoderBackend(str, Enum):
    HARDWARE = "hardware"
    SOFTWARE = "software"


@dataclass(frozen=True)
class MediaAsset:
    """Probed properties of one media file. Valid for one job only."""
    path: Path
    duration: float
    is_video: bool
    width: int = 0
    height: int = 0
    has_audio: bool = True
    video_codec: str = ""
    audio_codec: str = ""

    @property
    def container_suffix(self) -> str:
        return ".mp4" if self.is_video else ".ogg"


@dataclass(frozen=True)
class ClipWindow:
    start: Optional[float] = None
    duration: Optional[float] = None

    @property
    def is_empty(self) -> bool:
        return not self.start and not self.duration


@dataclass(frozen=True)
class EffectInvocation:
    name: str
    type: EffectType
    value: Optional[EffectValue] = None

    def __str__(self) -> str:
        if self.value is None:
            return self.name
        return f"{self.name}={self.value}"


@dataclass(frozen=True)
class FilterSpec:
    """
    Parsed filter request.

    Either an ordered tuple of effects (stacked mode) or a single raw
    filter-graph string (raw mode), never both.
    """
    effects: Tuple[EffectInvocation, ...] = ()
    raw: Optional[str] = None
    clip: Optional[ClipWindow] = None

    def __post_init__(self):
        if self.raw is not None and self.effects:
            raise ValueError("FilterSpec cannot combine stacked effects with a raw filter")

    @property
    def is_raw(self) -> bool:
        return self.raw is not None

    @property
    def is_empty(self) -> bool:
        no_clip = self.clip is None or self.clip.is_empty
        return not self.effects and self.raw is None and no_clip


@dataclass(frozen=True)
class EncodeAttempt:
    """One rung of the size-fitting ladder."""
    target_height: int
    audio_bitrate: int
    quality: Optional[int] = None  # CRF / CQ; None means bitrate-driven
    video_bitrate: Optional[int] = None
    trim: Optional[float] = None
    backend: EncoderBackend = EncoderBackend.SOFTWARE
    label: str = ""


@dataclass(frozen=True)
class GridOptions:
    delay_ms: int = 0  # Start stagger between consecutive cells
    speed: float = 1.0
    sync: bool = False
    sync_duration: Optional[float] = None  # None syncs to the shortest source


@dataclass
class TranscodeResult:
    path: Path
    asset: Optional[MediaAsset] = None
    warnings: List[str] = field(default_factory=list)
    effects: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    attempts: int = 0
    hw_accel: str = "software"
