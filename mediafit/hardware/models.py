"""
Hardware detection models and data classes for mediafit
"""

from typing import List
from dataclasses import dataclass, field
from enum import Enum


class HWAccelType(str, Enum):
    NVENC = "nvenc"
    SOFTWARE = "software"


@dataclass
class HWAccelCapability:
    type: HWAccelType
    available: bool
    encoders: List[str] = field(default_factory=list)


@dataclass
class Capabilities:
    hw_accels: List[HWAccelCapability] = field(default_factory=list)
    video_encoders: List[str] = field(default_factory=list)
    audio_encoders: List[str] = field(default_factory=list)
    ffmpeg_version: str = ""

    def get_best_hw_accel(self) -> HWAccelType:
        """Return NVENC when ffmpeg reported a usable h264_nvenc."""
        for hw in self.hw_accels:
            if hw.type == HWAccelType.NVENC and hw.available:
                return HWAccelType.NVENC
        return HWAccelType.SOFTWARE
