"""
Hardware encoder detection for mediafit.
"""

import logging
import re
import shutil
import subprocess
from typing import Optional

from .models import HWAccelType, HWAccelCapability, Capabilities

logger = logging.getLogger(__name__)

__all__ = [
    "HWAccelType",
    "HWAccelCapability",
    "Capabilities",
    "find_ffmpeg",
    "find_ffprobe",
    "detect_capabilities",
    "get_capabilities",
    "reset_capabilities",
]


def find_ffmpeg(configured: str = "auto") -> str:
    """Resolve the ffmpeg executable."""
    if configured != "auto":
        return configured

    ffmpeg = shutil.which("ffmpeg")
    if ffmpeg:
        return ffmpeg

    raise RuntimeError("FFmpeg not found")


def find_ffprobe(configured: str = "auto") -> str:
    """Resolve the ffprobe executable, falling back to the bare name."""
    if configured != "auto":
        return configured
    return shutil.which("ffprobe") or "ffprobe"


def _parse_encoders(output: str) -> Capabilities:
    caps = Capabilities()
    lines = output.splitlines()
    # The legend above the dashed separator looks like an encoder row
    for index, line in enumerate(lines):
        if line.strip().startswith("---"):
            lines = lines[index + 1:]
            break

    for line in lines:
        # " V....D h264_nvenc           NVIDIA NVENC H.264 encoder"
        match = re.match(r"^\s*([VAS])[A-Z.]{5}\s+(\S+)", line)
        if not match:
            continue
        kind, name = match.groups()
        if kind == "V":
            caps.video_encoders.append(name)
        elif kind == "A":
            caps.audio_encoders.append(name)

    nvenc = [e for e in caps.video_encoders if "nvenc" in e]
    caps.hw_accels.append(
        HWAccelCapability(
            type=HWAccelType.NVENC,
            available="h264_nvenc" in nvenc,
            encoders=nvenc,
        )
    )
    return caps


def detect_capabilities(ffmpeg_path: str) -> Capabilities:
    """Query ffmpeg for its encoder list and record hardware support."""
    try:
        result = subprocess.run(
            [ffmpeg_path, "-hide_banner", "-encoders"],
            capture_output=True,
            text=True,
            timeout=15,
        )
    except (OSError, subprocess.TimeoutExpired) as e:
        logger.warning(f"[Encoder] Could not query encoders from {ffmpeg_path}: {e}")
        return Capabilities(hw_accels=[HWAccelCapability(type=HWAccelType.NVENC, available=False)])

    caps = _parse_encoders(result.stdout)

    try:
        version = subprocess.run(
            [ffmpeg_path, "-hide_banner", "-version"],
            capture_output=True,
            text=True,
            timeout=15,
        )
        # "ffmpeg version 6.1.1 Copyright (c) ..."
        caps.ffmpeg_version = version.stdout.split()[2]
    except (OSError, subprocess.TimeoutExpired, IndexError):
        pass

    best = caps.get_best_hw_accel()
    logger.info(
        f"[Encoder] FFmpeg {caps.ffmpeg_version or 'unknown'}: "
        f"{len(caps.video_encoders)} video encoders, hardware: {best.value}"
    )
    if "libopus" not in caps.audio_encoders:
        logger.warning("[Encoder] libopus is missing, Opus audio encodes will fail")
    return caps


# Global capabilities instance
_capabilities: Optional[Capabilities] = None


def get_capabilities(ffmpeg_path: str) -> Capabilities:
    """Get or detect the process-wide encoder capabilities."""
    global _capabilities
    if _capabilities is None:
        _capabilities = detect_capabilities(ffmpeg_path)
    return _capabilities


def reset_capabilities() -> None:
    global _capabilities
    _capabilities = None
