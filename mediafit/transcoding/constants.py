"""
Constants for size fitting, encoding and compositing.
"""

from typing import List, Tuple

from ..models import EncodeAttempt

# =============================================================================
# SIZE BUDGET
# =============================================================================

DEFAULT_CEILING_BYTES = 9 * 1024 * 1024
SIZE_BUDGET_FACTOR = 0.95  # 5% reserved for container overhead

AUDIO_MAX_KBPS = 192
AUDIO_MIN_KBPS = 64
VIDEO_AUDIO_KBPS_SHORT = 160  # Content up to SHORT_CONTENT_SECONDS
VIDEO_AUDIO_KBPS_LONG = 128
SHORT_CONTENT_SECONDS = 120
VIDEO_MIN_KBPS = 150

# (max duration in seconds, video bitrate cap in kbps)
VIDEO_BITRATE_CAPS: List[Tuple[float, int]] = [
    (120, 4000),
    (240, 2500),
    (float("inf"), 1500),
]

LOW_BITRATE_KBPS = 400  # Below this the calculated attempt drops to 360p
MAX_OUTPUT_WIDTH = 1280

# =============================================================================
# FALLBACK LADDER
# =============================================================================
# Ordered most-faithful first. Backend is filled in at run time.

FALLBACK_LADDER: List[EncodeAttempt] = [
    EncodeAttempt(target_height=720, quality=23, audio_bitrate=192, label="720p crf23"),
    EncodeAttempt(target_height=720, quality=28, audio_bitrate=128, label="720p crf28"),
    EncodeAttempt(target_height=360, quality=35, audio_bitrate=128, label="360p crf35"),
    EncodeAttempt(target_height=360, quality=42, audio_bitrate=128, label="360p crf42"),
    EncodeAttempt(target_height=240, quality=50, audio_bitrate=128, label="240p crf50"),
    EncodeAttempt(target_height=240, quality=50, audio_bitrate=128, trim=240, label="240p 4min"),
    EncodeAttempt(target_height=240, quality=50, audio_bitrate=128, trim=120, label="240p 2min"),
    EncodeAttempt(target_height=240, quality=50, audio_bitrate=128, trim=60, label="240p 1min"),
]

# =============================================================================
# OUTPUT SETTINGS
# =============================================================================

LOUDNORM_FILTER = "loudnorm=I=-16:TP=-1.5:LRA=11"
OUTPUT_CHANNELS = 2

EVEN_DIMENSIONS_FILTER = "scale=trunc(iw/2)*2:trunc(ih/2)*2"

# Intermediate passes favour speed and keep enough quality for later passes
INTERMEDIATE_AUDIO_KBPS = 192

# Codecs the MP4 muxer accepts as-is; anything else is re-encoded in effect passes
MP4_COPY_VIDEO_CODECS = frozenset({"h264", "hevc", "mpeg4", "av1", "vp9"})
MP4_COPY_AUDIO_CODECS = frozenset({"aac", "mp3", "opus", "ac3", "eac3", "alac", "flac"})

# Raw filter strings starting with these are treated as audio graphs
AUDIO_FILTER_PREFIXES = ("a", "volume", "bass", "treble", "loudnorm")

# =============================================================================
# COMPOSITING
# =============================================================================

MIN_GRID_SOURCES = 2
MAX_GRID_SOURCES = 9
SYNC_SPEED_MIN = 0.5
SYNC_SPEED_MAX = 2.0


def grid_dimensions(count: int) -> Tuple[int, int]:
    """Return (rows, cols) for a grid of ``count`` cells."""
    if count <= 4:
        return 2, 2
    if count <= 6:
        return 2, 3
    return 3, 3


def video_bitrate_cap(duration: float) -> int:
    for max_duration, cap in VIDEO_BITRATE_CAPS:
        if duration <= max_duration:
            return cap
    return VIDEO_BITRATE_CAPS[-1][1]
