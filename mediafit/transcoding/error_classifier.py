"""
FFmpeg error classification for hardware fallback decisions and logging.

Categories:
- hardware: the GPU encoder failed, re-run the attempt in software
- transient: an interrupted or briefly unavailable resource
- resource: the machine is out of something
- fatal: bad input or bad filter graph, retrying will not help
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Tuple

logger = logging.getLogger(__name__)


class ErrorCategory(str, Enum):
    HARDWARE = "hardware"
    TRANSIENT = "transient"
    RESOURCE = "resource"
    FATAL = "fatal"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class ErrorPattern:
    """A lowercase stderr substring and what it means."""
    pattern: str
    category: ErrorCategory
    description: str


_HW = ErrorCategory.HARDWARE
_TRANSIENT = ErrorCategory.TRANSIENT
_RESOURCE = ErrorCategory.RESOURCE
_FATAL = ErrorCategory.FATAL

# Checked in order; specific patterns come before generic ones
ERROR_PATTERNS: List[ErrorPattern] = [
    # NVENC / CUDA
    ErrorPattern("no nvenc capable devices", _HW, "No NVENC capable GPU"),
    ErrorPattern("no capable devices found", _HW, "No hardware encoder devices"),
    ErrorPattern("openencodesessionex failed", _HW, "NVENC session init failed"),
    ErrorPattern("encodesessionlimitexceeded", _HW, "NVENC session limit reached"),
    ErrorPattern("cannot load libcuda", _HW, "CUDA library missing"),
    ErrorPattern("cannot load libnvidia-encode", _HW, "NVENC library missing"),
    ErrorPattern("driver does not support the required nvenc api", _HW, "NVIDIA driver too old"),
    ErrorPattern("cuda error", _HW, "CUDA error"),
    ErrorPattern("cuda_error", _HW, "CUDA error"),
    ErrorPattern("nvenc", _HW, "NVENC error"),
    ErrorPattern("hw_frames_ctx", _HW, "Hardware frame context error"),
    ErrorPattern("hwaccel", _HW, "Hardware acceleration error"),
    ErrorPattern("exceeds level limit", _HW, "Resolution exceeds encoder level"),

    # Transient
    ErrorPattern("resource temporarily unavailable", _TRANSIENT, "Resource temporarily unavailable"),
    ErrorPattern("broken pipe", _TRANSIENT, "Broken pipe"),
    ErrorPattern("interrupted system call", _TRANSIENT, "Interrupted system call"),

    # Resource
    ErrorPattern("out of memory", _RESOURCE, "Out of memory"),
    ErrorPattern("cannot allocate memory", _RESOURCE, "Memory allocation failed"),
    ErrorPattern("too many open files", _RESOURCE, "File descriptor limit"),
    ErrorPattern("no space left", _RESOURCE, "No disk space"),
    ErrorPattern("disk quota", _RESOURCE, "Disk quota exceeded"),

    # Fatal
    ErrorPattern("no such filter", _FATAL, "Filter not found"),
    ErrorPattern("error initializing filter", _FATAL, "Filter initialization failed"),
    ErrorPattern("error reinitializing filters", _FATAL, "Filter graph rejected the stream"),
    ErrorPattern("error parsing filterchain", _FATAL, "Malformed filter graph"),
    ErrorPattern("filter not found", _FATAL, "Filter not found"),
    ErrorPattern("matches no streams", _FATAL, "Stream specifier matched nothing"),
    ErrorPattern("invalid data", _FATAL, "Invalid input data"),
    ErrorPattern("invalid argument", _FATAL, "Invalid argument"),
    ErrorPattern("no such file", _FATAL, "File not found"),
    ErrorPattern("permission denied", _FATAL, "Permission denied"),
    ErrorPattern("unknown encoder", _FATAL, "Encoder not found"),
    ErrorPattern("encoder not found", _FATAL, "Encoder not found"),
    ErrorPattern("decoder not found", _FATAL, "Decoder not found"),
    ErrorPattern("moov atom not found", _FATAL, "Invalid MP4 file"),
]


class ErrorClassifier:
    """Classifies FFmpeg stderr output."""

    def __init__(self, patterns: Optional[List[ErrorPattern]] = None):
        self.patterns = patterns or ERROR_PATTERNS

    def classify(self, error_msg: str) -> Tuple[Optional[ErrorPattern], ErrorCategory]:
        """Return the first matching pattern and its category."""
        error_lower = (error_msg or "").lower()

        for pattern in self.patterns:
            if pattern.pattern in error_lower:
                return pattern, pattern.category

        return None, ErrorCategory.UNKNOWN

    def is_hardware_error(self, error_msg: str) -> bool:
        _, category = self.classify(error_msg)
        return category == ErrorCategory.HARDWARE

    def describe(self, error_msg: str) -> str:
        pattern, _ = self.classify(error_msg)
        return pattern.description if pattern else "Unknown error"


# Global classifier instance
_classifier: Optional[ErrorClassifier] = None


def get_error_classifier() -> ErrorClassifier:
    """Get or create the global error classifier."""
    global _classifier
    if _classifier is None:
        _classifier = ErrorClassifier()
    return _classifier
