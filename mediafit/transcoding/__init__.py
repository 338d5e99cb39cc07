"""
FFmpeg execution layer: command building, effect chains and size fitting.
"""

from .constants import (
    DEFAULT_CEILING_BYTES,
    FALLBACK_LADDER,
    LOUDNORM_FILTER,
    grid_dimensions,
    video_bitrate_cap,
)
from .error_classifier import ErrorCategory, ErrorClassifier, get_error_classifier
from .encoders import EncoderSelector
from .commands import CommandBuilder, effect_pass_output, is_audio_filter, scale_filter
from .runner import FFmpegRunner, ProgressCallback, parse_progress_time
from .chain import ChainExecutor
from .sizing import (
    AttemptResult,
    FitResult,
    BitratePlan,
    SizeFittingEncoder,
    build_attempts,
    calculate_bitrates,
)

__all__ = [
    # Constants
    "DEFAULT_CEILING_BYTES",
    "FALLBACK_LADDER",
    "LOUDNORM_FILTER",
    "grid_dimensions",
    "video_bitrate_cap",
    # Errors
    "ErrorCategory",
    "ErrorClassifier",
    "get_error_classifier",
    # Building blocks
    "EncoderSelector",
    "CommandBuilder",
    "effect_pass_output",
    "is_audio_filter",
    "scale_filter",
    "FFmpegRunner",
    "ProgressCallback",
    "parse_progress_time",
    # Pipelines
    "ChainExecutor",
    "AttemptResult",
    "FitResult",
    "BitratePlan",
    "SizeFittingEncoder",
    "build_attempts",
    "calculate_bitrates",
]
