"""
mediafit - FFmpeg effect chains, compositing and size-constrained encoding.
"""

__version__ = "0.1.0"

from .config import MediaFitConfig, get_config, load_config, set_config
from .errors import (
    MediaFitError,
    MediaNotFoundError,
    ProbeError,
    InvalidFilterSyntax,
    UnknownEffect,
    TypeMismatch,
    ProcessFailure,
    TranscodeTimeout,
    SizeExceeded,
)
from .models import (
    ClipWindow,
    EffectInvocation,
    EffectType,
    FilterSpec,
    GridOptions,
    MediaAsset,
    TranscodeResult,
)
from .effects import EffectRegistry, build_default_registry
from .filters import FilterSpecParser, parse_filter_spec
from .probe import MediaProbe, probe
from .jobs import TranscodeJob, transcode, run_chain, fit_to_size
from .compositor import Compositor

__all__ = [
    "__version__",
    "MediaFitConfig",
    "get_config",
    "load_config",
    "set_config",
    "MediaFitError",
    "MediaNotFoundError",
    "ProbeError",
    "InvalidFilterSyntax",
    "UnknownEffect",
    "TypeMismatch",
    "ProcessFailure",
    "TranscodeTimeout",
    "SizeExceeded",
    "ClipWindow",
    "EffectInvocation",
    "EffectType",
    "FilterSpec",
    "GridOptions",
    "MediaAsset",
    "TranscodeResult",
    "EffectRegistry",
    "build_default_registry",
    "FilterSpecParser",
    "parse_filter_spec",
    "MediaProbe",
    "probe",
    "TranscodeJob",
    "transcode",
    "run_chain",
    "fit_to_size",
    "Compositor",
]
