"""
Encoder selection for size-fitting and intermediate passes.
Handles NVENC detection, failure tracking and software fallback.
"""

import logging
import time
from typing import Dict, List, Optional

from ..config import HardwareConfig
from ..hardware import Capabilities, HWAccelType
from ..models import EncodeAttempt, EncoderBackend
from .error_classifier import ErrorClassifier, get_error_classifier

logger = logging.getLogger(__name__)

HW_VIDEO_ENCODER = "h264_nvenc"
SW_VIDEO_ENCODER = "libx264"

# Intermediate passes: fast, near-transparent quality
SW_INTERMEDIATE_ARGS = ["-preset", "veryfast", "-crf", "18"]
HW_INTERMEDIATE_ARGS = ["-preset", "p4", "-rc:v", "vbr", "-cq:v", "19", "-b:v", "0"]

# Disable an encoder after this many failures
MAX_HW_FAILURES = 3


class EncoderSelector:
    """Picks the video encoder and its arguments for each encode."""

    def __init__(
        self,
        capabilities: Capabilities,
        hw_config: HardwareConfig,
        classifier: Optional[ErrorClassifier] = None,
    ):
        self.capabilities = capabilities
        self.hw_config = hw_config
        self.classifier = classifier or get_error_classifier()
        self._failed_encoders: set = set()
        self._failure_counts: Dict[str, int] = {}
        self._last_failure_time: Dict[str, float] = {}
        self._cooldown_seconds = 300

    def preferred_backend(self) -> EncoderBackend:
        """Hardware when configured, detected and not disabled; software otherwise."""
        if not self.hw_config.prefer_hw_accel:
            return EncoderBackend.SOFTWARE
        if self.capabilities.get_best_hw_accel() != HWAccelType.NVENC:
            return EncoderBackend.SOFTWARE
        if not self.is_encoder_available(HW_VIDEO_ENCODER):
            return EncoderBackend.SOFTWARE
        return EncoderBackend.HARDWARE

    def fit_video_args(self, attempt: EncodeAttempt) -> List[str]:
        """Encoder arguments for one size-fitting attempt."""
        hardware = attempt.backend == EncoderBackend.HARDWARE

        if attempt.video_bitrate is not None:
            rate = attempt.video_bitrate
            rate_args = [
                "-b:v", f"{rate}k",
                "-maxrate", f"{int(rate * 1.5)}k",
                "-bufsize", f"{rate * 2}k",
            ]
            if hardware:
                return ["-c:v", HW_VIDEO_ENCODER, "-preset", self.hw_config.nvenc_preset, "-rc:v", "vbr"] + rate_args
            return ["-c:v", SW_VIDEO_ENCODER, "-preset", "medium"] + rate_args

        quality = str(attempt.quality if attempt.quality is not None else 23)
        if hardware:
            return [
                "-c:v", HW_VIDEO_ENCODER,
                "-preset", self.hw_config.nvenc_ladder_preset,
                "-rc:v", "vbr",
                "-b:v", "0",
                "-cq:v", quality,
                "-spatial-aq", "1",
                "-temporal-aq", "1",
            ]
        return ["-c:v", SW_VIDEO_ENCODER, "-preset", "medium", "-crf", quality]

    def intermediate_video_args(self, backend: Optional[EncoderBackend] = None) -> List[str]:
        """Encoder arguments for effect passes."""
        if backend is None:
            backend = self.preferred_backend()
        if backend == EncoderBackend.HARDWARE:
            return ["-c:v", HW_VIDEO_ENCODER] + HW_INTERMEDIATE_ARGS
        return ["-c:v", SW_VIDEO_ENCODER] + SW_INTERMEDIATE_ARGS

    def is_hw_error(self, error_msg: str) -> bool:
        return self.classifier.is_hardware_error(error_msg)

    def describe_error(self, error_msg: str) -> str:
        return self.classifier.describe(error_msg)

    def mark_hw_failed(self, encoder: str = HW_VIDEO_ENCODER) -> None:
        """
        Record a hardware encoder failure.

        The encoder is disabled after MAX_HW_FAILURES and re-enabled once
        its cooldown has passed.
        """
        self._failure_counts[encoder] = self._failure_counts.get(encoder, 0) + 1
        self._last_failure_time[encoder] = time.time()

        failures = self._failure_counts[encoder]
        logger.warning(f"[Encoder] {encoder} failed (count: {failures})")

        if failures >= MAX_HW_FAILURES:
            self._failed_encoders.add(encoder)
            logger.warning(f"[Encoder] Disabled {encoder} after {failures} failures")

    def is_encoder_available(self, encoder: str) -> bool:
        """Check whether an encoder may be used, honouring the cooldown."""
        if encoder not in self._failed_encoders:
            return True

        last_failure = self._last_failure_time.get(encoder, 0)
        failures = self._failure_counts.get(encoder, 0)

        # 5 min, 10 min, 20 min... capped at an hour
        cooldown = min(self._cooldown_seconds * (2 ** (failures - MAX_HW_FAILURES)), 3600)

        if time.time() - last_failure > cooldown:
            self._failed_encoders.discard(encoder)
            logger.info(f"[Encoder] Re-enabling {encoder} after {cooldown}s cooldown")
            return True

        return False

    def reset_encoder(self, encoder: str = HW_VIDEO_ENCODER) -> None:
        """Clear failure state, e.g. after a successful hardware encode."""
        self._failed_encoders.discard(encoder)
        self._failure_counts.pop(encoder, None)
        self._last_failure_time.pop(encoder, None)

