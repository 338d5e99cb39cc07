"""
Size fitting: encode under a byte ceiling, degrading quality step by step.

The first attempt uses bitrates calculated from the ceiling and the
duration. If its output is still too large, the fixed fallback ladder runs
from most to least faithful. The first output under the ceiling wins.
"""

import logging
import uuid
from dataclasses import dataclass, replace
from pathlib import Path
from typing import List, Optional, Sequence

from ..config import HardwareConfig, TranscodingConfig
from ..errors import MediaFitError, ProcessFailure, SizeExceeded, TranscodeTimeout
from ..models import EncodeAttempt, EncoderBackend, MediaAsset
from .commands import CommandBuilder
from .constants import (
    AUDIO_MAX_KBPS,
    AUDIO_MIN_KBPS,
    FALLBACK_LADDER,
    LOW_BITRATE_KBPS,
    SHORT_CONTENT_SECONDS,
    SIZE_BUDGET_FACTOR,
    VIDEO_AUDIO_KBPS_LONG,
    VIDEO_AUDIO_KBPS_SHORT,
    VIDEO_MIN_KBPS,
    video_bitrate_cap,
)
from .encoders import HW_VIDEO_ENCODER, EncoderSelector
from .runner import FFmpegRunner, ProgressCallback

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BitratePlan:
    audio_bitrate: int
    video_bitrate: Optional[int] = None
    trim: Optional[float] = None  # Seconds to keep when the floor bitrate still overshoots


@dataclass
class AttemptResult:
    """Outcome of one encode attempt. Oversized outputs are already deleted."""
    attempt: EncodeAttempt
    path: Optional[Path] = None
    size: Optional[int] = None
    error: Optional[MediaFitError] = None
    hw_failed: bool = False

    @property
    def fits(self) -> bool:
        return self.path is not None


@dataclass(frozen=True)
class FitResult:
    """The fitted file and how it was reached."""
    path: Path
    size: int
    attempts: int
    backend: EncoderBackend = EncoderBackend.SOFTWARE


def calculate_bitrates(duration: float, is_video: bool, ceiling_bytes: int) -> BitratePlan:
    """
    Split the byte budget across audio and video.

    Falls back to a trim when even the minimum bitrate cannot cover the
    full duration.
    """
    budget_bits = ceiling_bytes * 8 * SIZE_BUDGET_FACTOR
    total_kbps = budget_bits / max(duration, 0.001) / 1000

    if not is_video:
        audio = min(AUDIO_MAX_KBPS, int(total_kbps))
        if audio < AUDIO_MIN_KBPS:
            return BitratePlan(
                audio_bitrate=AUDIO_MIN_KBPS,
                trim=budget_bits / (AUDIO_MIN_KBPS * 1000),
            )
        return BitratePlan(audio_bitrate=audio)

    audio = VIDEO_AUDIO_KBPS_SHORT if duration <= SHORT_CONTENT_SECONDS else VIDEO_AUDIO_KBPS_LONG
    video = min(int(total_kbps - audio), video_bitrate_cap(duration))
    if video < VIDEO_MIN_KBPS:
        return BitratePlan(
            audio_bitrate=audio,
            video_bitrate=VIDEO_MIN_KBPS,
            trim=budget_bits / ((audio + VIDEO_MIN_KBPS) * 1000),
        )
    return BitratePlan(audio_bitrate=audio, video_bitrate=video)


def build_attempts(
    asset: MediaAsset,
    plan: BitratePlan,
    backend: EncoderBackend = EncoderBackend.SOFTWARE,
    ladder: Sequence[EncodeAttempt] = FALLBACK_LADDER,
) -> List[EncodeAttempt]:
    """
    Ordered attempt list: the calculated attempt, then the ladder.

    Trims at or beyond the asset duration are no-ops and are skipped.
    Audio-only assets ignore video settings, so repeated audio settings
    collapse into one attempt.
    """
    first_height = 360 if plan.video_bitrate is not None and plan.video_bitrate < LOW_BITRATE_KBPS else 720
    calculated = EncodeAttempt(
        target_height=first_height,
        audio_bitrate=plan.audio_bitrate,
        video_bitrate=plan.video_bitrate if asset.is_video else None,
        trim=plan.trim,
        label="calculated",
    )

    attempts: List[EncodeAttempt] = []
    seen = set()
    for candidate in [calculated] + list(ladder):
        if candidate.trim is not None and candidate.trim >= asset.duration:
            if candidate is calculated:
                candidate = replace(candidate, trim=None)
            else:
                continue
        if not asset.is_video:
            key = (candidate.audio_bitrate, candidate.trim, candidate.video_bitrate)
            if key in seen:
                continue
            seen.add(key)
        attempts.append(replace(candidate, backend=backend))
    return attempts


class SizeFittingEncoder:
    """Runs the attempt list until one output fits under the ceiling."""

    def __init__(
        self,
        runner: FFmpegRunner,
        command_builder: CommandBuilder,
        encoder_selector: EncoderSelector,
        transcoding_config: Optional[TranscodingConfig] = None,
        hw_config: Optional[HardwareConfig] = None,
        ladder: Sequence[EncodeAttempt] = FALLBACK_LADDER,
    ):
        self.runner = runner
        self.command_builder = command_builder
        self.encoder_selector = encoder_selector
        self.transcoding_config = transcoding_config or TranscodingConfig()
        self.hw_config = hw_config or encoder_selector.hw_config
        self.ladder = list(ladder)

    async def fit(
        self,
        asset: MediaAsset,
        ceiling_bytes: int,
        work_dir: Path,
        job_id: Optional[str] = None,
        deadline: Optional[float] = None,
        progress_callback: Optional[ProgressCallback] = None,
    ) -> FitResult:
        """
        Encode ``asset`` to a file no larger than ``ceiling_bytes``.

        ``deadline`` overrides the per-attempt timeout. Timeouts and process
        failures move on to the next attempt, except on the last one, which
        re-raises. Raises SizeExceeded when every attempt is too large.
        """
        job_id = job_id or uuid.uuid4().hex[:8]
        work_dir.mkdir(parents=True, exist_ok=True)
        config = self.transcoding_config
        pretrimmed: Optional[Path] = None
        source = asset

        try:
            if asset.duration > config.pretrim_threshold:
                pretrimmed = await self._pretrim(asset, work_dir, job_id, deadline)
                if pretrimmed is not None:
                    source = replace(asset, path=pretrimmed, duration=min(asset.duration, config.pretrim_duration))

            plan = calculate_bitrates(source.duration, source.is_video, ceiling_bytes)
            attempts = build_attempts(source, plan, self.encoder_selector.preferred_backend(), self.ladder)
            logger.info(
                f"[Fit] {source.path.name}: {source.duration:.1f}s, ceiling {ceiling_bytes} bytes, "
                f"audio {plan.audio_bitrate}k, video {plan.video_bitrate}k, {len(attempts)} attempts"
            )

            best_size: Optional[int] = None
            for index, attempt in enumerate(attempts, 1):
                last = index == len(attempts)
                output = work_dir / f"fit_{index}_{job_id}{source.container_suffix}"
                stage = f"Encoding attempt {index}/{len(attempts)} ({attempt.label})"
                result = await self.run_attempt(
                    source, attempt, ceiling_bytes, output, stage, deadline, progress_callback
                )

                if result.hw_failed:
                    # Remaining attempts stay on software for this job
                    attempts[index:] = [replace(a, backend=EncoderBackend.SOFTWARE) for a in attempts[index:]]

                if result.fits:
                    logger.info(f"[Fit] Attempt {index} fits: {result.size} bytes")
                    return FitResult(result.path, result.size, index, result.attempt.backend)

                if result.size is not None:
                    best_size = result.size if best_size is None else min(best_size, result.size)
                    logger.info(f"[Fit] Attempt {index} too large: {result.size} > {ceiling_bytes}")

                if result.error is not None:
                    if last:
                        raise result.error
                    logger.warning(f"[Fit] Attempt {index} failed, trying next: {result.error}")

            raise SizeExceeded(ceiling_bytes, best_size)

        finally:
            if pretrimmed is not None:
                _discard(pretrimmed)

    async def run_attempt(
        self,
        asset: MediaAsset,
        attempt: EncodeAttempt,
        ceiling_bytes: int,
        output: Path,
        stage: str = "Encoding",
        deadline: Optional[float] = None,
        progress_callback: Optional[ProgressCallback] = None,
    ) -> AttemptResult:
        """
        Run one attempt and report what happened.

        A hardware encoder error is retried once on the software backend
        when fallback is enabled.
        """
        cmd = self.command_builder.build_fit_command(asset.path, output, asset, attempt)
        duration = min(asset.duration, attempt.trim) if attempt.trim else asset.duration

        try:
            await self.runner.run(
                cmd,
                output_path=output,
                duration=duration,
                stage=stage,
                progress_callback=progress_callback,
                timeout=deadline,
            )
        except ProcessFailure as e:
            _discard(output)
            hardware = attempt.backend == EncoderBackend.HARDWARE
            if hardware and self.hw_config.fallback_to_software and self.encoder_selector.is_hw_error(e.stderr or e.message):
                logger.warning(
                    f"[Fit] {self.encoder_selector.describe_error(e.stderr or e.message)}, retrying in software"
                )
                self.encoder_selector.mark_hw_failed(HW_VIDEO_ENCODER)
                result = await self.run_attempt(
                    asset,
                    replace(attempt, backend=EncoderBackend.SOFTWARE),
                    ceiling_bytes,
                    output,
                    stage,
                    deadline,
                    progress_callback,
                )
                result.hw_failed = True
                return result
            return AttemptResult(attempt, error=e)
        except TranscodeTimeout as e:
            _discard(output)
            return AttemptResult(attempt, error=e)

        size = output.stat().st_size
        if size > ceiling_bytes:
            _discard(output)
            return AttemptResult(attempt, size=size)

        if attempt.backend == EncoderBackend.HARDWARE:
            self.encoder_selector.reset_encoder(HW_VIDEO_ENCODER)
        return AttemptResult(attempt, path=output, size=size)

    async def _pretrim(
        self,
        asset: MediaAsset,
        work_dir: Path,
        job_id: str,
        deadline: Optional[float],
    ) -> Optional[Path]:
        """Cut long inputs down before encoding. Failure keeps the original."""
        seconds = self.transcoding_config.pretrim_duration
        output = work_dir / f"pretrim_{job_id}{asset.path.suffix or asset.container_suffix}"
        cmd = self.command_builder.build_pretrim_command(asset.path, output, seconds)
        logger.info(f"[Fit] Pre-trimming {asset.duration:.0f}s input to {seconds:g}s")
        try:
            await self.runner.run(cmd, output_path=output, duration=seconds, stage="Pre-trimming", timeout=deadline)
        except (ProcessFailure, TranscodeTimeout) as e:
            logger.warning(f"[Fit] Pre-trim failed, encoding full input: {e}")
            return None
        return output


def _discard(path: Path) -> None:
    try:
        path.unlink(missing_ok=True)
    except OSError as e:
        logger.warning(f"[Fit] Could not remove {path}: {e}")
