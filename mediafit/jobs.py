"""
Job orchestration: probe, filter, fit and deliver one piece of media.
"""

import asyncio
import logging
import shutil
import uuid
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Callable, List, Optional, Union

from .config import MediaFitConfig, get_config
from .effects import EffectRegistry, build_default_registry
from .filters import FilterSpecParser, ParseResult
from .hardware import Capabilities, find_ffmpeg, find_ffprobe, get_capabilities
from .models import ClipWindow, EncoderBackend, FilterSpec, MediaAsset, TranscodeResult
from .probe import MediaProbe
from .transcoding import (
    ChainExecutor,
    CommandBuilder,
    EncoderSelector,
    FFmpegRunner,
    FitResult,
    ProgressCallback,
    SizeFittingEncoder,
)

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


class JobStatus(str, Enum):
    QUEUED = "queued"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class JobProgress:
    """Snapshot handed to job-level progress callbacks."""
    job_id: str
    stage: str = ""
    fraction: float = 0.0
    status: JobStatus = JobStatus.QUEUED


JobProgressCallback = Callable[[JobProgress], None]


class TranscodeJob:
    """
    Wires the processing components together for one configuration.

    Every ``run`` call gets its own job id and work directory under the
    configured temp directory. The work directory is removed when the call
    returns, whether it succeeded or not; only the delivered output in the
    output directory survives.
    """

    def __init__(
        self,
        config: Optional[MediaFitConfig] = None,
        registry: Optional[EffectRegistry] = None,
        runner: Optional[FFmpegRunner] = None,
        prober: Optional[MediaProbe] = None,
        encoder_selector: Optional[EncoderSelector] = None,
    ):
        self.config = config or get_config()
        tc = self.config.transcoding

        self.ffmpeg_path = find_ffmpeg(tc.ffmpeg_path)
        self.temp_dir = Path(tc.temp_directory)
        self.output_dir = Path(tc.output_directory)

        if encoder_selector is None:
            capabilities = get_capabilities(self.ffmpeg_path) if self.config.hardware.prefer_hw_accel else Capabilities()
            encoder_selector = EncoderSelector(capabilities, self.config.hardware)

        self.registry = registry or build_default_registry()
        self.encoder_selector = encoder_selector
        self.runner = runner or FFmpegRunner(tc.attempt_timeout, tc.terminate_grace)
        self.prober = prober or MediaProbe(find_ffprobe(tc.ffprobe_path), tc.probe_timeout)
        self.command_builder = CommandBuilder(self.ffmpeg_path, encoder_selector, self.config.compositor)
        self.chain = ChainExecutor(self.registry, self.runner, self.command_builder)
        self.fitter = SizeFittingEncoder(
            self.runner,
            self.command_builder,
            encoder_selector,
            tc,
            self.config.hardware,
        )

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    @staticmethod
    def new_job_id() -> str:
        return uuid.uuid4().hex[:8]

    def job_dir(self, job_id: str) -> Path:
        return self.temp_dir / job_id

    def parser(self, ignore=()) -> FilterSpecParser:
        return FilterSpecParser(self.registry, ignore=ignore)

    def parse(
        self,
        filter_text: Optional[str],
        clip: Optional[ClipWindow] = None,
        strict: bool = False,
        ignore=(),
    ) -> ParseResult:
        """Parse filter text; no text yields an empty spec carrying the clip."""
        if not filter_text:
            return ParseResult(spec=FilterSpec(clip=clip))
        result = self.parser(ignore).parse(filter_text, clip)
        if strict:
            result.raise_for_warnings()
        for warning in result.warnings:
            logger.warning(f"[Job] {warning}")
        return result

    def progress_forwarder(
        self,
        job_id: str,
        callback: Optional[JobProgressCallback],
    ) -> Optional[ProgressCallback]:
        """Adapt a job-level callback to the runner's (stage, fraction) form."""
        if callback is None:
            return None

        progress = JobProgress(job_id=job_id, status=JobStatus.PROCESSING)

        def forward(stage: str, fraction: float) -> None:
            progress.stage = stage
            progress.fraction = fraction
            callback(progress)

        return forward

    def deliver(self, produced: Path, output_name: Optional[str], source: Optional[Path] = None) -> Path:
        """
        Place the product in the output directory.

        The container suffix of the product always wins over the one in
        ``output_name``. The caller's input is copied, never moved.
        """
        self.output_dir.mkdir(parents=True, exist_ok=True)
        stem = Path(output_name).stem if output_name else produced.stem
        target = self.output_dir / f"{stem}{produced.suffix}"

        if source is not None and produced.resolve() == source.resolve():
            shutil.copy2(produced, target)
        else:
            shutil.move(str(produced), str(target))

        logger.info(f"[Job] Output written to {target}")
        return target

    async def cleanup_job_async(self, job_id: str) -> None:
        """Remove a job work directory without blocking the event loop."""
        job_dir = self.job_dir(job_id)
        if not job_dir.exists():
            return

        loop = asyncio.get_running_loop()

        def do_cleanup():
            shutil.rmtree(job_dir, ignore_errors=True)
            logger.debug(f"[Job] Cleaned up {job_dir}")

        await loop.run_in_executor(None, do_cleanup)

    @staticmethod
    def _hw_accel_label(fitted: FitResult) -> str:
        if fitted.backend == EncoderBackend.HARDWARE:
            return "nvenc"
        return "software"

    def _notify(self, callback: Optional[JobProgressCallback], job_id: str, status: JobStatus) -> None:
        if callback is None:
            return
        try:
            callback(JobProgress(job_id=job_id, fraction=1.0 if status == JobStatus.COMPLETED else 0.0, status=status))
        except Exception as e:
            logger.warning(f"[Job] Progress callback error: {e}")

    # -------------------------------------------------------------------------
    # Operations
    # -------------------------------------------------------------------------

    async def run(
        self,
        input_path: PathLike,
        output_name: Optional[str] = None,
        filter_text: Optional[str] = None,
        clip: Optional[ClipWindow] = None,
        ceiling_bytes: Optional[int] = None,
        strict: bool = False,
        progress_callback: Optional[JobProgressCallback] = None,
    ) -> TranscodeResult:
        """
        Full pipeline: probe, parse, apply effects, optionally fit, deliver.

        Unknown effect names are dropped with a warning unless ``strict``.
        """
        job_id = self.new_job_id()
        work_dir = self.job_dir(job_id)
        forward = self.progress_forwarder(job_id, progress_callback)
        self._notify(progress_callback, job_id, JobStatus.PROCESSING)
        logger.info(f"[Job] {job_id}: transcoding {input_path}")

        try:
            asset = await self.prober.probe(input_path)
            parsed = self.parse(filter_text, clip, strict)

            produced = await self.chain.execute(asset, parsed.spec, work_dir, job_id, forward)
            attempts = 0
            hw_accel = "software"

            if ceiling_bytes is not None:
                fit_asset = asset if produced == asset.path else await self.prober.probe(produced)
                fitted = await self.fitter.fit(fit_asset, ceiling_bytes, work_dir, job_id, progress_callback=forward)
                produced = fitted.path
                attempts = fitted.attempts
                hw_accel = self._hw_accel_label(fitted)

            output = self.deliver(produced, output_name, asset.path)
            self._notify(progress_callback, job_id, JobStatus.COMPLETED)
            return TranscodeResult(
                path=output,
                asset=asset,
                warnings=[str(w) for w in parsed.warnings],
                effects=[str(e) for e in parsed.spec.effects] or ([parsed.spec.raw] if parsed.spec.raw else []),
                attempts=attempts,
                hw_accel=hw_accel,
            )
        except BaseException:
            self._notify(progress_callback, job_id, JobStatus.FAILED)
            raise
        finally:
            await self.cleanup_job_async(job_id)

    async def run_chain(
        self,
        input_path: PathLike,
        spec: Union[FilterSpec, str],
        output_name: Optional[str] = None,
        progress_callback: Optional[JobProgressCallback] = None,
    ) -> TranscodeResult:
        """Apply an already-parsed spec (or filter text) without size fitting."""
        job_id = self.new_job_id()
        forward = self.progress_forwarder(job_id, progress_callback)

        try:
            asset = await self.prober.probe(input_path)
            warnings: List[str] = []
            if isinstance(spec, str):
                parsed = self.parse(spec)
                spec = parsed.spec
                warnings = [str(w) for w in parsed.warnings]

            produced = await self.chain.execute(asset, spec, self.job_dir(job_id), job_id, forward)
            output = self.deliver(produced, output_name or f"{asset.path.stem}_filtered", asset.path)
            return TranscodeResult(
                path=output,
                asset=asset,
                warnings=warnings,
                effects=[str(e) for e in spec.effects],
            )
        finally:
            await self.cleanup_job_async(job_id)

    async def fit_to_size(
        self,
        input_path: PathLike,
        ceiling_bytes: Optional[int] = None,
        deadline: Optional[float] = None,
        output_name: Optional[str] = None,
        progress_callback: Optional[JobProgressCallback] = None,
    ) -> TranscodeResult:
        """Encode an input under the byte ceiling with no effects applied."""
        job_id = self.new_job_id()
        forward = self.progress_forwarder(job_id, progress_callback)
        ceiling = ceiling_bytes if ceiling_bytes is not None else self.config.transcoding.default_ceiling_bytes

        try:
            asset = await self.prober.probe(input_path)
            fitted = await self.fitter.fit(asset, ceiling, self.job_dir(job_id), job_id, deadline, forward)
            output = self.deliver(fitted.path, output_name or f"{asset.path.stem}_fit", asset.path)
            return TranscodeResult(
                path=output,
                asset=asset,
                attempts=fitted.attempts,
                hw_accel=self._hw_accel_label(fitted),
            )
        finally:
            await self.cleanup_job_async(job_id)


# =============================================================================
# One-shot helpers
# =============================================================================

async def transcode(
    input_path: PathLike,
    output_name: Optional[str] = None,
    filter_text: Optional[str] = None,
    clip: Optional[ClipWindow] = None,
    ceiling_bytes: Optional[int] = None,
    config: Optional[MediaFitConfig] = None,
    **kwargs,
) -> TranscodeResult:
    """Run one transcode with a job built from ``config``."""
    return await TranscodeJob(config=config).run(
        input_path, output_name, filter_text, clip, ceiling_bytes, **kwargs
    )


async def run_chain(
    input_path: PathLike,
    spec: Union[FilterSpec, str],
    output_name: Optional[str] = None,
    config: Optional[MediaFitConfig] = None,
) -> TranscodeResult:
    return await TranscodeJob(config=config).run_chain(input_path, spec, output_name)


async def fit_to_size(
    input_path: PathLike,
    ceiling_bytes: Optional[int] = None,
    deadline: Optional[float] = None,
    output_name: Optional[str] = None,
    config: Optional[MediaFitConfig] = None,
) -> TranscodeResult:
    return await TranscodeJob(config=config).fit_to_size(input_path, ceiling_bytes, deadline, output_name)


def probe_asset(input_path: PathLike, config: Optional[MediaFitConfig] = None) -> MediaAsset:
    """Synchronous probe for callers outside an event loop."""
    config = config or get_config()
    prober = MediaProbe(find_ffprobe(config.transcoding.ffprobe_path), config.transcoding.probe_timeout)
    return asyncio.run(prober.probe(input_path))
