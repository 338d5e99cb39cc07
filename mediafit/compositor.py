"""
Multi-input compositing: grids, side-by-side, stream muxing and DJ mode.
"""

import logging
import math
import random
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Sequence, Tuple, Union

from .errors import ProbeError, ProcessFailure, TranscodeTimeout, TypeMismatch
from .filters import GRID_OPTION_KEYS, parse_grid_options
from .jobs import JobProgressCallback, PathLike, TranscodeJob
from .models import EffectInvocation, FilterSpec, GridOptions, MediaAsset, TranscodeResult
from .transcoding import grid_dimensions
from .transcoding.constants import MAX_GRID_SOURCES, MIN_GRID_SOURCES

logger = logging.getLogger(__name__)

DJ_FILTERS_SKIPPED = "dj-filters"


@dataclass(frozen=True)
class ClipPlan:
    """Where the video and audio clips of a mux are cut from."""
    video_start: float
    audio_start: float
    duration: float


def pick_start(source_duration: float, clip_duration: float, requested: Optional[float], rng: random.Random) -> float:
    """Clamp a requested start, or pick a random whole-second start that fits."""
    latest = max(0.0, source_duration - clip_duration)
    if requested is not None:
        return min(max(0.0, requested), latest)
    return float(math.floor(rng.random() * latest))


def fill_sources(inputs: Sequence[PathLike], count: Optional[int] = None) -> List[PathLike]:
    """Repeat inputs cyclically to ``count`` cells, clamped to the grid limits."""
    if not inputs:
        raise ValueError("At least one input is required")
    wanted = count if count is not None else len(inputs)
    wanted = min(MAX_GRID_SOURCES, max(MIN_GRID_SOURCES, wanted))
    return [inputs[i % len(inputs)] for i in range(wanted)]


class Compositor:
    """Builds composite outputs on top of a TranscodeJob's components."""

    def __init__(self, job: Optional[TranscodeJob] = None, rng: Optional[random.Random] = None):
        self.job = job or TranscodeJob()
        self.rng = rng or random.Random()

    @property
    def config(self):
        return self.job.config.compositor

    # -------------------------------------------------------------------------
    # Grid
    # -------------------------------------------------------------------------

    async def grid(
        self,
        inputs: Sequence[PathLike],
        output_name: Optional[str] = None,
        count: Optional[int] = None,
        options: Union[GridOptions, str, None] = None,
        filter_text: Optional[str] = None,
        ceiling_bytes: Optional[int] = None,
        progress_callback: Optional[JobProgressCallback] = None,
    ) -> TranscodeResult:
        """
        Tile 2-9 inputs into a 2x2, 2x3 or 3x3 grid.

        ``filter_text`` effects are applied to every cell before tiling.
        ``options`` may be a GridOptions or text holding mdelay/mspeed/msync.
        """
        if isinstance(options, str) or options is None:
            grid_options = parse_grid_options(options or filter_text)
        else:
            grid_options = options

        sources = fill_sources(inputs, count)
        rows, cols = grid_dimensions(len(sources))
        job_id = self.job.new_job_id()
        work_dir = self.job.job_dir(job_id)
        forward = self.job.progress_forwarder(job_id, progress_callback)
        logger.info(f"[Grid] {job_id}: {len(sources)} sources in {rows}x{cols}")

        try:
            work_dir.mkdir(parents=True, exist_ok=True)
            parsed = self.job.parse(filter_text, ignore=GRID_OPTION_KEYS) if filter_text else None
            spec = parsed.spec if parsed and not parsed.spec.is_empty else None

            assets: List[MediaAsset] = []
            for index, source in enumerate(sources):
                asset = await self.job.prober.probe(source)
                if spec is not None:
                    produced = await self.job.chain.execute(
                        asset, spec, work_dir, f"{job_id}_{index}", forward
                    )
                    if produced != asset.path:
                        asset = await self.job.prober.probe(produced)
                assets.append(asset)

            output = work_dir / f"grid_{job_id}.mp4"
            cmd = self.job.command_builder.build_grid_command(assets, output, rows, cols, grid_options)
            await self.job.runner.run(
                cmd,
                output_path=output,
                duration=max(a.duration for a in assets),
                stage="Compositing grid",
                progress_callback=forward,
            )

            return await self._finish(
                output, output_name or f"grid_{job_id}", ceiling_bytes, work_dir, job_id, forward,
                effects=[str(e) for e in spec.effects] if spec else [],
                warnings=[str(w) for w in parsed.warnings] if parsed else [],
            )
        finally:
            await self.job.cleanup_job_async(job_id)

    async def side_by_side(
        self,
        left: PathLike,
        right: PathLike,
        output_name: Optional[str] = None,
        ceiling_bytes: Optional[int] = None,
        progress_callback: Optional[JobProgressCallback] = None,
    ) -> TranscodeResult:
        """Two videos next to each other with their audio mixed."""
        job_id = self.job.new_job_id()
        work_dir = self.job.job_dir(job_id)
        forward = self.job.progress_forwarder(job_id, progress_callback)

        try:
            left_asset = await self.job.prober.probe(left)
            right_asset = await self.job.prober.probe(right)
            for asset in (left_asset, right_asset):
                if not asset.is_video:
                    raise TypeMismatch("side-by-side")

            work_dir.mkdir(parents=True, exist_ok=True)
            output = work_dir / f"sbs_{job_id}.mp4"
            cmd = self.job.command_builder.build_side_by_side_command(left_asset, right_asset, output)
            await self.job.runner.run(
                cmd,
                output_path=output,
                duration=min(left_asset.duration, right_asset.duration),
                stage="Compositing side by side",
                progress_callback=forward,
            )
            return await self._finish(
                output, output_name or f"sbs_{job_id}", ceiling_bytes, work_dir, job_id, forward
            )
        finally:
            await self.job.cleanup_job_async(job_id)

    # -------------------------------------------------------------------------
    # Muxing
    # -------------------------------------------------------------------------

    def plan_clips(
        self,
        video: MediaAsset,
        audio: MediaAsset,
        duration: Optional[float] = None,
        video_start: Optional[float] = None,
        audio_start: Optional[float] = None,
    ) -> ClipPlan:
        """Clip length is capped by both sources and max_clip_seconds."""
        length = min(self.config.max_clip_seconds, video.duration, audio.duration)
        if duration is not None:
            length = min(length, duration)
        return ClipPlan(
            video_start=pick_start(video.duration, length, video_start, self.rng),
            audio_start=pick_start(audio.duration, length, audio_start, self.rng),
            duration=length,
        )

    async def mux(
        self,
        video_path: PathLike,
        audio_path: PathLike,
        work_dir: Path,
        job_id: str,
        duration: Optional[float] = None,
        video_start: Optional[float] = None,
        audio_start: Optional[float] = None,
        progress_callback=None,
    ) -> Path:
        """
        Pair a video clip from one source with an audio clip from another.

        Returns the muxed file inside ``work_dir``.
        """
        video = await self.job.prober.probe(video_path)
        audio = await self.job.prober.probe(audio_path)
        if not video.is_video:
            raise TypeMismatch("mux")
        if not audio.has_audio:
            raise ProbeError(str(audio.path), "no audio stream to mux")

        plan = self.plan_clips(video, audio, duration, video_start, audio_start)
        logger.info(
            f"[DJ] Clips: video@{plan.video_start:.0f}s audio@{plan.audio_start:.0f}s "
            f"for {plan.duration:.1f}s"
        )

        work_dir.mkdir(parents=True, exist_ok=True)
        builder = self.job.command_builder
        video_clip = work_dir / f"video_clip_{job_id}.mp4"
        audio_clip = work_dir / f"audio_clip_{job_id}.m4a"
        output = work_dir / f"muxed_{job_id}.mp4"

        try:
            await self.job.runner.run(
                builder.build_clip_stream_command(video.path, video_clip, plan.video_start, plan.duration, "video"),
                output_path=video_clip,
                duration=plan.duration,
                stage="Extracting video clip",
                progress_callback=progress_callback,
            )
            await self.job.runner.run(
                builder.build_clip_stream_command(audio.path, audio_clip, plan.audio_start, plan.duration, "audio"),
                output_path=audio_clip,
                duration=plan.duration,
                stage="Extracting audio clip",
                progress_callback=progress_callback,
            )
            await self.job.runner.run(
                builder.build_mux_command(video_clip, audio_clip, output),
                output_path=output,
                duration=plan.duration,
                stage="Muxing",
                progress_callback=progress_callback,
            )
        finally:
            for clip in (video_clip, audio_clip):
                clip.unlink(missing_ok=True)

        return output

    async def jumble(
        self,
        video_path: PathLike,
        audio_path: PathLike,
        output_name: Optional[str] = None,
        duration: Optional[float] = None,
        ceiling_bytes: Optional[int] = None,
        progress_callback: Optional[JobProgressCallback] = None,
    ) -> TranscodeResult:
        """Mux random clips of two sources with no effects."""
        job_id = self.job.new_job_id()
        work_dir = self.job.job_dir(job_id)
        forward = self.job.progress_forwarder(job_id, progress_callback)

        try:
            muxed = await self.mux(video_path, audio_path, work_dir, job_id, duration, progress_callback=forward)
            return await self._finish(
                muxed, output_name or f"jumble_{job_id}", ceiling_bytes, work_dir, job_id, forward
            )
        finally:
            await self.job.cleanup_job_async(job_id)

    async def dj(
        self,
        video_path: PathLike,
        audio_path: PathLike,
        output_name: Optional[str] = None,
        duration: Optional[float] = None,
        ceiling_bytes: Optional[int] = None,
        progress_callback: Optional[JobProgressCallback] = None,
    ) -> TranscodeResult:
        """
        Mux random clips, then stack randomly chosen effects on top.

        Effect sets that fail are blacklisted and a new set is drawn, up to
        ``dj_max_retries`` times. If every set fails the unfiltered mux is
        delivered and the result lists ``dj-filters`` as skipped.
        """
        job_id = self.job.new_job_id()
        work_dir = self.job.job_dir(job_id)
        forward = self.job.progress_forwarder(job_id, progress_callback)

        try:
            muxed = await self.mux(video_path, audio_path, work_dir, job_id, duration, progress_callback=forward)
            asset = await self.job.prober.probe(muxed)

            filtered, effects, failures = await self._apply_random_effects(asset, work_dir, job_id, forward)
            skipped: List[str] = []
            if filtered is None:
                logger.warning("[DJ] All effect sets failed, delivering unfiltered mix")
                skipped.append(DJ_FILTERS_SKIPPED)
                filtered = muxed

            result = await self._finish(
                filtered, output_name or f"dj_{job_id}", ceiling_bytes, work_dir, job_id, forward,
                effects=effects, warnings=failures,
            )
            result.skipped.extend(skipped)
            return result
        finally:
            await self.job.cleanup_job_async(job_id)

    async def _apply_random_effects(
        self,
        asset: MediaAsset,
        work_dir: Path,
        job_id: str,
        progress_callback,
    ) -> Tuple[Optional[Path], List[str], List[str]]:
        registry = self.job.registry
        blacklist: set = set()
        failures: List[str] = []

        for attempt in range(1, self.config.dj_max_retries + 1):
            names = registry.random_names(self.config.dj_effect_count, self.rng, exclude=blacklist)
            if not names:
                break

            spec = FilterSpec(effects=tuple(EffectInvocation(n, registry[n].type) for n in names))
            logger.info(f"[DJ] Attempt {attempt}: {', '.join(names)}")
            try:
                produced = await self.job.chain.execute(
                    asset, spec, work_dir, f"{job_id}_dj{attempt}", progress_callback
                )
                return produced, names, failures
            except (ProcessFailure, TranscodeTimeout) as e:
                logger.warning(f"[DJ] Effects {names} failed: {e}")
                failures.append(str(e))
                # Drop the whole set
                blacklist.update(names)

        return None, [], failures

    async def _finish(
        self,
        produced: Path,
        output_name: str,
        ceiling_bytes: Optional[int],
        work_dir: Path,
        job_id: str,
        progress_callback,
        effects: Optional[List[str]] = None,
        warnings: Optional[List[str]] = None,
    ) -> TranscodeResult:
        """Optionally fit the composite under a ceiling, then deliver it."""
        attempts = 0
        if ceiling_bytes is not None:
            asset = await self.job.prober.probe(produced)
            fitted = await self.job.fitter.fit(
                asset, ceiling_bytes, work_dir, job_id, progress_callback=progress_callback
            )
            produced = fitted.path
            attempts = fitted.attempts

        output = self.job.deliver(produced, output_name)
        return TranscodeResult(
            path=output,
            effects=list(effects or []),
            warnings=list(warnings or []),
            attempts=attempts,
        )
