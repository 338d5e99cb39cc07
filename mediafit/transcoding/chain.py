"""
Sequential effect application.

Each effect gets its own FFmpeg pass and its own intermediate file.
"""

import logging
import uuid
from functools import partial
from pathlib import Path
from typing import Callable, List, Optional

from ..effects import EffectRegistry
from ..errors import ProcessFailure, TranscodeTimeout, TypeMismatch
from ..models import EffectType, EncoderBackend, FilterSpec, MediaAsset
from .commands import CommandBuilder, effect_pass_output, is_audio_filter
from .encoders import HW_VIDEO_ENCODER
from .runner import FFmpegRunner, ProgressCallback

logger = logging.getLogger(__name__)


class ChainExecutor:
    """Applies a FilterSpec to a media asset, one pass per effect."""

    def __init__(
        self,
        registry: EffectRegistry,
        runner: FFmpegRunner,
        command_builder: CommandBuilder,
    ):
        self.registry = registry
        self.runner = runner
        self.command_builder = command_builder

    def check_compatible(self, asset: MediaAsset, spec: FilterSpec) -> None:
        """
        Raise TypeMismatch (or UnknownEffect) before any work starts.

        Audio-only assets accept audio effects and audio raw filters only.
        """
        if spec.is_raw:
            if not asset.is_video and not is_audio_filter(spec.raw):
                raise TypeMismatch("raw")
            return

        for invocation in spec.effects:
            definition = self.registry.get_definition(invocation.name)
            if not asset.is_video and definition.type != EffectType.AUDIO:
                raise TypeMismatch(definition.name)

    async def execute(
        self,
        asset: MediaAsset,
        spec: FilterSpec,
        work_dir: Path,
        job_id: Optional[str] = None,
        progress_callback: Optional[ProgressCallback] = None,
    ) -> Path:
        """
        Run the clip trim (if any) and every effect in order.

        Returns the path of the final product, which is ``asset.path`` when
        the FilterSpec asks for nothing. Intermediates are deleted as soon as the
        next pass succeeds, and all of them are deleted on failure.
        """
        self.check_compatible(asset, spec)
        if spec.is_empty:
            return asset.path

        job_id = job_id or uuid.uuid4().hex[:8]
        work_dir.mkdir(parents=True, exist_ok=True)
        created: List[Path] = []
        current = asset.path

        try:
            if spec.clip is not None and not spec.clip.is_empty:
                current = await self._trim(asset, spec, work_dir, job_id, progress_callback)
                created.append(current)

            duration = self._pass_duration(asset, spec)

            if spec.is_raw:
                if asset.is_video and not asset.has_audio and is_audio_filter(spec.raw):
                    logger.warning(f"[Chain] Raw audio filter skipped: {asset.path.name} has no audio track")
                    return current
                output = work_dir / f"raw_{job_id}{asset.container_suffix}"
                build = partial(self.command_builder.build_raw_command, current, output, asset, spec.raw)
                await self._run_pass(build, output, duration, "Raw filter", "raw", progress_callback)
                self._advance(created, current, output)
                return output

            stream_asset = asset
            total = len(spec.effects)
            for index, invocation in enumerate(spec.effects, 1):
                definition = self.registry.get_definition(invocation.name)
                if asset.is_video and not asset.has_audio and definition.type == EffectType.AUDIO:
                    logger.warning(f"[Chain] {definition.name} skipped: {asset.path.name} has no audio track")
                    continue
                if not definition.validate(invocation.value):
                    logger.warning(
                        f"[Chain] Invalid value {invocation.value!r} for {definition.name}, "
                        f"using default {definition.default!r}"
                    )

                video_chain, audio_chain = definition.split_fragment(definition.apply(invocation.value))
                output = work_dir / f"filter_{index}_{job_id}_{definition.name}{asset.container_suffix}"
                build = partial(self._effect_command, current, output, stream_asset, video_chain, audio_chain)
                stage = f"Filter {index}/{total}: {definition.name}"
                logger.info(f"[Chain] {stage}")

                await self._run_pass(build, output, duration, stage, definition.name, progress_callback)
                self._advance(created, current, output)
                current = output
                stream_asset = effect_pass_output(stream_asset, output, video_chain, audio_chain)

            return current

        except BaseException:
            for path in created:
                _discard(path)
            raise

    async def _trim(
        self,
        asset: MediaAsset,
        spec: FilterSpec,
        work_dir: Path,
        job_id: str,
        progress_callback: Optional[ProgressCallback],
    ) -> Path:
        suffix = asset.path.suffix or asset.container_suffix
        output = work_dir / f"clip_{job_id}{suffix}"
        cmd = self.command_builder.build_trim_command(asset.path, output, spec.clip)
        logger.info(f"[Chain] Trimming {asset.path.name} (start={spec.clip.start}, duration={spec.clip.duration})")
        await self.runner.run(
            cmd,
            output_path=output,
            duration=self._pass_duration(asset, spec),
            stage="Trimming",
            progress_callback=progress_callback,
        )
        return output

    def _effect_command(
        self,
        source: Path,
        output: Path,
        asset: MediaAsset,
        video_chain: str,
        audio_chain: str,
        backend: EncoderBackend,
    ) -> List[str]:
        return self.command_builder.build_effect_command(
            source, output, asset, video_chain=video_chain, audio_chain=audio_chain, backend=backend
        )

    async def _run_pass(
        self,
        build: Callable[[EncoderBackend], List[str]],
        output: Path,
        duration: float,
        stage: str,
        effect_name: str,
        progress_callback: Optional[ProgressCallback],
    ) -> None:
        """
        Run one pass on the preferred backend.

        A hardware encoder error is retried once in software.
        """
        selector = self.command_builder.encoder_selector
        backend = selector.preferred_backend()
        try:
            try:
                await self.runner.run(
                    build(backend),
                    output_path=output,
                    duration=duration,
                    stage=stage,
                    progress_callback=progress_callback,
                )
            except ProcessFailure as e:
                hardware = backend == EncoderBackend.HARDWARE
                if not (hardware and selector.hw_config.fallback_to_software and selector.is_hw_error(e.stderr or e.message)):
                    raise
                logger.warning(
                    f"[Chain] {stage}: {selector.describe_error(e.stderr or e.message)}, retrying in software"
                )
                selector.mark_hw_failed(HW_VIDEO_ENCODER)
                await self.runner.run(
                    build(EncoderBackend.SOFTWARE),
                    output_path=output,
                    duration=duration,
                    stage=stage,
                    progress_callback=progress_callback,
                )
        except ProcessFailure as e:
            logger.error(f"[Chain] {stage} failed: {e.message}")
            raise ProcessFailure(
                f"Failed to apply filter '{effect_name}': {e.message}",
                return_code=e.return_code,
                stderr=e.stderr,
                effect_name=effect_name,
            ) from e
        except TranscodeTimeout as e:
            raise TranscodeTimeout(stage, e.deadline, effect_name=effect_name) from e

    def _advance(self, created: List[Path], previous: Path, output: Path) -> None:
        """Track the new intermediate and drop the one it replaces."""
        if previous in created:
            _discard(previous)
            created.remove(previous)
        created.append(output)

    @staticmethod
    def _pass_duration(asset: MediaAsset, spec: FilterSpec) -> float:
        """Expected length of the material each pass processes."""
        duration = asset.duration
        if spec.clip is not None:
            if spec.clip.start:
                duration = max(0.0, duration - spec.clip.start)
            if spec.clip.duration:
                duration = min(duration, spec.clip.duration)
        return duration


def _discard(path: Path) -> None:
    try:
        path.unlink(missing_ok=True)
    except OSError as e:
        logger.warning(f"[Chain] Could not remove {path}: {e}")
