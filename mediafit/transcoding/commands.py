"""
FFmpeg command building for trims, effect passes, size fitting and compositing.

Every builder returns an argument list whose last element is the output path.
"""

import logging
from dataclasses import replace
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

from ..config import CompositorConfig
from ..effects import atempo_chain
from ..models import ClipWindow, EncodeAttempt, EncoderBackend, GridOptions, MediaAsset
from .constants import (
    AUDIO_FILTER_PREFIXES,
    EVEN_DIMENSIONS_FILTER,
    INTERMEDIATE_AUDIO_KBPS,
    LOUDNORM_FILTER,
    MAX_OUTPUT_WIDTH,
    MP4_COPY_AUDIO_CODECS,
    MP4_COPY_VIDEO_CODECS,
    OUTPUT_CHANNELS,
    SYNC_SPEED_MAX,
    SYNC_SPEED_MIN,
)
from .encoders import EncoderSelector

logger = logging.getLogger(__name__)


def format_seconds(value: float) -> str:
    return f"{value:.3f}"


def is_audio_filter(filter_text: str) -> bool:
    """Guess whether a raw filter string targets the audio stream."""
    return filter_text.strip().lower().startswith(AUDIO_FILTER_PREFIXES)


def scale_filter(asset: MediaAsset, target_height: int) -> str:
    """Downscale to fit MAX_OUTPUT_WIDTH x target_height, never upscale."""
    if asset.width > MAX_OUTPUT_WIDTH or asset.height > target_height:
        return (
            f"scale=w='min({MAX_OUTPUT_WIDTH},iw)':h='min({target_height},ih)'"
            ":force_original_aspect_ratio=decrease:force_divisible_by=2,format=yuv420p"
        )
    return f"{EVEN_DIMENSIONS_FILTER},format=yuv420p"


def can_copy_video(asset: MediaAsset) -> bool:
    return asset.video_codec in MP4_COPY_VIDEO_CODECS


def can_copy_audio(asset: MediaAsset) -> bool:
    return asset.audio_codec in MP4_COPY_AUDIO_CODECS


def effect_pass_output(asset: MediaAsset, output: Path, video_chain: str = "", audio_chain: str = "") -> MediaAsset:
    """Describe what an effect pass on ``asset`` writes to ``output``."""
    if not asset.is_video:
        return replace(asset, path=output, audio_codec="opus")
    video_codec = asset.video_codec if not video_chain and can_copy_video(asset) else "h264"
    audio_codec = ""
    if asset.has_audio:
        audio_codec = asset.audio_codec if not audio_chain and can_copy_audio(asset) else "aac"
    return replace(asset, path=output, video_codec=video_codec, audio_codec=audio_codec)


def sync_factor(duration: float, target: float) -> float:
    """Playback speed that stretches ``duration`` towards ``target``."""
    if duration <= 0 or target <= 0:
        return 1.0
    return min(SYNC_SPEED_MAX, max(SYNC_SPEED_MIN, duration / target))


class CommandBuilder:
    """Builds FFmpeg commands for every processing stage."""

    def __init__(
        self,
        ffmpeg_path: str,
        encoder_selector: EncoderSelector,
        compositor_config: Optional[CompositorConfig] = None,
    ):
        self.ffmpeg_path = ffmpeg_path
        self.encoder_selector = encoder_selector
        self.compositor_config = compositor_config or CompositorConfig()

    def _base(self) -> List[str]:
        return [self.ffmpeg_path, "-y", "-hide_banner", "-nostdin"]

    # -------------------------------------------------------------------------
    # Trimming
    # -------------------------------------------------------------------------

    def build_trim_command(self, source: Path, output: Path, clip: ClipWindow) -> List[str]:
        """Cut a window out of ``source`` without re-encoding."""
        cmd = self._base()
        if clip.start:
            cmd.extend(["-ss", format_seconds(clip.start)])
        cmd.extend(["-i", str(source)])
        if clip.duration:
            cmd.extend(["-t", format_seconds(clip.duration)])
        cmd.extend(["-c", "copy", "-avoid_negative_ts", "make_zero", str(output)])
        return cmd

    def build_pretrim_command(self, source: Path, output: Path, seconds: float) -> List[str]:
        """Keep the first ``seconds`` of a long input ahead of size fitting."""
        cmd = self._base()
        cmd.extend([
            "-i", str(source),
            "-t", format_seconds(seconds),
            "-c", "copy",
            "-avoid_negative_ts", "make_zero",
            str(output),
        ])
        return cmd

    # -------------------------------------------------------------------------
    # Effect passes
    # -------------------------------------------------------------------------

    def build_effect_command(
        self,
        source: Path,
        output: Path,
        asset: MediaAsset,
        video_chain: str = "",
        audio_chain: str = "",
        backend: Optional[EncoderBackend] = None,
    ) -> List[str]:
        """
        One intermediate pass applying a video chain, an audio chain, or both.

        Audio-only assets are written as Opus in Ogg, video assets as
        H.264/AAC in MP4. The stream an effect leaves alone is copied when
        its codec fits in MP4 and re-encoded otherwise.
        """
        cmd = self._base()
        cmd.extend(["-i", str(source)])

        if not asset.is_video:
            cmd.extend(["-vn"])
            if audio_chain:
                cmd.extend(["-af", audio_chain])
            cmd.extend(["-c:a", "libopus", "-b:a", f"{INTERMEDIATE_AUDIO_KBPS}k", str(output)])
            return cmd

        if video_chain:
            cmd.extend(["-vf", f"{video_chain},{EVEN_DIMENSIONS_FILTER},format=yuv420p"])
            cmd.extend(self.encoder_selector.intermediate_video_args(backend))
        elif can_copy_video(asset):
            cmd.extend(["-c:v", "copy"])
        else:
            cmd.extend(["-vf", f"{EVEN_DIMENSIONS_FILTER},format=yuv420p"])
            cmd.extend(self.encoder_selector.intermediate_video_args(backend))

        if not asset.has_audio:
            cmd.append("-an")
        elif audio_chain:
            cmd.extend(["-af", audio_chain, "-c:a", "aac", "-b:a", f"{INTERMEDIATE_AUDIO_KBPS}k"])
        elif can_copy_audio(asset):
            cmd.extend(["-c:a", "copy"])
        else:
            cmd.extend(["-c:a", "aac", "-b:a", f"{INTERMEDIATE_AUDIO_KBPS}k"])

        cmd.extend(["-movflags", "+faststart", str(output)])
        return cmd

    def build_raw_command(
        self,
        source: Path,
        output: Path,
        asset: MediaAsset,
        filter_text: str,
        backend: Optional[EncoderBackend] = None,
    ) -> List[str]:
        if is_audio_filter(filter_text):
            return self.build_effect_command(source, output, asset, audio_chain=filter_text, backend=backend)
        return self.build_effect_command(source, output, asset, video_chain=filter_text, backend=backend)

    # -------------------------------------------------------------------------
    # Size fitting
    # -------------------------------------------------------------------------

    def build_fit_command(self, source: Path, output: Path, asset: MediaAsset, attempt: EncodeAttempt) -> List[str]:
        """Final encode for one ladder attempt."""
        cmd = self._base()
        cmd.extend(["-i", str(source)])

        if attempt.trim:
            cmd.extend(["-t", format_seconds(attempt.trim)])

        if asset.has_audio:
            cmd.extend([
                "-af", LOUDNORM_FILTER,
                "-ac", str(OUTPUT_CHANNELS),
                "-c:a", "libopus",
                "-b:a", f"{attempt.audio_bitrate}k",
                "-vbr", "on",
                "-application", "audio",
            ])
        else:
            cmd.append("-an")

        if asset.is_video:
            cmd.extend(["-vf", scale_filter(asset, attempt.target_height)])
            cmd.extend(self.encoder_selector.fit_video_args(attempt))
            cmd.extend(["-pix_fmt", "yuv420p", "-movflags", "+faststart", "-f", "mp4"])
        else:
            cmd.extend(["-vn", "-f", "ogg"])

        cmd.append(str(output))
        return cmd

    # -------------------------------------------------------------------------
    # Compositing
    # -------------------------------------------------------------------------

    def build_grid_filter(
        self,
        sources: Sequence[MediaAsset],
        rows: int,
        cols: int,
        options: Optional[GridOptions] = None,
    ) -> Tuple[str, bool]:
        """
        Filter graph tiling ``sources`` into a rows x cols grid.

        Returns the graph and whether it produces an ``[aout]`` label.
        Short rows are padded to full width so vstack sees equal widths.
        """
        options = options or GridOptions()
        width = self.compositor_config.grid_cell_width
        height = self.compositor_config.grid_cell_height
        parts: List[str] = []
        audio_labels: List[str] = []

        target = 0.0
        if options.sync:
            target = options.sync_duration or min(s.duration for s in sources)

        for i, asset in enumerate(sources):
            factor = options.speed
            if options.sync:
                factor *= sync_factor(asset.duration, target)
            delay = i * options.delay_ms / 1000.0

            if asset.is_video:
                video = [f"setpts=PTS/{factor:.4g}"] if factor != 1 else []
                video.extend([f"scale={width}:{height}", "setsar=1"])
                if delay:
                    video.append(f"tpad=start_duration={delay:g}")
                parts.append(f"[{i}:v]{','.join(video)}[v{i}]")
            else:
                # Audio-only sources get a black tile
                length = asset.duration / factor + delay
                parts.append(f"color=c=black:s={width}x{height}:d={length:.3f},setsar=1[v{i}]")

            if asset.has_audio:
                audio = [atempo_chain(factor)] if factor != 1 else []
                audio.append("volume=1")
                if delay:
                    audio.append(f"adelay={int(delay * 1000)}:all=1")
                parts.append(f"[{i}:a]{','.join(audio)}[a{i}]")
                audio_labels.append(f"[a{i}]")

        row_labels: List[str] = []
        for r in range(rows):
            cells = [i for i in range(r * cols, (r + 1) * cols) if i < len(sources)]
            if not cells:
                continue
            inputs = "".join(f"[v{i}]" for i in cells)
            chain = f"hstack=inputs={len(cells)}" if len(cells) > 1 else "null"
            if len(cells) < cols:
                chain += f",pad={cols * width}:{height}"
            parts.append(f"{inputs}{chain}[row{r}]")
            row_labels.append(f"[row{r}]")

        if len(row_labels) > 1:
            parts.append(f"{''.join(row_labels)}vstack=inputs={len(row_labels)}[vout]")
        else:
            parts.append(f"{row_labels[0]}null[vout]")

        if len(audio_labels) > 1:
            parts.append(f"{''.join(audio_labels)}amix=inputs={len(audio_labels)}:dropout_transition=0[aout]")
        elif audio_labels:
            parts.append(f"{audio_labels[0]}anull[aout]")

        return ";".join(parts), bool(audio_labels)

    def build_grid_command(
        self,
        sources: Sequence[MediaAsset],
        output: Path,
        rows: int,
        cols: int,
        options: Optional[GridOptions] = None,
    ) -> List[str]:
        graph, has_audio = self.build_grid_filter(sources, rows, cols, options)
        cmd = self._base()
        for asset in sources:
            cmd.extend(["-i", str(asset.path)])
        return cmd + self._composite_output(graph, has_audio, output)

    def build_side_by_side_command(self, left: MediaAsset, right: MediaAsset, output: Path) -> List[str]:
        """Two videos next to each other with their audio mixed."""
        width = self.compositor_config.side_by_side_width
        height = self.compositor_config.side_by_side_height
        parts = [
            f"[0:v]scale={width}:{height},setsar=1[left]",
            f"[1:v]scale={width}:{height},setsar=1[right]",
            "[left][right]hstack=inputs=2[vout]",
        ]
        audio = [f"[{i}:a]" for i, asset in enumerate((left, right)) if asset.has_audio]
        if len(audio) == 2:
            parts.append(f"{''.join(audio)}amix=inputs=2:dropout_transition=0[aout]")
        elif audio:
            parts.append(f"{audio[0]}anull[aout]")

        cmd = self._base()
        cmd.extend(["-i", str(left.path), "-i", str(right.path)])
        return cmd + self._composite_output(";".join(parts), bool(audio), output)

    def _composite_output(self, graph: str, has_audio: bool, output: Path) -> List[str]:
        args = ["-filter_complex", graph, "-map", "[vout]"]
        if has_audio:
            args.extend(["-map", "[aout]"])
        args.extend(["-c:v", "libx264", "-preset", "medium", "-crf", "23", "-pix_fmt", "yuv420p"])
        if has_audio:
            args.extend(["-c:a", "aac", "-b:a", "128k"])
        args.extend(["-shortest", "-movflags", "+faststart", str(output)])
        return args

    # -------------------------------------------------------------------------
    # Muxing
    # -------------------------------------------------------------------------

    def build_clip_stream_command(
        self,
        source: Path,
        output: Path,
        start: float,
        duration: float,
        stream: str,
    ) -> List[str]:
        """Extract one stream (``video`` or ``audio``) as a standalone clip."""
        cmd = self._base()
        cmd.extend(["-ss", format_seconds(start), "-i", str(source), "-t", format_seconds(duration)])
        if stream == "video":
            cmd.extend([
                "-map", "0:v:0",
                "-c:v", "libx264", "-preset", "fast", "-crf", "23",
                "-pix_fmt", "yuv420p",
                "-an",
            ])
        elif stream == "audio":
            cmd.extend([
                "-map", "0:a:0",
                "-vn",
                "-c:a", "aac", "-b:a", "192k",
                "-ar", "44100", "-ac", str(OUTPUT_CHANNELS),
            ])
        else:
            raise ValueError(f"Unknown stream kind: {stream}")
        cmd.append(str(output))
        return cmd

    def build_mux_command(self, video: Path, audio: Path, output: Path) -> List[str]:
        """Video from the first input, audio from the second, cut to the shorter."""
        cmd = self._base()
        cmd.extend([
            "-i", str(video),
            "-i", str(audio),
            "-map", "0:v:0",
            "-map", "1:a:0",
            "-c:v", "copy",
            "-c:a", "copy",
            "-shortest",
            "-movflags", "+faststart",
            str(output),
        ])
        return cmd
