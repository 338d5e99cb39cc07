"""
Media inspection via ffprobe.
"""

import asyncio
import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from .errors import MediaNotFoundError, ProbeError
from .models import MediaAsset

logger = logging.getLogger(__name__)


class MediaProbe:
    """Reads duration, stream layout and dimensions with ffprobe."""

    def __init__(self, ffprobe_path: str = "ffprobe", timeout: float = 30.0):
        self.ffprobe_path = ffprobe_path
        self.timeout = timeout

    async def probe(self, path: Union[str, Path]) -> MediaAsset:
        """
        Probe a local media file.

        Raises:
            MediaNotFoundError: the file is missing or empty.
            ProbeError: ffprobe failed, timed out, or returned unusable data.
        """
        media_path = Path(path)
        if not media_path.is_file() or media_path.stat().st_size == 0:
            raise MediaNotFoundError(str(media_path))

        data = await self._run_ffprobe(media_path)
        asset = self.parse_probe_data(media_path, data)
        logger.debug(
            f"[Probe] {media_path.name}: {asset.duration:.2f}s, video={asset.is_video}, "
            f"{asset.width}x{asset.height}, audio={asset.has_audio}"
        )
        return asset

    async def _run_ffprobe(self, media_path: Path) -> Dict[str, Any]:
        cmd = [
            self.ffprobe_path,
            "-v", "quiet",
            "-print_format", "json",
            "-show_format",
            "-show_streams",
            str(media_path),
        ]

        try:
            process = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise ProbeError(str(media_path), f"could not start ffprobe: {e}") from e

        try:
            stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=self.timeout)
        except asyncio.TimeoutError:
            process.kill()
            await process.wait()
            raise ProbeError(str(media_path), f"ffprobe timed out after {self.timeout:g}s")

        if process.returncode != 0:
            message = stderr.decode("utf-8", errors="ignore").strip() or f"exit code {process.returncode}"
            raise ProbeError(str(media_path), message)

        try:
            return json.loads(stdout.decode("utf-8", errors="ignore"))
        except json.JSONDecodeError as e:
            raise ProbeError(str(media_path), f"invalid ffprobe output: {e}") from e

    @staticmethod
    def parse_probe_data(media_path: Path, data: Dict[str, Any]) -> MediaAsset:
        streams: List[Dict[str, Any]] = data.get("streams") or []
        fmt: Dict[str, Any] = data.get("format") or {}

        # Embedded cover art shows up as a video stream with attached_pic set
        video_streams = [
            s for s in streams
            if s.get("codec_type") == "video"
            and not (s.get("disposition") or {}).get("attached_pic")
        ]
        audio_streams = [s for s in streams if s.get("codec_type") == "audio"]

        if not video_streams and not audio_streams:
            raise ProbeError(str(media_path), "no audio or video streams")

        duration = _to_float(fmt.get("duration"))
        if not duration:
            candidates = [_to_float(s.get("duration")) for s in video_streams + audio_streams]
            duration = max((c for c in candidates if c), default=0.0)
        if duration <= 0:
            raise ProbeError(str(media_path), "could not determine duration")

        width = height = 0
        if video_streams:
            width = int(video_streams[0].get("width") or 0)
            height = int(video_streams[0].get("height") or 0)

        return MediaAsset(
            path=media_path,
            duration=duration,
            is_video=bool(video_streams),
            width=width,
            height=height,
            has_audio=bool(audio_streams),
            video_codec=video_streams[0].get("codec_name", "") if video_streams else "",
            audio_codec=audio_streams[0].get("codec_name", "") if audio_streams else "",
        )


def _to_float(value: Optional[Any]) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


async def probe(path: Union[str, Path], ffprobe_path: str = "ffprobe", timeout: float = 30.0) -> MediaAsset:
    """Probe ``path`` with a one-off MediaProbe."""
    return await MediaProbe(ffprobe_path, timeout).probe(path)
