"""
mediafit Test Configuration and Fixtures

Provides:
- Auto-generated test media files (no external downloads needed)
- A recording FFmpeg runner and a fake prober for tests without FFmpeg
- Per-test configuration with temp and output directories under tmp_path
"""

import asyncio
import shutil
import subprocess
from dataclasses import replace
from pathlib import Path
from typing import Callable, Dict, List, Optional

import pytest

from mediafit.config import HardwareConfig, MediaFitConfig, set_config
from mediafit.effects import build_default_registry
from mediafit.errors import MediaNotFoundError
from mediafit.hardware import Capabilities, HWAccelCapability, HWAccelType
from mediafit.jobs import TranscodeJob
from mediafit.models import MediaAsset
from mediafit.transcoding import EncoderSelector


# =============================================================================
# TEST MEDIA GENERATION
# =============================================================================

class TestMediaGenerator:
    """
    Generates test media files using FFmpeg.
    No external downloads - creates synthetic test clips.
    """

    __test__ = False

    def __init__(self, output_dir: Path):
        self.output_dir = output_dir
        self.output_dir.mkdir(parents=True, exist_ok=True)
        self._ffmpeg = shutil.which("ffmpeg")

    @property
    def has_ffmpeg(self) -> bool:
        return self._ffmpeg is not None

    def _run(self, cmd: List[str], output_path: Path) -> Optional[Path]:
        try:
            result = subprocess.run(cmd, capture_output=True, timeout=60)
        except subprocess.TimeoutExpired as e:
            print(f"Failed to generate test media: {e}")
            return None
        if result.returncode == 0 and output_path.exists():
            return output_path
        return None

    def generate_test_video(
        self,
        name: str = "test_video",
        duration: int = 3,
        width: int = 640,
        height: int = 360,
        fps: int = 25,
        audio: bool = True,
    ) -> Optional[Path]:
        """Color bars with an optional sine tone."""
        if not self.has_ffmpeg:
            return None

        output_path = self.output_dir / f"{name}.mp4"
        cmd = [
            self._ffmpeg, "-y",
            "-f", "lavfi",
            "-i", f"testsrc=duration={duration}:size={width}x{height}:rate={fps}",
        ]
        if audio:
            cmd.extend(["-f", "lavfi", "-i", f"sine=frequency=440:duration={duration}"])
        cmd.extend(["-c:v", "libx264", "-preset", "ultrafast", "-pix_fmt", "yuv420p"])
        if audio:
            cmd.extend(["-c:a", "aac", "-b:a", "128k"])
        cmd.append(str(output_path))
        return self._run(cmd, output_path)

    def generate_test_audio(self, name: str = "test_audio", duration: int = 3) -> Optional[Path]:
        """Sine tone as uncompressed WAV."""
        if not self.has_ffmpeg:
            return None

        output_path = self.output_dir / f"{name}.wav"
        cmd = [
            self._ffmpeg, "-y",
            "-f", "lavfi",
            "-i", f"sine=frequency=330:duration={duration}",
            "-c:a", "pcm_s16le",
            str(output_path),
        ]
        return self._run(cmd, output_path)

    def generate_test_media(self) -> Dict[str, Path]:
        media = {}

        path = self.generate_test_video("test_video", duration=3)
        if path:
            media["video"] = path

        path = self.generate_test_video("test_quick", duration=1, width=320, height=240)
        if path:
            media["quick"] = path

        path = self.generate_test_video("test_no_audio", duration=2, audio=False)
        if path:
            media["no_audio"] = path

        path = self.generate_test_audio("test_audio", duration=3)
        if path:
            media["audio"] = path

        return media


# =============================================================================
# FAKES
# =============================================================================

class RecordingRunner:
    """
    Stands in for FFmpegRunner.

    Records every command and writes a dummy output file at ``cmd[-1]``.
    ``fail_when`` may return an exception to raise for a command;
    ``size_for`` decides how many bytes the dummy output gets.
    """

    def __init__(
        self,
        fail_when: Optional[Callable[[List[str]], Optional[Exception]]] = None,
        size_for: Optional[Callable[[List[str]], int]] = None,
    ):
        self.calls: List[Dict] = []
        self.fail_when = fail_when
        self.size_for = size_for or (lambda cmd: 1024)

    @property
    def commands(self) -> List[List[str]]:
        return [call["cmd"] for call in self.calls]

    @property
    def stages(self) -> List[str]:
        return [call["stage"] for call in self.calls]

    async def run(
        self,
        cmd,
        output_path=None,
        duration=0.0,
        stage="transcoding",
        progress_callback=None,
        timeout=None,
    ) -> str:
        self.calls.append({"cmd": list(cmd), "stage": stage, "output": output_path, "timeout": timeout})
        # Yield like a real subprocess so concurrent jobs interleave
        await asyncio.sleep(0)
        if self.fail_when is not None:
            error = self.fail_when(cmd)
            if error is not None:
                raise error

        target = Path(cmd[-1])
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(b"\0" * self.size_for(cmd))

        if progress_callback:
            progress_callback(stage, 1.0)
        return ""


class FakeProber:
    """Returns registered assets; unknown existing paths get the default template."""

    def __init__(self, default: Optional[MediaAsset] = None):
        self.assets: Dict[str, MediaAsset] = {}
        self.default = default or MediaAsset(path=Path("default.mp4"), duration=10.0, is_video=True, width=640, height=360)
        self.probed: List[Path] = []

    def register(self, path: Path, **kwargs) -> MediaAsset:
        asset = MediaAsset(path=Path(path), **kwargs)
        self.assets[str(Path(path))] = asset
        return asset

    async def probe(self, path) -> MediaAsset:
        path = Path(path)
        self.probed.append(path)
        if str(path) in self.assets:
            return self.assets[str(path)]
        if not path.exists():
            raise MediaNotFoundError(str(path))
        return replace(self.default, path=path)


# =============================================================================
# PYTEST FIXTURES
# =============================================================================

@pytest.fixture(scope="session")
def test_media_dir(tmp_path_factory) -> Path:
    """Session-scoped temp directory for generated media."""
    return tmp_path_factory.mktemp("mediafit_test_media")


@pytest.fixture(scope="session")
def media_generator(test_media_dir) -> TestMediaGenerator:
    return TestMediaGenerator(test_media_dir)


@pytest.fixture(scope="session")
def test_media(media_generator) -> Dict[str, Path]:
    """
    Generate test media once per session.
    Returns dict of paths by kind.
    """
    if not media_generator.has_ffmpeg:
        pytest.skip("FFmpeg not available for test media generation")

    media = media_generator.generate_test_media()
    if not media:
        pytest.skip("Failed to generate test media")
    return media


@pytest.fixture
def test_config(tmp_path) -> MediaFitConfig:
    """
    Configuration with temp and output directories under tmp_path.
    Hardware encoding is off so results do not depend on the machine.
    """
    config = MediaFitConfig()
    config.transcoding.ffmpeg_path = "ffmpeg"
    config.transcoding.ffprobe_path = "ffprobe"
    config.transcoding.temp_directory = str(tmp_path / "work")
    config.transcoding.output_directory = str(tmp_path / "out")
    config.transcoding.attempt_timeout = 30.0
    config.hardware.prefer_hw_accel = False
    config.logging.level = "WARNING"

    set_config(config)
    yield config
    set_config(MediaFitConfig())


@pytest.fixture
def registry():
    return build_default_registry()


@pytest.fixture
def software_selector() -> EncoderSelector:
    return EncoderSelector(Capabilities(), HardwareConfig(prefer_hw_accel=False))


@pytest.fixture
def nvenc_selector() -> EncoderSelector:
    capabilities = Capabilities(
        hw_accels=[HWAccelCapability(type=HWAccelType.NVENC, available=True, encoders=["h264_nvenc"])],
        video_encoders=["libx264", "h264_nvenc"],
    )
    return EncoderSelector(capabilities, HardwareConfig(prefer_hw_accel=True))


@pytest.fixture
def recording_runner() -> RecordingRunner:
    return RecordingRunner()


@pytest.fixture
def fake_prober() -> FakeProber:
    return FakeProber()


@pytest.fixture
def fake_job(test_config, registry, recording_runner, fake_prober, software_selector) -> TranscodeJob:
    """TranscodeJob wired to the recording runner and fake prober."""
    return TranscodeJob(
        config=test_config,
        registry=registry,
        runner=recording_runner,
        prober=fake_prober,
        encoder_selector=software_selector,
    )


@pytest.fixture
def source_file(tmp_path) -> Path:
    """A non-empty placeholder input file."""
    path = tmp_path / "input.mp4"
    path.write_bytes(b"\0" * 2048)
    return path


# =============================================================================
# SKIP CONDITIONS
# =============================================================================

def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests"
    )
    config.addinivalue_line(
        "markers", "requires_ffmpeg: marks tests that require FFmpeg"
    )


@pytest.fixture
def requires_ffmpeg():
    """Skip test if FFmpeg not available."""
    if not shutil.which("ffmpeg") or not shutil.which("ffprobe"):
        pytest.skip("FFmpeg not available")
