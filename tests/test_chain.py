"""
Tests for sequential effect application.
"""

from pathlib import Path

import pytest

from conftest import RecordingRunner
from mediafit.errors import ProcessFailure, TranscodeTimeout, TypeMismatch, UnknownEffect
from mediafit.filters import parse_filter_spec
from mediafit.models import ClipWindow, EffectInvocation, EffectType, FilterSpec, MediaAsset
from mediafit.transcoding import ChainExecutor, CommandBuilder


def _executor(registry, runner, selector):
    return ChainExecutor(registry, runner, CommandBuilder("ffmpeg", selector))


def _video(path, video_codec="h264", audio_codec="aac", has_audio=True):
    return MediaAsset(
        Path(path), 10.0, True, 640, 360, has_audio,
        video_codec=video_codec, audio_codec=audio_codec if has_audio else "",
    )


def _value(cmd, flag):
    return cmd[cmd.index(flag) + 1]


@pytest.fixture
def work_dir(tmp_path):
    return tmp_path / "work"


class TestOrdering:
    @pytest.mark.asyncio
    async def test_effects_run_in_order(self, registry, recording_runner, software_selector, source_file, work_dir):
        spec = parse_filter_spec("{invert,hmirror}", registry).spec
        chain = _executor(registry, recording_runner, software_selector)

        result = await chain.execute(_video(source_file), spec, work_dir, "job1")

        assert recording_runner.stages == ["Filter 1/2: invert", "Filter 2/2: hmirror"]
        first, second = recording_runner.commands
        assert _value(first, "-vf").startswith("negate")
        assert _value(second, "-vf").startswith("hflip")
        # Second pass reads what the first wrote
        assert _value(second, "-i") == first[-1]
        assert result == work_dir / "filter_2_job1_hmirror.mp4"

    @pytest.mark.asyncio
    async def test_intermediates_removed(self, registry, recording_runner, software_selector, source_file, work_dir):
        spec = parse_filter_spec("{invert,hmirror,bass=5}", registry).spec
        chain = _executor(registry, recording_runner, software_selector)

        result = await chain.execute(_video(source_file), spec, work_dir, "job1")

        assert sorted(work_dir.iterdir()) == [result]
        assert source_file.exists()

    @pytest.mark.asyncio
    async def test_audio_effect_copies_video(self, registry, recording_runner, software_selector, source_file, work_dir):
        spec = parse_filter_spec("{bass=5}", registry).spec
        chain = _executor(registry, recording_runner, software_selector)

        await chain.execute(_video(source_file), spec, work_dir, "job1")

        cmd = recording_runner.commands[0]
        assert _value(cmd, "-af") == "bass=g=5"
        assert _value(cmd, "-c:v") == "copy"

    @pytest.mark.asyncio
    async def test_invalid_value_uses_default(self, registry, recording_runner, software_selector, source_file, work_dir):
        spec = FilterSpec(effects=(EffectInvocation("bass", EffectType.AUDIO, 500),))
        chain = _executor(registry, recording_runner, software_selector)

        await chain.execute(_video(source_file), spec, work_dir, "job1")

        assert _value(recording_runner.commands[0], "-af") == "bass=g=10"

    @pytest.mark.asyncio
    async def test_webm_audio_converted_once(self, registry, recording_runner, software_selector, source_file, work_dir):
        spec = parse_filter_spec("{invert,hmirror}", registry).spec
        chain = _executor(registry, recording_runner, software_selector)

        await chain.execute(_video(source_file, "vp8", "vorbis"), spec, work_dir, "job1")

        first, second = recording_runner.commands
        assert _value(first, "-c:a") == "aac"
        assert _value(second, "-c:a") == "copy"

    @pytest.mark.asyncio
    async def test_audio_effect_skipped_without_audio_track(self, registry, recording_runner, software_selector, source_file, work_dir):
        spec = parse_filter_spec("{bass=5,invert}", registry).spec
        chain = _executor(registry, recording_runner, software_selector)

        result = await chain.execute(_video(source_file, has_audio=False), spec, work_dir, "job1")

        assert recording_runner.stages == ["Filter 2/2: invert"]
        assert "-an" in recording_runner.commands[0]
        assert result == work_dir / "filter_2_job1_invert.mp4"

    @pytest.mark.asyncio
    async def test_only_audio_effects_on_silent_video(self, registry, recording_runner, software_selector, source_file, work_dir):
        spec = parse_filter_spec("{bass=5}", registry).spec
        chain = _executor(registry, recording_runner, software_selector)

        result = await chain.execute(_video(source_file, has_audio=False), spec, work_dir, "job1")

        assert result == source_file
        assert recording_runner.calls == []

    @pytest.mark.asyncio
    async def test_empty_spec_returns_input(self, registry, recording_runner, software_selector, source_file, work_dir):
        chain = _executor(registry, recording_runner, software_selector)
        result = await chain.execute(_video(source_file), FilterSpec(), work_dir)
        assert result == source_file
        assert recording_runner.calls == []


class TestTrimAndRaw:
    @pytest.mark.asyncio
    async def test_trim_runs_first(self, registry, recording_runner, software_selector, source_file, work_dir):
        clip = ClipWindow(start=2.0, duration=3.0)
        spec = parse_filter_spec("{invert}", registry, clip=clip).spec
        chain = _executor(registry, recording_runner, software_selector)

        result = await chain.execute(_video(source_file), spec, work_dir, "job1")

        trim, effect = recording_runner.commands
        assert recording_runner.stages[0] == "Trimming"
        assert _value(trim, "-c") == "copy"
        assert _value(effect, "-i") == str(work_dir / "clip_job1.mp4")
        assert not (work_dir / "clip_job1.mp4").exists()
        assert result.exists()

    @pytest.mark.asyncio
    async def test_clip_only(self, registry, recording_runner, software_selector, source_file, work_dir):
        spec = FilterSpec(clip=ClipWindow(duration=5.0))
        chain = _executor(registry, recording_runner, software_selector)

        result = await chain.execute(_video(source_file), spec, work_dir, "job1")

        assert result == work_dir / "clip_job1.mp4"
        assert len(recording_runner.calls) == 1

    @pytest.mark.asyncio
    async def test_raw_filter_single_pass(self, registry, recording_runner, software_selector, source_file, work_dir):
        spec = FilterSpec(raw="hue=s=0")
        chain = _executor(registry, recording_runner, software_selector)

        result = await chain.execute(_video(source_file), spec, work_dir, "job1")

        assert result == work_dir / "raw_job1.mp4"
        assert recording_runner.stages == ["Raw filter"]

    @pytest.mark.asyncio
    async def test_audio_asset_writes_ogg(self, registry, recording_runner, software_selector, tmp_path, work_dir):
        source = tmp_path / "song.wav"
        source.write_bytes(b"\0" * 128)
        asset = MediaAsset(source, 30.0, False)
        spec = parse_filter_spec("{bass=5,echo}", registry).spec
        chain = _executor(registry, recording_runner, software_selector)

        result = await chain.execute(asset, spec, work_dir, "job1")

        assert result.suffix == ".ogg"
        assert all("-vn" in cmd for cmd in recording_runner.commands)


class TestCompatibility:
    @pytest.mark.asyncio
    async def test_video_effect_on_audio_rejected_before_work(self, registry, recording_runner, software_selector, tmp_path, work_dir):
        asset = MediaAsset(tmp_path / "song.wav", 30.0, False)
        spec = parse_filter_spec("{bass=5,invert}", registry).spec
        chain = _executor(registry, recording_runner, software_selector)

        with pytest.raises(TypeMismatch) as exc_info:
            await chain.execute(asset, spec, work_dir, "job1")

        assert exc_info.value.effect_name == "invert"
        assert recording_runner.calls == []
        assert not work_dir.exists()

    @pytest.mark.asyncio
    async def test_complex_effect_on_audio_rejected(self, registry, recording_runner, software_selector, tmp_path, work_dir):
        asset = MediaAsset(tmp_path / "song.wav", 30.0, False)
        spec = parse_filter_spec("{reverse}", registry).spec
        with pytest.raises(TypeMismatch):
            await _executor(registry, recording_runner, software_selector).execute(asset, spec, work_dir)

    def test_raw_video_filter_on_audio(self, registry, recording_runner, software_selector, tmp_path):
        chain = _executor(registry, recording_runner, software_selector)
        asset = MediaAsset(tmp_path / "song.wav", 30.0, False)
        with pytest.raises(TypeMismatch):
            chain.check_compatible(asset, FilterSpec(raw="hue=s=0"))
        chain.check_compatible(asset, FilterSpec(raw="aecho=0.8:0.9:500:0.3"))

    def test_unknown_effect(self, registry, recording_runner, software_selector, source_file):
        chain = _executor(registry, recording_runner, software_selector)
        spec = FilterSpec(effects=(EffectInvocation("nope", EffectType.VIDEO),))
        with pytest.raises(UnknownEffect):
            chain.check_compatible(_video(source_file), spec)


class TestFailures:
    @pytest.mark.asyncio
    async def test_failure_names_effect_and_cleans_up(self, registry, software_selector, source_file, work_dir):
        def fail_on_hflip(cmd):
            if any("hflip" in arg for arg in cmd):
                return ProcessFailure("No such filter", return_code=1, stderr="No such filter: 'hflip'")
            return None

        runner = RecordingRunner(fail_when=fail_on_hflip)
        spec = parse_filter_spec("{invert,hmirror,bass}", registry).spec

        with pytest.raises(ProcessFailure) as exc_info:
            await _executor(registry, runner, software_selector).execute(_video(source_file), spec, work_dir, "job1")

        assert exc_info.value.effect_name == "hmirror"
        assert "Failed to apply filter 'hmirror'" in exc_info.value.message
        assert exc_info.value.return_code == 1
        assert list(work_dir.iterdir()) == []
        assert len(runner.calls) == 2

    @pytest.mark.asyncio
    async def test_timeout_names_effect(self, registry, software_selector, source_file, work_dir):
        runner = RecordingRunner(fail_when=lambda cmd: TranscodeTimeout("x", 80.0))
        spec = parse_filter_spec("{invert}", registry).spec

        with pytest.raises(TranscodeTimeout) as exc_info:
            await _executor(registry, runner, software_selector).execute(_video(source_file), spec, work_dir, "job1")

        assert exc_info.value.effect_name == "invert"
        assert exc_info.value.stage == "Filter 1/1: invert"
        assert exc_info.value.deadline == 80.0


class TestHardwareFallback:
    @pytest.mark.asyncio
    async def test_nvenc_error_retries_pass_in_software(self, registry, nvenc_selector, source_file, work_dir):
        def nvenc_fails(cmd):
            if "h264_nvenc" in cmd:
                return ProcessFailure("encode failed", return_code=1, stderr="Cannot load libcuda.so.1")
            return None

        runner = RecordingRunner(fail_when=nvenc_fails)
        spec = parse_filter_spec("{invert}", registry).spec

        result = await _executor(registry, runner, nvenc_selector).execute(_video(source_file), spec, work_dir, "job1")

        assert result.exists()
        first, second = runner.commands
        assert _value(first, "-c:v") == "h264_nvenc"
        assert _value(second, "-c:v") == "libx264"
        assert runner.stages == ["Filter 1/1: invert", "Filter 1/1: invert"]

    @pytest.mark.asyncio
    async def test_non_hardware_error_is_not_retried(self, registry, nvenc_selector, source_file, work_dir):
        runner = RecordingRunner(fail_when=lambda cmd: ProcessFailure("bad", stderr="No such filter: 'negate'"))
        spec = parse_filter_spec("{invert}", registry).spec

        with pytest.raises(ProcessFailure):
            await _executor(registry, runner, nvenc_selector).execute(_video(source_file), spec, work_dir, "job1")
        assert len(runner.calls) == 1
