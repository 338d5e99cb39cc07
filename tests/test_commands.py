"""
Tests for FFmpeg command construction.
"""

from pathlib import Path

import pytest

from mediafit.models import ClipWindow, EncodeAttempt, GridOptions, MediaAsset
from mediafit.transcoding import CommandBuilder, effect_pass_output, is_audio_filter, scale_filter
from mediafit.transcoding.constants import LOUDNORM_FILTER, grid_dimensions


@pytest.fixture
def builder(software_selector):
    return CommandBuilder("ffmpeg", software_selector)


def _video(name="in.mp4", duration=10.0, width=1920, height=1080, has_audio=True, video_codec="h264", audio_codec="aac"):
    return MediaAsset(
        Path(name), duration, True, width, height, has_audio,
        video_codec=video_codec, audio_codec=audio_codec if has_audio else "",
    )


def _audio(name="in.wav", duration=10.0):
    return MediaAsset(Path(name), duration, False)


def _value(cmd, flag):
    return cmd[cmd.index(flag) + 1]


class TestTrim:
    def test_start_and_duration(self, builder):
        cmd = builder.build_trim_command(Path("in.mp4"), Path("out.mp4"), ClipWindow(start=5, duration=2.5))
        assert cmd[:4] == ["ffmpeg", "-y", "-hide_banner", "-nostdin"]
        assert cmd.index("-ss") < cmd.index("-i")
        assert _value(cmd, "-ss") == "5.000"
        assert _value(cmd, "-t") == "2.500"
        assert _value(cmd, "-c") == "copy"
        assert cmd[-1] == "out.mp4"

    def test_duration_only(self, builder):
        cmd = builder.build_trim_command(Path("in.mp4"), Path("out.mp4"), ClipWindow(duration=3))
        assert "-ss" not in cmd
        assert _value(cmd, "-t") == "3.000"


class TestEffectPass:
    def test_video_chain_encodes_video_and_copies_audio(self, builder):
        cmd = builder.build_effect_command(Path("in.mp4"), Path("out.mp4"), _video(), video_chain="hflip")
        assert _value(cmd, "-vf").startswith("hflip,")
        assert _value(cmd, "-c:v") == "libx264"
        assert _value(cmd, "-c:a") == "copy"
        assert cmd[-1] == "out.mp4"

    def test_audio_chain_copies_video(self, builder):
        cmd = builder.build_effect_command(Path("in.mp4"), Path("out.mp4"), _video(), audio_chain="areverse")
        assert "-vf" not in cmd
        assert _value(cmd, "-c:v") == "copy"
        assert _value(cmd, "-af") == "areverse"
        assert _value(cmd, "-c:a") == "aac"

    def test_audio_only_asset(self, builder):
        cmd = builder.build_effect_command(Path("in.wav"), Path("out.ogg"), _audio(), audio_chain="aecho")
        assert "-vn" in cmd
        assert _value(cmd, "-c:a") == "libopus"
        assert "-movflags" not in cmd

    def test_silent_video_ignores_audio_chain(self, builder):
        asset = _video(has_audio=False)
        cmd = builder.build_effect_command(Path("in.mp4"), Path("out.mp4"), asset, audio_chain="areverse")
        assert "-af" not in cmd
        assert "-an" in cmd
        assert "-c:a" not in cmd

    def test_webm_audio_is_reencoded_for_mp4(self, builder):
        asset = _video("clip.webm", video_codec="vp8", audio_codec="vorbis")
        cmd = builder.build_effect_command(Path("clip.webm"), Path("out.mp4"), asset, video_chain="negate")
        assert _value(cmd, "-c:v") == "libx264"
        assert _value(cmd, "-c:a") == "aac"
        assert "copy" not in cmd

    def test_pcm_audio_is_reencoded_for_mp4(self, builder):
        asset = _video("clip.mov", audio_codec="pcm_s16le")
        cmd = builder.build_effect_command(Path("clip.mov"), Path("out.mp4"), asset, video_chain="negate")
        assert _value(cmd, "-c:a") == "aac"

    def test_vp8_video_is_reencoded_under_audio_effect(self, builder):
        asset = _video("clip.webm", video_codec="vp8", audio_codec="opus")
        cmd = builder.build_effect_command(Path("clip.webm"), Path("out.mp4"), asset, audio_chain="areverse")
        assert _value(cmd, "-c:v") == "libx264"
        assert _value(cmd, "-vf").endswith("format=yuv420p")
        assert _value(cmd, "-af") == "areverse"

    def test_unknown_codec_is_not_copied(self, builder):
        asset = _video(video_codec="", audio_codec="")
        cmd = builder.build_effect_command(Path("in.mkv"), Path("out.mp4"), asset, video_chain="negate")
        assert _value(cmd, "-c:a") == "aac"

    def test_pass_output_codecs(self):
        asset = _video("clip.webm", video_codec="vp8", audio_codec="vorbis")
        after = effect_pass_output(asset, Path("out.mp4"), video_chain="negate")
        assert (after.path, after.video_codec, after.audio_codec) == (Path("out.mp4"), "h264", "aac")
        kept = effect_pass_output(_video(), Path("out.mp4"), audio_chain="areverse")
        assert (kept.video_codec, kept.audio_codec) == ("h264", "aac")
        assert effect_pass_output(_video(has_audio=False), Path("o.mp4"), video_chain="negate").audio_codec == ""

    def test_raw_filter_routing(self, builder):
        assert is_audio_filter("aecho=0.8:0.9:1000:0.3")
        assert is_audio_filter("volume=2")
        assert not is_audio_filter("hue=s=0")
        cmd = builder.build_raw_command(Path("in.mp4"), Path("out.mp4"), _video(), "hue=s=0")
        assert _value(cmd, "-vf").startswith("hue=s=0")


class TestFitCommand:
    def test_video_attempt(self, builder):
        attempt = EncodeAttempt(target_height=720, audio_bitrate=160, video_bitrate=1200)
        cmd = builder.build_fit_command(Path("in.mp4"), Path("fit.mp4"), _video(), attempt)
        assert _value(cmd, "-af") == LOUDNORM_FILTER
        assert _value(cmd, "-ac") == "2"
        assert _value(cmd, "-c:a") == "libopus"
        assert _value(cmd, "-b:a") == "160k"
        assert _value(cmd, "-b:v") == "1200k"
        assert _value(cmd, "-f") == "mp4"
        assert "min(720,ih)" in _value(cmd, "-vf")
        assert "-t" not in cmd
        assert cmd[-1] == "fit.mp4"

    def test_trimmed_attempt(self, builder):
        attempt = EncodeAttempt(target_height=240, audio_bitrate=128, quality=50, trim=60)
        cmd = builder.build_fit_command(Path("in.mp4"), Path("fit.mp4"), _video(), attempt)
        assert _value(cmd, "-t") == "60.000"
        assert _value(cmd, "-crf") == "50"

    def test_audio_attempt(self, builder):
        attempt = EncodeAttempt(target_height=0, audio_bitrate=96)
        cmd = builder.build_fit_command(Path("in.wav"), Path("fit.ogg"), _audio(), attempt)
        assert _value(cmd, "-f") == "ogg"
        assert "-c:v" not in cmd

    def test_silent_video_drops_audio(self, builder):
        attempt = EncodeAttempt(target_height=720, audio_bitrate=160, video_bitrate=900)
        cmd = builder.build_fit_command(Path("in.mp4"), Path("fit.mp4"), _video(has_audio=False), attempt)
        assert "-an" in cmd
        assert "-af" not in cmd

    def test_small_source_is_not_upscaled(self):
        small = _video(width=640, height=360)
        assert "min(" not in scale_filter(small, 720)
        assert "min(360,ih)" in scale_filter(_video(), 360)


class TestGrid:
    def test_dimensions(self):
        assert grid_dimensions(2) == (2, 2)
        assert grid_dimensions(4) == (2, 2)
        assert grid_dimensions(5) == (2, 3)
        assert grid_dimensions(6) == (2, 3)
        assert grid_dimensions(9) == (3, 3)

    def test_five_sources(self, builder):
        sources = [_video(f"s{i}.mp4") for i in range(5)]
        graph, has_audio = builder.build_grid_filter(sources, 2, 3)
        assert has_audio
        assert graph.count("scale=320:240") == 5
        assert "[v0][v1][v2]hstack=inputs=3[row0]" in graph
        assert "[v3][v4]hstack=inputs=2,pad=960:240[row1]" in graph
        assert "[row0][row1]vstack=inputs=2[vout]" in graph
        assert "amix=inputs=5:dropout_transition=0[aout]" in graph

    def test_delay_and_speed(self, builder):
        sources = [_video("a.mp4"), _video("b.mp4")]
        graph, _ = builder.build_grid_filter(sources, 2, 2, GridOptions(delay_ms=500, speed=2.0))
        assert "setpts=PTS/2" in graph
        assert "atempo=2" in graph
        assert "tpad=start_duration=0.5" in graph
        assert "adelay=500:all=1" in graph
        assert "tpad" not in graph.split(";")[0]

    def test_audio_only_cell_gets_black_tile(self, builder):
        graph, has_audio = builder.build_grid_filter([_video("a.mp4"), _audio("b.wav")], 2, 2)
        assert "color=c=black:s=320x240" in graph
        assert has_audio

    def test_silent_sources_have_no_audio_map(self, builder):
        sources = [_video("a.mp4", has_audio=False), _video("b.mp4", has_audio=False)]
        cmd = builder.build_grid_command(sources, Path("grid.mp4"), 2, 2)
        assert "[aout]" not in cmd
        assert cmd.count("-i") == 2
        assert cmd[-1] == "grid.mp4"

    def test_sync_to_shortest(self, builder):
        sources = [_video("a.mp4", duration=10.0), _video("b.mp4", duration=5.0)]
        graph, _ = builder.build_grid_filter(sources, 2, 2, GridOptions(sync=True))
        # 10s stretched towards 5s plays at double speed
        assert "[0:v]setpts=PTS/2," in graph
        assert "[1:v]scale=" in graph


class TestSideBySideAndMux:
    def test_side_by_side(self, builder):
        cmd = builder.build_side_by_side_command(_video("a.mp4"), _video("b.mp4"), Path("sbs.mp4"))
        graph = _value(cmd, "-filter_complex")
        assert "[left][right]hstack=inputs=2[vout]" in graph
        assert "amix=inputs=2" in graph
        assert "-shortest" in cmd

    def test_clip_streams(self, builder):
        video = builder.build_clip_stream_command(Path("v.mp4"), Path("vc.mp4"), 3.0, 10.0, "video")
        audio = builder.build_clip_stream_command(Path("a.mp3"), Path("ac.m4a"), 0.0, 10.0, "audio")
        assert "-an" in video and _value(video, "-map") == "0:v:0"
        assert "-vn" in audio and _value(audio, "-map") == "0:a:0"
        with pytest.raises(ValueError):
            builder.build_clip_stream_command(Path("x"), Path("y"), 0, 1, "subtitle")

    def test_mux(self, builder):
        cmd = builder.build_mux_command(Path("v.mp4"), Path("a.m4a"), Path("out.mp4"))
        maps = [cmd[i + 1] for i, arg in enumerate(cmd) if arg == "-map"]
        assert maps == ["0:v:0", "1:a:0"]
        assert "-shortest" in cmd
        assert cmd[-1] == "out.mp4"
