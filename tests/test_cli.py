"""
Tests for the command-line interface.
"""

import pytest
import yaml

from mediafit.__main__ import build_parser, main


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "mediafit.yaml"
    path.write_text(yaml.safe_dump({
        "transcoding": {
            "ffmpeg_path": "ffmpeg",
            "ffprobe_path": "ffprobe",
            "temp_directory": str(tmp_path / "work"),
            "output_directory": str(tmp_path / "out"),
        },
        "hardware": {"prefer_hw_accel": False},
        "logging": {"level": "WARNING"},
    }))
    return path


class TestParser:
    def test_transcode_arguments(self):
        args = build_parser().parse_args([
            "transcode", "in.mp4", "--filters", "{bass=5}", "--start", "1:00", "--clip", "10", "--fit",
        ])
        assert args.command == "transcode"
        assert args.filters == "{bass=5}"
        assert args.fit
        assert args.ceiling is None

    def test_ceiling_and_fit_are_exclusive(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["transcode", "in.mp4", "--ceiling", "100", "--fit"])

    def test_grid_takes_many_inputs(self):
        args = build_parser().parse_args(["grid", "a.mp4", "b.mp4", "c.mp4", "--count", "6"])
        assert args.inputs == ["a.mp4", "b.mp4", "c.mp4"]
        assert args.count == 6

    def test_command_required(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args([])


class TestMain:
    def test_effects_listing(self, config_file, capsys):
        assert main(["--config", str(config_file), "effects", "--type", "audio"]) == 0
        out = capsys.readouterr().out
        assert "bass" in out
        assert "hmirror" not in out

    def test_missing_input_is_an_error(self, config_file, tmp_path, capsys):
        code = main(["--config", str(config_file), "probe", str(tmp_path / "missing.mp4")])
        assert code == 1
        assert "not found" in capsys.readouterr().err

    def test_unreadable_input(self, config_file, tmp_path, capsys):
        source = tmp_path / "in.mp4"
        source.write_bytes(b"\0" * 64)
        code = main(["--config", str(config_file), "transcode", str(source), "--filters", "{bass=5}"])
        assert code == 1
        assert "error:" in capsys.readouterr().err
