"""Tests for FFmpeg concatenation and transform commands.

The encoder binary is never executed: subprocess.run is patched and the
fake writes (or withholds) the output file the way ffmpeg would.
"""

import stat
import subprocess
import sys
from pathlib import Path
from unittest.mock import patch

import pytest

from app.modules.merge.exceptions import ConcatenationError, TransformError
from app.modules.merge.ffmpeg import FFmpegEncoder, escape_concat_path

RUN = "app.modules.merge.ffmpeg.subprocess.run"


def _inputs(tmp_path: Path, count: int) -> list[Path]:
    paths = []
    for i in range(count):
        path = tmp_path / f"s_video_{i + 1}.mp4"
        path.write_bytes(b"x" * (i + 1))
        paths.append(path)
    return paths


class FakeFFmpeg:
    """Records manifests and writes output like a successful encoder."""

    def __init__(self, returncode: int = 0, output: bytes = b"merged", stderr: str = ""):
        self.returncode = returncode
        self.output = output
        self.stderr = stderr
        self.manifests: list[str] = []
        self.commands: list[list[str]] = []

    def __call__(self, cmd, **kwargs):
        self.commands.append(cmd)
        if "-f" in cmd and cmd[cmd.index("-f") + 1] == "concat":
            self.manifests.append(Path(cmd[cmd.index("-i") + 1]).read_text())
        if self.output is not None:
            Path(cmd[-1]).write_bytes(self.output)
        return subprocess.CompletedProcess(cmd, self.returncode, "", self.stderr)


class TestConcat:
    def test_manifest_lists_inputs_in_order(self, tmp_path: Path) -> None:
        inputs = _inputs(tmp_path, 3)
        fake = FakeFFmpeg()
        output = tmp_path / "merged_s.mp4"
        manifest = tmp_path / "input_list_s.txt"

        with patch(RUN, side_effect=fake):
            size = FFmpegEncoder().concat(inputs, output, manifest)

        lines = fake.manifests[0].splitlines()
        assert lines == [f"file '{p.resolve().as_posix()}'" for p in inputs]
        assert size == len(b"merged")
        assert not manifest.exists()

    def test_command_uses_stream_copy(self, tmp_path: Path) -> None:
        cmd = FFmpegEncoder("ffmpeg").build_concat_command(tmp_path / "list.txt", tmp_path / "out.mp4")

        assert cmd[:5] == ["ffmpeg", "-f", "concat", "-safe", "0"]
        assert cmd[cmd.index("-c") + 1] == "copy"
        assert cmd[cmd.index("-avoid_negative_ts") + 1] == "make_zero"
        assert cmd[cmd.index("-fflags") + 1] == "+genpts"
        assert cmd[-1] == str(tmp_path / "out.mp4")

    def test_nonzero_exit_preserves_code_and_removes_artifacts(self, tmp_path: Path) -> None:
        inputs = _inputs(tmp_path, 2)
        fake = FakeFFmpeg(returncode=1, output=b"partial", stderr="Invalid data found")
        output = tmp_path / "merged_s.mp4"
        manifest = tmp_path / "input_list_s.txt"

        with patch(RUN, side_effect=fake):
            with pytest.raises(ConcatenationError) as exc_info:
                FFmpegEncoder().concat(inputs, output, manifest)

        assert exc_info.value.exit_code == 1
        assert "exit code 1" in str(exc_info.value)
        assert "Invalid data found" in exc_info.value.stderr
        assert not manifest.exists()
        assert not output.exists()

    def test_missing_output_is_a_failure(self, tmp_path: Path) -> None:
        fake = FakeFFmpeg(output=None)

        with patch(RUN, side_effect=fake):
            with pytest.raises(ConcatenationError):
                FFmpegEncoder().concat(_inputs(tmp_path, 1), tmp_path / "out.mp4", tmp_path / "list.txt")

    def test_encoder_not_installed(self, tmp_path: Path) -> None:
        manifest = tmp_path / "list.txt"

        with patch(RUN, side_effect=FileNotFoundError("ffmpeg")):
            with pytest.raises(ConcatenationError, match="could not be started"):
                FFmpegEncoder().concat(_inputs(tmp_path, 2), tmp_path / "out.mp4", manifest)

        assert not manifest.exists()


class TestConcatPathEscaping:
    def test_single_quote_is_escaped(self, tmp_path: Path) -> None:
        path = tmp_path / "it's.mp4"
        assert escape_concat_path(path) == path.resolve().as_posix().replace("'", "'\\''")

    def test_newline_is_rejected(self, tmp_path: Path) -> None:
        with pytest.raises(ValueError):
            escape_concat_path(tmp_path / "bad\nfile 'x'.mp4")


class TestTransforms:
    def _stream_info(self, width: int = 1920, height: int = 1080, duration: str = "120.0") -> str:
        return (
            '{"streams": [{"codec_type": "audio"}, '
            f'{{"codec_type": "video", "width": {width}, "height": {height}}}], '
            f'"format": {{"duration": "{duration}"}}}}'
        )

    def _fake(self, stream_info: str, returncode: int = 0, output: bytes = b"small"):
        commands = []

        def run(cmd, **kwargs):
            commands.append(cmd)
            if cmd[0] == "ffprobe":
                return subprocess.CompletedProcess(cmd, 0, stream_info, "")
            if output is not None:
                Path(cmd[-1]).write_bytes(output)
            return subprocess.CompletedProcess(cmd, returncode, "", "encoder error")

        return run, commands

    def test_resize_scales_to_bounds(self, tmp_path: Path) -> None:
        run, commands = self._fake(self._stream_info(1920, 1080))
        output = tmp_path / "resized.mp4"

        with patch(RUN, side_effect=run):
            result = FFmpegEncoder().resize(tmp_path / "in.mp4", output)

        assert (result.width, result.height) == (1280, 720)
        assert result.file_size == len(b"small")
        encode = commands[-1]
        assert encode[encode.index("-vf") + 1] == "scale=1280:720"
        assert encode[encode.index("-crf") + 1] == "18"
        assert encode[encode.index("-preset") + 1] == "slow"

    def test_resize_skipped_when_within_bounds(self, tmp_path: Path) -> None:
        run, commands = self._fake(self._stream_info(1280, 720))
        output = tmp_path / "resized.mp4"

        with patch(RUN, side_effect=run):
            assert FFmpegEncoder().resize(tmp_path / "in.mp4", output) is None

        assert len(commands) == 1
        assert not output.exists()

    def test_resize_without_video_stream(self, tmp_path: Path) -> None:
        run, _ = self._fake('{"streams": [{"codec_type": "audio"}], "format": {}}')

        with patch(RUN, side_effect=run):
            with pytest.raises(TransformError):
                FFmpegEncoder().resize(tmp_path / "in.mp4", tmp_path / "out.mp4")

    def test_compress_targets_bitrate_from_duration(self, tmp_path: Path) -> None:
        run, commands = self._fake(self._stream_info(duration="100"))

        with patch(RUN, side_effect=run):
            result = FFmpegEncoder().compress(tmp_path / "in.mp4", tmp_path / "out.mp4", target_size_mb=90)

        # floor(90 * 8 * 1024 / 100 * 0.95)
        assert result.bitrate_kbps == 7004
        encode = commands[-1]
        assert encode[encode.index("-b:v") + 1] == "7004k"
        assert encode[encode.index("-b:a") + 1] == "128k"

    def test_compress_failure_removes_output(self, tmp_path: Path) -> None:
        run, _ = self._fake(self._stream_info(), returncode=1, output=b"partial")
        output = tmp_path / "out.mp4"

        with patch(RUN, side_effect=run):
            with pytest.raises(TransformError) as exc_info:
                FFmpegEncoder().compress(tmp_path / "in.mp4", output)

        assert exc_info.value.exit_code == 1
        assert not output.exists()

    def test_compress_with_zero_duration(self, tmp_path: Path) -> None:
        run, _ = self._fake(self._stream_info(duration="0"))

        with patch(RUN, side_effect=run):
            with pytest.raises(TransformError):
                FFmpegEncoder().compress(tmp_path / "in.mp4", tmp_path / "out.mp4")


def write_encoder_script(directory: Path, body: str) -> str:
    """Executable stand-in for ffmpeg/ffprobe."""
    script = directory / "fake-encoder"
    script.write_text("#!/bin/sh\n" + body)
    script.chmod(script.stat().st_mode | stat.S_IXUSR)
    return str(script)


@pytest.mark.skipif(sys.platform == "win32", reason="needs a POSIX shell")
class TestUndecodableEncoderOutput:
    """Encoders echo container metadata, which is not always valid UTF-8."""

    def test_concat_failure_keeps_exit_code(self, tmp_path: Path) -> None:
        encoder_path = write_encoder_script(tmp_path, "printf '\\377\\376 title\\n' >&2\nexit 1\n")
        manifest = tmp_path / "list.txt"

        with pytest.raises(ConcatenationError) as exc_info:
            FFmpegEncoder(encoder_path).concat(_inputs(tmp_path, 2), tmp_path / "out.mp4", manifest)

        assert exc_info.value.exit_code == 1
        assert "\ufffd" in exc_info.value.stderr
        assert not manifest.exists()

    def test_concat_success_with_noisy_stderr(self, tmp_path: Path) -> None:
        encoder_path = write_encoder_script(
            tmp_path,
            'printf \'\\377\\376 title\\n\' >&2\nfor last; do :; done\nprintf merged > "$last"\n',
        )

        size = FFmpegEncoder(encoder_path).concat(_inputs(tmp_path, 2), tmp_path / "out.mp4", tmp_path / "l.txt")

        assert size == len(b"merged")

    def test_unreadable_stream_info_becomes_transform_error(self, tmp_path: Path) -> None:
        info_path = write_encoder_script(tmp_path, "printf '\\377\\376' \nexit 0\n")

        with pytest.raises(TransformError):
            FFmpegEncoder(ffprobe_path=info_path).get_video_info(tmp_path / "in.mp4")

    def test_encoder_calls_decode_leniently(self, tmp_path: Path) -> None:
        fake = FakeFFmpeg()

        with patch(RUN, side_effect=fake) as run:
            FFmpegEncoder().concat(_inputs(tmp_path, 1), tmp_path / "out.mp4", tmp_path / "list.txt")

        assert run.call_args.kwargs["errors"] == "replace"
