"""FFmpeg encoder invocations.

Concatenation (stream copy through the concat demuxer) and the two
size-reducing transforms, resize and compress. Every call blocks until the
subprocess exits; a zero exit code and a written output file mean success.
"""

import json
import logging
import math
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Sequence

from app.core.logging import log_info, log_warning
from app.modules.merge.exceptions import ConcatenationError, TransformError

logger = logging.getLogger(__name__)

# Lines of encoder stderr kept on errors
STDERR_TAIL_LINES = 20


@dataclass
class EncodeResult:
    """Result of a successful transform."""
    output_path: Path
    file_size: int
    width: Optional[int] = None
    height: Optional[int] = None
    bitrate_kbps: Optional[int] = None


def escape_concat_path(path: Path) -> str:
    """Escape a path for a `file '...'` line of a concat manifest.

    Raises:
        ValueError: If the path contains a newline, which would inject a directive
    """
    path_str = Path(path).resolve().as_posix()
    if "\n" in path_str or "\r" in path_str:
        raise ValueError(f"Path contains newline characters: {path_str}")
    return path_str.replace("'", "'\\''")


def calculate_resize_dimensions(
    width: int,
    height: int,
    max_width: int,
    max_height: int,
) -> tuple[int, int]:
    """Fit a frame inside max bounds, keeping aspect ratio and even sides.

    Returns the input dimensions unchanged when they already fit.
    """
    if width <= max_width and height <= max_height:
        return width, height

    scale = min(max_width / width, max_height / height)
    new_width = min(max_width, round(width * scale))
    new_height = min(max_height, round(height * scale))

    # h264 requires even dimensions
    new_width = max(2, new_width - new_width % 2)
    new_height = max(2, new_height - new_height % 2)
    return new_width, new_height


def calculate_target_bitrate(target_size_mb: float, duration: float) -> int:
    """Video bitrate in kbps that lands an encode near `target_size_mb`.

    Keeps 5% headroom below the target.
    """
    if duration <= 0:
        raise ValueError("Duration must be positive")
    return math.floor((target_size_mb * 8 * 1024) / duration * 0.95)


def _tail(text: str) -> str:
    return "\n".join(text.strip().splitlines()[-STDERR_TAIL_LINES:])


class FFmpegEncoder:
    """FFmpeg/ffprobe subprocess wrapper."""

    def __init__(self, ffmpeg_path: str = "ffmpeg", ffprobe_path: str = "ffprobe"):
        self.ffmpeg_path = ffmpeg_path
        self.ffprobe_path = ffprobe_path

    def _run(self, cmd: list[str]) -> subprocess.CompletedProcess:
        log_info(logger, "Running encoder", command=" ".join(cmd))
        return subprocess.run(cmd, capture_output=True, encoding="utf-8", errors="replace")

    def get_video_info(self, input_path: Path) -> dict:
        """Get stream and format information using ffprobe.

        Raises:
            TransformError: If ffprobe fails or prints unparseable output
        """
        cmd = [
            self.ffprobe_path,
            "-v", "quiet",
            "-print_format", "json",
            "-show_format",
            "-show_streams",
            str(input_path),
        ]
        try:
            result = subprocess.run(cmd, capture_output=True, encoding="utf-8", errors="replace", check=True)
            return json.loads(result.stdout)
        except (OSError, subprocess.CalledProcessError, json.JSONDecodeError) as e:
            raise TransformError("probe", str(e)) from e

    # ------------------------------------------------------------------
    # Concatenation
    # ------------------------------------------------------------------

    def build_concat_command(self, manifest_path: Path, output_path: Path) -> list[str]:
        return [
            self.ffmpeg_path,
            "-f", "concat",
            "-safe", "0",
            "-i", str(manifest_path),
            "-c", "copy",
            "-avoid_negative_ts", "make_zero",
            "-fflags", "+genpts",
            "-y",
            str(output_path),
        ]

    def write_manifest(self, input_paths: Sequence[Path], manifest_path: Path) -> None:
        lines = [f"file '{escape_concat_path(p)}'" for p in input_paths]
        manifest_path.write_text("\n".join(lines) + "\n", encoding="utf-8")

    def concat(
        self,
        input_paths: Sequence[Path],
        output_path: Path,
        manifest_path: Path,
    ) -> int:
        """Join inputs back to back without re-encoding.

        The manifest is removed once the subprocess has exited, whatever its
        outcome. On failure any partial output is removed too.

        Returns:
            Size of the joined artifact in bytes

        Raises:
            ConcatenationError: If the encoder cannot start or exits non-zero
        """
        log_info(logger, "Merging videos", count=len(input_paths), output=output_path.name)
        try:
            try:
                self.write_manifest(input_paths, manifest_path)
            except (OSError, ValueError) as e:
                raise ConcatenationError(f"Could not write concat manifest: {e}") from e
            try:
                result = self._run(self.build_concat_command(manifest_path, output_path))
            except OSError as e:
                raise ConcatenationError(f"FFmpeg could not be started: {e}") from e
        finally:
            try:
                manifest_path.unlink(missing_ok=True)
            except OSError as e:
                log_warning(logger, "Could not remove concat manifest", path=str(manifest_path), error=str(e))

        if result.returncode != 0 or not output_path.exists():
            output_path.unlink(missing_ok=True)
            raise ConcatenationError(
                f"FFmpeg failed with exit code {result.returncode}",
                exit_code=result.returncode,
                stderr=_tail(result.stderr or ""),
            )

        size = output_path.stat().st_size
        log_info(logger, "Video merging completed successfully", size_bytes=size)
        return size

    # ------------------------------------------------------------------
    # Transforms
    # ------------------------------------------------------------------

    def build_resize_command(
        self,
        input_path: Path,
        output_path: Path,
        width: int,
        height: int,
    ) -> list[str]:
        return [
            self.ffmpeg_path,
            "-y",
            "-i", str(input_path),
            "-c:v", "libx264",
            "-c:a", "aac",
            "-vf", f"scale={width}:{height}",
            "-preset", "slow",
            "-crf", "18",
            "-profile:v", "high",
            "-level", "4.0",
            "-pix_fmt", "yuv420p",
            "-movflags", "+faststart",
            "-avoid_negative_ts", "make_zero",
            str(output_path),
        ]

    def build_compress_command(
        self,
        input_path: Path,
        output_path: Path,
        bitrate_kbps: int,
    ) -> list[str]:
        return [
            self.ffmpeg_path,
            "-y",
            "-i", str(input_path),
            "-c:v", "libx264",
            "-b:v", f"{bitrate_kbps}k",
            "-maxrate", f"{int(bitrate_kbps * 1.5)}k",
            "-bufsize", f"{bitrate_kbps * 2}k",
            "-c:a", "aac",
            "-b:a", "128k",
            "-preset", "fast",
            "-profile:v", "baseline",
            "-level", "3.0",
            "-pix_fmt", "yuv420p",
            "-movflags", "+faststart",
            str(output_path),
        ]

    def _run_transform(self, operation: str, cmd: list[str], output_path: Path) -> int:
        try:
            result = self._run(cmd)
        except OSError as e:
            raise TransformError(operation, f"FFmpeg could not be started: {e}") from e

        if result.returncode != 0 or not output_path.exists():
            output_path.unlink(missing_ok=True)
            raise TransformError(
                operation,
                _tail(result.stderr or "") or f"exit code {result.returncode}",
                exit_code=result.returncode,
            )
        return output_path.stat().st_size

    def resize(
        self,
        input_path: Path,
        output_path: Path,
        max_width: int = 1280,
        max_height: int = 720,
    ) -> Optional[EncodeResult]:
        """Downscale to fit max bounds while keeping quality high.

        Returns:
            The resized artifact, or None when the input already fits

        Raises:
            TransformError: If probing or encoding fails
        """
        info = self.get_video_info(input_path)
        video_stream = next(
            (s for s in info.get("streams", []) if s.get("codec_type") == "video"),
            None,
        )
        if not video_stream or not video_stream.get("width") or not video_stream.get("height"):
            raise TransformError("resize", "no video stream found")

        current_width = int(video_stream["width"])
        current_height = int(video_stream["height"])
        width, height = calculate_resize_dimensions(current_width, current_height, max_width, max_height)
        log_info(
            logger,
            "Smart resize",
            current=f"{current_width}x{current_height}",
            target=f"{width}x{height}",
        )

        if (width, height) == (current_width, current_height):
            log_info(logger, "No resize needed, file is already optimal size")
            return None

        size = self._run_transform(
            "resize",
            self.build_resize_command(input_path, output_path, width, height),
            output_path,
        )
        return EncodeResult(output_path=output_path, file_size=size, width=width, height=height)

    def compress(
        self,
        input_path: Path,
        output_path: Path,
        target_size_mb: float = 90,
    ) -> EncodeResult:
        """Re-encode at a bitrate aimed at `target_size_mb`.

        Raises:
            TransformError: If probing or encoding fails
        """
        info = self.get_video_info(input_path)
        try:
            duration = float(info.get("format", {}).get("duration", 0))
            bitrate = calculate_target_bitrate(target_size_mb, duration)
        except ValueError as e:
            raise TransformError("compress", f"unusable duration: {e}") from e

        log_info(logger, "Smart compression", target_mb=target_size_mb, duration=duration, bitrate_kbps=bitrate)
        size = self._run_transform(
            "compress",
            self.build_compress_command(input_path, output_path, bitrate),
            output_path,
        )
        return EncodeResult(output_path=output_path, file_size=size, bitrate_kbps=bitrate)
