"""FFmpeg transcoding engine.

Thin async wrapper over the ffmpeg/ffprobe binaries. Every call runs as an
out-of-process subprocess awaited to completion; a non-zero exit status is
raised as EngineError carrying the captured stderr.
"""

import asyncio
import json
import logging
import os
from typing import Optional

from hls_pipeline.core.config import settings
from hls_pipeline.modules.transcoding.abr import get_ffmpeg_args_for_tier
from hls_pipeline.modules.transcoding.errors import EngineError, ExtractionError
from hls_pipeline.modules.transcoding.models import (
    PlannedTier,
    ProbeResult,
    VideoStreamInfo,
)

logger = logging.getLogger(__name__)

ERROR_DETAIL_MAX_LENGTH = 2000
SPRITE_PADDING = 2
SPRITE_MARGIN = 4


def _parse_duration(raw) -> float:
    try:
        return float(raw)
    except (TypeError, ValueError):
        return 0.0


def parse_size(size: str) -> tuple[int, int]:
    """Parse "WIDTHxHEIGHT" into positive integers.

    Raises:
        ExtractionError: If the size is malformed
    """
    width, sep, height = size.strip().lower().partition("x")
    try:
        dimensions = (int(width), int(height))
    except ValueError:
        dimensions = None
    if not sep or dimensions is None or min(dimensions) <= 0:
        raise ExtractionError(f"Invalid frame size {size!r}, expected WIDTHxHEIGHT")
    return dimensions


def _truncate(text: str, limit: int = ERROR_DETAIL_MAX_LENGTH) -> str:
    if len(text) <= limit:
        return text
    return "..." + text[-limit:]


class FFmpegEngine:
    """FFmpeg-based transcoding engine."""

    def __init__(
        self,
        ffmpeg_path: Optional[str] = None,
        ffprobe_path: Optional[str] = None,
    ):
        """Initialize engine.

        Args:
            ffmpeg_path: Path to ffmpeg binary
            ffprobe_path: Path to ffprobe binary
        """
        self.ffmpeg_path = ffmpeg_path or settings.FFMPEG_PATH
        self.ffprobe_path = ffprobe_path or settings.FFPROBE_PATH

    async def _run(self, cmd: list[str], context: str) -> bytes:
        """Run a command to completion and return its stdout."""
        logger.debug("%s: %s", context, " ".join(cmd))
        try:
            process = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise EngineError(f"{context} could not start: {e}") from e

        try:
            stdout, stderr = await process.communicate()
        except asyncio.CancelledError:
            process.kill()
            await process.wait()
            raise

        if process.returncode != 0:
            detail = _truncate(stderr.decode("utf-8", errors="ignore"))
            raise EngineError(
                f"{context} failed with exit code {process.returncode}",
                stderr=detail,
            )
        return stdout

    async def probe(self, input_path: str) -> ProbeResult:
        """Get duration and video stream information using ffprobe.

        Args:
            input_path: Path to input video

        Returns:
            ProbeResult with duration and video streams
        """
        cmd = [
            self.ffprobe_path,
            "-v", "quiet",
            "-print_format", "json",
            "-show_format",
            "-show_streams",
            input_path,
        ]
        stdout = await self._run(cmd, "ffprobe")

        try:
            data = json.loads(stdout.decode("utf-8", errors="ignore") or "{}")
        except json.JSONDecodeError as e:
            raise EngineError(f"ffprobe returned invalid JSON: {e}") from e

        streams = tuple(
            VideoStreamInfo(
                width=int(stream.get("width") or 0),
                height=int(stream.get("height") or 0),
                frame_rate=stream.get("r_frame_rate"),
            )
            for stream in data.get("streams", [])
            if stream.get("codec_type") == "video"
        )

        return ProbeResult(
            duration_seconds=_parse_duration(data.get("format", {}).get("duration")),
            video_streams=streams,
        )

    async def extract_frame(
        self,
        input_path: str,
        timestamp: str,
        output_path: str,
        size: str,
        accurate_seek: bool = True,
    ) -> str:
        """Extract a single JPEG frame.

        Args:
            input_path: Path to input video
            timestamp: Seek position (seconds or HH:MM:SS)
            output_path: Destination image path
            size: Output size as "WIDTHxHEIGHT"
            accurate_seek: Disable for faster, keyframe-aligned seeking

        Returns:
            The output path
        """
        width, height = parse_size(size)
        input_options = ["-ss", str(timestamp)]
        if not accurate_seek:
            input_options.append("-noaccurate_seek")

        cmd = [
            self.ffmpeg_path,
            "-y",
            *input_options,
            "-i", input_path,
            "-vf", f"scale={width}:{height}",
            "-frames:v", "1",
            "-q:v", "2",
            "-threads", "1",
            output_path,
        ]
        await self._run(cmd, f"frame extraction at {timestamp}")
        return output_path

    async def encode_hls(
        self,
        input_path: str,
        tier: PlannedTier,
        output_dir: str,
    ) -> str:
        """Encode one HLS variant into output_dir.

        Args:
            input_path: Path to input video
            tier: Planned tier to encode
            output_dir: Directory receiving index.m3u8 and segments

        Returns:
            Path to the variant playlist
        """
        playlist_path = os.path.join(output_dir, "index.m3u8")
        segment_pattern = os.path.join(output_dir, "segment_%03d.ts")

        cmd = [
            self.ffmpeg_path,
            "-y",
            "-i", input_path,
            *get_ffmpeg_args_for_tier(tier, segment_pattern),
            playlist_path,
        ]
        await self._run(cmd, f"HLS encode for {tier.name}")
        return playlist_path

    async def tile(
        self,
        frame_pattern: str,
        cols: int,
        rows: int,
        output_path: str,
    ) -> str:
        """Montage a numbered frame sequence into a single JPEG grid.

        Args:
            frame_pattern: printf-style input pattern, e.g. "frame-%03d.jpg"
            cols: Number of columns
            rows: Number of rows
            output_path: Destination image path

        Returns:
            The output path
        """
        cmd = [
            self.ffmpeg_path,
            "-y",
            "-i", frame_pattern,
            "-filter_complex",
            f"[0:v] tile={cols}x{rows}:padding={SPRITE_PADDING}:margin={SPRITE_MARGIN}[out]",
            "-map", "[out]",
            "-frames:v", "1",
            "-q:v", "2",
            output_path,
        ]
        await self._run(cmd, "sprite tiling")
        return output_path
