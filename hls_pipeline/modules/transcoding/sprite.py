"""Scrub-preview sprite sheet generation.

Frames are sampled evenly across a safe window of the video, extracted
concurrently, then tiled into a single JPEG grid by ffmpeg.
"""

import asyncio
import logging
import os
from typing import Optional

from PIL import Image

from hls_pipeline.core.config import settings
from hls_pipeline.core.logging import log_info, log_warning
from hls_pipeline.modules.transcoding.cleanup import remove_tree
from hls_pipeline.modules.transcoding.errors import (
    EngineError,
    ExtractionError,
    InsufficientFramesError,
    InvalidDurationError,
    TooShortError,
)
from hls_pipeline.modules.transcoding.ffmpeg import FFmpegEngine
from hls_pipeline.modules.transcoding.storage import (
    IMAGE_CONTENT_TYPE,
    StorageGateway,
    job_prefix,
)

logger = logging.getLogger(__name__)

FRAME_WIDTH = 240
FRAME_HEIGHT = 135  # 16:9
FRAMES_DIRNAME = "frames_temp"
FRAME_PATTERN = "frame-%03d.jpg"
MIN_FRAMES = 2
DEFAULT_FRAME_RATE = 25.0

# (duration threshold in seconds, rows, cols), longest first
GRID_STEPS = (
    (600, 8, 10),
    (300, 6, 8),
)
DEFAULT_GRID = (5, 5)


def sprite_filename(object_id: str) -> str:
    return f"{object_id}_spritesheet.jpg"


def parse_frame_rate(raw: Optional[str]) -> float:
    """Parse an ffprobe rational frame rate ("30000/1001"), defaulting to 25."""
    if not raw:
        return DEFAULT_FRAME_RATE
    num, _, den = raw.partition("/")
    try:
        numerator = float(num)
        denominator = float(den) if den else 1.0
    except ValueError:
        return DEFAULT_FRAME_RATE
    if not numerator or not denominator:
        return DEFAULT_FRAME_RATE
    return numerator / denominator


def choose_grid(duration_seconds: float) -> tuple[int, int]:
    """Grid size as (rows, cols); longer videos get more frames."""
    for threshold, rows, cols in GRID_STEPS:
        if duration_seconds > threshold:
            return rows, cols
    return DEFAULT_GRID


def safe_window(duration_seconds: float) -> tuple[float, float, float]:
    """Sampling window as (start, end, span).

    Start is 5% in, capped at 2s. End is the later of 95% and 2s before
    the end, so long videos sample almost to the last frame.
    """
    start = min(duration_seconds * 0.05, 2)
    end = max(duration_seconds * 0.95, duration_seconds - 2)
    return start, end, end - start


def sprite_timestamps(duration_seconds: float, count: int) -> list[str]:
    """Evenly spaced timestamps over the safe window, two-decimal strings."""
    start, _, span = safe_window(duration_seconds)
    divisor = (count - 1) or 1
    return [f"{start + span * i / divisor:.2f}" for i in range(count)]


def write_blank_frame(path: str, width: int = FRAME_WIDTH, height: int = FRAME_HEIGHT) -> str:
    """Write a solid black JPEG frame."""
    Image.new("RGB", (width, height), (0, 0, 0)).save(path, "JPEG", quality=95)
    return path


class SpriteSheetGenerator:
    """Builds and uploads a sprite sheet for one video."""

    def __init__(
        self,
        engine: FFmpegEngine,
        gateway: StorageGateway,
        work_root: Optional[str] = None,
        bucket: Optional[str] = None,
    ):
        self.engine = engine
        self.gateway = gateway
        self.work_root = work_root or settings.WORK_ROOT
        self.bucket = bucket or settings.CONVERTED_BUCKET

    async def _extract_or_blank(self, source_path: str, timestamp: str, output_path: str) -> str:
        try:
            await self.engine.extract_frame(
                source_path,
                timestamp,
                output_path,
                f"{FRAME_WIDTH}x{FRAME_HEIGHT}",
                accurate_seek=False,
            )
        except EngineError as e:
            log_warning(
                logger,
                "Frame extraction failed, using blank frame",
                timestamp=timestamp,
                error=str(e),
            )
            loop = asyncio.get_running_loop()
            await loop.run_in_executor(None, write_blank_frame, output_path)
        return output_path

    async def generate(self, source_path: str, object_id: str) -> str:
        """Generate the sprite sheet and upload it.

        Args:
            source_path: Local path to the source video
            object_id: Job id

        Returns:
            Remote key of the uploaded sprite sheet

        Raises:
            ExtractionError: If the source is missing
            InvalidDurationError: If the probed duration is not positive
            TooShortError: If the safe window is empty
            InsufficientFramesError: If fewer than two frames were produced
            EngineError: If probing or tiling fails
            TransientIOError: If the upload fails
        """
        if not os.path.exists(source_path):
            raise ExtractionError(f"Source video not found: {source_path}")

        output_dir = os.path.join(self.work_root, object_id)
        os.makedirs(output_dir, exist_ok=True)
        sprite_path = os.path.join(output_dir, sprite_filename(object_id))

        probe = await self.engine.probe(source_path)
        duration = probe.duration_seconds
        if duration <= 0:
            raise InvalidDurationError(f"Invalid video duration: {duration}s")

        stream = probe.primary_video
        fps = parse_frame_rate(stream.frame_rate if stream else None)
        rows, cols = choose_grid(duration)
        log_info(
            logger,
            "Generating sprite sheet",
            object_id=object_id,
            duration=duration,
            fps=fps,
            rows=rows,
            cols=cols,
        )

        _, _, span = safe_window(duration)
        if span <= 0:
            raise TooShortError(f"Video is too short for sprite sheet generation: {duration}s")

        timestamps = sprite_timestamps(duration, rows * cols)

        frames_dir = os.path.join(output_dir, FRAMES_DIRNAME)
        os.makedirs(frames_dir, exist_ok=True)
        try:
            results = await asyncio.gather(
                *[
                    self._extract_or_blank(
                        source_path,
                        timestamp,
                        os.path.join(frames_dir, FRAME_PATTERN % index),
                    )
                    for index, timestamp in enumerate(timestamps)
                ],
                return_exceptions=True,
            )
            # All extractions have settled before frames_dir can be removed
            for result in results:
                if isinstance(result, BaseException):
                    raise result

            produced = [name for name in os.listdir(frames_dir) if name.startswith("frame-")]
            if len(produced) < MIN_FRAMES:
                raise InsufficientFramesError(f"Not enough frames extracted: {len(produced)}")

            await self.engine.tile(
                os.path.join(frames_dir, FRAME_PATTERN),
                cols,
                rows,
                sprite_path,
            )
        finally:
            remove_tree(frames_dir)

        key = f"{job_prefix(object_id)}/{sprite_filename(object_id)}"
        await self.gateway.upload(self.bucket, key, sprite_path, IMAGE_CONTENT_TYPE)
        log_info(logger, "Sprite sheet uploaded", object_id=object_id, key=key)
        return key
