"""Poster-frame extraction for converted videos."""

import logging
import os
from typing import Optional

from hls_pipeline.core.config import settings
from hls_pipeline.core.logging import log_info
from hls_pipeline.modules.transcoding.errors import ExtractionError
from hls_pipeline.modules.transcoding.ffmpeg import FFmpegEngine

logger = logging.getLogger(__name__)

DEFAULT_THUMBNAIL_SIZE = "1280x720"
LATE_TIMESTAMP_SECONDS = 10
EARLY_TIMESTAMP_SECONDS = 1


def thumbnail_filename(object_id: str) -> str:
    return f"{object_id}_thumbnail.jpg"


def choose_timestamp(duration_seconds: float) -> int:
    """Pick the extraction instant: 10s into the video, or 1s for short clips."""
    if duration_seconds > LATE_TIMESTAMP_SECONDS:
        return LATE_TIMESTAMP_SECONDS
    return EARLY_TIMESTAMP_SECONDS


class ThumbnailGenerator:
    """Extracts a single representative JPEG frame from a source video."""

    def __init__(self, engine: FFmpegEngine, work_root: Optional[str] = None):
        self.engine = engine
        self.work_root = work_root or settings.WORK_ROOT

    async def generate(
        self,
        source_path: str,
        object_id: str,
        output_dir: Optional[str] = None,
        timestamp: Optional[str] = None,
        size: str = DEFAULT_THUMBNAIL_SIZE,
        filename: Optional[str] = None,
    ) -> str:
        """Generate a thumbnail for the source video.

        Args:
            source_path: Local path to the source video
            object_id: Job id, used for the default directory and filename
            output_dir: Override for the output directory
            timestamp: Override for the extraction instant
            size: Output size as "WIDTHxHEIGHT"
            filename: Override for the output filename

        Returns:
            Local path of the generated thumbnail

        Raises:
            ExtractionError: If the source is missing or no frame was written
            EngineError: If probing or extraction fails
        """
        if not os.path.exists(source_path):
            raise ExtractionError(f"Source video not found: {source_path}")

        output_dir = output_dir or os.path.join(self.work_root, object_id)
        os.makedirs(output_dir, exist_ok=True)
        output_path = os.path.join(output_dir, filename or thumbnail_filename(object_id))

        if timestamp is None:
            probe = await self.engine.probe(source_path)
            timestamp = str(choose_timestamp(probe.duration_seconds))

        await self.engine.extract_frame(source_path, timestamp, output_path, size)

        if not os.path.exists(output_path):
            raise ExtractionError(f"Thumbnail was not created at {output_path}")

        log_info(
            logger,
            "Thumbnail generated",
            object_id=object_id,
            path=output_path,
            timestamp=timestamp,
        )
        return output_path
