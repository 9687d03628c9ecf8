"""HLS variant encoding and master playlist assembly."""

import asyncio
import logging
import os
from typing import Optional, Sequence

from hls_pipeline.core.config import settings
from hls_pipeline.core.logging import log_error, log_info
from hls_pipeline.modules.transcoding.abr import parse_bitrate_kbps
from hls_pipeline.modules.transcoding.errors import ResourceError
from hls_pipeline.modules.transcoding.ffmpeg import FFmpegEngine
from hls_pipeline.modules.transcoding.models import PlannedTier, VariantPlaylist

logger = logging.getLogger(__name__)

MASTER_PLAYLIST_NAME = "master.m3u8"
VARIANT_PLAYLIST_NAME = "index.m3u8"


def build_master_playlist(variants: Sequence[VariantPlaylist]) -> str:
    """Render the master playlist for a set of variants.

    Args:
        variants: Encoded variants, in the order they should be listed

    Returns:
        Playlist text
    """
    entries = [
        f"#EXT-X-STREAM-INF:BANDWIDTH={parse_bitrate_kbps(variant.bitrate) * 1000},"
        f"RESOLUTION={variant.resolution}\n{variant.playlist}"
        for variant in variants
    ]
    return "#EXTM3U\n" + "\n".join(entries)


def write_master_playlist(hls_root: str, variants: Sequence[VariantPlaylist]) -> str:
    """Write master.m3u8 into hls_root and return its path."""
    path = os.path.join(hls_root, MASTER_PLAYLIST_NAME)
    with open(path, "w", encoding="utf-8") as f:
        f.write(build_master_playlist(variants))
    return path


class VariantEncoder:
    """Encodes every planned tier of a job through a bounded pool.

    With one worker tiers are encoded strictly one after another. With more,
    up to `workers` encodes run at once and the first failure cancels the
    rest. Results are always returned in plan order.
    """

    def __init__(self, engine: FFmpegEngine, workers: Optional[int] = None):
        self.engine = engine
        self.workers = max(1, workers or settings.ENCODE_WORKERS)

    async def _encode_tier(
        self,
        source_path: str,
        tier: PlannedTier,
        hls_root: str,
    ) -> VariantPlaylist:
        output_dir = os.path.join(hls_root, tier.directory)
        try:
            os.makedirs(output_dir, exist_ok=True)
        except OSError as e:
            raise ResourceError(f"Cannot create {output_dir}: {e}") from e

        log_info(logger, "Encoding variant", tier=tier.name, bitrate=tier.bitrate)
        await self.engine.encode_hls(source_path, tier, output_dir)

        return VariantPlaylist(
            width=tier.width,
            height=tier.height,
            bitrate=tier.bitrate,
            resolution=f"{tier.width}x{tier.height}",
            playlist=f"{tier.directory}/{VARIANT_PLAYLIST_NAME}",
        )

    async def encode_all(
        self,
        source_path: str,
        plan: Sequence[PlannedTier],
        hls_root: str,
    ) -> list[VariantPlaylist]:
        """Encode all tiers; any failure aborts the whole batch.

        Args:
            source_path: Local source video
            plan: Tiers to encode
            hls_root: Job HLS output root

        Returns:
            One VariantPlaylist per tier, in plan order
        """
        if self.workers == 1:
            return [
                await self._encode_tier(source_path, tier, hls_root)
                for tier in plan
            ]

        semaphore = asyncio.Semaphore(self.workers)

        async def _bounded(tier: PlannedTier) -> VariantPlaylist:
            async with semaphore:
                return await self._encode_tier(source_path, tier, hls_root)

        running = [asyncio.ensure_future(_bounded(tier)) for tier in plan]
        try:
            return list(await asyncio.gather(*running))
        except Exception as e:
            for future in running:
                future.cancel()
            await asyncio.gather(*running, return_exceptions=True)
            log_error(logger, "Variant encoding aborted", exception=e)
            raise
