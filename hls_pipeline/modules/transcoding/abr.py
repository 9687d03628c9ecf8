"""Adaptive Bitrate (ABR) ladder planning.

Selects the rungs of the HLS ladder for a source without upscaling and
computes a per-rung bitrate scaled by pixel count.
"""

import math

from hls_pipeline.modules.transcoding.models import (
    PlannedTier,
    REFERENCE_PIXELS,
    RESOLUTION_TIERS,
    SOURCE_TIER_CRF,
    SOURCE_TIER_SUFFIX,
)

HLS_SEGMENT_SECONDS = 10
AUDIO_BITRATE = "128k"
GOP_SIZE = 48


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def calculate_bitrate(
    width: int,
    height: int,
    base_bitrate: int,
    complexity: float = 1.0,
) -> str:
    """Scale a base bitrate by frame area relative to 1080p.

    Args:
        width: Target width
        height: Target height
        base_bitrate: Base bitrate in kbps
        complexity: Content-complexity multiplier

    Returns:
        Bitrate string with a "k" suffix, e.g. "1111k"
    """
    resolution_factor = (width * height) / REFERENCE_PIXELS
    return f"{_round_half_up(base_bitrate * resolution_factor * complexity)}k"


def parse_bitrate_kbps(bitrate: str) -> int:
    """Parse the leading integer of a bitrate string ("1111k" -> 1111)."""
    digits = ""
    for char in bitrate.strip():
        if not char.isdigit():
            break
        digits += char
    if not digits:
        raise ValueError(f"Invalid bitrate: {bitrate!r}")
    return int(digits)


def plan_resolutions(
    source_width: int,
    source_height: int,
    complexity: float = 1.0,
) -> list[PlannedTier]:
    """Plan the resolution ladder for a source.

    Tiers larger than the source (by pixel count) are skipped. When no
    catalog tier fits, a single tier at the source's own dimensions is
    synthesized so the plan is never empty.

    Args:
        source_width: Source width in pixels
        source_height: Source height in pixels
        complexity: Content-complexity multiplier

    Returns:
        Planned tiers ordered by descending pixel count
    """
    source_pixels = source_width * source_height
    catalog = sorted(RESOLUTION_TIERS, key=lambda t: t.pixels, reverse=True)

    plan = [
        PlannedTier(
            name=tier.name,
            width=tier.width,
            height=tier.height,
            bitrate=calculate_bitrate(tier.width, tier.height, tier.base_bitrate, complexity),
            crf=tier.crf,
        )
        for tier in catalog
        if tier.pixels <= source_pixels
    ]

    if not plan:
        smallest = catalog[-1]
        plan.append(
            PlannedTier(
                name=f"{source_height}p{SOURCE_TIER_SUFFIX}",
                width=source_width,
                height=source_height,
                bitrate=calculate_bitrate(
                    source_width, source_height, smallest.base_bitrate, complexity
                ),
                crf=SOURCE_TIER_CRF,
            )
        )

    return plan


def get_scale_filter(width: int, height: int) -> str:
    """Fit within WxH preserving aspect ratio, then letterbox to exactly WxH."""
    return (
        f"scale={width}:{height}:force_original_aspect_ratio=decrease,"
        f"pad={width}:{height}:(ow-iw)/2:(oh-ih)/2"
    )


def get_ffmpeg_args_for_tier(tier: PlannedTier, segment_pattern: str) -> list[str]:
    """Get FFmpeg output arguments for one HLS variant.

    Args:
        tier: Planned tier
        segment_pattern: Path template for segment files

    Returns:
        List of FFmpeg arguments
    """
    return [
        "-vf", get_scale_filter(tier.width, tier.height),
        "-c:v", "libx264",
        "-crf", str(tier.crf),
        "-profile:v", "high",
        "-level", "4.1",
        "-preset", "faster",
        "-g", str(GOP_SIZE),
        "-keyint_min", str(GOP_SIZE),
        "-sc_threshold", "0",
        "-c:a", "aac",
        "-b:a", AUDIO_BITRATE,
        "-f", "hls",
        "-hls_time", str(HLS_SEGMENT_SECONDS),
        "-hls_list_size", "0",
        "-hls_segment_type", "mpegts",
        "-hls_flags", "independent_segments",
        "-hls_playlist_type", "vod",
        "-hls_segment_filename", segment_pattern,
    ]
