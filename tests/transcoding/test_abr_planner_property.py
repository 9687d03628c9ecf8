"""Property-based tests for resolution ladder planning.

A plan never upscales, is ordered from largest to smallest frame, and is
never empty.
"""

import pytest
from hypothesis import given, settings, strategies as st

from hls_pipeline.modules.transcoding.abr import (
    calculate_bitrate,
    get_ffmpeg_args_for_tier,
    get_scale_filter,
    parse_bitrate_kbps,
    plan_resolutions,
)
from hls_pipeline.modules.transcoding.models import RESOLUTION_TIERS


dimension_strategy = st.integers(min_value=16, max_value=7680)
complexity_strategy = st.floats(min_value=0.5, max_value=2.0, allow_nan=False)


class TestPlannerProperties:
    """Properties that hold for any source resolution."""

    @given(width=dimension_strategy, height=dimension_strategy)
    @settings(max_examples=200)
    def test_plan_never_upscales(self, width: int, height: int) -> None:
        """Every planned tier fits within the source's pixel count."""
        plan = plan_resolutions(width, height)

        for tier in plan:
            assert tier.pixels <= width * height

    @given(width=dimension_strategy, height=dimension_strategy)
    @settings(max_examples=200)
    def test_plan_is_strictly_descending_with_unique_names(self, width: int, height: int) -> None:
        plan = plan_resolutions(width, height)

        pixels = [tier.pixels for tier in plan]
        assert pixels == sorted(pixels, reverse=True)
        assert len(set(pixels)) == len(pixels)
        assert len({tier.name for tier in plan}) == len(plan)

    @given(width=dimension_strategy, height=dimension_strategy)
    @settings(max_examples=200)
    def test_plan_is_never_empty(self, width: int, height: int) -> None:
        assert len(plan_resolutions(width, height)) >= 1

    @given(width=dimension_strategy, height=dimension_strategy)
    @settings(max_examples=100)
    def test_catalog_tiers_keep_catalog_crf(self, width: int, height: int) -> None:
        catalog = {tier.name: tier for tier in RESOLUTION_TIERS}

        for tier in plan_resolutions(width, height):
            if tier.name in catalog:
                assert tier.crf == catalog[tier.name].crf
                assert (tier.width, tier.height) == (catalog[tier.name].width, catalog[tier.name].height)

    @given(
        width=st.integers(min_value=1, max_value=853),
        height=st.integers(min_value=1, max_value=479),
    )
    @settings(max_examples=100)
    def test_small_source_gets_single_tier_at_exact_dimensions(self, width: int, height: int) -> None:
        plan = plan_resolutions(width, height)

        assert len(plan) == 1
        tier = plan[0]
        assert (tier.width, tier.height) == (width, height)
        assert tier.crf == 23
        assert tier.name == f"{height}p (source)"
        assert tier.directory == f"{height}p"

    @given(
        width=dimension_strategy,
        height=dimension_strategy,
        complexity=complexity_strategy,
    )
    @settings(max_examples=100)
    def test_bitrate_strings_parse_back(self, width: int, height: int, complexity: float) -> None:
        for tier in plan_resolutions(width, height, complexity):
            assert tier.bitrate.endswith("k")
            assert parse_bitrate_kbps(tier.bitrate) >= 0


class TestPlannerExamples:
    """Concrete ladders for common sources."""

    def test_1080p_source(self) -> None:
        plan = plan_resolutions(1920, 1080)

        assert [tier.name for tier in plan] == ["1080p", "720p", "480p"]
        assert [tier.bitrate for tier in plan] == ["5000k", "1111k", "198k"]

    def test_4k_source_gets_full_ladder(self) -> None:
        plan = plan_resolutions(3840, 2160)

        assert [tier.name for tier in plan] == ["2160p", "1440p", "1080p", "720p", "480p"]
        assert plan[0].bitrate == "60000k"

    def test_exactly_480p_source_is_not_synthesized(self) -> None:
        plan = plan_resolutions(854, 480)

        assert [tier.name for tier in plan] == ["480p"]

    def test_fallback_bitrate_uses_smallest_tier_base(self) -> None:
        plan = plan_resolutions(640, 360)

        # 1000 * (640*360)/(1920*1080) = 111.1
        assert plan[0].bitrate == "111k"

    def test_complexity_scales_bitrate(self) -> None:
        plan = plan_resolutions(1920, 1080, complexity=1.5)

        assert plan[0].bitrate == "7500k"


class TestBitrateHelpers:

    def test_720p_bitrate(self) -> None:
        assert calculate_bitrate(1280, 720, 2500) == "1111k"

    def test_rounds_half_up(self) -> None:
        # 1920*1080 base 1, complexity 0.5 -> 0.5 -> 1 (banker's rounding would give 0)
        assert calculate_bitrate(1920, 1080, 1, 0.5) == "1k"
        assert calculate_bitrate(1920, 1080, 5, 0.5) == "3k"

    @pytest.mark.parametrize("value,expected", [
        ("1111k", 1111),
        ("5000k", 5000),
        ("128", 128),
        (" 42k ", 42),
    ])
    def test_parse_bitrate(self, value: str, expected: int) -> None:
        assert parse_bitrate_kbps(value) == expected

    def test_parse_bitrate_rejects_garbage(self) -> None:
        with pytest.raises(ValueError):
            parse_bitrate_kbps("fast")


class TestEncodeArguments:

    def test_scale_filter_letterboxes(self) -> None:
        assert get_scale_filter(1280, 720) == (
            "scale=1280:720:force_original_aspect_ratio=decrease,"
            "pad=1280:720:(ow-iw)/2:(oh-ih)/2"
        )

    def test_args_for_tier(self) -> None:
        tier = plan_resolutions(1280, 720)[0]

        args = get_ffmpeg_args_for_tier(tier, "/out/720p/segment_%03d.ts")

        def value_of(flag: str) -> str:
            return args[args.index(flag) + 1]

        assert value_of("-c:v") == "libx264"
        assert value_of("-crf") == "23"
        assert value_of("-profile:v") == "high"
        assert value_of("-level") == "4.1"
        assert value_of("-preset") == "faster"
        assert value_of("-g") == "48"
        assert value_of("-keyint_min") == "48"
        assert value_of("-sc_threshold") == "0"
        assert value_of("-c:a") == "aac"
        assert value_of("-b:a") == "128k"
        assert value_of("-f") == "hls"
        assert value_of("-hls_time") == "10"
        assert value_of("-hls_list_size") == "0"
        assert value_of("-hls_segment_type") == "mpegts"
        assert value_of("-hls_flags") == "independent_segments"
        assert value_of("-hls_playlist_type") == "vod"
        assert value_of("-hls_segment_filename") == "/out/720p/segment_%03d.ts"
        assert value_of("-vf") == get_scale_filter(1280, 720)
