"""Property-based tests for size tiers and transform sizing."""

from pathlib import Path

from hypothesis import assume, given, settings, strategies as st

from app.modules.merge.ffmpeg import calculate_resize_dimensions, calculate_target_bitrate
from app.modules.merge.models import MB, DeliveryStrategy, PipelineConfig, TransformHint
from app.modules.merge.planner import DeliveryPlanner, build_size_tiers

CONFIG = PipelineConfig(staging_dir=Path("unused"))

size_strategy = st.integers(min_value=0, max_value=2048 * MB)
dimension_strategy = st.integers(min_value=2, max_value=8192)


class TestSizeTiers:
    @given(size=size_strategy)
    @settings(max_examples=200)
    def test_strategy_matches_thresholds(self, size: int) -> None:
        strategy = DeliveryPlanner(CONFIG).select_strategy(size)

        if size <= 50 * MB:
            assert strategy is DeliveryStrategy.DIRECT
        elif size <= 100 * MB:
            assert strategy is DeliveryStrategy.ASYNC_EAGER
        elif size <= 200 * MB:
            assert strategy is DeliveryStrategy.CHUNKED
        else:
            assert strategy is DeliveryStrategy.STREAMED

    @given(size=size_strategy)
    @settings(max_examples=200)
    def test_transform_hint_matches_thresholds(self, size: int) -> None:
        hint = DeliveryPlanner(CONFIG).tier_for(size).transform

        if size > 120 * MB:
            assert hint is TransformHint.RESIZE_THEN_COMPRESS
        elif size > 95 * MB:
            assert hint is TransformHint.RESIZE
        else:
            assert hint is TransformHint.NONE

    @given(smaller=size_strategy, larger=size_strategy)
    @settings(max_examples=100)
    def test_strategy_is_monotonic_in_size(self, smaller: int, larger: int) -> None:
        assume(smaller <= larger)
        order = [
            DeliveryStrategy.DIRECT,
            DeliveryStrategy.ASYNC_EAGER,
            DeliveryStrategy.CHUNKED,
            DeliveryStrategy.STREAMED,
        ]
        planner = DeliveryPlanner(CONFIG)
        assert order.index(planner.select_strategy(smaller)) <= order.index(planner.select_strategy(larger))

    def test_tier_boundaries_are_inclusive_upper(self) -> None:
        planner = DeliveryPlanner(CONFIG)
        assert planner.select_strategy(50 * MB) is DeliveryStrategy.DIRECT
        assert planner.select_strategy(50 * MB + 1) is DeliveryStrategy.ASYNC_EAGER
        assert planner.tier_for(95 * MB).transform is TransformHint.NONE
        assert planner.tier_for(95 * MB + 1).transform is TransformHint.RESIZE

    def test_single_table_covers_all_sizes(self) -> None:
        tiers = build_size_tiers(CONFIG)
        uppers = [t.upper for t in tiers]
        assert uppers[-1] is None
        assert uppers[:-1] == sorted(uppers[:-1])

    def test_custom_thresholds(self) -> None:
        config = PipelineConfig(
            staging_dir=Path("unused"),
            direct_max_bytes=10,
            async_max_bytes=20,
            chunked_max_bytes=30,
            resize_threshold_bytes=15,
            compress_threshold_bytes=25,
        )
        planner = DeliveryPlanner(config)
        assert planner.select_strategy(10) is DeliveryStrategy.DIRECT
        assert planner.select_strategy(16) is DeliveryStrategy.ASYNC_EAGER
        assert planner.tier_for(16).transform is TransformHint.RESIZE
        assert planner.tier_for(26).transform is TransformHint.RESIZE_THEN_COMPRESS
        assert planner.select_strategy(31) is DeliveryStrategy.STREAMED


class TestResizeDimensions:
    @given(width=dimension_strategy, height=dimension_strategy)
    @settings(max_examples=300)
    def test_result_fits_bounds_with_even_sides(self, width: int, height: int) -> None:
        new_width, new_height = calculate_resize_dimensions(width, height, 1280, 720)

        if width <= 1280 and height <= 720:
            assert (new_width, new_height) == (width, height)
        else:
            assert new_width <= 1280 and new_height <= 720
            assert new_width % 2 == 0 and new_height % 2 == 0
            assert new_width >= 2 and new_height >= 2

    @given(width=st.integers(min_value=1282, max_value=8192))
    @settings(max_examples=100)
    def test_widescreen_keeps_aspect_ratio(self, width: int) -> None:
        height = width * 9 // 16
        new_width, new_height = calculate_resize_dimensions(width, height, 1280, 720)

        assert abs(new_width / new_height - width / height) < 0.02


class TestTargetBitrate:
    @given(
        target_mb=st.floats(min_value=1, max_value=500),
        duration=st.floats(min_value=1, max_value=36000),
    )
    @settings(max_examples=100)
    def test_encode_lands_under_target(self, target_mb: float, duration: float) -> None:
        bitrate = calculate_target_bitrate(target_mb, duration)
        assert bitrate * duration <= target_mb * 8 * 1024
