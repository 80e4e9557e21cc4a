"""
Unit tests for the geometry primitives.
"""

import math

import pytest

from fbd_utils.geometry_engine import (
    ZoneFrame,
    angle_deg,
    angle_diff,
    angle_in_ranges,
    length,
    map_point_between_rects,
    point_in_rect,
    segment_intersects_rect,
    segments_intersect,
)

RECT = (0.0, 0.0, 20.0, 10.0)


class TestAngles:
    # ─────────────────────────────────────────────────────────────────────────
    # angle_deg / length
    # ─────────────────────────────────────────────────────────────────────────

    @pytest.mark.parametrize("end, expected", [
        ((1, 0), 0.0),
        ((0, 1), 90.0),     # y grows downward
        ((-1, 0), 180.0),
        ((0, -1), 270.0),
    ])
    def test_angle_deg_when_cardinal_then_matches_screen_convention(self, end, expected):
        assert angle_deg((0, 0), end) == pytest.approx(expected)

    def test_length_when_three_four_then_five(self):
        assert length((0, 0), (3, 4)) == 5.0

    def test_angle_diff_when_wrapping_then_returns_short_way(self):
        assert angle_diff(350, 10) == pytest.approx(20)
        assert angle_diff(0, 180) == pytest.approx(180)
        assert angle_diff(90, 450) == pytest.approx(0)

    # ─────────────────────────────────────────────────────────────────────────
    # angle_in_ranges
    # ─────────────────────────────────────────────────────────────────────────

    def test_angle_in_ranges_when_no_ranges_then_accepts(self):
        assert angle_in_ranges(123.0, None) is True
        assert angle_in_ranges(123.0, []) is True

    def test_angle_in_ranges_when_range_wraps_zero_then_accepts_both_sides(self):
        assert angle_in_ranges(355, [[350, 10]]) is True
        assert angle_in_ranges(5, [[350, 10]]) is True
        assert angle_in_ranges(180, [[350, 10]]) is False

    def test_angle_in_ranges_when_negative_bound_then_normalized(self):
        assert angle_in_ranges(355, [[-10, 10]]) is True
        assert angle_in_ranges(20, [[-10, 10]]) is False

    def test_angle_in_ranges_when_on_bound_then_inclusive(self):
        assert angle_in_ranges(260, [[260, 280]]) is True
        assert angle_in_ranges(280, [[260, 280]]) is True


class TestContainment:

    @pytest.mark.parametrize("corner", [(0, 0), (20, 0), (20, 10), (0, 10)])
    def test_point_in_rect_when_on_corner_then_inside(self, corner):
        assert point_in_rect(corner, RECT) is True

    def test_point_in_rect_when_just_outside_edge_then_outside(self):
        assert point_in_rect((20.01, 5), RECT) is False
        assert point_in_rect((5, -0.01), RECT) is False

    def test_point_in_rect_when_rotated_quarter_turn_then_uses_rotated_extent(self):
        # rotating the 20x10 rect by 90 degrees about (10, 5) spans x 5..15, y -5..15
        assert point_in_rect((10, -4), RECT, 90) is True
        assert point_in_rect((1, 5), RECT, 90) is False

    @pytest.mark.parametrize("theta", [15.0, 30.0, 90.0, 135.0, -60.0])
    def test_point_in_rect_when_point_and_zone_rotate_together_then_unchanged(self, theta):
        # turning about the rect center carries a point along with the zone
        turn = ZoneFrame(RECT, theta)
        assert point_in_rect(turn.to_world((12.0, 6.0)), RECT, theta) is True
        assert point_in_rect(turn.to_world((25.0, 5.0)), RECT, theta) is False


class TestSegments:

    def test_segments_intersect_when_crossing_then_true(self):
        assert segments_intersect((0, 0), (10, 10), (0, 10), (10, 0)) is True

    def test_segments_intersect_when_parallel_then_false(self):
        assert segments_intersect((0, 0), (10, 0), (0, 1), (10, 1)) is False

    def test_segment_intersects_rect_when_passing_through_then_true(self):
        assert segment_intersects_rect((-5, 5), (25, 5), RECT) is True

    def test_segment_intersects_rect_when_missing_then_false(self):
        assert segment_intersects_rect((-5, -5), (25, -5), RECT) is False

    def test_segment_intersects_rect_when_endpoint_inside_then_true(self):
        assert segment_intersects_rect((5, 5), (100, 100), RECT) is True

    def test_segment_intersects_rect_when_rotated_then_crosses_rotated_outline(self):
        # y = -3 lies outside the unrotated rect but inside the rotated one
        assert segment_intersects_rect((0, -3), (20, -3), RECT) is False
        assert segment_intersects_rect((0, -3), (20, -3), RECT, 90) is True


class TestZoneFrame:

    def test_to_local_when_unrotated_then_returns_point_unchanged(self):
        frame = ZoneFrame(RECT, 0.0)
        assert frame.to_local((3.3, 4.4)) == (3.3, 4.4)

    def test_to_world_when_round_trip_then_recovers_point(self):
        frame = ZoneFrame(RECT, 37.0)
        local = frame.to_local((4.0, 7.0))
        back = frame.to_world(local)
        assert back[0] == pytest.approx(4.0)
        assert back[1] == pytest.approx(7.0)

    def test_to_world_when_quarter_turn_then_clockwise_on_screen(self):
        frame = ZoneFrame((0.0, 0.0, 2.0, 2.0), 90.0)
        assert frame.to_world((2.0, 1.0)) == pytest.approx((1.0, 2.0))

    def test_polygon_when_rotated_then_area_preserved(self):
        frame = ZoneFrame(RECT, 45.0)
        assert frame.polygon().area == pytest.approx(200.0)

    def test_corners_when_unrotated_then_exact(self):
        assert ZoneFrame(RECT).corners() == [(0.0, 0.0), (20.0, 0.0), (20.0, 10.0), (0.0, 10.0)]


class TestRemap:

    def test_map_point_between_rects_when_same_rect_then_identity(self):
        rect = (0.1, 0.2, 0.3, 0.4)
        mapped = map_point_between_rects((0.25, 0.3), rect, rect)
        assert mapped == pytest.approx((0.25, 0.3))

    def test_map_point_between_rects_when_scaled_then_keeps_fraction(self):
        mapped = map_point_between_rects((0.5, 0.5), (0.0, 0.0, 1.0, 1.0), (0.2, 0.2, 0.2, 0.4))
        assert mapped == pytest.approx((0.3, 0.4))

    def test_map_point_between_rects_when_outside_source_then_clamped(self):
        mapped = map_point_between_rects((-1.0, 2.0), (0.0, 0.0, 1.0, 1.0), (0.5, 0.5, 0.1, 0.1))
        assert mapped == pytest.approx((0.5, 0.6))
        assert not math.isnan(mapped[0])
