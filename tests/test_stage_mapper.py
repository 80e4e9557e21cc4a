"""
Tests for carrying supports-stage elements into the exploded stage.

Stage-1 elements are in pixels on a 1000x1000 image at the origin, so a
pixel coordinate divided by 1000 is its normalized position.
"""

import math

import pytest

from conftest import force, make_zone, moment
from fbd_utils.geometry_engine import angle_deg
from fbd_utils.zone_schema import ImageRect, Zone
from stage_mapper import StageMapper, map_stage_transition

IMAGE = ImageRect(x=0, y=0, w=1000, h=1000)


def stage1_joint(zone_id, name, x, y, joint_type='hinge'):
    return make_zone(zone_id, x, y, 0.2, 0.2, joint={'name': name, 'type': joint_type})


def stage2_member(zone_id, name, map_from, x, y, width=0.2, height=0.2):
    return make_zone(zone_id, x, y, width, height, joint={'name': name, 'mapFrom': map_from})


def arrow_angle(arrow):
    return angle_deg(arrow.start_norm.as_tuple(), arrow.end_norm.as_tuple())


class TestPreconditions:

    def test_map_when_no_stage1_zones_then_error(self):
        result = StageMapper().map_stage_transition([], [], [stage2_member('a2', 'A@AB', 'A', 0.1, 0.1)], IMAGE)
        assert result.error == "Exploded mapping requires both stage-1 and stage-2 regions"
        assert result.locked_arrows == []

    def test_map_when_no_stage2_zones_then_error(self):
        result = StageMapper().map_stage_transition([], [stage1_joint('a1', 'A', 0.1, 0.1)], [], IMAGE)
        assert result.error

    @pytest.mark.parametrize("image_rect", [None, ImageRect(x=0, y=0, w=0, h=500)])
    def test_map_when_image_not_ready_then_error(self, image_rect):
        result = StageMapper().map_stage_transition(
            [], [stage1_joint('a1', 'A', 0.1, 0.1)], [stage2_member('a2', 'A@AB', 'A', 0.1, 0.1)], image_rect
        )
        assert "image size not ready" in result.error


class TestForces:

    def test_map_when_zones_identical_then_arrow_unchanged(self):
        result = StageMapper().map_stage_transition(
            [force('f1', (150, 150), (250, 250))],
            [stage1_joint('a1', 'A', 0.1, 0.1)],
            [stage2_member('a2', 'A', None, 0.1, 0.1)],
            IMAGE,
        )
        assert result.error is None
        [arrow] = result.locked_arrows
        assert arrow.id == 'locked_f1_a2'
        assert arrow.zone_id == 'a2'
        assert arrow.locked is True
        assert arrow.start_norm.as_tuple() == pytest.approx((0.15, 0.15))
        assert arrow.end_norm.as_tuple() == pytest.approx((0.25, 0.25))
        assert result.muted_zone_ids == ['a2']

    def test_map_when_fan_out_exceeds_stage1_count_then_longest_kept(self):
        stage2 = [
            stage2_member('t1', 'A@m1', 'A', 0.0, 0.0, width=0.1, height=0.1),
            stage2_member('t2', 'A@m2', 'A', 0.3, 0.0, width=0.2, height=0.1),
            stage2_member('t3', 'A@m3', 'A', 0.6, 0.0, width=0.3, height=0.1),
        ]
        result = StageMapper().map_stage_transition(
            [force('f1', (420, 500), (580, 500))], [stage1_joint('a1', 'A', 0.4, 0.4)], stage2, IMAGE
        )
        assert [arrow.id for arrow in result.locked_arrows] == ['locked_f1_t3']
        assert result.muted_zone_ids == ['t3']

    def test_map_when_single_force_fans_into_many_zones_then_one_kept(self):
        stage2 = [
            stage2_member(f't{i}', f'A@m{i}', 'A', 0.2 * i, 0.8, width=0.05 * (i + 1), height=0.1)
            for i in range(5)
        ]
        result = StageMapper().map_stage_transition(
            [force('f1', (420, 500), (580, 500))], [stage1_joint('a1', 'A', 0.4, 0.4)], stage2, IMAGE
        )
        assert [arrow.id for arrow in result.locked_arrows] == ['locked_f1_t4']
        assert result.muted_zone_ids == ['t4']

    def test_map_when_candidates_coincide_then_deduplicated(self):
        stage2 = [
            stage2_member('z2a', 'A@AB', 'A', 0.10, 0.1),
            stage2_member('z2b', 'A@AB', 'A', 0.11, 0.1),
        ]
        elements = [force('f1', (420, 500), (580, 500)), force('f2', (500, 580), (500, 420))]
        result = StageMapper().map_stage_transition(elements, [stage1_joint('a1', 'A', 0.4, 0.4)], stage2, IMAGE)

        assert len(result.locked_arrows) == 2
        assert sorted(round(arrow_angle(a)) for a in result.locked_arrows) == [0, 270]
        assert set(result.muted_zone_ids) <= {'z2a', 'z2b'}

    def test_map_when_cap_overridden_then_respected(self):
        stage2 = [
            stage2_member('t1', 'A@m1', 'A', 0.0, 0.0),
            stage2_member('t2', 'A@m2', 'A', 0.5, 0.5),
        ]
        elements = [force('f1', (420, 500), (580, 500)), force('f2', (500, 580), (500, 420))]
        result = StageMapper(max_forces_per_joint=1).map_stage_transition(
            elements, [stage1_joint('a1', 'A', 0.4, 0.4)], stage2, IMAGE
        )
        assert len(result.locked_arrows) == 1

    def test_map_when_force_touches_no_joint_then_dropped(self):
        result = StageMapper().map_stage_transition(
            [force('f1', (900, 900), (950, 900))],
            [stage1_joint('a1', 'A', 0.1, 0.1)],
            [stage2_member('a2', 'A@AB', 'A', 0.1, 0.1)],
            IMAGE,
        )
        assert result.locked_arrows == []
        assert result.muted_zone_ids == []

    def test_map_when_element_non_finite_then_skipped_with_warning(self):
        with pytest.warns(RuntimeWarning):
            result = StageMapper().map_stage_transition(
                [force('f1', (math.nan, 150), (250, 250))],
                [stage1_joint('a1', 'A', 0.1, 0.1)],
                [stage2_member('a2', 'A@AB', 'A', 0.1, 0.1)],
                IMAGE,
            )
        assert result.locked_arrows == []


class TestMoments:

    def test_map_when_moment_fans_into_overlapping_zones_then_one_kept(self):
        stage2 = [
            stage2_member('z2a', 'A@AB', 'A', 0.10, 0.1),
            stage2_member('z2b', 'A@AB', 'A', 0.11, 0.1),
        ]
        result = StageMapper().map_stage_transition(
            [moment('m1', 500, 500)], [stage1_joint('a1', 'A', 0.4, 0.4)], stage2, IMAGE
        )
        [locked] = result.locked_moments
        assert locked.id == 'locked_m1_z2a'
        assert locked.type == 'moment-cw'
        assert (locked.x_norm, locked.y_norm) == pytest.approx((0.2, 0.2))
        assert result.muted_zone_ids == ['z2a']


class TestMuting:

    def test_auto_mute_when_stage1_support_then_derived_zones_muted(self):
        stage1 = [
            stage1_joint('sA', 'A', 0.1, 0.1, joint_type='Fixed'),
            stage1_joint('sC', 'C', 0.6, 0.6),
        ]
        stage2 = [
            make_zone('a_ab', 0.0, 0.0, 0.1, 0.1, joint='A@AB'),
            make_zone('x', 0.2, 0.0, 0.1, 0.1, joint={'name': 'X', 'mapFrom': 'A@foo'}),
            make_zone('c_bc', 0.4, 0.0, 0.1, 0.1, joint='C@BC'),
            make_zone('free', 0.6, 0.0, 0.1, 0.1),
        ]
        result = StageMapper().map_stage_transition([], stage1, stage2, IMAGE)
        assert result.muted_zone_ids == ['a_ab', 'x']

    def test_map_when_locked_and_supported_then_union_locked_first(self):
        stage1 = [
            stage1_joint('sA', 'A', 0.1, 0.1, joint_type='pinned'),
            stage1_joint('sB', 'B', 0.6, 0.6),
        ]
        stage2 = [
            stage2_member('a2', 'A@AB', 'A', 0.0, 0.5),
            stage2_member('b2', 'B@BC', 'B', 0.5, 0.0),
        ]
        result = StageMapper().map_stage_transition([force('f1', (650, 700), (750, 700))], stage1, stage2, IMAGE)
        assert result.muted_zone_ids == ['b2', 'a2']

    def test_map_stage_transition_when_called_then_matches_mapper(self):
        args = ([force('f1', (150, 150), (250, 250))], [stage1_joint('a1', 'A', 0.1, 0.1)],
                [stage2_member('a2', 'A', None, 0.1, 0.1)], IMAGE)
        assert map_stage_transition(*args) == StageMapper().map_stage_transition(*args)


class TestMapPoint:

    def test_map_point_when_target_rotated_then_center_maps_to_center(self):
        source = Zone(x=0.1, y=0.1, width=0.2, height=0.2)
        target = Zone(x=0.5, y=0.5, width=0.2, height=0.1, rotation_deg=90)
        assert StageMapper.map_point((0.2, 0.2), source, target) == pytest.approx((0.6, 0.55))

    def test_map_point_when_same_rotated_zone_then_idempotent(self):
        zone = Zone(x=0.3, y=0.3, width=0.2, height=0.1, rotation_deg=30)
        point = (0.41, 0.36)
        assert StageMapper.map_point(point, zone, zone) == pytest.approx(point)
