import warnings
from typing import Iterable, Optional, Sequence

from fbd_utils.geometry_engine import (
    angle_deg,
    angle_diff,
    length,
    midpoint,
    map_point_between_rects,
)
from fbd_utils.zone_schema import (
    Coord,
    DrawnElement,
    ForceElement,
    ImageRect,
    LockedArrow,
    LockedMoment,
    MomentElement,
    StageTransition,
    Zone,
    base_of,
)


class StageMapper:
    """
    Carries a learner's supports-stage elements over to the exploded stage.

    Every element is tagged with the stage-1 joint it touches, remapped into
    each stage-2 zone that inherits from that joint, and the resulting fan-out
    is de-duplicated per joint. All math runs in normalized image space.
    """

    POSITION_EPS = 0.08        # fraction of the image
    ANGLE_EPS_DEG = 20.0
    MAX_FORCES_PER_JOINT = 3
    SUPPORT_TYPES = frozenset({'fixed', 'pinned', 'roller'})

    def __init__(
        self,
        debug: bool = False,
        position_eps: Optional[float] = None,
        angle_eps_deg: Optional[float] = None,
        max_forces_per_joint: Optional[int] = None,
        support_types: Optional[Iterable[str]] = None,
    ):
        self.debug = debug
        if position_eps is not None:
            self.POSITION_EPS = float(position_eps)
        if angle_eps_deg is not None:
            self.ANGLE_EPS_DEG = float(angle_eps_deg)
        if max_forces_per_joint is not None:
            self.MAX_FORCES_PER_JOINT = int(max_forces_per_joint)
        if support_types is not None:
            self.SUPPORT_TYPES = frozenset(str(t).lower() for t in support_types)

    def _debug(self, message: str):
        if getattr(self, 'debug', False):
            print(message)

    def map_stage_transition(
        self,
        stage1_elements: Sequence[DrawnElement],
        stage1_zones: Sequence[Zone],
        stage2_zones: Sequence[Zone],
        stage1_image_rect: Optional[ImageRect],
    ) -> StageTransition:
        """
        Map stage-1 elements (pixels) onto stage-2 zones (normalized).
        Returns locked arrows/moments plus the zone ids stage 2 should not grade.
        Precondition failures come back as ``StageTransition.error``.
        """
        if not stage1_zones or not stage2_zones:
            return StageTransition(error="Exploded mapping requires both stage-1 and stage-2 regions")
        if stage1_image_rect is None or not stage1_image_rect.is_ready:
            return StageTransition(
                error="Could not read supports image layout for mapping (image size not ready)"
            )

        s1_by_joint = self._index_by_joint(stage1_zones, use_map_from=False)
        s2_by_joint = self._index_by_joint(stage2_zones, use_map_from=True)
        s2_ids = {id(zone): self._zone_id(zone, i) for i, zone in enumerate(stage2_zones)}

        forces, moments = self._normalized_elements(stage1_elements, stage1_image_rect)

        force_candidates = []
        s1_forces_by_joint: dict[str, int] = {}
        for element_id, start, end in forces:
            joint = self._joint_for_force(start, end, s1_by_joint)
            if joint is None:
                self._debug(f"force {element_id}: no stage-1 joint, dropped")
                continue
            s1_forces_by_joint[joint] = s1_forces_by_joint.get(joint, 0) + 1
            s2_list = s2_by_joint.get(joint)
            if not s2_list:
                continue
            source = next(
                (z for z in s1_by_joint[joint] if z.frame.intersects_segment(start, end)),
                s1_by_joint[joint][0],
            )
            for target in s2_list:
                s = self.map_point(start, source, target)
                e = self.map_point(end, source, target)
                force_candidates.append({
                    'joint': joint,
                    'id': f"locked_{element_id}_{s2_ids[id(target)]}",
                    'zone_id': s2_ids[id(target)],
                    'start': s,
                    'end': e,
                    'length': length(s, e),
                    'mid': midpoint(s, e),
                    'angle': angle_deg(s, e),
                })

        moment_candidates = []
        for element_id, center, moment_type in moments:
            joint = self._joint_for_moment(center, s1_by_joint)
            if joint is None:
                self._debug(f"moment {element_id}: no stage-1 joint, dropped")
                continue
            s2_list = s2_by_joint.get(joint)
            if not s2_list:
                continue
            source = next((z for z in s1_by_joint[joint] if z.frame.contains(center)), s1_by_joint[joint][0])
            for target in s2_list:
                c = self.map_point(center, source, target)
                moment_candidates.append({
                    'joint': joint,
                    'id': f"locked_{element_id}_{s2_ids[id(target)]}",
                    'zone_id': s2_ids[id(target)],
                    'center': c,
                    'type': moment_type,
                })

        accepted_forces = self.dedupe_forces(force_candidates, s1_forces_by_joint)
        accepted_moments = self.dedupe_moments(moment_candidates)

        muted = [c['zone_id'] for c in accepted_forces] + [c['zone_id'] for c in accepted_moments]
        muted += self.auto_muted_zone_ids(stage1_zones, stage2_zones)

        return StageTransition(
            locked_arrows=[
                LockedArrow(
                    id=c['id'],
                    start_norm=Coord(x=c['start'][0], y=c['start'][1]),
                    end_norm=Coord(x=c['end'][0], y=c['end'][1]),
                    zone_id=c['zone_id'],
                )
                for c in accepted_forces
            ],
            locked_moments=[
                LockedMoment(
                    id=c['id'],
                    x_norm=c['center'][0],
                    y_norm=c['center'][1],
                    type=c['type'],
                    zone_id=c['zone_id'],
                )
                for c in accepted_moments
            ],
            muted_zone_ids=list(dict.fromkeys(muted)),
        )

    # ----------------------------------------------------------------------------- helpers

    @staticmethod
    def _zone_id(zone: Zone, index: int) -> str:
        return zone.id if zone.id is not None else f"zone_{index}"

    @staticmethod
    def _index_by_joint(zones: Sequence[Zone], use_map_from: bool) -> dict[str, list[Zone]]:
        index: dict[str, list[Zone]] = {}
        for zone in zones:
            if zone.joint is None:
                continue
            key = zone.joint.map_key if use_map_from else zone.joint.name
            if not key:
                continue
            index.setdefault(key, []).append(zone)
        return index

    def _normalized_elements(self, elements, image_rect: ImageRect):
        forces, moments = [], []
        for element in elements or []:
            if not element.is_finite():
                warnings.warn(
                    f"Skipping element {element.id}: non-finite coordinates",
                    RuntimeWarning,
                )
                continue
            if isinstance(element, ForceElement):
                forces.append((
                    element.id,
                    image_rect.point_to_norm(element.start.as_tuple()),
                    image_rect.point_to_norm(element.end.as_tuple()),
                ))
            elif isinstance(element, MomentElement):
                moments.append((element.id, image_rect.point_to_norm(element.center), element.type))
        return forces, moments

    @staticmethod
    def _joint_for_force(start, end, s1_by_joint) -> Optional[str]:
        for name, zones in s1_by_joint.items():
            if any(zone.frame.intersects_segment(start, end) for zone in zones):
                return name
        return None

    @staticmethod
    def _joint_for_moment(center, s1_by_joint) -> Optional[str]:
        for name, zones in s1_by_joint.items():
            if any(zone.frame.contains(center) for zone in zones):
                return name
        return None

    @staticmethod
    def map_point(point, source: Zone, target: Zone):
        """Remap a normalized point from a stage-1 zone into a stage-2 zone.

        The fractional position is taken in the source zone's own frame and
        placed in the target zone's frame, so unrotated zones reduce to a
        plain per-axis scale and offset.
        """
        local = source.frame.to_local(point)
        mapped = map_point_between_rects(local, source.rect, target.rect)
        return target.frame.to_world(mapped)

    def dedupe_forces(self, candidates: list[dict], s1_counts: dict[str, int]) -> list[dict]:
        by_joint: dict[str, list[dict]] = {}
        for candidate in candidates:
            by_joint.setdefault(candidate['joint'], []).append(candidate)

        accepted = []
        for joint, group in by_joint.items():
            group = sorted(group, key=lambda c: c['length'], reverse=True)
            cap = min(max(s1_counts.get(joint) or 2, 1), self.MAX_FORCES_PER_JOINT)
            keep: list[dict] = []
            for candidate in group:
                if len(keep) >= cap:
                    break
                too_close = any(
                    length(k['mid'], candidate['mid']) < self.POSITION_EPS
                    and angle_diff(k['angle'], candidate['angle']) < self.ANGLE_EPS_DEG
                    for k in keep
                )
                if not too_close:
                    keep.append(candidate)
            self._debug(f"joint {joint}: kept {len(keep)} of {len(group)} force candidates (cap {cap})")
            accepted.extend(keep)
        return accepted

    def dedupe_moments(self, candidates: list[dict]) -> list[dict]:
        by_joint: dict[str, list[dict]] = {}
        for candidate in candidates:
            by_joint.setdefault(candidate['joint'], []).append(candidate)

        accepted = []
        for group in by_joint.values():
            keep: list[dict] = []
            for candidate in group:
                if not any(length(k['center'], candidate['center']) < self.POSITION_EPS for k in keep):
                    keep.append(candidate)
            accepted.extend(keep)
        return accepted

    def auto_muted_zone_ids(self, stage1_zones: Sequence[Zone], stage2_zones: Sequence[Zone]) -> list[str]:
        """Stage-2 zones derived from a stage-1 external support."""
        support_bases = {
            base_of(zone.joint.name)
            for zone in stage1_zones
            if zone.joint is not None and (zone.joint.type or '').lower() in self.SUPPORT_TYPES
        }
        support_bases.discard('')

        muted = []
        for i, zone in enumerate(stage2_zones):
            if zone.joint is None:
                continue
            if base_of(zone.joint.name) in support_bases or base_of(zone.joint.map_from) in support_bases:
                muted.append(self._zone_id(zone, i))
        return muted


def map_stage_transition(stage1_elements, stage1_zones, stage2_zones, stage1_image_rect, **mapper_options) -> StageTransition:
    "convenience wrapper around ``StageMapper().map_stage_transition``"
    return StageMapper(**mapper_options).map_stage_transition(
        stage1_elements, stage1_zones, stage2_zones, stage1_image_rect
    )
