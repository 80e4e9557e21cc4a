import warnings
from typing import Iterable, Optional, Sequence

import numpy as np
from scipy.optimize import linear_sum_assignment

from fbd_utils.geometry_engine import (
    angle_deg,
    angle_diff,
    angle_in_ranges,
    length,
)
from fbd_utils.zone_schema import (
    DrawnElement,
    ForceElement,
    ImageRect,
    JointFeedback,
    JointRef,
    MatchResult,
    MomentElement,
    Zone,
)


class Grader:
    """
    Geometric grading of a learner's free body diagram.

    Zones and elements must be expressed in the same coordinate space for a
    call to ``match``; ``check_submission`` accepts normalized zones plus
    pixel elements and does the conversion through the image rectangle.

    Candidate pairs are generated zone-major then element-major and, with the
    default ``assignment="greedy"``, accepted in exactly that order. This tie
    break is part of the contract: a zone can be taken by an earlier element
    even when a later one would have fit it better. ``assignment="maximum"``
    swaps in a maximum-cardinality matching instead.
    """

    DIRECTION_TOLERANCE_DEG = 10.0  # named directions map to +/- this range
    AXIS_TOLERANCE_DEG = 20.0       # couple check: how close to a cardinal axis
    DEFAULT_MIN_LENGTH_PX = 20.0
    MEMBER_PLACEHOLDER = 'member?'
    ASSIGNMENT_STRATEGIES = ('greedy', 'maximum')

    def __init__(
        self,
        debug: bool = False,
        assignment: str = 'greedy',
        direction_tolerance_deg: Optional[float] = None,
        axis_tolerance_deg: Optional[float] = None,
        default_min_length_px: Optional[float] = None,
    ):
        if assignment not in self.ASSIGNMENT_STRATEGIES:
            raise ValueError(f"Unknown assignment strategy: {assignment}")
        self.debug = debug
        self.assignment = assignment
        if direction_tolerance_deg is not None:
            self.DIRECTION_TOLERANCE_DEG = float(direction_tolerance_deg)
        if axis_tolerance_deg is not None:
            self.AXIS_TOLERANCE_DEG = float(axis_tolerance_deg)
        if default_min_length_px is not None:
            self.DEFAULT_MIN_LENGTH_PX = float(default_min_length_px)

    def _debug(self, message: str):
        if getattr(self, 'debug', False):
            print(message)

    # ----------------------------------------------------------------------------- entry points

    def check_submission(
        self,
        zones: Sequence[Zone],
        elements: Sequence[DrawnElement],
        image_rect: ImageRect,
        muted_zone_ids: Iterable[str] = (),
        enforce_couples: bool = False,
    ) -> MatchResult:
        """Grade pixel-space elements against normalized zones."""
        if not zones:
            return MatchResult(error="No grading zones configured for this stage")
        if image_rect is None or not image_rect.is_ready:
            return MatchResult(error="Diagram image layout is not ready")

        zones_px = [image_rect.zone_to_px(zone) for zone in zones]
        return self.match(zones_px, elements, muted_zone_ids, enforce_couples)

    def match(
        self,
        zones: Sequence[Zone],
        elements: Sequence[DrawnElement],
        muted_zone_ids: Iterable[str] = (),
        enforce_couples: bool = False,
    ) -> MatchResult:
        muted = set(muted_zone_ids or ())
        active = [
            (self._zone_id(zone, index), zone)
            for index, zone in enumerate(zones)
            if self._zone_id(zone, index) not in muted
        ]
        zone_ids = [zone_id for zone_id, _ in active]
        active_zones = [zone for _, zone in active]
        student = self._usable_elements(elements)

        candidates = []
        for zi, zone in enumerate(active_zones):
            for ei, element in enumerate(student):
                if self.is_candidate(zone, element):
                    self._debug(f"candidate: zone={zone_ids[zi]} element={element.id}")
                    candidates.append((zi, ei))

        pairs = self._assign(candidates, len(active_zones), len(student))
        used_zones = {zi for zi, _ in pairs}
        used_elements = {ei for _, ei in pairs}

        missing_idx = [zi for zi in range(len(active_zones)) if zi not in used_zones]
        extra_idx = [ei for ei in range(len(student)) if ei not in used_elements]

        def in_any_zone(element) -> bool:
            return any(self.element_touches_zone(element, zone) for zone in active_zones)

        extras_inside = [ei for ei in extra_idx if in_any_zone(student[ei])]
        extras_outside = [ei for ei in extra_idx if not in_any_zone(student[ei])]

        joint_issues = self._joint_issues(active_zones, student, used_zones, extra_idx)
        joints_all_satisfied = not joint_issues
        extra_elements_notice = (
            joints_all_satisfied
            and not missing_idx
            and bool(extras_outside)
            and not extras_inside
        )

        overall_correct = not missing_idx and not extra_idx

        if enforce_couples:
            couple_issues = self.couple_issues(active_zones, student, pairs)
            joint_issues.extend(couple_issues)
            overall_correct = overall_correct and not couple_issues

        joint_issues.sort(key=lambda issue: issue.joint.name)

        return MatchResult(
            overall_correct=overall_correct,
            joint_feedback=joint_issues,
            missing_zones=[zone_ids[zi] for zi in missing_idx],
            extras=[student[ei].id for ei in extra_idx],
            extras_inside_any=[student[ei].id for ei in extras_inside],
            extras_outside_any=[student[ei].id for ei in extras_outside],
            extra_elements_notice=extra_elements_notice,
        )

    # ----------------------------------------------------------------------------- candidates

    @staticmethod
    def _zone_id(zone: Zone, index: int) -> str:
        return zone.id if zone.id is not None else f"zone_{index}"

    def _usable_elements(self, elements: Sequence[DrawnElement]) -> list[DrawnElement]:
        usable = []
        for element in elements or []:
            if not element.is_finite():
                warnings.warn(
                    f"Skipping element {element.id}: non-finite coordinates",
                    RuntimeWarning,
                )
                continue
            usable.append(element)
        return usable

    def element_touches_zone(self, element: DrawnElement, zone: Zone) -> bool:
        frame = zone.frame
        if isinstance(element, ForceElement):
            return frame.intersects_segment(element.start.as_tuple(), element.end.as_tuple())
        return frame.contains(element.center)

    def is_candidate(self, zone: Zone, element: DrawnElement) -> bool:
        if not zone.accepts_kind(element.kind):
            return False

        if isinstance(element, ForceElement):
            start, end = element.start.as_tuple(), element.end.as_tuple()
            if not zone.frame.intersects_segment(start, end):
                return False
            min_length = zone.min_length_px or self.DEFAULT_MIN_LENGTH_PX
            if length(start, end) < min_length:
                return False
            theta = angle_deg(start, end)
            return angle_in_ranges(theta, zone.allowed_angle_ranges(self.DIRECTION_TOLERANCE_DEG))

        if isinstance(element, MomentElement):
            if not zone.frame.contains(element.center):
                return False
            allowed = zone.allowed_moment_directions()
            if allowed and not ('any' in allowed or element.direction in allowed):
                return False
            return True

        return False

    def _assign(self, candidates: list[tuple[int, int]], n_zones: int, n_elements: int) -> list[tuple[int, int]]:
        if not candidates:
            return []

        if self.assignment == 'maximum':
            # zero cost for a geometric candidate, one otherwise: the optimum
            # keeps as many candidate pairs as possible
            cost = np.ones((n_zones, n_elements), dtype=float)
            for zi, ei in candidates:
                cost[zi, ei] = 0.0
            rows, cols = linear_sum_assignment(cost)
            pairs = [(int(r), int(c)) for r, c in zip(rows, cols) if cost[r, c] == 0.0]
            return sorted(pairs)

        used_zones: set[int] = set()
        used_elements: set[int] = set()
        pairs = []
        for zi, ei in candidates:
            if zi in used_zones or ei in used_elements:
                continue
            used_zones.add(zi)
            used_elements.add(ei)
            pairs.append((zi, ei))
        return pairs

    # ----------------------------------------------------------------------------- joint diagnostics

    def _joint_issues(self, zones, student, used_zones, extra_idx) -> list[JointFeedback]:
        joints: dict[str, dict] = {}
        for zi, zone in enumerate(zones):
            name = zone.joint_name
            if not name:
                continue
            info = joints.setdefault(name, {'type': zone.joint.type, 'zones': [], 'extras': []})
            info['zones'].append(zi)

        for ei in extra_idx:
            element = student[ei]
            for info in joints.values():
                if any(self.element_touches_zone(element, zones[zi]) for zi in info['zones']):
                    info['extras'].append(ei)

        issues = []
        for name, info in joints.items():
            matched = sum(1 for zi in info['zones'] if zi in used_zones)
            missing = max(0, len(info['zones']) - matched)
            extras = len(info['extras'])
            if missing == 0 and extras == 0:
                continue
            reasons = []
            if missing > 0:
                reasons.append(f"{missing} reaction{'s' if missing > 1 else ''} missing")
            if extras > 0:
                reasons.append(f"{extras} extra reaction{'s' if extras > 1 else ''} in region")
            issues.append(JointFeedback(
                joint=JointRef(name=name, type=info['type']),
                message=' | '.join(reasons),
            ))
        return issues

    # ----------------------------------------------------------------------------- couples

    def axis_sign(self, angle: float) -> tuple[Optional[str], int]:
        """Classify a force direction as (axis, sign).

        ``+1`` is right for x and down for y; anything further than
        AXIS_TOLERANCE_DEG from both axes is ``(None, 0)``.
        """
        tol = self.AXIS_TOLERANCE_DEG
        a = angle % 360.0
        if min(angle_diff(a, 0.0), angle_diff(a, 180.0)) <= tol:
            return 'x', (1 if angle_diff(a, 0.0) < angle_diff(a, 180.0) else -1)
        if min(angle_diff(a, 90.0), angle_diff(a, 270.0)) <= tol:
            return 'y', (1 if angle_diff(a, 90.0) < angle_diff(a, 270.0) else -1)
        return None, 0

    def couple_issues(self, zones: Sequence[Zone], student: Sequence[DrawnElement], pairs) -> list[JointFeedback]:
        """Action-reaction check at joints shared by several members.

        For every base joint with at least two force zones, each axis that two
        or more members constrain must carry matched forces of opposite sign
        on two different members.
        """
        zone_to_element: dict[int, int] = {}
        for zi, ei in pairs:
            zone_to_element.setdefault(zi, ei)

        by_base: dict[str, list[tuple[int, Zone, str, Optional[str]]]] = {}
        for zi, zone in enumerate(zones):
            if zone.joint is None or not zone.joint.base:
                continue
            member = zone.joint.member_name or self.MEMBER_PLACEHOLDER
            axis = zone.nominal_axis(self.AXIS_TOLERANCE_DEG, self.DIRECTION_TOLERANCE_DEG)
            by_base.setdefault(zone.joint.base, []).append((zi, zone, member, axis))

        issues = []
        for base, entries in by_base.items():
            force_entries = [e for e in entries if (e[1].type or 'force') == 'force']
            if len(force_entries) < 2:
                continue

            members_per_axis: dict[str, set[str]] = {'x': set(), 'y': set()}
            for _, _, member, axis in force_entries:
                if axis in members_per_axis:
                    members_per_axis[axis].add(member)
            required_axes = [axis for axis in ('x', 'y') if len(members_per_axis[axis]) >= 2]

            matched_per_member: dict[str, list[tuple[str, int]]] = {}
            for zi, _, member, _ in force_entries:
                ei = zone_to_element.get(zi)
                if ei is None:
                    continue
                element = student[ei]
                if not isinstance(element, ForceElement):
                    continue
                axis, sign = self.axis_sign(angle_deg(element.start.as_tuple(), element.end.as_tuple()))
                if axis is None:
                    continue
                matched_per_member.setdefault(member, []).append((axis, sign))

            failed_axes = [
                axis for axis in required_axes
                if not self._axis_balanced(axis, matched_per_member)
            ]
            if failed_axes:
                label = '&'.join(sorted(failed_axes))
                self._debug(f"couple check failed at {base}: axis {label}")
                issues.append(JointFeedback(
                    joint=JointRef(name=base, type='couple'),
                    message=f"couple: missing or not opposite on axis {label}",
                ))
        return issues

    @staticmethod
    def _axis_balanced(axis: str, matched_per_member: dict[str, list[tuple[str, int]]]) -> bool:
        signs_by_member = {}
        for member, classified in matched_per_member.items():
            signs = {sign for cls_axis, sign in classified if cls_axis == axis}
            if signs:
                signs_by_member[member] = signs
        if len(signs_by_member) < 2:
            return False

        members = list(signs_by_member)
        for i in range(len(members)):
            for j in range(i + 1, len(members)):
                a = signs_by_member[members[i]]
                b = signs_by_member[members[j]]
                if (1 in a and -1 in b) or (-1 in a and 1 in b):
                    return True
        return False


def grade(zones, elements, muted_zone_ids=(), enforce_couples=False, **grader_options) -> MatchResult:
    "convenience wrapper around ``Grader().match``"
    return Grader(**grader_options).match(zones, elements, muted_zone_ids, enforce_couples)
