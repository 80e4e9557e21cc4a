import warnings
from typing import Sequence

from fbd_utils.zone_schema import DIRECTION_ANGLES, Zone, as_list


class ZoneAuditor:
    """
    Authoring checks for a zone set before it is handed to learners.

    Mirrors the grader's geometry: zone outlines come from the same local
    frame, so what the audit calls an overlap is what the grader would see.
    """

    OVERLAP_AREA_TOLERANCE = 1e-4   # normalized area
    CANVAS_TOLERANCE = 1e-6

    def __init__(self, debug: bool = False):
        self.debug = debug
        self.global_evals = [
            self.zone_ids_are_unique,
            self.zones_inside_image,
            self.zones_dont_problematically_overlap,
            self.force_zones_have_reachable_directions,
            self.couple_members_are_labelled,
        ]

    def _debug(self, message: str):
        if getattr(self, 'debug', False):
            print(message)

    def evaluate(self, zones: Sequence[Zone]):
        """
        Run every audit check.
        Returns a dict with results and a score in [0,1]
        """
        results = {'global': [], 'score': 0.0, 'overall_pass': False}

        for evaluation_fn in self.global_evals:
            passed, message = evaluation_fn(zones)
            results["global"].append({"check": evaluation_fn.__name__, "passed": passed, "message": message})

        applicable_checks = [check for check in results['global'] if check['passed'] != "N/A"]
        total_checks = len(applicable_checks)
        passed_checks = sum(1 for check_result in applicable_checks if check_result['passed'] is True)
        score = (passed_checks / total_checks) if total_checks > 0 else 0.0
        results['score'] = score
        results['overall_pass'] = (score == 1.0)

        return results

    # ----------------------------------------------------------------------------- checks

    @staticmethod
    def _summarize(issues: list[str]) -> str:
        summary = "; ".join(issues[:3])
        if len(issues) > 3:
            summary += f" (+{len(issues) - 3} more)"
        return summary

    def zone_ids_are_unique(self, zones) -> tuple[bool, str]:
        seen = set()
        duplicates = []
        for zone in zones:
            if zone.id in seen and zone.id not in duplicates:
                duplicates.append(zone.id)
            seen.add(zone.id)
        if duplicates:
            return False, f"Duplicate zone ids: {', '.join(str(d) for d in duplicates)}"
        return True, "Zone ids are unique"

    def zones_inside_image(self, zones) -> tuple[bool, str]:
        tol = self.CANVAS_TOLERANCE
        issues = []
        for zone in zones:
            xs = [corner[0] for corner in zone.frame.corners()]
            ys = [corner[1] for corner in zone.frame.corners()]
            if min(xs) < -tol or min(ys) < -tol or max(xs) > 1 + tol or max(ys) > 1 + tol:
                issues.append(
                    f"zone {zone.id} bbox (({min(xs):.3f}, {min(ys):.3f}) to ({max(xs):.3f}, {max(ys):.3f})) leaves the image"
                )
        if issues:
            return False, self._summarize(issues)
        return True, "All zones lie inside the image"

    def zones_dont_problematically_overlap(self, zones) -> tuple[bool, str]:
        """Zones of different joints that overlap make the greedy matcher order-dependent."""
        records = []
        for zone in zones:
            polygon = zone.frame.polygon()
            if not polygon.is_valid:
                warnings.warn(f"Skipping invalid outline for zone {zone.id}", RuntimeWarning)
                continue
            records.append((zone, polygon))

        issues = []
        for i in range(len(records)):
            zone_a, poly_a = records[i]
            for j in range(i + 1, len(records)):
                zone_b, poly_b = records[j]
                if zone_a.joint_name and zone_a.joint_name == zone_b.joint_name:
                    continue
                area = poly_a.intersection(poly_b).area
                self._debug(f"overlap {zone_a.id}/{zone_b.id}: {area:.6f}")
                if area > self.OVERLAP_AREA_TOLERANCE:
                    issues.append(f"zones {zone_a.id} and {zone_b.id} overlap (area {area:.4f})")

        if issues:
            return False, self._summarize(issues)
        return True, "No overlapping zones across joints"

    def force_zones_have_reachable_directions(self, zones) -> tuple[bool, str]:
        constrained = [zone for zone in zones if zone.force_direction]
        if not constrained:
            return "N/A", "No force directions declared"

        issues = []
        for zone in constrained:
            unknown = [
                str(name) for name in as_list(zone.force_direction)
                if str(name or '').strip().lower() not in DIRECTION_ANGLES
            ]
            if unknown:
                issues.append(f"zone {zone.id} has unknown direction(s) {', '.join(unknown)}")
        if issues:
            return False, self._summarize(issues)
        return True, "All force directions are recognised"

    def couple_members_are_labelled(self, zones) -> tuple[bool, str]:
        by_base: dict[str, list[Zone]] = {}
        for zone in zones:
            if zone.joint is None or not zone.joint.base:
                continue
            if (zone.type or 'force') != 'force':
                continue
            by_base.setdefault(zone.joint.base, []).append(zone)

        shared = {
            base: group for base, group in by_base.items()
            if len(group) >= 2 and any(zone.joint.member_name for zone in group)
        }
        if not shared:
            return "N/A", "No member-qualified joints"

        issues = []
        for base, group in shared.items():
            members = {zone.joint.member_name for zone in group}
            if None in members or len(members) < 2:
                issues.append(f"joint {base} zones do not name distinct members")
        if issues:
            return False, self._summarize(issues)
        return True, "Shared joints name their members"
