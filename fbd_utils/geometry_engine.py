"""Geometry helpers shared by the grader and the stage mapper.

Everything here is a pure function of its inputs. Points are ``(x, y)``
tuples and rectangles are ``(x, y, width, height)`` tuples in the y-down
image plane; the caller decides whether those are pixels or normalized
coordinates, and never mixes the two in a single call.

Rotations follow the canvas convention: a positive ``rotation_deg`` turns
a zone clockwise (on screen) about its own center.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Iterable, Optional, Sequence

import numpy as np
from shapely.geometry import Polygon

Point = tuple[float, float]
Rect = tuple[float, float, float, float]


def normalize_deg(angle: float) -> float:
    "wrap an angle into [0, 360)"
    return ((angle % 360.0) + 360.0) % 360.0


def angle_deg(start: Point, end: Point) -> float:
    """Direction of the vector start -> end in degrees, in [0, 360).

    0 points right and 90 points down because y grows downward.
    """
    return normalize_deg(math.degrees(math.atan2(end[1] - start[1], end[0] - start[0])))


def length(a: Point, b: Point) -> float:
    return math.hypot(b[0] - a[0], b[1] - a[1])


def midpoint(a: Point, b: Point) -> Point:
    return ((a[0] + b[0]) / 2.0, (a[1] + b[1]) / 2.0)


def angle_diff(a: float, b: float) -> float:
    "smallest absolute difference between two angles, in [0, 180]"
    d = abs(a - b) % 360.0
    return 360.0 - d if d > 180.0 else d


def angle_in_ranges(theta: float, ranges: Optional[Iterable[Sequence[float]]]) -> bool:
    """Check whether ``theta`` falls inside any ``[lo, hi]`` range (inclusive).

    A range with ``lo > hi`` after normalization wraps through 0 degrees,
    e.g. ``[350, 10]``. Missing or empty ranges accept every angle.
    """
    ranges = list(ranges or [])
    if not ranges:
        return True
    t = normalize_deg(theta)
    for lo_raw, hi_raw in ranges:
        lo = normalize_deg(lo_raw)
        hi = normalize_deg(hi_raw)
        if lo <= hi:
            if lo <= t <= hi:
                return True
        elif t >= lo or t <= hi:
            return True
    return False


def _ccw(a: Point, b: Point, c: Point) -> bool:
    return (c[1] - a[1]) * (b[0] - a[0]) > (b[1] - a[1]) * (c[0] - a[0])


def segments_intersect(a: Point, b: Point, c: Point, d: Point) -> bool:
    """Orientation test: AB and CD cross iff each straddles the other's line."""
    return (_ccw(a, c, d) != _ccw(b, c, d)) and (_ccw(a, b, c) != _ccw(a, b, d))


def _point_in_axis_aligned(p: Point, rect: Rect) -> bool:
    x, y, w, h = rect
    return x <= p[0] <= x + w and y <= p[1] <= y + h


def _segment_intersects_axis_aligned(p: Point, q: Point, rect: Rect) -> bool:
    if _point_in_axis_aligned(p, rect) or _point_in_axis_aligned(q, rect):
        return True
    x, y, w, h = rect
    r1 = (x, y)
    r2 = (x + w, y)
    r3 = (x + w, y + h)
    r4 = (x, y + h)
    return (
        segments_intersect(p, q, r1, r2)
        or segments_intersect(p, q, r2, r3)
        or segments_intersect(p, q, r3, r4)
        or segments_intersect(p, q, r4, r1)
    )


@dataclass(frozen=True)
class ZoneFrame:
    """Local frame of a (possibly rotated) rectangle.

    ``to_local`` undoes the rotation about the rectangle's center so the
    containment and intersection tests can run against the unrotated rect.
    All rotated-rect queries go through this one transform.
    """

    rect: Rect
    rotation_deg: float = 0.0

    @property
    def center(self) -> Point:
        x, y, w, h = self.rect
        return (x + w / 2.0, y + h / 2.0)

    @property
    def is_rotated(self) -> bool:
        return bool(self.rotation_deg) and math.isfinite(self.rotation_deg)

    def _matrix(self, angle: float) -> np.ndarray:
        angle_rad = np.radians(angle)
        cos_a, sin_a = np.cos(angle_rad), np.sin(angle_rad)
        return np.array([[cos_a, -sin_a],
                         [sin_a, cos_a]], dtype=float)

    def _apply(self, point: Point, angle: float) -> Point:
        center = np.array(self.center, dtype=float)
        offset = np.array(point, dtype=float) - center
        out = self._matrix(angle) @ offset + center
        return (float(out[0]), float(out[1]))

    def to_local(self, point: Point) -> Point:
        if not self.is_rotated:
            return (point[0], point[1])
        return self._apply(point, -self.rotation_deg)

    def to_world(self, point: Point) -> Point:
        if not self.is_rotated:
            return (point[0], point[1])
        return self._apply(point, self.rotation_deg)

    def contains(self, point: Point) -> bool:
        return _point_in_axis_aligned(self.to_local(point), self.rect)

    def intersects_segment(self, p: Point, q: Point) -> bool:
        return _segment_intersects_axis_aligned(self.to_local(p), self.to_local(q), self.rect)

    def corners(self) -> list[Point]:
        x, y, w, h = self.rect
        raw = [(x, y), (x + w, y), (x + w, y + h), (x, y + h)]
        return [self.to_world(corner) for corner in raw]

    def polygon(self) -> Polygon:
        return Polygon(self.corners())


def point_in_rect(p: Point, rect: Rect, rotation_deg: float = 0.0) -> bool:
    """Inclusive containment test against a rectangle rotated about its center."""
    return ZoneFrame(rect, rotation_deg or 0.0).contains(p)


def segment_intersects_rect(p: Point, q: Point, rect: Rect, rotation_deg: float = 0.0) -> bool:
    """True if either endpoint lies in the rect or PQ crosses one of its edges."""
    return ZoneFrame(rect, rotation_deg or 0.0).intersects_segment(p, q)


def map_point_between_rects(point: Point, source: Rect, target: Rect) -> Point:
    """Per-axis linear remap of ``point`` from ``source`` into ``target``.

    The point's fractional position inside ``source`` is clamped to [0, 1]
    before it is scaled into ``target``.
    """
    sx, sy, sw, sh = source
    tx, ty, tw, th = target
    rx = (point[0] - sx) / (sw or 1e-9)
    ry = (point[1] - sy) / (sh or 1e-9)
    crx = max(0.0, min(1.0, rx))
    cry = max(0.0, min(1.0, ry))
    return (tx + crx * (tw or 0.0), ty + cry * (th or 0.0))

