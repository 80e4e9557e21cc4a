from __future__ import annotations

import math
import warnings
from typing import Any, ClassVar, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, conlist, field_validator
from pydantic.alias_generators import to_camel

from fbd_utils.geometry_engine import ZoneFrame, angle_diff, normalize_deg

# Reusable types
AngleRange = conlist(float, min_length=2, max_length=2)  # [lo, hi] in degrees
DirectionSpec = Union[str, List[str]]

DIRECTION_ANGLES = {
    'right': 0.0,
    'down': 90.0,   # y grows downward
    'left': 180.0,
    'up': 270.0,
}

MIN_ZONE_EXTENT = 1e-6
ZONE_TYPES = ('force', 'moment')


def _schema_config(**overrides) -> ConfigDict:
    base = dict(extra='ignore', alias_generator=to_camel, populate_by_name=True)
    base.update(overrides)
    return ConfigDict(**base)


def as_list(value) -> list:
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return list(value)
    return [value]


def base_of(joint_name: Optional[str]) -> str:
    "'B@member1' -> 'B'"
    return (joint_name or '').split('@')[0]


def direction_to_angle_ranges(direction: Optional[DirectionSpec], tolerance_deg: float = 10.0) -> Optional[list[list[float]]]:
    ranges = []
    for name in as_list(direction):
        center = DIRECTION_ANGLES.get(str(name or '').strip().lower())
        if center is None:
            continue
        ranges.append([center - tolerance_deg, center + tolerance_deg])
    return ranges or None


def axis_of_angle(angle: float, tolerance_deg: float) -> Optional[str]:
    a = normalize_deg(angle)
    if min(angle_diff(a, 0.0), angle_diff(a, 180.0)) <= tolerance_deg:
        return 'x'
    if min(angle_diff(a, 90.0), angle_diff(a, 270.0)) <= tolerance_deg:
        return 'y'
    return None


class Coord(BaseModel):
    model_config = _schema_config(frozen=True)
    x: float
    y: float

    def as_tuple(self) -> tuple[float, float]:
        return (self.x, self.y)


class Joint(BaseModel):
    """Structural node a zone belongs to.

    ``name`` may encode ``base@member`` when several members meet at the
    node; ``base`` and ``member_name`` expose that split so nobody else has
    to parse the string.
    """

    model_config = _schema_config(frozen=True)
    name: Optional[str] = None
    type: Optional[str] = None
    map_from: Optional[str] = None
    member: Optional[str] = None
    side: Optional[str] = None

    @property
    def base(self) -> Optional[str]:
        if not self.name:
            return None
        return self.name.split('@', 1)[0]

    @property
    def member_name(self) -> Optional[str]:
        if not self.name:
            return None
        if '@' in self.name:
            return self.name.split('@', 1)[1] or None
        return self.member or self.side or None

    @property
    def map_key(self) -> Optional[str]:
        "key used to find the stage-1 joint this zone inherits from"
        return self.map_from or self.name


class Zone(BaseModel):
    model_config = _schema_config(frozen=True, allow_inf_nan=False)
    id: Optional[str] = None
    x: float
    y: float
    width: float
    height: float
    rotation_deg: float = 0.0
    type: Optional[Literal['force', 'moment']] = None
    force_direction: Optional[DirectionSpec] = None
    angle_ranges_deg: Optional[List[AngleRange]] = None
    moment_direction: Optional[DirectionSpec] = None
    min_length_px: Optional[float] = None
    joint: Optional[Joint] = None

    @field_validator('id', mode='before')
    @classmethod
    def _id_to_str(cls, value):
        if value is None or value == '':
            return None
        return str(value)

    @field_validator('rotation_deg', mode='before')
    @classmethod
    def _rotation_default(cls, value):
        return 0.0 if value is None else value

    @field_validator('type', mode='before')
    @classmethod
    def _type_lower(cls, value):
        if not value:
            return None
        kind = str(value).strip().lower()
        if kind not in ZONE_TYPES:
            # unknown tags accept either kind of element
            warnings.warn(f"Unknown zone type {value!r}; treating the zone as untyped", RuntimeWarning)
            return None
        return kind

    @field_validator('width', 'height')
    @classmethod
    def _clamp_extent(cls, value: float) -> float:
        return max(MIN_ZONE_EXTENT, value)

    @property
    def rect(self) -> tuple[float, float, float, float]:
        return (self.x, self.y, self.width, self.height)

    @property
    def frame(self) -> ZoneFrame:
        return ZoneFrame(self.rect, self.rotation_deg or 0.0)

    @property
    def joint_name(self) -> Optional[str]:
        return self.joint.name if self.joint and self.joint.name else None

    def accepts_kind(self, kind: str) -> bool:
        return self.type is None or self.type == kind

    def allowed_angle_ranges(self, tolerance_deg: float = 10.0) -> Optional[list]:
        "explicit ranges win over a named direction"
        if self.angle_ranges_deg:
            return [list(r) for r in self.angle_ranges_deg]
        return direction_to_angle_ranges(self.force_direction, tolerance_deg)

    def allowed_moment_directions(self) -> Optional[set[str]]:
        allowed = {str(d).strip().lower() for d in as_list(self.moment_direction)}
        return allowed or None

    def nominal_axis(self, tolerance_deg: float = 20.0, direction_tolerance_deg: float = 10.0) -> Optional[str]:
        """Axis ('x' or 'y') a force zone is constrained to, if any.

        Read from the first allowed range, so explicit ranges win over a
        named direction exactly as they do for matching.
        """
        ranges = self.allowed_angle_ranges(direction_tolerance_deg)
        if not ranges:
            return None
        lo, hi = (normalize_deg(bound) for bound in ranges[0])
        span = (hi - lo) % 360.0
        return axis_of_angle(lo + span / 2.0, tolerance_deg)


class ForceElement(BaseModel):
    model_config = _schema_config(frozen=True)
    id: str
    start: Coord
    end: Coord

    kind: Literal['force'] = Field(default='force', exclude=True)

    @field_validator('id', mode='before')
    @classmethod
    def _id_to_str(cls, value):
        if value is None or value == '':
            raise ValueError("element id is required")
        return str(value)

    def is_finite(self) -> bool:
        return all(math.isfinite(v) for v in (self.start.x, self.start.y, self.end.x, self.end.y))


class MomentElement(BaseModel):
    model_config = _schema_config(frozen=True)
    id: str
    x: float
    y: float
    type: Literal['moment-cw', 'moment-ccw']

    kind: Literal['moment'] = Field(default='moment', exclude=True)

    @field_validator('id', mode='before')
    @classmethod
    def _id_to_str(cls, value):
        if value is None or value == '':
            raise ValueError("element id is required")
        return str(value)

    @property
    def direction(self) -> str:
        return 'cw' if self.type == 'moment-cw' else 'ccw'

    @property
    def center(self) -> tuple[float, float]:
        return (self.x, self.y)

    def is_finite(self) -> bool:
        return math.isfinite(self.x) and math.isfinite(self.y)


DrawnElement = Union[ForceElement, MomentElement]


def parse_element(raw: Any) -> DrawnElement:
    if isinstance(raw, (ForceElement, MomentElement)):
        return raw
    if not isinstance(raw, dict):
        raise ValueError(f"Unrecognized element: {raw!r}")
    if 'start' in raw and 'end' in raw:
        return ForceElement.model_validate(raw)
    return MomentElement.model_validate(raw)


class ImageRect(BaseModel):
    """Pixel rectangle the diagram image occupies on screen."""

    model_config = _schema_config(frozen=True)
    x: float
    y: float
    w: float
    h: float

    MIN_ZONE_SIZE_PX: ClassVar[float] = 10.0
    OFF_CANVAS: ClassVar[float] = -9999.0

    @property
    def is_ready(self) -> bool:
        values = (self.x, self.y, self.w, self.h)
        return all(math.isfinite(v) for v in values) and self.w > 0 and self.h > 0

    def point_to_norm(self, point: tuple[float, float]) -> tuple[float, float]:
        return (
            (point[0] - self.x) / (self.w or 1),
            (point[1] - self.y) / (self.h or 1),
        )

    def point_to_px(self, point) -> tuple[float, float]:
        try:
            nx, ny = float(point[0]), float(point[1])
        except (TypeError, ValueError, IndexError):
            nx = ny = math.nan
        if not (math.isfinite(nx) and math.isfinite(ny)):
            warnings.warn(
                f"Bad normalized coordinates {point!r}; placing point off canvas",
                RuntimeWarning,
            )
            return (self.OFF_CANVAS, self.OFF_CANVAS)
        return (self.x + nx * (self.w or 1), self.y + ny * (self.h or 1))

    def zone_to_px(self, zone: Zone) -> Zone:
        iw = self.w or 1
        ih = self.h or 1
        return zone.model_copy(update={
            'x': self.x + zone.x * iw,
            'y': self.y + zone.y * ih,
            'width': zone.width * iw,
            'height': zone.height * ih,
        })

    def rect_to_norm(self, rect) -> dict[str, float]:
        """Pixel rect (x, y, width, height) -> normalized, clamped to a minimum size."""
        x, y, width, height = rect
        iw = self.w or 1
        ih = self.h or 1

        nx = (x - self.x) / iw
        ny = (y - self.y) / ih

        min_wn = self.MIN_ZONE_SIZE_PX / iw
        min_hn = self.MIN_ZONE_SIZE_PX / ih

        nw = max(min_wn, width / iw)
        nh = max(min_hn, height / ih)

        return {
            'x': nx if math.isfinite(nx) else 0.0,
            'y': ny if math.isfinite(ny) else 0.0,
            'width': nw if math.isfinite(nw) else min_wn,
            'height': nh if math.isfinite(nh) else min_hn,
        }


# ----------------------------------------------------------------------------- results

class JointRef(BaseModel):
    model_config = _schema_config()
    name: str
    type: Optional[str] = None


class JointFeedback(BaseModel):
    model_config = _schema_config()
    joint: JointRef
    message: str


class MatchResult(BaseModel):
    model_config = _schema_config()
    overall_correct: bool = False
    joint_feedback: List[JointFeedback] = Field(default_factory=list)
    missing_zones: List[str] = Field(default_factory=list)
    extras: List[str] = Field(default_factory=list)
    extras_inside_any: List[str] = Field(default_factory=list)
    extras_outside_any: List[str] = Field(default_factory=list)
    extra_elements_notice: bool = False
    error: Optional[str] = None

    def to_json_dict(self) -> dict:
        return self.model_dump(by_alias=True)


class LockedArrow(BaseModel):
    model_config = _schema_config()
    id: str
    start_norm: Coord
    end_norm: Coord
    zone_id: Optional[str] = None
    locked: bool = True


class LockedMoment(BaseModel):
    model_config = _schema_config()
    id: str
    x_norm: float
    y_norm: float
    type: Literal['moment-cw', 'moment-ccw']
    zone_id: Optional[str] = None
    locked: bool = True


class StageTransition(BaseModel):
    model_config = _schema_config()
    locked_arrows: List[LockedArrow] = Field(default_factory=list)
    locked_moments: List[LockedMoment] = Field(default_factory=list)
    muted_zone_ids: List[str] = Field(default_factory=list)
    error: Optional[str] = None

    def to_json_dict(self) -> dict:
        return self.model_dump(by_alias=True)
