import sys
from pathlib import Path

import pytest

# Add the repo root so the top-level modules import without installation
ROOT = Path(__file__).resolve().parent.parent
if ROOT.as_posix() not in sys.path:
    sys.path.insert(0, ROOT.as_posix())

from fbd_utils.zone_schema import ForceElement, ImageRect, Joint, MomentElement, Zone


def make_zone(zone_id, x, y, width, height, joint=None, **fields):
    """Build a zone; ``joint`` may be a name string or a dict of joint fields."""
    if isinstance(joint, str):
        joint = Joint(name=joint)
    elif isinstance(joint, dict):
        joint = Joint(**joint)
    return Zone(id=zone_id, x=x, y=y, width=width, height=height, joint=joint, **fields)


def force(element_id, start, end):
    return ForceElement(
        id=element_id,
        start={'x': start[0], 'y': start[1]},
        end={'x': end[0], 'y': end[1]},
    )


def moment(element_id, x, y, clockwise=True):
    return MomentElement(id=element_id, x=x, y=y, type='moment-cw' if clockwise else 'moment-ccw')


@pytest.fixture
def image_rect():
    """A 500x500 image drawn at the canvas origin."""
    return ImageRect(x=0, y=0, w=500, h=500)


@pytest.fixture
def up_zone():
    """Single normalized force zone that only accepts upward arrows."""
    return make_zone('z1', 0.4, 0.4, 0.2, 0.2, type='force', force_direction='up')
