#!/usr/bin/env python3
"""Carry supports-stage elements over to the exploded stage."""
from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Optional, Sequence

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from fbd_utils.zone_io import ZoneSetError, load_elements_file, load_zone_file
from fbd_utils.zone_schema import ImageRect
from stage_mapper import StageMapper


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("stage1_zones", type=Path, help="Supports-stage zone JSON")
    parser.add_argument("stage2_zones", type=Path, help="Exploded-stage zone JSON")
    parser.add_argument("submission", type=Path, help="Supports-stage canvas snapshot JSON (pixels)")
    parser.add_argument(
        "--image-rect", nargs=4, type=float, required=True, metavar=("X", "Y", "W", "H"),
        help="Pixel rect the supports image occupied when the snapshot was taken",
    )
    parser.add_argument("--debug", action="store_true", help="Print mapper trace")
    args = parser.parse_args(argv)

    try:
        stage1_zones = load_zone_file(args.stage1_zones)
        stage2_zones = load_zone_file(args.stage2_zones)
        elements = load_elements_file(args.submission)
    except ZoneSetError as exc:
        raise SystemExit(str(exc))

    x, y, w, h = args.image_rect
    transition = StageMapper(debug=args.debug).map_stage_transition(
        elements, stage1_zones, stage2_zones, ImageRect(x=x, y=y, w=w, h=h)
    )
    print(json.dumps(transition.to_json_dict(), indent=2))
    return 2 if transition.error else 0


if __name__ == "__main__":
    sys.exit(main())
