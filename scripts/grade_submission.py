#!/usr/bin/env python3
"""Grade a saved canvas snapshot against a zone-set document."""
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
from grader import Grader


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("zones", type=Path, help="Zone-set JSON (list or {regions: [...]})")
    parser.add_argument("submission", type=Path, help="Canvas snapshot JSON ({arrows, moments})")
    parser.add_argument(
        "--image-rect", nargs=4, type=float, metavar=("X", "Y", "W", "H"),
        help="Pixel rect of the diagram image; zones are normalized and scaled through it",
    )
    parser.add_argument("--muted", nargs="*", default=[], help="Zone ids to exclude from grading")
    parser.add_argument("--couples", action="store_true", help="Enforce action-reaction couples (exploded stage)")
    parser.add_argument("--maximum", action="store_true", help="Use maximum matching instead of greedy")
    parser.add_argument("--debug", action="store_true", help="Print matcher trace")
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        zones = load_zone_file(args.zones)
        elements = load_elements_file(args.submission)
    except ZoneSetError as exc:
        raise SystemExit(str(exc))

    grader = Grader(debug=args.debug, assignment="maximum" if args.maximum else "greedy")
    if args.image_rect:
        x, y, w, h = args.image_rect
        result = grader.check_submission(zones, elements, ImageRect(x=x, y=y, w=w, h=h), args.muted, args.couples)
    else:
        result = grader.match(zones, elements, args.muted, args.couples)

    print(json.dumps(result.to_json_dict(), indent=2))
    if result.error:
        return 2
    return 0 if result.overall_correct else 1


if __name__ == "__main__":
    sys.exit(main())
