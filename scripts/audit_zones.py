#!/usr/bin/env python3
"""Run authoring checks over a zone-set document."""
from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from fbd_utils.zone_io import ZoneSetError, load_zone_file
from zone_audit import ZoneAuditor


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("zones", type=Path, help="Zone-set JSON (list or {regions: [...]})")
    parser.add_argument("--debug", action="store_true", help="Print per-pair overlap areas")
    args = parser.parse_args(argv)

    try:
        zones = load_zone_file(args.zones)
    except ZoneSetError as exc:
        raise SystemExit(str(exc))

    if not zones:
        raise SystemExit(f"No zones found in {args.zones}")

    report = ZoneAuditor(debug=args.debug).evaluate(zones)
    print(json.dumps(report, indent=2))
    return 0 if report['overall_pass'] else 1


if __name__ == "__main__":
    sys.exit(main())
