"""Reading and writing zone-set and submission documents.

A zone-set document is either a bare list of regions or an object of the
form ``{"regions": [...]}``. Individual regions that fail validation are
skipped with a warning so one bad entry does not take down a whole stage.
"""

from __future__ import annotations

import json
import warnings
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterable, List

from pydantic import ValidationError

from fbd_utils.zone_schema import DrawnElement, ImageRect, Zone, parse_element

EXPORT_VERSION = 1


class ZoneSetError(ValueError):
    """Raised when a document cannot be interpreted as a zone set at all."""


def regions_from_document(doc: Any) -> list:
    if doc is None:
        return []
    if isinstance(doc, list):
        return doc
    if isinstance(doc, dict):
        regions = doc.get('regions')
        if regions is None:
            return []
        if not isinstance(regions, list):
            raise ZoneSetError("'regions' must be a list")
        return regions
    raise ZoneSetError(f"Unsupported zone document type: {type(doc).__name__}")


def load_zone_set(doc: Any) -> List[Zone]:
    zones: List[Zone] = []
    for index, raw in enumerate(regions_from_document(doc)):
        if isinstance(raw, Zone):
            zone = raw
        else:
            if not isinstance(raw, dict):
                warnings.warn(f"Skipping region {index}: not an object", RuntimeWarning)
                continue
            try:
                zone = Zone.model_validate(raw)
            except ValidationError as exc:
                warnings.warn(
                    f"Skipping region {index}: {exc.error_count()} validation error(s)",
                    RuntimeWarning,
                )
                continue
        if zone.id is None:
            zone = zone.model_copy(update={'id': f"zone_{index}"})
        zones.append(zone)
    return zones


def _read_json(path: Path) -> Any:
    path = Path(path)
    try:
        return json.loads(path.read_text())
    except FileNotFoundError as exc:
        raise ZoneSetError(f"File not found: {path}") from exc
    except json.JSONDecodeError as exc:
        raise ZoneSetError(f"Failed to parse {path}: {exc}") from exc


def load_zone_file(path: Path) -> List[Zone]:
    return load_zone_set(_read_json(path))


def load_elements(doc: Any) -> List[DrawnElement]:
    """Parse a canvas snapshot: ``{"arrows": [...], "moments": [...]}`` or a flat list."""
    if isinstance(doc, dict):
        raw_items = list(doc.get('arrows') or []) + list(doc.get('moments') or [])
    elif isinstance(doc, list):
        raw_items = doc
    elif doc is None:
        raw_items = []
    else:
        raise ZoneSetError(f"Unsupported submission document type: {type(doc).__name__}")

    elements: List[DrawnElement] = []
    for index, raw in enumerate(raw_items):
        if isinstance(raw, dict) and raw.get('id') in (None, ''):
            raw = dict(raw, id=f"element_{index}")
        try:
            elements.append(parse_element(raw))
        except (ValidationError, ValueError) as exc:
            warnings.warn(f"Skipping element {index}: {exc}", RuntimeWarning)
    return elements


def load_elements_file(path: Path) -> List[DrawnElement]:
    return load_elements(_read_json(path))


def export_zone_set(zones: Iterable[Zone], image_rect: ImageRect) -> dict:
    """Region document in the shape the zone editor downloads."""
    return {
        'regions': [zone.model_dump(by_alias=True, exclude_none=True) for zone in zones],
        'imageDraw': image_rect.model_dump(),
        'meta': {
            'generatedAt': datetime.now(timezone.utc).isoformat(),
            'version': EXPORT_VERSION,
        },
    }
