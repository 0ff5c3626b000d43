"""Viewport bounding boxes for the map camera."""

from __future__ import annotations

import logging
import math
from typing import Any, Iterable

from shapely.geometry import MultiPolygon

from .geometry import explode_polygons, normalize
from .models import TERRITORY_BOUNDS, AdministrativeFeature, BoundingBox

_LOGGER = logging.getLogger("zonemap.bounds")


def bounds_of(shape: Any | None, *, default: BoundingBox = TERRITORY_BOUNDS) -> BoundingBox:
    """Extent of the polygonal parts of ``shape``, or ``default`` if it has none.

    Never raises: any failure while measuring falls back to ``default``.
    """
    if shape is None:
        return default
    try:
        box = _polygonal_bounds(shape)
    except Exception as exc:
        _LOGGER.warning("Falling back to default bounds: %s", exc)
        return default
    return box if box is not None else default


def bounds_of_zones(
    zones: Iterable[AdministrativeFeature],
    *,
    default: BoundingBox = TERRITORY_BOUNDS,
) -> BoundingBox:
    """Combined extent of a zone set; zones that cannot be measured are ignored."""
    combined: BoundingBox | None = None
    for zone in zones:
        try:
            box = _polygonal_bounds(zone.geometry)
        except Exception as exc:
            _LOGGER.warning("Ignoring zone %s in combined bounds: %s", zone.id, exc)
            continue
        if box is None:
            continue
        combined = box if combined is None else combined.union(box)
    return combined if combined is not None else default


def _polygonal_bounds(shape: Any) -> BoundingBox | None:
    if isinstance(shape, AdministrativeFeature):
        shape = shape.geometry
    elif shape is not None and not hasattr(shape, "geom_type"):
        shape = normalize(shape)
    polygons = explode_polygons(shape)
    if not polygons:
        return None
    min_lon, min_lat, max_lon, max_lat = [float(item) for item in MultiPolygon(polygons).bounds]
    if not all(math.isfinite(value) for value in (min_lon, min_lat, max_lon, max_lat)):
        return None
    return BoundingBox(min_lon=min_lon, min_lat=min_lat, max_lon=max_lon, max_lat=max_lat)
