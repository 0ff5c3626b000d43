"""Geometry normalization and shared shape helpers.

Every boundary record is turned into one canonical shapely ``MultiPolygon``
in lon/lat order with coordinates rounded to a fixed number of decimals, so
fragments exported with slightly different float noise line up exactly
before they are merged.
"""

from __future__ import annotations

import math
from typing import Any, Mapping, Sequence

from shapely.geometry import MultiPolygon, Polygon

from .errors import InvalidGeometry

# 6 decimals is ~0.11 m at the equator.
DEFAULT_PRECISION = 6
MIN_RING_POINTS = 4


def normalize(raw_geometry: Any, *, precision: int = DEFAULT_PRECISION) -> MultiPolygon:
    """Convert a Polygon/MultiPolygon input into a rounded ``MultiPolygon``.

    Accepts GeoJSON-like mappings, GeoJSON features, and any object exposing
    ``__geo_interface__`` (shapely geometries included). Raises
    ``InvalidGeometry`` for other geometry types, rings with fewer than four
    coordinate pairs, and non-finite coordinates.
    """
    data = _geo_mapping(raw_geometry)
    geom_type = data.get("type")
    coordinates = data.get("coordinates")
    if geom_type == "Polygon":
        polygons_raw: Sequence[Any] = [coordinates]
    elif geom_type == "MultiPolygon":
        if not isinstance(coordinates, (list, tuple)):
            raise InvalidGeometry("MultiPolygon coordinates must be a list of polygons")
        polygons_raw = coordinates
    else:
        raise InvalidGeometry(f"Unsupported geometry type '{geom_type}'")

    if not polygons_raw:
        raise InvalidGeometry(f"{geom_type} has no polygons")
    polygons = [
        _build_polygon(raw, precision=precision, label=f"polygon[{idx}]")
        for idx, raw in enumerate(polygons_raw)
    ]
    return MultiPolygon(polygons)


def explode_polygons(geometry: Any) -> list[Polygon]:
    """Return the non-empty simple polygons that make up ``geometry``."""
    if geometry is None or geometry.is_empty:
        return []
    geom_type = getattr(geometry, "geom_type", "")
    if geom_type == "Polygon":
        return [geometry]
    if geom_type == "MultiPolygon":
        return [part for part in geometry.geoms if not part.is_empty]
    if geom_type == "GeometryCollection":
        out: list[Polygon] = []
        for part in geometry.geoms:
            out.extend(explode_polygons(part))
        return out
    return []


def as_multipolygon(geometry: Any) -> MultiPolygon:
    """Wrap the polygonal parts of an arbitrary geometry as a ``MultiPolygon``."""
    polygons = explode_polygons(geometry)
    if not polygons:
        raise InvalidGeometry("Geometry has no polygonal parts")
    return MultiPolygon(polygons)


def shape_area(geometry: Any) -> float:
    """Planar area in squared degrees; 0.0 for missing or empty shapes."""
    if geometry is None or geometry.is_empty:
        return 0.0
    return float(geometry.area)


def _geo_mapping(raw_geometry: Any) -> Mapping[str, Any]:
    if raw_geometry is None:
        raise InvalidGeometry("Geometry is missing")
    if isinstance(raw_geometry, Mapping):
        data = raw_geometry
    elif hasattr(raw_geometry, "__geo_interface__"):
        data = raw_geometry.__geo_interface__
    else:
        raise InvalidGeometry(f"Unsupported geometry value of type {type(raw_geometry).__name__}")
    if data.get("type") == "Feature":
        return _geo_mapping(data.get("geometry"))
    return data


def _build_polygon(raw: Any, *, precision: int, label: str) -> Polygon:
    if not isinstance(raw, (list, tuple)) or not raw:
        raise InvalidGeometry(f"{label} has no rings")
    rings = [
        _round_ring(ring, precision=precision, label=f"{label}.ring[{idx}]")
        for idx, ring in enumerate(raw)
    ]
    try:
        return Polygon(rings[0], rings[1:])
    except (TypeError, ValueError) as exc:
        raise InvalidGeometry(f"{label} could not be built: {exc}") from exc


def _round_ring(ring: Any, *, precision: int, label: str) -> list[tuple[float, float]]:
    if not isinstance(ring, (list, tuple)):
        raise InvalidGeometry(f"{label} is not a coordinate list")
    if len(ring) < MIN_RING_POINTS:
        raise InvalidGeometry(
            f"{label} has {len(ring)} points; at least {MIN_RING_POINTS} are required"
        )
    out: list[tuple[float, float]] = []
    for position in ring:
        if not isinstance(position, (list, tuple)) or len(position) < 2:
            raise InvalidGeometry(f"{label} contains a malformed position: {position!r}")
        try:
            lon = float(position[0])
            lat = float(position[1])
        except (TypeError, ValueError) as exc:
            raise InvalidGeometry(f"{label} contains a non-numeric position") from exc
        if not (math.isfinite(lon) and math.isfinite(lat)):
            raise InvalidGeometry(f"{label} contains a non-finite position")
        out.append((round(lon, precision), round(lat, precision)))
    if out[0] != out[-1]:
        out.append(out[0])
    return out
