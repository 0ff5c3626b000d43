"""Point-in-zone resolution.

A point belongs to the first zone, in input order, whose shape covers it.
Boundary data is expected to be non-overlapping, so first-match is the
defined tie-break for touching edges and small export overlaps.
"""

from __future__ import annotations

import logging
import math
from typing import Any, Iterable, Sequence

from shapely.errors import GEOSException
from shapely.geometry import Point
from shapely.prepared import prep
from shapely.strtree import STRtree

from .models import AdministrativeFeature, PointOfInterest, ZoneAssignment, ZoneLevel

_LOGGER = logging.getLogger("zonemap.resolve")


def point_lonlat(point: Any) -> tuple[float, float] | None:
    """Finite (lon, lat) from a ``PointOfInterest`` or a (lon, lat) pair."""
    if point is None:
        return None
    if isinstance(point, PointOfInterest):
        raw = point.coordinates
    else:
        try:
            raw = (point[0], point[1])
        except (TypeError, IndexError, KeyError):
            return None
    try:
        lon = float(raw[0])
        lat = float(raw[1])
    except (TypeError, ValueError):
        return None
    if not (math.isfinite(lon) and math.isfinite(lat)):
        return None
    return (lon, lat)


def resolve(point: Any, zones: Iterable[AdministrativeFeature]) -> str | None:
    """Id of the first zone containing ``point``, or None."""
    lonlat = point_lonlat(point)
    if lonlat is None:
        return None
    shapely_point = Point(lonlat)
    for zone in zones:
        if _covers(zone.geometry, shapely_point, zone.id):
            return zone.id
    return None


def _covers(geometry: Any, point: Point, zone_id: str) -> bool:
    if geometry is None or geometry.is_empty:
        return False
    try:
        return bool(geometry.covers(point))
    except GEOSException as exc:
        _LOGGER.debug("Skipping zone %s in containment test: %s", zone_id, exc)
        return False


class ZoneIndex:
    """Batch resolver with an R-tree bounding-box prefilter.

    Candidates from the tree are tested in ascending input order, so every
    answer matches ``resolve`` over the same zone sequence.
    """

    def __init__(self, zones: Sequence[AdministrativeFeature]) -> None:
        self.zones: tuple[AdministrativeFeature, ...] = tuple(zones)
        usable = [
            (idx, zone.geometry)
            for idx, zone in enumerate(self.zones)
            if zone.geometry is not None and not zone.geometry.is_empty
        ]
        self._positions = [idx for idx, _ in usable]
        self._prepared = {idx: prep(geometry) for idx, geometry in usable}
        self._tree = STRtree([geometry for _, geometry in usable]) if usable else None

    def __len__(self) -> int:
        return len(self.zones)

    def candidates(self, point: Point) -> list[int]:
        if self._tree is None:
            return []
        hits = self._tree.query(point)
        return sorted(self._positions[int(hit)] for hit in hits)

    def resolve(self, point: Any) -> str | None:
        lonlat = point_lonlat(point)
        if lonlat is None:
            return None
        shapely_point = Point(lonlat)
        for idx in self.candidates(shapely_point):
            zone = self.zones[idx]
            try:
                inside = self._prepared[idx].covers(shapely_point)
            except GEOSException as exc:
                _LOGGER.debug("Skipping zone %s in containment test: %s", zone.id, exc)
                continue
            if inside:
                return zone.id
        return None

    def assign(self, points: Iterable[PointOfInterest], level: ZoneLevel) -> list[ZoneAssignment]:
        return [
            ZoneAssignment(point_id=point.id, zone_id=self.resolve(point), zone_level=level)
            for point in points
        ]


def assign_zones(
    points: Iterable[PointOfInterest],
    zones: Sequence[AdministrativeFeature],
    level: ZoneLevel,
) -> list[ZoneAssignment]:
    """Resolve every point against ``zones``; unmatched points get ``zone_id=None``."""
    return ZoneIndex(zones).assign(points, level)
