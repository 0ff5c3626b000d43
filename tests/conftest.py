from __future__ import annotations

from typing import Any

import pytest

from zonemap.geometry import normalize
from zonemap.models import AdministrativeFeature, PoiCategory, PointOfInterest, ZoneLevel


def square(x0: float, y0: float, x1: float, y1: float) -> dict[str, Any]:
    return {
        "type": "Polygon",
        "coordinates": [[[x0, y0], [x1, y0], [x1, y1], [x0, y1], [x0, y0]]],
    }


def make_zone(
    zone_id: str,
    geometry: dict[str, Any],
    *,
    level: ZoneLevel = ZoneLevel.REGION,
    **attributes: Any,
) -> AdministrativeFeature:
    return AdministrativeFeature(
        id=zone_id,
        level=level,
        attributes=attributes,
        geometry=normalize(geometry),
    )


def make_point(
    point_id: str,
    lon: float | None,
    lat: float | None,
    category: PoiCategory = PoiCategory.PICKUP_POINT,
    **attributes: Any,
) -> PointOfInterest:
    return PointOfInterest(id=point_id, category=category, lon=lon, lat=lat, attributes=attributes)


@pytest.fixture
def two_regions() -> list[AdministrativeFeature]:
    return [
        make_zone("11", square(0, 0, 1, 1), gov_id=11, gov_en="Tunis", gov_ar="تونس"),
        make_zone("12", square(2, 0, 3, 1), gov_id=12, gov_en="Ariana", gov_ar="أريانة"),
    ]
