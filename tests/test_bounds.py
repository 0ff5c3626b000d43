from __future__ import annotations

import pytest
from shapely.geometry import GeometryCollection, LineString, MultiPolygon, Polygon

from conftest import make_zone, square
from zonemap.bounds import bounds_of, bounds_of_zones
from zonemap.geometry import normalize
from zonemap.models import TERRITORY_BOUNDS, AdministrativeFeature, BoundingBox, ZoneLevel


def test_bounds_cover_every_vertex() -> None:
    shape = normalize(
        {
            "type": "MultiPolygon",
            "coordinates": [
                square(9.1, 36.5, 9.5, 36.9)["coordinates"],
                square(10, 33, 10.2, 33.4)["coordinates"],
            ],
        }
    )
    box = bounds_of(shape)
    assert box == BoundingBox(min_lon=9.1, min_lat=33.0, max_lon=10.2, max_lat=36.9)


def test_corners_are_lat_lon_pairs() -> None:
    box = bounds_of(normalize(square(8, 34, 9, 35)))
    assert box.corners() == ((34.0, 8.0), (35.0, 9.0))
    assert box.to_dict()["corners"] == [[34.0, 8.0], [35.0, 9.0]]


def test_raw_mapping_and_feature_are_accepted() -> None:
    assert bounds_of(square(1, 2, 3, 4)) == BoundingBox(1.0, 2.0, 3.0, 4.0)
    zone = make_zone("Z", square(1, 2, 3, 4))
    assert bounds_of(zone) == BoundingBox(1.0, 2.0, 3.0, 4.0)


@pytest.mark.parametrize(
    "shape",
    [None, MultiPolygon(), {"type": "Point", "coordinates": [0, 0]}, "not a shape", 42],
)
def test_unmeasurable_shapes_fall_back_to_territory(shape: object) -> None:
    assert bounds_of(shape) == TERRITORY_BOUNDS


def test_custom_default_is_used() -> None:
    fallback = BoundingBox(0.0, 0.0, 1.0, 1.0)
    assert bounds_of(None, default=fallback) is fallback


def test_territory_constants() -> None:
    assert TERRITORY_BOUNDS.corners() == ((30.2, 7.5), (37.5, 11.6))


def test_bounds_of_zones_unions_extents(two_regions) -> None:
    box = bounds_of_zones(two_regions)
    assert box == BoundingBox(0.0, 0.0, 3.0, 1.0)


def test_bounds_of_zones_skips_empty_shapes() -> None:
    good = make_zone("good", square(4, 4, 5, 6))
    empty = AdministrativeFeature(id="empty", level=ZoneLevel.REGION, attributes={}, geometry=MultiPolygon())
    assert bounds_of_zones([empty, good]) == BoundingBox(4.0, 4.0, 5.0, 6.0)


def test_bounds_of_no_zones_uses_default() -> None:
    assert bounds_of_zones([]) == TERRITORY_BOUNDS
    fallback = BoundingBox(0.0, 0.0, 1.0, 1.0)
    assert bounds_of_zones([], default=fallback) == fallback


def test_bounding_box_union() -> None:
    a = BoundingBox(0.0, 0.0, 1.0, 1.0)
    b = BoundingBox(-1.0, 0.5, 0.5, 2.0)
    assert a.union(b) == BoundingBox(-1.0, 0.0, 1.0, 2.0)


def test_only_polygonal_parts_are_measured() -> None:
    collection = GeometryCollection(
        [
            Polygon([(1, 1), (2, 1), (2, 2), (1, 2)]),
            LineString([(-50, -50), (50, 50)]),
        ]
    )
    assert bounds_of(collection) == BoundingBox(1.0, 1.0, 2.0, 2.0)


def test_holes_do_not_change_the_extent() -> None:
    donut = normalize(
        {
            "type": "Polygon",
            "coordinates": [
                square(0, 0, 4, 4)["coordinates"][0],
                square(1, 1, 3, 3)["coordinates"][0],
            ],
        }
    )
    assert bounds_of(donut) == BoundingBox(0.0, 0.0, 4.0, 4.0)
