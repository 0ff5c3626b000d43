from __future__ import annotations

import math

import pytest
from shapely.geometry import GeometryCollection, LineString, MultiPolygon, Point, Polygon, mapping

from conftest import square
from zonemap.errors import InvalidGeometry
from zonemap.geometry import as_multipolygon, explode_polygons, normalize, shape_area


def test_polygon_is_promoted_to_multipolygon() -> None:
    shape = normalize(square(0, 0, 1, 1))
    assert isinstance(shape, MultiPolygon)
    assert len(shape.geoms) == 1
    assert shape.area == pytest.approx(1.0)


def test_multipolygon_keeps_all_parts() -> None:
    raw = {
        "type": "MultiPolygon",
        "coordinates": [
            square(0, 0, 1, 1)["coordinates"],
            square(5, 5, 6, 6)["coordinates"],
        ],
    }
    shape = normalize(raw)
    assert len(shape.geoms) == 2
    assert shape.area == pytest.approx(2.0)


def test_coordinates_are_rounded_to_six_decimals() -> None:
    raw = square(0.1234567891, 0.0, 1.0000004, 1.0)
    shape = normalize(raw)
    xs = [x for x, _ in shape.geoms[0].exterior.coords]
    assert 0.123457 in xs
    assert 1.0 in xs


def test_precision_is_configurable() -> None:
    shape = normalize(square(0.126, 0.0, 1.0, 1.0), precision=2)
    assert min(x for x, _ in shape.geoms[0].exterior.coords) == pytest.approx(0.13)


def test_normalizing_a_normalized_shape_is_a_noop() -> None:
    first = normalize(square(0.1234567891, 0.9876543219, 1.5555555555, 2.0000001))
    second = normalize(mapping(first))
    assert second.equals_exact(first, 0.0)
    assert normalize(first).equals_exact(first, 0.0)


def test_holes_are_preserved() -> None:
    raw = {
        "type": "Polygon",
        "coordinates": [
            square(0, 0, 4, 4)["coordinates"][0],
            square(1, 1, 2, 2)["coordinates"][0],
        ],
    }
    shape = normalize(raw)
    assert len(shape.geoms[0].interiors) == 1
    assert shape.area == pytest.approx(15.0)


def test_open_ring_is_closed() -> None:
    raw = {"type": "Polygon", "coordinates": [[[0, 0], [1, 0], [1, 1], [0, 1]]]}
    ring = list(normalize(raw).geoms[0].exterior.coords)
    assert ring[0] == ring[-1]


def test_accepts_shapely_geometry_and_feature_wrapper() -> None:
    assert normalize(Polygon([(0, 0), (1, 0), (1, 1)])).area == pytest.approx(0.5)
    feature = {"type": "Feature", "properties": {}, "geometry": square(0, 0, 2, 2)}
    assert normalize(feature).area == pytest.approx(4.0)


@pytest.mark.parametrize(
    "raw",
    [
        None,
        {"type": "Point", "coordinates": [0, 0]},
        {"type": "LineString", "coordinates": [[0, 0], [1, 1]]},
        {"type": "Polygon", "coordinates": []},
        {"type": "Polygon", "coordinates": [[[0, 0], [1, 0], [0, 0]]]},
        {"type": "MultiPolygon", "coordinates": []},
        {"type": "Polygon", "coordinates": [[[0, 0], [1, "x"], [1, 1], [0, 0]]]},
        {"type": "Polygon", "coordinates": [[[0, 0], [math.inf, 0], [1, 1], [0, 0]]]},
        "POLYGON ((0 0, 1 0, 1 1, 0 0))",
    ],
)
def test_invalid_inputs_raise_invalid_geometry(raw: object) -> None:
    with pytest.raises(InvalidGeometry):
        normalize(raw)


def test_explode_polygons_flattens_collections() -> None:
    collection = GeometryCollection(
        [
            Polygon([(0, 0), (1, 0), (1, 1)]),
            LineString([(0, 0), (1, 1)]),
            MultiPolygon([Polygon([(2, 2), (3, 2), (3, 3)])]),
        ]
    )
    parts = explode_polygons(collection)
    assert len(parts) == 2
    assert all(part.geom_type == "Polygon" for part in parts)


def test_as_multipolygon_rejects_non_polygonal() -> None:
    with pytest.raises(InvalidGeometry):
        as_multipolygon(Point(0, 0))


def test_shape_area_handles_missing() -> None:
    assert shape_area(None) == 0.0
    assert shape_area(normalize(square(0, 0, 2, 3))) == pytest.approx(6.0)
