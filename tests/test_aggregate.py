from __future__ import annotations

import pytest
from shapely.errors import GEOSException

import zonemap.aggregate as aggregate_module
from conftest import square
from zonemap.aggregate import aggregate, format_aggregation_lines, merge_polygons
from zonemap.bounds import bounds_of
from zonemap.clusters import build_clusters
from zonemap.errors import IssueKind, UnionFailure
from zonemap.geometry import normalize
from zonemap.models import BoundaryFragment, PoiCategory, PointOfInterest, ZoneLevel
from zonemap.resolve import resolve


def test_adjacent_fragments_merge_into_one_feature() -> None:
    report = aggregate(
        [
            ("A", square(0, 0, 1, 1), {"gov_en": "Alpha"}),
            ("A", square(1, 0, 2, 1), {"gov_en": "Alpha (part 2)"}),
        ],
        level=ZoneLevel.REGION,
    )
    assert report.ok
    assert len(report.features) == 1
    feature = report.features[0]
    assert feature.id == "A"
    assert feature.level is ZoneLevel.REGION
    assert feature.geometry.geom_type == "MultiPolygon"
    assert feature.geometry.area == pytest.approx(2.0)
    box = bounds_of(feature.geometry)
    assert (box.min_lon, box.min_lat, box.max_lon, box.max_lat) == (0.0, 0.0, 2.0, 1.0)
    assert feature.attributes["gov_en"] == "Alpha"


def test_two_square_scenario_end_to_end() -> None:
    report = aggregate(
        [("A", square(0, 0, 1, 1), {}), ("A", square(1, 0, 2, 1), {})],
        level=ZoneLevel.REGION,
    )
    zones = report.features
    assert [zone.id for zone in zones] == ["A"]
    assert zones[0].geometry.area == pytest.approx(2.0)
    assert bounds_of(zones[0].geometry).corners() == ((0.0, 0.0), (1.0, 2.0))

    assert resolve((0.5, 0.5), zones) == "A"
    assert resolve((3, 3), zones) is None

    inside = PointOfInterest("inside", PoiCategory.PICKUP_POINT, 0.5, 0.5)
    outside = PointOfInterest("outside", PoiCategory.PICKUP_POINT, 3.0, 3.0)
    clusters = build_clusters([inside, outside], zones, level=ZoneLevel.REGION)
    assert [(cluster.id, cluster.members) for cluster in clusters.clusters] == [
        ("A-pickup_point", ("inside",))
    ]
    assert clusters.unassigned == ["outside"]


def test_disjoint_squares_areas_add_up() -> None:
    report = aggregate(
        [
            BoundaryFragment("A", square(0, 0, 1, 1), {}),
            BoundaryFragment("A", square(5, 5, 6, 6), {}),
        ],
        level=ZoneLevel.REGION,
    )
    geometry = report.features[0].geometry
    assert len(geometry.geoms) == 2
    assert geometry.area == pytest.approx(2.0, abs=1e-9)


def test_union_with_identical_copy_keeps_area() -> None:
    report = aggregate(
        [("A", square(0, 0, 1, 1), {}), ("A", square(0, 0, 1, 1), {})],
        level=ZoneLevel.REGION,
    )
    assert report.features[0].geometry.area == pytest.approx(1.0)


def test_union_is_order_independent() -> None:
    parts = [square(0, 0, 2, 2), square(1, 1, 3, 3), square(10, 10, 11, 11)]
    forward = aggregate([("A", part, {}) for part in parts], level=ZoneLevel.REGION)
    backward = aggregate([("A", part, {}) for part in reversed(parts)], level=ZoneLevel.REGION)
    a = forward.features[0].geometry
    b = backward.features[0].geometry
    assert a.area == pytest.approx(b.area)
    assert a.symmetric_difference(b).area == pytest.approx(0.0, abs=1e-9)


def test_single_polygon_group_skips_union(monkeypatch: pytest.MonkeyPatch) -> None:
    def _fail(_: object) -> None:
        raise AssertionError("union must not be called for a single polygon")

    monkeypatch.setattr(aggregate_module, "unary_union", _fail)
    report = aggregate([("A", square(0, 0, 1, 1), {})], level=ZoneLevel.REGION)
    assert report.features[0].geometry.area == pytest.approx(1.0)


def test_output_follows_first_appearance_order() -> None:
    report = aggregate(
        [
            ("B", square(5, 0, 6, 1), {}),
            ("A", square(0, 0, 1, 1), {}),
            ("B", square(6, 0, 7, 1), {}),
        ],
        level=ZoneLevel.REGION,
    )
    assert [feature.id for feature in report.features] == ["B", "A"]


def test_numeric_keys_are_stringified() -> None:
    report = aggregate(
        [(11, square(0, 0, 1, 1), {}), (11.0, square(1, 0, 2, 1), {})],
        level=ZoneLevel.REGION,
    )
    assert [feature.id for feature in report.features] == ["11"]


def test_bad_fragment_is_reported_and_siblings_survive() -> None:
    report = aggregate(
        [
            ("A", square(0, 0, 1, 1), {}),
            ("A", {"type": "Point", "coordinates": [0, 0]}, {}),
            ("B", square(3, 3, 4, 4), {}),
        ],
        level=ZoneLevel.SUB_REGION,
    )
    assert [feature.id for feature in report.features] == ["A", "B"]
    assert [(issue.kind, issue.key) for issue in report.issues] == [
        (IssueKind.INVALID_GEOMETRY, "A")
    ]
    assert not report.ok


def test_group_without_valid_polygons_produces_no_feature() -> None:
    report = aggregate(
        [
            ("A", {"type": "Polygon", "coordinates": [[[0, 0], [1, 1], [0, 0]]]}, {}),
            ("B", square(0, 0, 1, 1), {}),
        ],
        level=ZoneLevel.REGION,
    )
    assert [feature.id for feature in report.features] == ["B"]
    kinds = [issue.kind for issue in report.issues]
    assert kinds == [IssueKind.INVALID_GEOMETRY, IssueKind.EMPTY_GROUP]


def test_missing_parent_key_is_reported() -> None:
    report = aggregate(
        [(None, square(0, 0, 1, 1), {}), ("  ", square(0, 0, 1, 1), {})],
        level=ZoneLevel.REGION,
    )
    assert report.features == []
    assert [issue.kind for issue in report.issues] == [IssueKind.MISSING_KEY] * 2
    assert report.fragment_count == 2
    assert report.group_count == 0


def test_union_failure_is_scoped_to_its_group(monkeypatch: pytest.MonkeyPatch) -> None:
    real_union = aggregate_module.unary_union

    def _flaky_union(polygons):
        if any(polygon.bounds[0] >= 10 for polygon in polygons):
            raise GEOSException("TopologyException: side location conflict")
        return real_union(polygons)

    monkeypatch.setattr(aggregate_module, "unary_union", _flaky_union)
    report = aggregate(
        [
            ("A", square(0, 0, 1, 1), {}),
            ("A", square(1, 0, 2, 1), {}),
            ("B", square(10, 0, 11, 1), {}),
            ("B", square(11, 0, 12, 1), {}),
        ],
        level=ZoneLevel.REGION,
    )
    assert [feature.id for feature in report.features] == ["A"]
    assert [(issue.kind, issue.key) for issue in report.issues] == [
        (IssueKind.UNION_FAILURE, "B")
    ]


def test_derived_flags_are_or_reduced() -> None:
    report = aggregate(
        [
            ("A", square(0, 0, 1, 1), {"gov_en": "Alpha", "has_agencies": False}),
            ("A", square(1, 0, 2, 1), {"gov_en": "Other", "has_agencies": True}),
            ("B", square(5, 0, 6, 1), {"has_agencies": "false"}),
            ("C", square(8, 0, 9, 1), {}),
        ],
        level=ZoneLevel.REGION,
    )
    by_id = {feature.id: feature for feature in report.features}
    assert by_id["A"].attributes["has_agencies"] is True
    assert by_id["A"].attributes["gov_en"] == "Alpha"
    assert by_id["B"].attributes["has_agencies"] is False
    assert "has_agencies" not in by_id["C"].attributes


def test_custom_derived_flags() -> None:
    report = aggregate(
        [
            ("A", square(0, 0, 1, 1), {"active": 0}),
            ("A", square(1, 0, 2, 1), {"active": 1}),
        ],
        level=ZoneLevel.REGION,
        derived_flags=("active",),
    )
    assert report.features[0].attributes["active"] is True


def test_merge_polygons_rejects_empty_input() -> None:
    with pytest.raises(UnionFailure):
        merge_polygons([])


def test_merge_polygons_wraps_union_result() -> None:
    parts = list(normalize(square(0, 0, 1, 1)).geoms) + list(normalize(square(1, 0, 2, 1)).geoms)
    merged = merge_polygons(parts)
    assert merged.geom_type == "MultiPolygon"
    assert merged.area == pytest.approx(2.0)


def test_format_lines_reports_issues() -> None:
    report = aggregate([(None, square(0, 0, 1, 1), {})], level=ZoneLevel.REGION)
    lines = list(format_aggregation_lines(report))
    assert lines[0].startswith("[INFO] region: 1 fragments")
    assert any(line.startswith("[WARN] missing_key") for line in lines)
    assert not any(line.startswith("[OK]") for line in lines)
