"""Merge boundary fragments sharing a parent key into one feature each."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping, Sequence

from shapely.errors import GEOSException
from shapely.geometry import MultiPolygon, Polygon
from shapely.ops import unary_union

from .errors import EngineIssue, InvalidGeometry, IssueKind, UnionFailure, format_issue_lines
from .geometry import DEFAULT_PRECISION, as_multipolygon, explode_polygons, normalize
from .models import AdministrativeFeature, BoundaryFragment, ZoneLevel, id_str

_LOGGER = logging.getLogger("zonemap.aggregate")

DEFAULT_DERIVED_FLAGS = ("has_agencies", "has_children_with_agencies")

_TRUE_STRINGS = {"1", "true", "yes", "y", "t"}


@dataclass(slots=True)
class AggregationReport:
    """Aggregated features for one level plus the failures met on the way."""

    level: ZoneLevel
    features: list[AdministrativeFeature] = field(default_factory=list)
    issues: list[EngineIssue] = field(default_factory=list)
    fragment_count: int = 0
    group_count: int = 0

    @property
    def ok(self) -> bool:
        return not self.issues

    def add_issue(self, kind: IssueKind, key: str | None, message: str) -> None:
        issue = EngineIssue(kind=kind, key=key, message=message)
        _LOGGER.warning("%s aggregation: %s", self.level.value, issue)
        self.issues.append(issue)


@dataclass(slots=True)
class _Group:
    key: str
    attributes: dict[str, Any]
    polygons: list[Polygon] = field(default_factory=list)
    flags: dict[str, bool] = field(default_factory=dict)


def aggregate(
    fragments: Iterable[BoundaryFragment | tuple[Any, Any, Mapping[str, Any]]],
    *,
    level: ZoneLevel,
    precision: int = DEFAULT_PRECISION,
    derived_flags: Sequence[str] = DEFAULT_DERIVED_FLAGS,
) -> AggregationReport:
    """Group fragments by parent key and union each group into one feature.

    Output order follows the first appearance of each key. Attributes come
    from the first fragment of a group; derived flags are OR-reduced over
    all of its fragments. Bad fragments and failed unions are recorded on
    the report and never abort sibling groups.
    """
    report = AggregationReport(level=level)
    groups: dict[str, _Group] = {}

    for idx, fragment in enumerate(fragments):
        parent_key, raw_geometry, attributes = fragment
        report.fragment_count += 1
        key = id_str(parent_key)
        if key is None:
            report.add_issue(IssueKind.MISSING_KEY, None, f"fragment[{idx}] has no parent key")
            continue

        attrs: Mapping[str, Any] = attributes if isinstance(attributes, Mapping) else {}
        group = groups.get(key)
        if group is None:
            group = _Group(key=key, attributes=dict(attrs))
            groups[key] = group
        _reduce_flags(group.flags, attrs, derived_flags)

        try:
            shape = normalize(raw_geometry, precision=precision)
        except InvalidGeometry as exc:
            report.add_issue(IssueKind.INVALID_GEOMETRY, key, f"fragment[{idx}]: {exc}")
            continue
        group.polygons.extend(explode_polygons(shape))

    report.group_count = len(groups)
    for group in groups.values():
        if not group.polygons:
            report.add_issue(
                IssueKind.EMPTY_GROUP, group.key, "no valid polygons left after normalization"
            )
            continue
        try:
            geometry = merge_polygons(group.polygons)
        except UnionFailure as exc:
            report.add_issue(IssueKind.UNION_FAILURE, group.key, str(exc))
            continue
        attributes = dict(group.attributes)
        attributes.update(group.flags)
        report.features.append(
            AdministrativeFeature(id=group.key, level=level, attributes=attributes, geometry=geometry)
        )

    _LOGGER.debug(
        "%s aggregation: %d fragments -> %d features (%d issues)",
        level.value,
        report.fragment_count,
        len(report.features),
        len(report.issues),
    )
    return report


def merge_polygons(polygons: Sequence[Polygon]) -> MultiPolygon:
    """Planar union of ``polygons`` as a ``MultiPolygon``.

    A single polygon is wrapped without a union step.
    """
    if not polygons:
        raise UnionFailure("nothing to merge")
    if len(polygons) == 1:
        return MultiPolygon(list(polygons))
    try:
        merged = unary_union(list(polygons))
    except (GEOSException, ValueError) as exc:
        raise UnionFailure(f"union of {len(polygons)} polygons failed: {exc}") from exc
    try:
        return as_multipolygon(merged)
    except InvalidGeometry as exc:
        raise UnionFailure(f"union of {len(polygons)} polygons produced no area: {exc}") from exc


def _reduce_flags(
    flags: dict[str, bool],
    attributes: Mapping[str, Any],
    derived_flags: Sequence[str],
) -> None:
    for name in derived_flags:
        if name not in attributes:
            continue
        flags[name] = flags.get(name, False) or _flag_value(attributes[name])


def _flag_value(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().casefold() in _TRUE_STRINGS
    if isinstance(value, float) and value != value:
        return False
    return bool(value)


def format_aggregation_lines(report: AggregationReport) -> Iterable[str]:
    yield (
        f"[INFO] {report.level.value}: {report.fragment_count} fragments, "
        f"{report.group_count} groups, {len(report.features)} features"
    )
    yield from format_issue_lines(report.issues)
    if report.ok:
        yield f"[OK] {report.level.value} aggregation completed with no issues."
