"""Zone/category clustering of points-of-interest with a stable marker layout."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping, Sequence

from shapely.errors import GEOSException

from .errors import DegenerateZone, EngineIssue, IssueKind, format_issue_lines
from .geometry import shape_area
from .models import (
    AdministrativeFeature,
    Cluster,
    ClusterCategory,
    LevelSchema,
    PoiCategory,
    PointOfInterest,
    ZoneAssignment,
    ZoneLevel,
)
from .resolve import ZoneIndex

_LOGGER = logging.getLogger("zonemap.clusters")

DEFAULT_SPACING_DEG = 0.1
# Agency records exported by the Drivago backend mark affiliation with
# "show_in_drivago"; set clustering.affiliation_flag to that key for them.
DEFAULT_AFFILIATION_FLAG = "affiliated"
CANONICAL_CATEGORY_ORDER: tuple[ClusterCategory, ...] = tuple(ClusterCategory)


@dataclass(slots=True)
class ClusteringReport:
    """Clusters for one zone level and the bookkeeping around them."""

    level: ZoneLevel
    clusters: list[Cluster] = field(default_factory=list)
    assignments: list[ZoneAssignment] = field(default_factory=list)
    unassigned: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    issues: list[EngineIssue] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.issues

    @property
    def total_clusters(self) -> int:
        return len(self.clusters)

    @property
    def total_points(self) -> int:
        return sum(cluster.count for cluster in self.clusters)

    def add_issue(self, kind: IssueKind, key: str | None, message: str) -> None:
        issue = EngineIssue(kind=kind, key=key, message=message)
        _LOGGER.warning("%s clustering: %s", self.level.value, issue)
        self.issues.append(issue)

    def to_dict(self) -> dict[str, Any]:
        return {
            "level": self.level.value,
            "total_clusters": self.total_clusters,
            "total_points": self.total_points,
            "clusters": [cluster.to_dict() for cluster in self.clusters],
            "unassigned": list(self.unassigned),
            "skipped": list(self.skipped),
            "issues": [issue.to_dict() for issue in self.issues],
        }


def is_affiliated(point: PointOfInterest, affiliation_flag: str = DEFAULT_AFFILIATION_FLAG) -> bool:
    """Whether a driving school is affiliated.

    The point's own boolean ``affiliated`` attribute wins; otherwise any
    associated agency with ``affiliation_flag`` set to True makes it so.
    """
    explicit = point.attributes.get("affiliated")
    if isinstance(explicit, bool):
        return explicit
    return any(agency.get(affiliation_flag) is True for agency in point.agencies)


def cluster_category(
    point: PointOfInterest,
    *,
    affiliation_flag: str = DEFAULT_AFFILIATION_FLAG,
) -> ClusterCategory:
    if point.category is PoiCategory.DRIVING_SCHOOL:
        if is_affiliated(point, affiliation_flag):
            return ClusterCategory.DRIVING_SCHOOL_AFFILIATED
        return ClusterCategory.DRIVING_SCHOOL_INDEPENDENT
    return ClusterCategory(point.category.value)


def zone_anchor(geometry: Any) -> tuple[float, float]:
    """Area-weighted centroid of a zone shape as (lat, lon).

    Falls back to a representative interior point when the centroid of a
    concave or multi-part shape lands outside it.
    """
    if geometry is None or geometry.is_empty:
        raise DegenerateZone("zone shape is empty")
    try:
        if not shape_area(geometry) > 0.0:
            raise DegenerateZone("zone shape has no area")
        anchor = geometry.centroid
        if anchor.is_empty or not geometry.covers(anchor):
            anchor = geometry.representative_point()
    except GEOSException as exc:
        raise DegenerateZone(f"centroid could not be computed: {exc}") from exc
    lat = float(anchor.y)
    lon = float(anchor.x)
    if not (math.isfinite(lat) and math.isfinite(lon)):
        raise DegenerateZone("centroid is not finite")
    return (lat, lon)


def layout_offsets(total: int, spacing_deg: float) -> list[float]:
    """Longitude offsets centering ``total`` markers on a horizontal line."""
    middle = (total - 1) / 2
    return [spacing_deg * (idx - middle) for idx in range(total)]


def build_clusters(
    points: Iterable[PointOfInterest],
    zones: Sequence[AdministrativeFeature],
    *,
    level: ZoneLevel,
    schema: LevelSchema | None = None,
    spacing_deg: float = DEFAULT_SPACING_DEG,
    category_order: Sequence[ClusterCategory | str] | None = None,
    affiliation_flag: str = DEFAULT_AFFILIATION_FLAG,
) -> ClusteringReport:
    """Group points by resolved zone and category into laid-out clusters."""
    report = ClusteringReport(level=level)
    rank = category_rank(category_order)
    index = ZoneIndex(zones)
    zones_by_id: dict[str, AdministrativeFeature] = {}
    for zone in index.zones:
        zones_by_id.setdefault(zone.id, zone)

    buckets: dict[str, dict[ClusterCategory, list[str]]] = {}
    for point in points:
        zone_id = index.resolve(point)
        report.assignments.append(ZoneAssignment(point_id=point.id, zone_id=zone_id, zone_level=level))
        if zone_id is None:
            report.unassigned.append(point.id)
            continue
        category = cluster_category(point, affiliation_flag=affiliation_flag)
        buckets.setdefault(zone_id, {}).setdefault(category, []).append(point.id)

    for zone_id, by_category in buckets.items():
        zone = zones_by_id[zone_id]
        try:
            anchor = zone_anchor(zone.geometry)
        except DegenerateZone as exc:
            report.add_issue(IssueKind.DEGENERATE_ZONE, zone_id, str(exc))
            for members in by_category.values():
                report.skipped.extend(members)
            continue

        zone_name, zone_name_local = zone.display_names(schema)
        categories = sorted(by_category, key=rank.__getitem__)
        offsets = layout_offsets(len(categories), spacing_deg)
        for category, offset in zip(categories, offsets):
            report.clusters.append(
                Cluster(
                    id=f"{zone_id}-{category.value}",
                    zone_id=zone_id,
                    category=category,
                    members=tuple(by_category[category]),
                    anchor=anchor,
                    position=(anchor[0], anchor[1] + offset),
                    zone_name=zone_name,
                    zone_name_local=zone_name_local,
                )
            )

    _LOGGER.debug(
        "%s clustering: %d clusters, %d points clustered, %d unassigned",
        level.value,
        report.total_clusters,
        report.total_points,
        len(report.unassigned),
    )
    return report


def category_rank(
    category_order: Sequence[ClusterCategory | str] | None,
) -> Mapping[ClusterCategory, int]:
    """Layout rank per category; categories not listed follow in canonical order."""
    ordered: list[ClusterCategory] = []
    for item in category_order or ():
        category = item if isinstance(item, ClusterCategory) else ClusterCategory(str(item))
        if category not in ordered:
            ordered.append(category)
    for category in CANONICAL_CATEGORY_ORDER:
        if category not in ordered:
            ordered.append(category)
    return {category: idx for idx, category in enumerate(ordered)}


def format_clustering_lines(report: ClusteringReport) -> Iterable[str]:
    yield (
        f"[INFO] {report.level.value}: {report.total_clusters} clusters covering "
        f"{report.total_points} points; {len(report.unassigned)} points outside all zones"
    )
    if report.skipped:
        yield f"[WARN] {len(report.skipped)} points skipped in degenerate zones"
    yield from format_issue_lines(report.issues)
    if report.ok:
        yield f"[OK] {report.level.value} clustering completed with no issues."
