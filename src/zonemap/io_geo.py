"""Boundary and point-of-interest loading, and JSON output writers."""

from __future__ import annotations

import json
import logging
import math
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterable, Mapping, Sequence

from .clusters import ClusteringReport
from .config import LevelsConfig, PathsConfig
from .models import (
    AdministrativeFeature,
    BoundaryFragment,
    BoundingBox,
    LevelSchema,
    PointOfInterest,
    ZoneLevel,
)
from .util import write_json

_LOGGER = logging.getLogger("zonemap.io")

POINT_ID_KEYS = ("id", "location_id", "uid")
POINT_CATEGORY_KEYS = ("category", "type")
POINT_LON_KEYS = ("longitude", "lon", "lng")
POINT_LAT_KEYS = ("latitude", "lat")
POINT_LIST_KEYS = ("locations", "points")


def _first_existing_column(columns: Iterable[str], candidates: Sequence[str]) -> str | None:
    existing = {str(col).lower(): col for col in columns}
    for candidate in candidates:
        match = existing.get(candidate.lower())
        if match:
            return match
    return None


def _plain(value: Any) -> Any:
    """Unwrap numpy scalars and map NaN to None so attributes serialize cleanly."""
    if isinstance(value, (str, bytes)):
        return value
    if hasattr(value, "item") and callable(value.item) and not hasattr(value, "geom_type"):
        try:
            value = value.item()
        except (TypeError, ValueError):
            return value
    if isinstance(value, float) and not math.isfinite(value):
        return None
    return value


class BoundaryRepository:
    """Thin wrapper around boundary file access for the three zone levels."""

    def __init__(self, paths: PathsConfig, levels: LevelsConfig | None = None) -> None:
        self.paths = paths
        self.levels = levels or LevelsConfig.default()

    def load_frame(self, level: ZoneLevel) -> Any:
        """Load one level's boundary file via GeoPandas."""
        gpd = self._require_geopandas()
        path = self.paths.boundaries_for(level)
        if not path.exists():
            raise FileNotFoundError(f"Boundary file for level '{level.value}' not found: {path}")
        return gpd.read_file(path)

    def load_fragments(self, level: ZoneLevel) -> list[BoundaryFragment]:
        frame = self.load_frame(level)
        fragments = fragments_from_frame(frame, self.levels.schema_for(level))
        _LOGGER.info("Loaded %d %s boundary fragments", len(fragments), level.value)
        return fragments

    @staticmethod
    def _require_geopandas() -> Any:
        try:
            import geopandas as gpd
        except ImportError as exc:  # pragma: no cover
            raise RuntimeError("geopandas is required for boundary file loading") from exc
        return gpd


def fragments_from_frame(frame: Any, schema: LevelSchema) -> list[BoundaryFragment]:
    """Turn a (Geo)DataFrame into fragments keyed by the level's id column."""
    if "geometry" not in frame.columns:
        raise ValueError("Boundary data has no 'geometry' column")
    id_col = _first_existing_column(frame.columns, [schema.id_field])
    if id_col is None:
        cols = ", ".join(str(c) for c in frame.columns)
        raise ValueError(
            f"Boundary data is missing id column '{schema.id_field}'. Available columns: {cols}"
        )

    fragments: list[BoundaryFragment] = []
    for record in frame.to_dict("records"):
        geometry = record.pop("geometry", None)
        attributes = {str(key): _plain(value) for key, value in record.items()}
        fragments.append(
            BoundaryFragment(
                parent_key=attributes.get(id_col),
                geometry=geometry,
                attributes=attributes,
            )
        )
    return fragments


@dataclass(slots=True)
class PointLoadResult:
    points: list[PointOfInterest] = field(default_factory=list)
    rejected: list[str] = field(default_factory=list)


def load_points(path: Path) -> PointLoadResult:
    """Load point-of-interest records from a JSON file."""
    if not path.exists():
        raise FileNotFoundError(f"Points file not found: {path}")
    with path.open("r", encoding="utf-8") as fh:
        raw = json.load(fh)
    if isinstance(raw, Mapping):
        list_key = _first_existing_column(raw.keys(), POINT_LIST_KEYS)
        if list_key is None:
            raise ValueError(f"Expected a list or one of {', '.join(POINT_LIST_KEYS)} in {path}")
        raw = raw[list_key]
    if not isinstance(raw, list):
        raise ValueError(f"Expected list of point records in {path}")
    return parse_point_records(raw)


def parse_point_records(records: Iterable[Any]) -> PointLoadResult:
    result = PointLoadResult()
    for idx, record in enumerate(records):
        if not isinstance(record, Mapping):
            result.rejected.append(f"record[{idx}]: not a mapping")
            continue
        try:
            result.points.append(point_from_record(record))
        except ValueError as exc:
            result.rejected.append(f"record[{idx}]: {exc}")
    if result.rejected:
        _LOGGER.warning("Rejected %d point records", len(result.rejected))
    return result


def point_from_record(record: Mapping[str, Any]) -> PointOfInterest:
    """Map a loosely-keyed point record onto ``PointOfInterest``."""
    keys = list(record.keys())
    id_key = _first_existing_column(keys, POINT_ID_KEYS)
    category_key = _first_existing_column(keys, POINT_CATEGORY_KEYS)
    lon_key = _first_existing_column(keys, POINT_LON_KEYS)
    lat_key = _first_existing_column(keys, POINT_LAT_KEYS)
    consumed = {key for key in (id_key, category_key, lon_key, lat_key) if key is not None}

    attributes: dict[str, Any] = {}
    nested = record.get("attributes")
    if isinstance(nested, Mapping):
        attributes.update(nested)
        consumed.add("attributes")
    for key, value in record.items():
        if key not in consumed:
            attributes[str(key)] = value

    return PointOfInterest.from_mapping(
        {
            "id": record.get(id_key) if id_key else None,
            "category": record.get(category_key) if category_key else None,
            "lon": record.get(lon_key) if lon_key else None,
            "lat": record.get(lat_key) if lat_key else None,
            "attributes": attributes,
        }
    )


def feature_collection(features: Iterable[AdministrativeFeature]) -> dict[str, Any]:
    return {
        "type": "FeatureCollection",
        "features": [feature.to_geojson() for feature in features],
    }


def write_feature_collection(path: Path, features: Iterable[AdministrativeFeature]) -> Path:
    return write_json(path, feature_collection(features))


def write_clusters(path: Path, report: ClusteringReport) -> Path:
    return write_json(path, report.to_dict())


def write_bounds(path: Path, box: BoundingBox) -> Path:
    return write_json(path, box.to_dict())
