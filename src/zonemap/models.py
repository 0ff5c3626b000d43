"""Domain models shared across the aggregation and clustering modules."""

from __future__ import annotations

import math
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Mapping, NamedTuple

from shapely.geometry import mapping


def _require_str(value: Any, field_name: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"Expected non-empty string for '{field_name}'")
    return value.strip()


def id_str(value: Any) -> str | None:
    """Canonical string form of an identifier read from tabular or JSON data."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, float):
        if not math.isfinite(value):
            return None
        if value.is_integer():
            return str(int(value))
    text = str(value).strip()
    return text or None


def _float_or_none(value: Any) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


class ZoneLevel(str, Enum):
    REGION = "region"
    SUB_REGION = "sub_region"
    LOCALITY = "locality"

    @property
    def parent(self) -> ZoneLevel | None:
        order = list(ZoneLevel)
        idx = order.index(self)
        return order[idx - 1] if idx > 0 else None

    @property
    def child(self) -> ZoneLevel | None:
        order = list(ZoneLevel)
        idx = order.index(self)
        return order[idx + 1] if idx + 1 < len(order) else None

    @classmethod
    def parse(cls, value: str) -> ZoneLevel:
        normalized = value.strip().casefold().replace("-", "_")
        for level in cls:
            if level.value == normalized:
                return level
        allowed = ", ".join(level.value for level in cls)
        raise ValueError(f"Unknown zone level '{value}'. Expected one of: {allowed}")


@dataclass(frozen=True, slots=True)
class LevelSchema:
    """Attribute names carrying id, bilingual names and parent ids for one level."""

    id_field: str
    name_field: str
    name_local_field: str
    parent_fields: tuple[str, ...] = ()

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any], field_prefix: str) -> LevelSchema:
        parents_raw = data.get("parent_fields", [])
        if parents_raw is None:
            parents_raw = []
        if not isinstance(parents_raw, list):
            raise ValueError(f"Expected list for '{field_prefix}.parent_fields'")
        return cls(
            id_field=_require_str(data.get("id_field"), f"{field_prefix}.id_field"),
            name_field=_require_str(data.get("name_field"), f"{field_prefix}.name_field"),
            name_local_field=_require_str(
                data.get("name_local_field"), f"{field_prefix}.name_local_field"
            ),
            parent_fields=tuple(
                _require_str(item, f"{field_prefix}.parent_fields[]") for item in parents_raw
            ),
        )

    @classmethod
    def default_for(cls, level: ZoneLevel) -> LevelSchema:
        return DEFAULT_LEVEL_SCHEMAS[level]


DEFAULT_LEVEL_SCHEMAS: Mapping[ZoneLevel, LevelSchema] = {
    ZoneLevel.REGION: LevelSchema("gov_id", "gov_en", "gov_ar"),
    ZoneLevel.SUB_REGION: LevelSchema("mun_uid", "mun_en", "mun_ar", ("gov_id",)),
    ZoneLevel.LOCALITY: LevelSchema("sec_uid", "sec_en", "sec_ar", ("mun_uid", "gov_id")),
}


class BoundaryFragment(NamedTuple):
    """Raw boundary record; siblings sharing `parent_key` form one feature."""

    parent_key: Any
    geometry: Any
    attributes: Mapping[str, Any]


@dataclass(frozen=True, slots=True)
class AdministrativeFeature:
    """One zone at a single level with its canonical multi-polygon shape."""

    id: str
    level: ZoneLevel
    attributes: Mapping[str, Any]
    geometry: Any

    def with_attributes(self, **updates: Any) -> AdministrativeFeature:
        merged = dict(self.attributes)
        merged.update(updates)
        return replace(self, attributes=merged)

    def attribute_id(self, field_name: str) -> str | None:
        return id_str(self.attributes.get(field_name))

    def display_names(self, schema: LevelSchema | None = None) -> tuple[str, str]:
        active = schema or LevelSchema.default_for(self.level)
        name = self.attributes.get(active.name_field)
        name_local = self.attributes.get(active.name_local_field)
        return (
            str(name) if name else "Unknown",
            str(name_local) if name_local else "",
        )

    def to_geojson(self) -> dict[str, Any]:
        return {
            "type": "Feature",
            "id": self.id,
            "properties": {"level": self.level.value, **dict(self.attributes)},
            "geometry": mapping(self.geometry),
        }


class PoiCategory(str, Enum):
    PICKUP_POINT = "pickup_point"
    DRIVING_SCHOOL = "driving_school"
    EXAM_CENTER = "exam_center"

    @classmethod
    def parse(cls, value: Any) -> PoiCategory:
        if value is None or (isinstance(value, str) and not value.strip()):
            return cls.PICKUP_POINT
        normalized = str(value).strip().casefold()
        for category in cls:
            if category.value == normalized:
                return category
        raise ValueError(f"Unknown point category '{value}'")


class ClusterCategory(str, Enum):
    """Cluster categories in canonical layout order."""

    PICKUP_POINT = "pickup_point"
    DRIVING_SCHOOL_AFFILIATED = "driving_school_affiliated"
    DRIVING_SCHOOL_INDEPENDENT = "driving_school_independent"
    EXAM_CENTER = "exam_center"


@dataclass(frozen=True, slots=True)
class CategoryStyle:
    label: str
    color: str


CATEGORY_STYLES: Mapping[ClusterCategory, CategoryStyle] = {
    ClusterCategory.PICKUP_POINT: CategoryStyle("Pickup Point", "#f59e0b"),
    ClusterCategory.DRIVING_SCHOOL_AFFILIATED: CategoryStyle("Affiliated School", "#2196f3"),
    ClusterCategory.DRIVING_SCHOOL_INDEPENDENT: CategoryStyle("Driving School", "#4b5563"),
    ClusterCategory.EXAM_CENTER: CategoryStyle("Exam Center", "#10b981"),
}


@dataclass(frozen=True, slots=True)
class PointOfInterest:
    """Point record supplied by the host application."""

    id: str
    category: PoiCategory
    lon: float | None
    lat: float | None
    attributes: Mapping[str, Any] = field(default_factory=dict)

    @property
    def coordinates(self) -> tuple[float | None, float | None]:
        return (self.lon, self.lat)

    @property
    def agencies(self) -> tuple[Mapping[str, Any], ...]:
        raw = self.attributes.get("agencies")
        if not isinstance(raw, (list, tuple)):
            return ()
        return tuple(item for item in raw if isinstance(item, Mapping))

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> PointOfInterest:
        point_id = id_str(data.get("id"))
        if point_id is None:
            raise ValueError("Expected identifier for point 'id'")
        attributes_raw = data.get("attributes", {})
        if attributes_raw is None:
            attributes_raw = {}
        if not isinstance(attributes_raw, Mapping):
            raise ValueError(f"Expected mapping for 'attributes' of point {point_id}")
        return cls(
            id=point_id,
            category=PoiCategory.parse(data.get("category")),
            lon=_float_or_none(data.get("lon")),
            lat=_float_or_none(data.get("lat")),
            attributes=dict(attributes_raw),
        )


@dataclass(frozen=True, slots=True)
class ZoneAssignment:
    point_id: str
    zone_id: str | None
    zone_level: ZoneLevel

    def to_dict(self) -> dict[str, Any]:
        return {
            "point_id": self.point_id,
            "zone_id": self.zone_id,
            "zone_level": self.zone_level.value,
        }


@dataclass(frozen=True, slots=True)
class Cluster:
    """Renderable group of same-category points inside one zone."""

    id: str
    zone_id: str
    category: ClusterCategory
    members: tuple[str, ...]
    anchor: tuple[float, float]
    position: tuple[float, float]
    zone_name: str
    zone_name_local: str

    @property
    def count(self) -> int:
        return len(self.members)

    def to_dict(self) -> dict[str, Any]:
        style = CATEGORY_STYLES[self.category]
        return {
            "id": self.id,
            "zone_id": self.zone_id,
            "category": self.category.value,
            "count": self.count,
            "members": list(self.members),
            "anchor": {"lat": self.anchor[0], "lng": self.anchor[1]},
            "position": {"lat": self.position[0], "lng": self.position[1]},
            "zone_name": self.zone_name,
            "zone_name_local": self.zone_name_local,
            "label": style.label,
            "color": style.color,
        }


@dataclass(frozen=True, slots=True)
class BoundingBox:
    """Axis-aligned lon/lat box used to fit the map camera."""

    min_lon: float
    min_lat: float
    max_lon: float
    max_lat: float

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any], field_prefix: str) -> BoundingBox:
        values: dict[str, float] = {}
        for key in ("min_lon", "min_lat", "max_lon", "max_lat"):
            raw = data.get(key)
            if isinstance(raw, bool) or not isinstance(raw, (int, float)):
                raise ValueError(f"Expected numeric value for '{field_prefix}.{key}'")
            values[key] = float(raw)
        if values["min_lon"] > values["max_lon"] or values["min_lat"] > values["max_lat"]:
            raise ValueError(f"{field_prefix} minimums must not exceed maximums")
        return cls(**values)

    def union(self, other: BoundingBox) -> BoundingBox:
        return BoundingBox(
            min_lon=min(self.min_lon, other.min_lon),
            min_lat=min(self.min_lat, other.min_lat),
            max_lon=max(self.max_lon, other.max_lon),
            max_lat=max(self.max_lat, other.max_lat),
        )

    def corners(self) -> tuple[tuple[float, float], tuple[float, float]]:
        """South-west and north-east corners as (lat, lon) pairs."""
        return ((self.min_lat, self.min_lon), (self.max_lat, self.max_lon))

    def to_dict(self) -> dict[str, Any]:
        return {
            "min_lon": self.min_lon,
            "min_lat": self.min_lat,
            "max_lon": self.max_lon,
            "max_lat": self.max_lat,
            "corners": [list(corner) for corner in self.corners()],
        }


TERRITORY_BOUNDS = BoundingBox(min_lon=7.5, min_lat=30.2, max_lon=11.6, max_lat=37.5)
