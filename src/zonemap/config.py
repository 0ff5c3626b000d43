"""Typed configuration loader for `config.yaml`."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping, cast

import yaml

from .aggregate import DEFAULT_DERIVED_FLAGS
from .clusters import CANONICAL_CATEGORY_ORDER, DEFAULT_AFFILIATION_FLAG, DEFAULT_SPACING_DEG
from .geometry import DEFAULT_PRECISION
from .models import (
    DEFAULT_LEVEL_SCHEMAS,
    TERRITORY_BOUNDS,
    BoundingBox,
    ClusterCategory,
    LevelSchema,
    ZoneLevel,
)


def _mapping(value: Any, field_name: str) -> Mapping[str, Any]:
    if not isinstance(value, Mapping):
        raise ValueError(f"Expected mapping for '{field_name}'")
    return cast(Mapping[str, Any], value)


def _optional_mapping(value: Any, field_name: str) -> Mapping[str, Any] | None:
    if value is None:
        return None
    return _mapping(value, field_name)


def _str(value: Any, field_name: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"Expected non-empty string for '{field_name}'")
    return value.strip()


def _int(value: Any, field_name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"Expected integer for '{field_name}'")
    return value


def _float(value: Any, field_name: str) -> float:
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return float(value)
    raise ValueError(f"Expected float for '{field_name}'")


def _str_list(value: Any, field_name: str) -> tuple[str, ...]:
    if not isinstance(value, list):
        raise ValueError(f"Expected list for '{field_name}'")
    out: list[str] = []
    for idx, item in enumerate(value):
        out.append(_str(item, f"{field_name}[{idx}]"))
    return tuple(out)


def _path_from_cfg(value: Any, field_name: str, root_dir: Path) -> Path:
    raw = _str(value, field_name)
    p = Path(raw)
    return p if p.is_absolute() else root_dir / p


@dataclass(frozen=True, slots=True)
class PathsConfig:
    region_boundaries: Path
    sub_region_boundaries: Path
    locality_boundaries: Path
    points: Path
    output_dir: Path
    logs_dir: Path

    def boundaries_for(self, level: ZoneLevel) -> Path:
        if level is ZoneLevel.REGION:
            return self.region_boundaries
        if level is ZoneLevel.SUB_REGION:
            return self.sub_region_boundaries
        return self.locality_boundaries

    @property
    def required_input_files(self) -> tuple[Path, ...]:
        return (
            self.region_boundaries,
            self.sub_region_boundaries,
            self.locality_boundaries,
            self.points,
        )

    @property
    def build_directories(self) -> tuple[Path, ...]:
        return (self.output_dir, self.logs_dir)

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any], root_dir: Path) -> PathsConfig:
        return cls(
            region_boundaries=_path_from_cfg(
                raw.get("region_boundaries"), "paths.region_boundaries", root_dir
            ),
            sub_region_boundaries=_path_from_cfg(
                raw.get("sub_region_boundaries"), "paths.sub_region_boundaries", root_dir
            ),
            locality_boundaries=_path_from_cfg(
                raw.get("locality_boundaries"), "paths.locality_boundaries", root_dir
            ),
            points=_path_from_cfg(raw.get("points"), "paths.points", root_dir),
            output_dir=_path_from_cfg(raw.get("output_dir"), "paths.output_dir", root_dir),
            logs_dir=_path_from_cfg(raw.get("logs_dir"), "paths.logs_dir", root_dir),
        )


@dataclass(frozen=True, slots=True)
class GeometryConfig:
    precision_digits: int

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> GeometryConfig:
        digits = _int(raw.get("precision_digits", DEFAULT_PRECISION), "geometry.precision_digits")
        if digits < 0 or digits > 15:
            raise ValueError("geometry.precision_digits must be between 0 and 15")
        return cls(precision_digits=digits)

    @classmethod
    def default(cls) -> GeometryConfig:
        return cls(precision_digits=DEFAULT_PRECISION)


@dataclass(frozen=True, slots=True)
class LevelsConfig:
    region: LevelSchema
    sub_region: LevelSchema
    locality: LevelSchema

    def schema_for(self, level: ZoneLevel) -> LevelSchema:
        if level is ZoneLevel.REGION:
            return self.region
        if level is ZoneLevel.SUB_REGION:
            return self.sub_region
        return self.locality

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> LevelsConfig:
        schemas: dict[ZoneLevel, LevelSchema] = {}
        for level in ZoneLevel:
            section = _optional_mapping(raw.get(level.value), f"levels.{level.value}")
            schemas[level] = (
                DEFAULT_LEVEL_SCHEMAS[level]
                if section is None
                else LevelSchema.from_mapping(section, f"levels.{level.value}")
            )
        return cls(
            region=schemas[ZoneLevel.REGION],
            sub_region=schemas[ZoneLevel.SUB_REGION],
            locality=schemas[ZoneLevel.LOCALITY],
        )

    @classmethod
    def default(cls) -> LevelsConfig:
        return cls(
            region=DEFAULT_LEVEL_SCHEMAS[ZoneLevel.REGION],
            sub_region=DEFAULT_LEVEL_SCHEMAS[ZoneLevel.SUB_REGION],
            locality=DEFAULT_LEVEL_SCHEMAS[ZoneLevel.LOCALITY],
        )


@dataclass(frozen=True, slots=True)
class AggregationConfig:
    derived_flags: tuple[str, ...]

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> AggregationConfig:
        flags_raw = raw.get("derived_flags", list(DEFAULT_DERIVED_FLAGS))
        return cls(derived_flags=_str_list(flags_raw, "aggregation.derived_flags"))

    @classmethod
    def default(cls) -> AggregationConfig:
        return cls(derived_flags=DEFAULT_DERIVED_FLAGS)


@dataclass(frozen=True, slots=True)
class ClusteringConfig:
    spacing_deg: float
    category_order: tuple[ClusterCategory, ...]
    affiliation_flag: str

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> ClusteringConfig:
        spacing = _float(raw.get("spacing_deg", DEFAULT_SPACING_DEG), "clustering.spacing_deg")
        if spacing <= 0:
            raise ValueError("clustering.spacing_deg must be > 0")

        order_raw = raw.get("category_order")
        if order_raw is None:
            order = CANONICAL_CATEGORY_ORDER
        else:
            names = _str_list(order_raw, "clustering.category_order")
            allowed = {category.value: category for category in ClusterCategory}
            unknown = [name for name in names if name not in allowed]
            if unknown:
                raise ValueError(
                    "clustering.category_order contains unknown categories: " + ", ".join(unknown)
                )
            if len(set(names)) != len(names):
                raise ValueError("clustering.category_order must not repeat categories")
            order = tuple(allowed[name] for name in names)

        return cls(
            spacing_deg=spacing,
            category_order=order,
            affiliation_flag=_str(
                raw.get("affiliation_flag", DEFAULT_AFFILIATION_FLAG), "clustering.affiliation_flag"
            ),
        )

    @classmethod
    def default(cls) -> ClusteringConfig:
        return cls(
            spacing_deg=DEFAULT_SPACING_DEG,
            category_order=CANONICAL_CATEGORY_ORDER,
            affiliation_flag=DEFAULT_AFFILIATION_FLAG,
        )


@dataclass(frozen=True, slots=True)
class ViewportConfig:
    default_bounds: BoundingBox

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> ViewportConfig:
        bounds_raw = _optional_mapping(raw.get("default_bounds"), "viewport.default_bounds")
        if bounds_raw is None:
            return cls.default()
        return cls(default_bounds=BoundingBox.from_mapping(bounds_raw, "viewport.default_bounds"))

    @classmethod
    def default(cls) -> ViewportConfig:
        return cls(default_bounds=TERRITORY_BOUNDS)


@dataclass(frozen=True, slots=True)
class CacheConfig:
    max_entries: int

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> CacheConfig:
        max_entries = _int(raw.get("max_entries", 32), "cache.max_entries")
        if max_entries < 0:
            raise ValueError("cache.max_entries must be >= 0")
        return cls(max_entries=max_entries)

    @classmethod
    def default(cls) -> CacheConfig:
        return cls(max_entries=32)


@dataclass(frozen=True, slots=True)
class EngineConfig:
    """Settings consumed by the pure engine; every section is optional in YAML."""

    geometry: GeometryConfig
    levels: LevelsConfig
    aggregation: AggregationConfig
    clustering: ClusteringConfig
    viewport: ViewportConfig
    cache: CacheConfig

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> EngineConfig:
        def section(name: str) -> Mapping[str, Any]:
            return _optional_mapping(raw.get(name), name) or {}

        return cls(
            geometry=GeometryConfig.from_mapping(section("geometry")),
            levels=LevelsConfig.from_mapping(section("levels")),
            aggregation=AggregationConfig.from_mapping(section("aggregation")),
            clustering=ClusteringConfig.from_mapping(section("clustering")),
            viewport=ViewportConfig.from_mapping(section("viewport")),
            cache=CacheConfig.from_mapping(section("cache")),
        )

    @classmethod
    def default(cls) -> EngineConfig:
        return cls(
            geometry=GeometryConfig.default(),
            levels=LevelsConfig.default(),
            aggregation=AggregationConfig.default(),
            clustering=ClusteringConfig.default(),
            viewport=ViewportConfig.default(),
            cache=CacheConfig.default(),
        )


@dataclass(frozen=True, slots=True)
class AppConfig:
    source_path: Path
    paths: PathsConfig
    engine: EngineConfig

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any], source_path: Path) -> AppConfig:
        root_dir = source_path.parent.resolve()
        return cls(
            source_path=source_path.resolve(),
            paths=PathsConfig.from_mapping(_mapping(raw.get("paths"), "paths"), root_dir),
            engine=EngineConfig.from_mapping(raw),
        )


def load_config(path: str | Path) -> AppConfig:
    """Load and validate the YAML config file into typed settings."""
    cfg_path = Path(path).resolve()
    if not cfg_path.exists():
        raise FileNotFoundError(f"Config file not found: {cfg_path}")
    with cfg_path.open("r", encoding="utf-8") as fh:
        raw = yaml.safe_load(fh)
    if not isinstance(raw, Mapping):
        raise ValueError("Top-level config must be a YAML mapping")
    return AppConfig.from_mapping(cast(Mapping[str, Any], raw), cfg_path)
