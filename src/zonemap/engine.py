"""Memoizing facade over the pure aggregation, clustering and bounds functions."""

from __future__ import annotations

import json
import logging
import threading
from collections import OrderedDict
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Iterable, Mapping, Sequence, TypeVar

from .aggregate import AggregationReport, aggregate
from .bounds import bounds_of, bounds_of_zones
from .clusters import ClusteringReport, build_clusters
from .config import EngineConfig
from .models import (
    AdministrativeFeature,
    BoundaryFragment,
    BoundingBox,
    PointOfInterest,
    ZoneLevel,
)
from .resolve import resolve
from .util import sha256_text

_LOGGER = logging.getLogger("zonemap.engine")

T = TypeVar("T")


def fingerprint(*parts: Any) -> str:
    """Stable SHA-256 of arbitrary engine inputs (geometries hashed by WKB)."""
    payload = json.dumps([_jsonable(part) for part in parts], sort_keys=True, default=str)
    return sha256_text(payload)


def _jsonable(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, AdministrativeFeature):
        return [
            "feature",
            value.id,
            value.level.value,
            _jsonable(value.attributes),
            _jsonable(value.geometry),
        ]
    if isinstance(value, PointOfInterest):
        return [
            "point",
            value.id,
            value.category.value,
            value.lon,
            value.lat,
            _jsonable(value.attributes),
        ]
    if hasattr(value, "wkb_hex"):
        return ["wkb", value.wkb_hex]
    if isinstance(value, Mapping):
        return {str(key): _jsonable(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(item) for item in value]
    if isinstance(value, float) and value != value:
        return "nan"
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    return repr(value)


@dataclass(frozen=True, slots=True)
class CacheStats:
    hits: int
    misses: int
    size: int


class _MemoCache:
    """Bounded LRU keyed by input fingerprints; safe to share between threads."""

    def __init__(self, max_entries: int) -> None:
        self.max_entries = max_entries
        self._entries: OrderedDict[str, Any] = OrderedDict()
        self._lock = threading.Lock()
        self.hits = 0
        self.misses = 0

    def get_or_compute(self, key: str, compute: Callable[[], T]) -> T:
        if self.max_entries == 0:
            return compute()
        with self._lock:
            if key in self._entries:
                self._entries.move_to_end(key)
                self.hits += 1
                return self._entries[key]
            self.misses += 1
        # Computed outside the lock; concurrent misses may compute twice.
        value = compute()
        with self._lock:
            self._entries[key] = value
            self._entries.move_to_end(key)
            while len(self._entries) > self.max_entries:
                self._entries.popitem(last=False)
        return value

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self.hits = 0
            self.misses = 0

    def stats(self) -> CacheStats:
        with self._lock:
            return CacheStats(hits=self.hits, misses=self.misses, size=len(self._entries))


class ZoneEngine:
    """Entry point used by hosts that recompute on every state change.

    Results are memoized by a fingerprint of the inputs and the active
    settings. Returned reports are shared between callers with identical
    inputs and must be treated as read-only.
    """

    def __init__(self, config: EngineConfig | None = None) -> None:
        self.config = config or EngineConfig.default()
        self._cache = _MemoCache(self.config.cache.max_entries)

    def aggregate(
        self,
        fragments: Iterable[BoundaryFragment | tuple[Any, Any, Mapping[str, Any]]],
        *,
        level: ZoneLevel,
    ) -> AggregationReport:
        items = list(fragments)
        geometry_cfg = self.config.geometry
        flags = self.config.aggregation.derived_flags
        key = fingerprint("aggregate", level, geometry_cfg.precision_digits, flags, items)
        return self._cache.get_or_compute(
            key,
            lambda: aggregate(
                items,
                level=level,
                precision=geometry_cfg.precision_digits,
                derived_flags=flags,
            ),
        )

    def build_clusters(
        self,
        points: Iterable[PointOfInterest],
        zones: Sequence[AdministrativeFeature],
        *,
        level: ZoneLevel,
    ) -> ClusteringReport:
        point_items = list(points)
        zone_items = list(zones)
        clustering = self.config.clustering
        schema = self.config.levels.schema_for(level)
        key = fingerprint(
            "clusters",
            level,
            clustering.spacing_deg,
            clustering.category_order,
            clustering.affiliation_flag,
            [schema.name_field, schema.name_local_field],
            point_items,
            zone_items,
        )
        return self._cache.get_or_compute(
            key,
            lambda: build_clusters(
                point_items,
                zone_items,
                level=level,
                schema=schema,
                spacing_deg=clustering.spacing_deg,
                category_order=clustering.category_order,
                affiliation_flag=clustering.affiliation_flag,
            ),
        )

    def resolve(self, point: Any, zones: Iterable[AdministrativeFeature]) -> str | None:
        return resolve(point, zones)

    def bounds_of(self, shape: Any | None) -> BoundingBox:
        return bounds_of(shape, default=self.config.viewport.default_bounds)

    def bounds_of_zones(self, zones: Sequence[AdministrativeFeature]) -> BoundingBox:
        zone_items = list(zones)
        key = fingerprint("bounds", self.config.viewport.default_bounds.to_dict(), zone_items)
        return self._cache.get_or_compute(
            key,
            lambda: bounds_of_zones(zone_items, default=self.config.viewport.default_bounds),
        )

    def cache_stats(self) -> CacheStats:
        return self._cache.stats()

    def clear_cache(self) -> None:
        _LOGGER.debug("Clearing engine cache")
        self._cache.clear()
