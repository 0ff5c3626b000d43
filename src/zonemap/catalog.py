"""Drill-down lookup over the aggregated features of all three levels."""

from __future__ import annotations

from typing import Iterable, Mapping, Sequence

from .models import DEFAULT_LEVEL_SCHEMAS, AdministrativeFeature, LevelSchema, ZoneLevel


class ZoneCatalog:
    """Features per level, with parent/child navigation through id attributes.

    A feature's ancestor id is read from its level schema's ``parent_fields``
    (nearest ancestor first), falling back to the attribute named after the
    ancestor level's id field (e.g. a locality's ``gov_id``).
    """

    def __init__(
        self,
        features: Mapping[ZoneLevel, Sequence[AdministrativeFeature]],
        schemas: Mapping[ZoneLevel, LevelSchema] | None = None,
    ) -> None:
        self._features = {level: tuple(features.get(level, ())) for level in ZoneLevel}
        self._schemas = dict(schemas or DEFAULT_LEVEL_SCHEMAS)
        self._by_id: dict[ZoneLevel, dict[str, AdministrativeFeature]] = {}
        for level, items in self._features.items():
            index: dict[str, AdministrativeFeature] = {}
            for feature in items:
                index.setdefault(feature.id, feature)
            self._by_id[level] = index

    def schema(self, level: ZoneLevel) -> LevelSchema:
        return self._schemas[level]

    def features(self, level: ZoneLevel) -> tuple[AdministrativeFeature, ...]:
        return self._features[level]

    def get(self, level: ZoneLevel, zone_id: str) -> AdministrativeFeature | None:
        return self._by_id[level].get(zone_id)

    def ancestor_field(self, level: ZoneLevel, ancestor_level: ZoneLevel) -> str:
        """Attribute of a ``level`` feature holding its ``ancestor_level`` id.

        ``parent_fields`` of the level schema list ancestor ids nearest first;
        ancestors it does not cover fall back to their own level's id field.
        """
        order = list(ZoneLevel)
        depth = order.index(level) - order.index(ancestor_level)
        if depth <= 0:
            raise ValueError(
                f"Parent level '{ancestor_level.value}' is not above level '{level.value}'"
            )
        parent_fields = self._schemas[level].parent_fields
        if depth <= len(parent_fields):
            return parent_fields[depth - 1]
        return self._schemas[ancestor_level].id_field

    def zones_for(
        self,
        level: ZoneLevel,
        parent: AdministrativeFeature | None = None,
    ) -> tuple[AdministrativeFeature, ...]:
        """Zones shown at ``level``, restricted to descendants of ``parent`` if given."""
        items = self._features[level]
        if parent is None:
            return items
        field_name = self.ancestor_field(level, parent.level)
        return tuple(item for item in items if item.attribute_id(field_name) == parent.id)

    def parent_of(self, feature: AdministrativeFeature) -> AdministrativeFeature | None:
        parent_level = feature.level.parent
        if parent_level is None:
            return None
        parent_id = feature.attribute_id(self.ancestor_field(feature.level, parent_level))
        if parent_id is None:
            return None
        return self.get(parent_level, parent_id)

    def path_to(self, feature: AdministrativeFeature) -> list[AdministrativeFeature]:
        """Breadcrumb from the top level down to ``feature``."""
        path = [feature]
        current = self.parent_of(feature)
        while current is not None:
            path.append(current)
            current = self.parent_of(current)
        path.reverse()
        return path

    def orphans(self, level: ZoneLevel) -> list[AdministrativeFeature]:
        """Features whose parent id is missing or unknown at the parent level."""
        if level.parent is None:
            return []
        return [feature for feature in self._features[level] if self.parent_of(feature) is None]

    def missing_parent_fields(self, level: ZoneLevel) -> list[AdministrativeFeature]:
        """Features lacking a value for any of the level schema's ``parent_fields``."""
        fields = self._schemas[level].parent_fields
        return [
            feature
            for feature in self._features[level]
            if any(feature.attribute_id(name) is None for name in fields)
        ]

    @classmethod
    def from_features(
        cls,
        features: Iterable[AdministrativeFeature],
        schemas: Mapping[ZoneLevel, LevelSchema] | None = None,
    ) -> ZoneCatalog:
        grouped: dict[ZoneLevel, list[AdministrativeFeature]] = {level: [] for level in ZoneLevel}
        for feature in features:
            grouped[feature.level].append(feature)
        return cls(grouped, schemas)
