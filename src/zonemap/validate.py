"""Validation layer for config and input datasets."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable

from .aggregate import aggregate
from .catalog import ZoneCatalog
from .config import AppConfig
from .io_geo import BoundaryRepository, load_points
from .models import AdministrativeFeature, LevelSchema, ZoneLevel
from .resolve import ZoneIndex


@dataclass(slots=True)
class ValidationReport:
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    infos: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors

    def add_error(self, msg: str) -> None:
        self.errors.append(msg)

    def add_warning(self, msg: str) -> None:
        self.warnings.append(msg)

    def add_info(self, msg: str) -> None:
        self.infos.append(msg)


class Validator:
    """Checks input files, boundary aggregation health and point coverage."""

    def __init__(self, cfg: AppConfig) -> None:
        self.cfg = cfg

    def run(self) -> ValidationReport:
        report = ValidationReport()
        self._validate_config_paths(report)
        features = self._validate_boundaries(report)
        if features:
            catalog = ZoneCatalog(features, self._schemas())
            self._validate_hierarchy(report, catalog)
            self._validate_points(report, catalog)
        return report

    def _schemas(self) -> dict[ZoneLevel, LevelSchema]:
        return {level: self.cfg.engine.levels.schema_for(level) for level in ZoneLevel}

    def _validate_config_paths(self, report: ValidationReport) -> None:
        for path in self.cfg.paths.required_input_files:
            self._check_exists(report, path)

    def _validate_boundaries(
        self,
        report: ValidationReport,
    ) -> dict[ZoneLevel, list[AdministrativeFeature]]:
        repo = BoundaryRepository(self.cfg.paths, self.cfg.engine.levels)
        features: dict[ZoneLevel, list[AdministrativeFeature]] = {}
        for level in ZoneLevel:
            if not self.cfg.paths.boundaries_for(level).exists():
                continue
            try:
                fragments = repo.load_fragments(level)
            except Exception as exc:
                report.add_error(f"Failed loading {level.value} boundaries: {exc}")
                continue
            result = aggregate(
                fragments,
                level=level,
                precision=self.cfg.engine.geometry.precision_digits,
                derived_flags=self.cfg.engine.aggregation.derived_flags,
            )
            report.add_info(
                f"{level.value}: {result.fragment_count} fragments aggregated into "
                f"{len(result.features)} features"
            )
            if result.issues:
                report.add_warning(
                    f"{level.value}: {len(result.issues)} aggregation issues: "
                    f"{_format_code_list([str(issue) for issue in result.issues], limit=5)}"
                )
            if not result.features:
                report.add_error(f"{level.value}: no usable features")
            features[level] = result.features
        return features

    def _validate_hierarchy(self, report: ValidationReport, catalog: ZoneCatalog) -> None:
        for level in (ZoneLevel.SUB_REGION, ZoneLevel.LOCALITY):
            missing = catalog.missing_parent_fields(level)
            if missing:
                fields = ", ".join(catalog.schema(level).parent_fields)
                report.add_warning(
                    f"{level.value} features missing a parent field ({fields}): "
                    f"{_format_code_list(sorted(feature.id for feature in missing))}"
                )
            if not catalog.features(level) or level.parent is None:
                continue
            if not catalog.features(level.parent):
                continue
            orphans = catalog.orphans(level)
            if orphans:
                report.add_warning(
                    f"{level.value} features without a known {level.parent.value}: "
                    f"{_format_code_list(sorted(feature.id for feature in orphans))}"
                )

    def _validate_points(self, report: ValidationReport, catalog: ZoneCatalog) -> None:
        path = self.cfg.paths.points
        if not path.exists():
            return
        try:
            loaded = load_points(path)
        except Exception as exc:
            report.add_error(f"Failed parsing points file '{path}': {exc}")
            return
        report.add_info(f"Loaded {len(loaded.points)} point records from {path}")
        if loaded.rejected:
            report.add_warning(
                f"{len(loaded.rejected)} point records rejected: "
                f"{_format_code_list(loaded.rejected, limit=5)}"
            )

        regions = catalog.features(ZoneLevel.REGION)
        if not regions:
            return
        index = ZoneIndex(regions)
        outside = [point.id for point in loaded.points if index.resolve(point) is None]
        if outside:
            report.add_warning(
                f"{len(outside)} points fall outside every region: {_format_code_list(outside)}"
            )

    @staticmethod
    def _check_exists(report: ValidationReport, path: Path) -> None:
        if not path.exists():
            report.add_error(f"Missing required input file: {path}")


def _format_code_list(values: list[str], limit: int = 12) -> str:
    if len(values) <= limit:
        return ", ".join(values)
    shown = ", ".join(values[:limit])
    return f"{shown}, ... (+{len(values) - limit} more)"


def format_report_lines(report: ValidationReport) -> Iterable[str]:
    for prefix, messages in (
        ("INFO", report.infos),
        ("WARN", report.warnings),
        ("ERROR", report.errors),
    ):
        for message in messages:
            yield f"[{prefix}] {message}"
    if report.ok:
        yield "[OK] Validation completed with no errors."
