"""CLI entrypoint for the zonemap aggregation and clustering engine."""

from __future__ import annotations

import argparse
import logging
from typing import Sequence

from .aggregate import AggregationReport, format_aggregation_lines
from .catalog import ZoneCatalog
from .clusters import format_clustering_lines
from .config import AppConfig, load_config
from .engine import ZoneEngine
from .io_geo import (
    BoundaryRepository,
    load_points,
    write_bounds,
    write_clusters,
    write_feature_collection,
)
from .models import ZoneLevel
from .util import ensure_directories, setup_logging
from .validate import Validator, format_report_lines

LOGGER = logging.getLogger("zonemap.cli")

_LEVEL_CHOICES = [level.value for level in ZoneLevel]


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="zonemap",
        description="Administrative zone aggregation and point clustering.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    def add_common(p: argparse.ArgumentParser) -> None:
        p.add_argument("--config", default="config.yaml", help="Path to YAML config.")
        p.add_argument("--verbose", action="store_true", help="Enable debug logs.")

    validate_p = subparsers.add_parser("validate", help="Validate config and input files.")
    add_common(validate_p)

    aggregate_p = subparsers.add_parser(
        "aggregate",
        help="Merge boundary fragments and write one GeoJSON file per level.",
    )
    add_common(aggregate_p)
    aggregate_p.add_argument(
        "--level",
        action="append",
        choices=_LEVEL_CHOICES,
        default=[],
        help="Level to aggregate. Can be repeated. Defaults to all levels.",
    )

    cluster_p = subparsers.add_parser(
        "cluster",
        help="Assign points to zones and write the cluster collection.",
    )
    add_common(cluster_p)
    cluster_p.add_argument("--level", choices=_LEVEL_CHOICES, default=ZoneLevel.REGION.value)
    cluster_p.add_argument(
        "--parent",
        default=None,
        help="Restrict zones to children of this parent-level zone id.",
    )

    bounds_p = subparsers.add_parser("bounds", help="Compute the camera bounding box.")
    add_common(bounds_p)
    bounds_p.add_argument("--level", choices=_LEVEL_CHOICES, default=ZoneLevel.REGION.value)
    bounds_p.add_argument(
        "--zone",
        default=None,
        help="Zone id at --level. Defaults to the extent of the whole level.",
    )

    return parser


def _load_and_setup(args: argparse.Namespace) -> AppConfig:
    cfg = load_config(args.config)
    setup_logging(cfg.paths.logs_dir / "zonemap.log", verbose=args.verbose)
    ensure_directories(cfg.paths.build_directories)
    return cfg


def _aggregate_level(
    cfg: AppConfig,
    engine: ZoneEngine,
    level: ZoneLevel,
) -> AggregationReport:
    repo = BoundaryRepository(cfg.paths, cfg.engine.levels)
    report = engine.aggregate(repo.load_fragments(level), level=level)
    for line in format_aggregation_lines(report):
        LOGGER.info(line)
    return report


def _run_validate(cfg: AppConfig) -> int:
    report = Validator(cfg).run()
    for line in format_report_lines(report):
        LOGGER.info(line)
    return 0 if report.ok else 1


def _run_aggregate(cfg: AppConfig, engine: ZoneEngine, *, levels: Sequence[ZoneLevel]) -> int:
    exit_code = 0
    for level in levels:
        try:
            report = _aggregate_level(cfg, engine, level)
        except (OSError, ValueError, RuntimeError) as exc:
            LOGGER.error("Aggregation of %s failed: %s", level.value, exc)
            exit_code = 1
            continue
        output_path = write_feature_collection(
            cfg.paths.output_dir / f"zones_{level.value}.geojson",
            report.features,
        )
        LOGGER.info("Wrote %d %s features to %s", len(report.features), level.value, output_path)
    return exit_code


def _run_cluster(
    cfg: AppConfig,
    engine: ZoneEngine,
    *,
    level: ZoneLevel,
    parent_id: str | None,
) -> int:
    try:
        zones = _aggregate_level(cfg, engine, level).features
        if parent_id is not None:
            parent_level = level.parent
            if parent_level is None:
                LOGGER.error("Level %s has no parent level; drop --parent.", level.value)
                return 1
            parents = _aggregate_level(cfg, engine, parent_level).features
            catalog = ZoneCatalog(
                {level: zones, parent_level: parents},
                {item: cfg.engine.levels.schema_for(item) for item in ZoneLevel},
            )
            parent = catalog.get(parent_level, parent_id)
            if parent is None:
                LOGGER.error("Unknown %s id: %s", parent_level.value, parent_id)
                return 1
            zones = list(catalog.zones_for(level, parent))
        loaded = load_points(cfg.paths.points)
    except (OSError, ValueError, RuntimeError) as exc:
        LOGGER.error("Clustering input loading failed: %s", exc)
        return 1

    LOGGER.info(
        "Clustering %d points over %d %s zones",
        len(loaded.points),
        len(zones),
        level.value,
    )
    report = engine.build_clusters(loaded.points, zones, level=level)
    for line in format_clustering_lines(report):
        LOGGER.info(line)
    suffix = f"_{parent_id}" if parent_id is not None else ""
    output_path = write_clusters(cfg.paths.output_dir / f"clusters_{level.value}{suffix}.json", report)
    LOGGER.info("Cluster collection written to %s", output_path)
    return 0


def _run_bounds(
    cfg: AppConfig,
    engine: ZoneEngine,
    *,
    level: ZoneLevel,
    zone_id: str | None,
) -> int:
    try:
        zones = _aggregate_level(cfg, engine, level).features
    except (OSError, ValueError, RuntimeError) as exc:
        LOGGER.error("Bounds input loading failed: %s", exc)
        return 1

    if zone_id is None:
        box = engine.bounds_of_zones(zones)
        name = f"bounds_{level.value}.json"
    else:
        zone = next((item for item in zones if item.id == zone_id), None)
        if zone is None:
            LOGGER.warning("Unknown %s id %s; using default bounds.", level.value, zone_id)
        box = engine.bounds_of(zone.geometry if zone is not None else None)
        name = f"bounds_{level.value}_{zone_id}.json"

    LOGGER.info(
        "Bounds: lon %.6f..%.6f, lat %.6f..%.6f",
        box.min_lon,
        box.max_lon,
        box.min_lat,
        box.max_lat,
    )
    output_path = write_bounds(cfg.paths.output_dir / name, box)
    LOGGER.info("Bounding box written to %s", output_path)
    return 0


def _dispatch(args: argparse.Namespace) -> int:
    cfg = _load_and_setup(args)
    engine = ZoneEngine(cfg.engine)
    command = str(args.command)
    if command == "validate":
        return _run_validate(cfg)
    if command == "aggregate":
        levels = [ZoneLevel.parse(item) for item in args.level] or list(ZoneLevel)
        return _run_aggregate(cfg, engine, levels=levels)
    if command == "cluster":
        return _run_cluster(
            cfg,
            engine,
            level=ZoneLevel.parse(args.level),
            parent_id=args.parent,
        )
    if command == "bounds":
        return _run_bounds(cfg, engine, level=ZoneLevel.parse(args.level), zone_id=args.zone)
    raise ValueError(f"Unknown command: {command}")


def main(argv: Sequence[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    return _dispatch(args)


if __name__ == "__main__":
    raise SystemExit(main())
