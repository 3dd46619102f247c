"""CLI entrypoint for placemap."""

from __future__ import annotations

import argparse
import logging
from dataclasses import replace
from typing import Sequence

from .acquire import format_catalog_lines, run_fetch_catalog
from .basemap import format_basemap_lines, run_make_countries
from .config import AppConfig, load_config
from .pipeline import format_geocode_lines, run_geocode
from .util import setup_logging

LOGGER = logging.getLogger("placemap.cli")

DEFAULT_CONFIG = "config.yaml"
EXIT_CATALOG_UNAVAILABLE = 2


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="placemap",
        description="Geocode a country -> cities catalog for map rendering.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    def add_common(p: argparse.ArgumentParser) -> None:
        p.add_argument("--config", default=DEFAULT_CONFIG, help="Path to YAML config.")
        p.add_argument("--verbose", action="store_true", help="Enable debug logs.")

    geocode_p = subparsers.add_parser("geocode", help="Geocode the catalog with a resumable cache.")
    add_common(geocode_p)
    geocode_p.add_argument(
        "--workers",
        type=int,
        default=None,
        help="Override the keyed provider concurrency (ignored for Nominatim).",
    )

    fetch_p = subparsers.add_parser("fetch-catalog", help="Download the server catalog JSON.")
    add_common(fetch_p)

    countries_p = subparsers.add_parser(
        "make-countries",
        help="Build simplified country outlines GeoJSON from Natural Earth.",
    )
    add_common(countries_p)

    build_p = subparsers.add_parser("build", help="Fetch the catalog, then geocode it.")
    add_common(build_p)

    return parser


def _load_and_setup(args: argparse.Namespace) -> AppConfig:
    cfg = load_config(args.config, allow_missing=args.config == DEFAULT_CONFIG)
    setup_logging(cfg.paths.logs_dir / "placemap.log", verbose=args.verbose)
    return cfg


def _run_geocode(cfg: AppConfig, *, workers: int | None) -> int:
    if workers is not None:
        if workers < 1:
            LOGGER.error("--workers must be >= 1")
            return 1
        # Only the keyed bound is tunable; Nominatim always runs with one worker.
        cfg = replace(cfg, geocoding=replace(cfg.geocoding, keyed_concurrency=workers))
    report = run_geocode(cfg)
    for line in format_geocode_lines(report):
        LOGGER.info(line)
    return 0


def _run_fetch_catalog(cfg: AppConfig) -> int:
    report = run_fetch_catalog(cfg)
    for line in format_catalog_lines(report):
        LOGGER.info(line)
    if not report.ok:
        LOGGER.error(
            "Catalog unavailable. If the endpoints are blocked on this network, "
            "run from a different network or a CI job."
        )
        return EXIT_CATALOG_UNAVAILABLE
    return 0


def _run_make_countries(cfg: AppConfig) -> int:
    report = run_make_countries(cfg)
    for line in format_basemap_lines(report):
        LOGGER.info(line)
    return 0 if report.ok else 1


def _dispatch(args: argparse.Namespace) -> int:
    try:
        cfg = _load_and_setup(args)
    except (FileNotFoundError, ValueError) as exc:
        setup_logging(verbose=args.verbose)
        LOGGER.error("Invalid configuration: %s", exc)
        return 1
    command = str(args.command)
    if command == "geocode":
        return _run_geocode(cfg, workers=args.workers)
    if command == "fetch-catalog":
        return _run_fetch_catalog(cfg)
    if command == "make-countries":
        return _run_make_countries(cfg)
    if command == "build":
        code = _run_fetch_catalog(cfg)
        if code != 0:
            LOGGER.error("Build aborted: catalog fetch failed.")
            return code
        return _run_geocode(cfg, workers=None)
    raise ValueError(f"Unknown command: {command}")


def main(argv: Sequence[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    return _dispatch(args)


if __name__ == "__main__":
    raise SystemExit(main())
