"""Simplified country outlines for the map background, built from Natural Earth admin-0."""

from __future__ import annotations

import logging
import zipfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Sequence

import requests

from .config import AppConfig

_LOGGER = logging.getLogger("placemap.basemap")

NAME_CANDIDATES = ("NAME_EN", "NAME", "ADMIN")
KEPT_FIELDS = ("NAME", "ADMIN", "SOVEREIGNT", "ISO_A3", "ISO_A2")


@dataclass(slots=True)
class BasemapReport:
    output_path: Path | None = None
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


def download_archive(url: str, dest: Path, *, timeout_s: float, session: requests.Session | None = None) -> Path:
    dest.parent.mkdir(parents=True, exist_ok=True)
    http = session or requests.Session()
    with http.get(url, stream=True, timeout=timeout_s) as response:
        response.raise_for_status()
        with dest.open("wb") as fh:
            for chunk in response.iter_content(chunk_size=1024 * 1024):
                fh.write(chunk)
    return dest


def extract_shapefile(archive: Path, work_dir: Path) -> Path:
    """Unzip the archive and locate the admin-0 shapefile (name may carry a version suffix)."""
    with zipfile.ZipFile(archive) as zf:
        zf.extractall(work_dir)
    matches = sorted(work_dir.rglob("*_admin_0_countries.shp"))
    if not matches:
        raise FileNotFoundError(f"Could not find *_admin_0_countries.shp in {work_dir}")
    return matches[0]


def pick_display_name(row: Any) -> str | None:
    for column in NAME_CANDIDATES:
        value = row.get(column)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


def simplify_countries(gdf: Any, *, tolerance_deg: float) -> Any:
    """Keep a stable NAME plus ISO/sovereignty fields and simplify outlines."""
    out = gdf.copy()
    out["NAME"] = out.apply(pick_display_name, axis=1)
    keep = [column for column in KEPT_FIELDS if column in out.columns]
    out = out[keep + ["geometry"]].copy()
    if tolerance_deg > 0:
        out["geometry"] = out.geometry.simplify(tolerance_deg, preserve_topology=True)
    # keep-shapes: a polygon simplified to nothing falls back to its original outline
    collapsed = out.geometry.is_empty
    if bool(collapsed.any()):
        out.loc[collapsed, "geometry"] = gdf.geometry[collapsed]
    return out


def run_make_countries(cfg: AppConfig, *, archive: Path | None = None) -> BasemapReport:
    report = BasemapReport(output_path=cfg.paths.countries_geojson)
    gpd = _require_geopandas()
    work_dir = cfg.paths.work_dir

    if archive is None:
        archive = work_dir / Path(cfg.basemap.source_url).name
        _LOGGER.info("Downloading Natural Earth countries from %s", cfg.basemap.source_url)
        try:
            download_archive(cfg.basemap.source_url, archive, timeout_s=cfg.basemap.request_timeout_s)
        except requests.RequestException as exc:
            report.add_error(f"Failed downloading {cfg.basemap.source_url}: {exc}")
            return report

    try:
        shp = extract_shapefile(archive, work_dir)
    except (zipfile.BadZipFile, FileNotFoundError) as exc:
        report.add_error(str(exc))
        return report

    gdf = gpd.read_file(shp)
    simplified = simplify_countries(gdf, tolerance_deg=cfg.basemap.simplify_tolerance_deg)
    missing = [column for column in KEPT_FIELDS if column not in simplified.columns]
    if missing:
        report.add_warning("Source lacks fields: " + ", ".join(missing))

    output = cfg.paths.countries_geojson
    output.parent.mkdir(parents=True, exist_ok=True)
    output.unlink(missing_ok=True)
    simplified.to_file(output, driver="GeoJSON")
    report.add_info(f"Wrote {output} ({len(simplified)} countries, {output.stat().st_size} bytes)")
    report.add_info("Match countries by Feature.properties.NAME, falling back to ADMIN if needed.")
    return report


def format_basemap_lines(report: BasemapReport) -> Sequence[str]:
    lines: list[str] = []
    lines.extend(f"[INFO] {msg}" for msg in report.infos)
    lines.extend(f"[WARN] {msg}" for msg in report.warnings)
    lines.extend(f"[ERROR] {msg}" for msg in report.errors)
    if report.ok:
        lines.append("[OK] Country outlines generated.")
    return lines


def _require_geopandas() -> Any:
    try:
        import geopandas as gpd
    except ImportError as exc:  # pragma: no cover
        raise RuntimeError("geopandas is required for building country outlines") from exc
    return gpd
