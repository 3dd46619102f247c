"""Typed configuration loader for `config.yaml`."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping, cast

import yaml


DEFAULT_USER_AGENT = "placemap-geocoder/1.0"
DEFAULT_CATALOG_ENDPOINTS = (
    "https://api.surfshark.com/v4/server/clusters",
    "https://api.surfshark.com/v3/server/clusters",
)
DEFAULT_NATURAL_EARTH_URL = (
    "https://naciscdn.org/naturalearth/50m/cultural/ne_50m_admin_0_countries.zip"
)
# Upstream usage policy allows at most one request per second.
MIN_UNKEYED_INTERVAL_S = 1.0


def _mapping(value: Any, field_name: str) -> Mapping[str, Any]:
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        raise ValueError(f"Expected mapping for '{field_name}'")
    return cast(Mapping[str, Any], value)


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
    catalog: Path
    cache: Path
    output: Path
    countries_geojson: Path
    work_dir: Path
    logs_dir: Path

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any], root_dir: Path) -> PathsConfig:
        return cls(
            catalog=_path_from_cfg(raw.get("catalog", "data/servers.json"), "paths.catalog", root_dir),
            cache=_path_from_cfg(raw.get("cache", "data/geocode-cache.json"), "paths.cache", root_dir),
            output=_path_from_cfg(
                raw.get("output", "data/servers_geocoded.json"), "paths.output", root_dir
            ),
            countries_geojson=_path_from_cfg(
                raw.get("countries_geojson", "map/countries.geojson"),
                "paths.countries_geojson",
                root_dir,
            ),
            work_dir=_path_from_cfg(raw.get("work_dir", "map/tmp"), "paths.work_dir", root_dir),
            logs_dir=_path_from_cfg(raw.get("logs_dir", "logs"), "paths.logs_dir", root_dir),
        )


@dataclass(frozen=True, slots=True)
class GeocodingConfig:
    credential_env: str
    user_agent: str
    request_timeout_s: float
    keyed_concurrency: int
    unkeyed_min_interval_s: float
    progress_every: int
    provider_retries: int
    provider_backoff_s: float

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> GeocodingConfig:
        keyed_concurrency = _int(raw.get("keyed_concurrency", 6), "geocoding.keyed_concurrency")
        unkeyed_min_interval_s = _float(
            raw.get("unkeyed_min_interval_s", 1.1), "geocoding.unkeyed_min_interval_s"
        )
        request_timeout_s = _float(raw.get("request_timeout_s", 15), "geocoding.request_timeout_s")
        progress_every = _int(raw.get("progress_every", 10), "geocoding.progress_every")
        provider_retries = _int(raw.get("provider_retries", 0), "geocoding.provider_retries")
        provider_backoff_s = _float(raw.get("provider_backoff_s", 1.0), "geocoding.provider_backoff_s")
        if keyed_concurrency < 1:
            raise ValueError("geocoding.keyed_concurrency must be >= 1")
        if unkeyed_min_interval_s < MIN_UNKEYED_INTERVAL_S:
            raise ValueError(
                f"geocoding.unkeyed_min_interval_s must be >= {MIN_UNKEYED_INTERVAL_S}"
            )
        if request_timeout_s <= 0:
            raise ValueError("geocoding.request_timeout_s must be > 0")
        if progress_every < 1:
            raise ValueError("geocoding.progress_every must be >= 1")
        if provider_retries < 0:
            raise ValueError("geocoding.provider_retries must be >= 0")
        if provider_backoff_s < 0:
            raise ValueError("geocoding.provider_backoff_s must be >= 0")

        return cls(
            credential_env=_str(raw.get("credential_env", "MAPTILER_KEY"), "geocoding.credential_env"),
            user_agent=_str(raw.get("user_agent", DEFAULT_USER_AGENT), "geocoding.user_agent"),
            request_timeout_s=request_timeout_s,
            keyed_concurrency=keyed_concurrency,
            unkeyed_min_interval_s=unkeyed_min_interval_s,
            progress_every=progress_every,
            provider_retries=provider_retries,
            provider_backoff_s=provider_backoff_s,
        )


@dataclass(frozen=True, slots=True)
class CatalogConfig:
    endpoints: tuple[str, ...]
    user_agent: str
    request_timeout_s: float
    max_attempts: int
    backoff_s: float

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> CatalogConfig:
        endpoints_raw = raw.get("endpoints")
        endpoints = (
            DEFAULT_CATALOG_ENDPOINTS
            if endpoints_raw is None
            else _str_list(endpoints_raw, "catalog.endpoints")
        )
        if not endpoints:
            raise ValueError("catalog.endpoints must not be empty")
        max_attempts = _int(raw.get("max_attempts", 4), "catalog.max_attempts")
        backoff_s = _float(raw.get("backoff_s", 0.4), "catalog.backoff_s")
        request_timeout_s = _float(raw.get("request_timeout_s", 20), "catalog.request_timeout_s")
        if max_attempts < 1:
            raise ValueError("catalog.max_attempts must be >= 1")
        if backoff_s < 0:
            raise ValueError("catalog.backoff_s must be >= 0")
        if request_timeout_s <= 0:
            raise ValueError("catalog.request_timeout_s must be > 0")
        return cls(
            endpoints=endpoints,
            user_agent=_str(
                raw.get("user_agent", "Mozilla/5.0 (compatible; placemap/1.0)"),
                "catalog.user_agent",
            ),
            request_timeout_s=request_timeout_s,
            max_attempts=max_attempts,
            backoff_s=backoff_s,
        )


@dataclass(frozen=True, slots=True)
class BasemapConfig:
    source_url: str
    simplify_tolerance_deg: float
    request_timeout_s: float

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> BasemapConfig:
        tolerance = _float(raw.get("simplify_tolerance_deg", 0.05), "basemap.simplify_tolerance_deg")
        request_timeout_s = _float(raw.get("request_timeout_s", 120), "basemap.request_timeout_s")
        if tolerance < 0:
            raise ValueError("basemap.simplify_tolerance_deg must be >= 0")
        if request_timeout_s <= 0:
            raise ValueError("basemap.request_timeout_s must be > 0")
        return cls(
            source_url=_str(raw.get("source_url", DEFAULT_NATURAL_EARTH_URL), "basemap.source_url"),
            simplify_tolerance_deg=tolerance,
            request_timeout_s=request_timeout_s,
        )


@dataclass(frozen=True, slots=True)
class AppConfig:
    source_path: Path
    paths: PathsConfig
    geocoding: GeocodingConfig
    catalog: CatalogConfig
    basemap: BasemapConfig

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any], source_path: Path) -> AppConfig:
        root_dir = source_path.parent.resolve()
        return cls(
            source_path=source_path.resolve(),
            paths=PathsConfig.from_mapping(_mapping(raw.get("paths"), "paths"), root_dir),
            geocoding=GeocodingConfig.from_mapping(_mapping(raw.get("geocoding"), "geocoding")),
            catalog=CatalogConfig.from_mapping(_mapping(raw.get("catalog"), "catalog")),
            basemap=BasemapConfig.from_mapping(_mapping(raw.get("basemap"), "basemap")),
        )


def load_config(path: str | Path, *, allow_missing: bool = False) -> AppConfig:
    """Load and validate the YAML config file into typed settings.

    With `allow_missing`, an absent file yields the built-in defaults with
    paths resolved relative to the would-be config location.
    """
    cfg_path = Path(path).resolve()
    if not cfg_path.exists():
        if allow_missing:
            return AppConfig.from_mapping({}, cfg_path)
        raise FileNotFoundError(f"Config file not found: {cfg_path}")
    with cfg_path.open("r", encoding="utf-8") as fh:
        try:
            raw = yaml.safe_load(fh)
        except yaml.YAMLError as exc:
            raise ValueError(f"Invalid YAML in {cfg_path}: {exc}") from exc
    if raw is None:
        raw = {}
    if not isinstance(raw, Mapping):
        raise ValueError("Top-level config must be a YAML mapping")
    return AppConfig.from_mapping(cast(Mapping[str, Any], raw), cfg_path)
