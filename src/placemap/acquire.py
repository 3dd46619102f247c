"""Server catalog acquisition from the public cluster list endpoints."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterable, Mapping, Sequence

import requests

from .catalog import PlaceCatalog, normalize_name
from .config import AppConfig, CatalogConfig
from .errors import CatalogUnavailableError
from .retry import RetryPolicy, linear_backoff
from .util import write_json

_LOGGER = logging.getLogger("placemap.acquire")


@dataclass(slots=True)
class CatalogReport:
    output_path: Path | None = None
    endpoint: str | None = None
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    infos: list[str] = field(default_factory=list)
    summary: dict[str, int] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.errors

    def add_error(self, msg: str) -> None:
        self.errors.append(msg)

    def add_warning(self, msg: str) -> None:
        self.warnings.append(msg)

    def add_info(self, msg: str) -> None:
        self.infos.append(msg)


class ClusterListClient:
    """Fetch JSON cluster arrays with a shared retry policy."""

    def __init__(
        self,
        cfg: CatalogConfig,
        *,
        retry: RetryPolicy | None = None,
        session: requests.Session | None = None,
    ) -> None:
        self.cfg = cfg
        self._retry = retry or RetryPolicy(
            max_attempts=cfg.max_attempts,
            backoff=linear_backoff(cfg.backoff_s),
            retry_on=(requests.RequestException, ValueError),
        )
        self._session = session or requests.Session()
        self._session.headers.update(
            {"User-Agent": cfg.user_agent, "Accept": "application/json"}
        )

    def fetch(self, url: str) -> Any:
        return self._retry.call(lambda: self._get_json(url), label=f"GET {url}")

    def _get_json(self, url: str) -> Any:
        response = self._session.get(url, timeout=self.cfg.request_timeout_s)
        try:
            response.raise_for_status()
            return response.json()
        finally:
            response.close()

    def fetch_first_available(self, endpoints: Iterable[str]) -> tuple[str, list[Any]]:
        """Return the first endpoint answering with a non-empty JSON array."""
        for url in endpoints:
            try:
                payload = self.fetch(url)
            except (requests.RequestException, ValueError) as exc:
                _LOGGER.warning("Giving up on %s: %s", url, exc)
                continue
            if isinstance(payload, list) and payload:
                return url, payload
            size = len(payload) if isinstance(payload, list) else type(payload).__name__
            _LOGGER.warning("%s returned %s items", url, size)
        raise CatalogUnavailableError("Could not obtain clusters from any endpoint")

    def close(self) -> None:
        self._session.close()


def clusters_to_catalog(clusters: Sequence[Any]) -> PlaceCatalog:
    """Group cluster records into a sorted country -> unique cities catalog."""
    grouped: dict[str, set[str]] = {}
    for cluster in clusters:
        if not isinstance(cluster, Mapping):
            continue
        country = normalize_name(_first_str(cluster, ("country", "countryCode")))
        if not country:
            continue
        city = _first_str(cluster, ("location", "city")).strip()
        cities = grouped.setdefault(country, set())
        if city:
            cities.add(city)
    return {
        country: sorted(grouped[country], key=str.casefold)
        for country in sorted(grouped, key=str.casefold)
    }


def _first_str(data: Mapping[str, Any], keys: Sequence[str]) -> str:
    for key in keys:
        value = data.get(key)
        if isinstance(value, str) and value.strip():
            return value
    return ""


def run_fetch_catalog(cfg: AppConfig, *, client: ClusterListClient | None = None) -> CatalogReport:
    report = CatalogReport(output_path=cfg.paths.catalog)
    owns_client = client is None
    client = client or ClusterListClient(cfg.catalog)
    try:
        endpoint, clusters = client.fetch_first_available(cfg.catalog.endpoints)
    except CatalogUnavailableError as exc:
        report.add_error(str(exc))
        return report
    finally:
        if owns_client:
            client.close()

    report.endpoint = endpoint
    report.add_info(f"Using {endpoint} with {len(clusters)} entries")
    catalog = clusters_to_catalog(clusters)
    write_json(cfg.paths.catalog, catalog)
    report.summary = {
        "clusters": len(clusters),
        "countries": len(catalog),
        "cities": sum(len(cities) for cities in catalog.values()),
    }
    report.add_info(f"Wrote {cfg.paths.catalog} with {len(catalog)} countries")
    return report


def format_catalog_lines(report: CatalogReport) -> Sequence[str]:
    lines: list[str] = []
    lines.extend(f"[INFO] {msg}" for msg in report.infos)
    lines.extend(f"[WARN] {msg}" for msg in report.warnings)
    lines.extend(f"[ERROR] {msg}" for msg in report.errors)
    if report.ok:
        lines.append("[OK] Catalog fetch completed.")
    return lines
