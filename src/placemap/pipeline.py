"""Geocoding enrichment pipeline: cache lookup, bounded provider calls, fallback, persistence."""

from __future__ import annotations

import concurrent.futures
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping, Sequence

from .cache import GeocodeCache
from .catalog import WorkList, build_work_list, load_catalog
from .config import AppConfig
from .errors import ProviderError
from .models import GeocodeResult, RunStats, WorkItem
from .progress import ProgressCallback, ResultAggregator
from .providers import GeocodingProvider, create_provider, read_credential
from .util import write_json

_LOGGER = logging.getLogger("placemap.pipeline")


@dataclass(frozen=True, slots=True)
class Resolution:
    item: WorkItem
    result: GeocodeResult | None
    used_fallback: bool = False


def resolve_with_fallback(provider: GeocodingProvider, item: WorkItem) -> Resolution:
    """Try "city, country" first, then the bare city name once.

    Provider errors are logged and treated like an empty answer.
    """
    primary_query = f"{item.city}, {item.country}"
    try:
        result = provider.resolve(primary_query, item.country)
    except ProviderError as exc:
        _LOGGER.warning("Lookup failed for '%s': %s", primary_query, exc)
        result = None
    if result is not None:
        return Resolution(item=item, result=result)

    try:
        result = provider.resolve(item.city, item.country)
    except ProviderError as exc:
        _LOGGER.warning("Fallback lookup failed for '%s': %s", item.city, exc)
        result = None
    if result is None:
        _LOGGER.debug("No match for %s", item.key)
    return Resolution(item=item, result=result, used_fallback=result is not None)


class GeocodePipeline:
    """Drain a work list through one provider with at most `max_workers` calls in flight.

    Worker threads only talk to the provider. Cache and aggregator updates
    happen on the calling thread as futures complete, so neither needs a lock.
    """

    def __init__(
        self,
        provider: GeocodingProvider,
        cache: GeocodeCache,
        *,
        max_workers: int,
        progress_every: int = 10,
        on_progress: ProgressCallback | None = None,
    ) -> None:
        if max_workers < 1:
            raise ValueError("max_workers must be >= 1")
        self.provider = provider
        self.cache = cache
        self.max_workers = max_workers
        self.progress_every = progress_every
        self.on_progress = on_progress

    def run(self, work: WorkList) -> ResultAggregator:
        aggregator = ResultAggregator(
            work.countries,
            len(work),
            progress_every=self.progress_every,
            on_progress=self.on_progress,
        )
        _LOGGER.info("Geocoding %d cities via %s (%d workers)", len(work), self.provider.name, self.max_workers)

        pending: list[WorkItem] = []
        for item in work.items:
            cached = self.cache.get(item.key)
            if cached is not None:
                aggregator.record_cache_hit(item, cached)
            else:
                pending.append(item)

        if not pending:
            return aggregator

        with concurrent.futures.ThreadPoolExecutor(
            max_workers=self.max_workers,
            thread_name_prefix="placemap-geocode",
        ) as executor:
            future_to_item = {
                executor.submit(resolve_with_fallback, self.provider, item): item
                for item in pending
            }
            for future in concurrent.futures.as_completed(future_to_item):
                item = future_to_item[future]
                try:
                    resolution = future.result()
                except Exception as exc:
                    _LOGGER.error("Unexpected error geocoding %s: %s", item.key, exc)
                    aggregator.record_miss(item)
                    continue
                self._apply(aggregator, resolution)
        return aggregator

    def _apply(self, aggregator: ResultAggregator, resolution: Resolution) -> None:
        item = resolution.item
        if resolution.result is None:
            aggregator.record_miss(item)
            return
        coordinate = resolution.result.coordinate
        _LOGGER.debug(
            "Resolved %s via %s%s",
            item.key,
            resolution.result.provider,
            " (fallback)" if resolution.used_fallback else "",
        )
        self.cache.put(item.key, coordinate)
        aggregator.record_resolved(item, coordinate)


@dataclass(slots=True)
class GeocodeReport:
    output_path: Path | None = None
    cache_path: Path | None = None
    provider: str | None = None
    stats: RunStats | None = None
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


def run_geocode(
    cfg: AppConfig,
    *,
    provider: GeocodingProvider | None = None,
    max_workers: int | None = None,
    environ: Mapping[str, str] | None = None,
    on_progress: ProgressCallback | None = None,
) -> GeocodeReport:
    """Geocode the configured catalog and persist cache and output files.

    A provider is chosen from the credential in the environment unless one is
    passed in explicitly (then `max_workers` defaults to 1).
    """
    report = GeocodeReport(output_path=cfg.paths.output, cache_path=cfg.paths.cache)

    catalog = load_catalog(cfg.paths.catalog)
    work = build_work_list(catalog)
    report.add_info(
        f"Loaded {len(work.countries)} countries and {len(work)} unique cities from {cfg.paths.catalog}"
    )

    cache = GeocodeCache(cfg.paths.cache)
    cache.load()
    report.add_info(f"Geocode cache holds {len(cache)} entries before run")

    owns_provider = provider is None
    if provider is None:
        credential = read_credential(cfg.geocoding, environ)
        provider, workers = create_provider(cfg.geocoding, credential)
        if not credential:
            report.add_info(
                f"{cfg.geocoding.credential_env} not set; using Nominatim at one request per "
                f"{cfg.geocoding.unkeyed_min_interval_s:.1f}s"
            )
    else:
        workers = 1
    if max_workers is not None:
        workers = max_workers
    report.provider = provider.name

    try:
        pipeline = GeocodePipeline(
            provider,
            cache,
            max_workers=workers,
            progress_every=cfg.geocoding.progress_every,
            on_progress=on_progress,
        )
        aggregator = pipeline.run(work)
    finally:
        if owns_provider:
            provider.close()

    cache.persist()
    write_json(cfg.paths.output, aggregator.to_dict())
    report.stats = aggregator.stats()
    report.add_info(f"Geocoded catalog written to {cfg.paths.output}")
    if report.stats.misses:
        report.add_warning(f"{report.stats.misses} cities could not be geocoded")
    return report


def format_geocode_lines(report: GeocodeReport) -> Sequence[str]:
    lines: list[str] = []
    lines.extend(f"[INFO] {msg}" for msg in report.infos)
    lines.extend(f"[WARN] {msg}" for msg in report.warnings)
    lines.extend(f"[ERROR] {msg}" for msg in report.errors)
    if report.stats is not None:
        stats = report.stats
        lines.append(
            f"[done] Processed {stats.processed}/{stats.total}, "
            f"cache hits {stats.cache_hits}, misses {stats.misses}"
        )
    return lines
