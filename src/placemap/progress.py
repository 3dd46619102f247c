"""Run counters, per-country results, and periodic progress signals."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Iterable

from .models import CityCoordinate, Coordinate, RunStats, WorkItem

_LOGGER = logging.getLogger("placemap.progress")


@dataclass(frozen=True, slots=True)
class ProgressEvent:
    processed: int
    total: int
    cache_hits: int
    misses: int

    def format(self) -> str:
        return (
            f"[progress] {self.processed}/{self.total} "
            f"(cache hits: {self.cache_hits}, misses: {self.misses})"
        )


ProgressCallback = Callable[[ProgressEvent], None]


class ResultAggregator:
    """Accumulates the geocoded catalog and run counters.

    Every country passed in at construction keeps a (possibly empty) result
    list. A progress event fires every `progress_every` completions and on the
    final one; callback failures are logged and never interrupt the run.
    """

    def __init__(
        self,
        countries: Iterable[str],
        total: int,
        *,
        progress_every: int = 10,
        on_progress: ProgressCallback | None = None,
    ) -> None:
        if progress_every < 1:
            raise ValueError("progress_every must be >= 1")
        self.total = total
        self.progress_every = progress_every
        self._on_progress = on_progress
        self._results: dict[str, list[CityCoordinate]] = {country: [] for country in countries}
        self.processed = 0
        self.cache_hits = 0
        self.resolved = 0
        self.misses = 0

    def record_cache_hit(self, item: WorkItem, coordinate: Coordinate) -> None:
        self._append(item, coordinate)
        self.cache_hits += 1
        self._complete()

    def record_resolved(self, item: WorkItem, coordinate: Coordinate) -> None:
        self._append(item, coordinate)
        self.resolved += 1
        self._complete()

    def record_miss(self, item: WorkItem) -> None:
        self.misses += 1
        self._complete()

    def stats(self) -> RunStats:
        return RunStats(
            total=self.total,
            processed=self.processed,
            cache_hits=self.cache_hits,
            resolved=self.resolved,
            misses=self.misses,
        )

    def results(self) -> dict[str, list[CityCoordinate]]:
        return {country: list(cities) for country, cities in self._results.items()}

    def to_dict(self) -> dict[str, list[dict[str, Any]]]:
        return {
            country: [city.to_dict() for city in cities]
            for country, cities in self._results.items()
        }

    def _append(self, item: WorkItem, coordinate: Coordinate) -> None:
        self._results.setdefault(item.country, []).append(
            CityCoordinate(name=item.city, coordinate=coordinate)
        )

    def _complete(self) -> None:
        self.processed += 1
        if self.processed % self.progress_every == 0 or self.processed == self.total:
            self._emit()

    def _emit(self) -> None:
        event = ProgressEvent(
            processed=self.processed,
            total=self.total,
            cache_hits=self.cache_hits,
            misses=self.misses,
        )
        _LOGGER.info(event.format())
        if self._on_progress is None:
            return
        try:
            self._on_progress(event)
        except Exception as exc:
            _LOGGER.warning("Progress callback failed: %s", exc)
