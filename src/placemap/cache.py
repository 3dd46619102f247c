"""Durable JSON geocode cache keyed by `"<country>::<city>"`."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Iterator, Mapping

from .errors import MalformedCacheError
from .models import Coordinate
from .util import read_json, write_json

_LOGGER = logging.getLogger("placemap.cache")


def parse_cache(raw: Any, *, source: str = "cache") -> dict[str, Coordinate]:
    if not isinstance(raw, Mapping):
        raise MalformedCacheError(f"Expected mapping of key -> {{lat, lng}} in {source}")
    records: dict[str, Coordinate] = {}
    dropped = 0
    for key, value in raw.items():
        if not isinstance(key, str) or not isinstance(value, Mapping):
            dropped += 1
            continue
        try:
            records[key] = Coordinate.from_mapping(value)
        except ValueError:
            dropped += 1
    if dropped:
        _LOGGER.warning("Dropped %d malformed cache entries from %s", dropped, source)
    return records


class GeocodeCache:
    """In-memory view of the cache file; the pipeline coordinator is its only writer.

    Keys are never overwritten once present, so entries loaded from an earlier
    (possibly interrupted) run are never re-queried or replaced.
    """

    def __init__(self, path: Path) -> None:
        self.path = path
        self._records: dict[str, Coordinate] = {}

    def load(self) -> dict[str, Coordinate]:
        """Replace in-memory state with the persisted file; absent or corrupt means empty."""
        self._records = {}
        if not self.path.exists():
            _LOGGER.info("No geocode cache at %s; starting empty", self.path)
            return dict(self._records)
        try:
            raw = read_json(self.path)
            self._records = parse_cache(raw, source=str(self.path))
        except (OSError, UnicodeDecodeError, json.JSONDecodeError, MalformedCacheError) as exc:
            _LOGGER.warning("Geocode cache %s is unreadable (%s); starting empty", self.path, exc)
            self._records = {}
        else:
            _LOGGER.info("Loaded %d cached coordinates from %s", len(self._records), self.path)
        return dict(self._records)

    def get(self, key: str) -> Coordinate | None:
        return self._records.get(key)

    def put(self, key: str, coordinate: Coordinate) -> bool:
        """Store a coordinate; returns False when the key already existed."""
        if key in self._records:
            return False
        self._records[key] = coordinate
        return True

    def persist(self) -> None:
        payload = {key: coord.to_dict() for key, coord in self._records.items()}
        write_json(self.path, payload, sort_keys=True)
        _LOGGER.info("Geocode cache written to %s (%d entries)", self.path, len(payload))

    def __contains__(self, key: object) -> bool:
        return key in self._records

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self) -> Iterator[str]:
        return iter(self._records)
