"""Place catalog loading, name normalization, and work list construction."""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping

from .errors import MalformedInputError
from .models import WorkItem
from .util import read_json

_LOGGER = logging.getLogger("placemap.catalog")

_VIRTUAL_SUFFIX_RE = re.compile(r"\s*\(virtual\)\s*$", re.IGNORECASE)

PlaceCatalog = dict[str, list[str]]


def normalize_name(value: str) -> str:
    """Strip a trailing "(virtual)" qualifier and surrounding whitespace."""
    return _VIRTUAL_SUFFIX_RE.sub("", value).strip()


def parse_catalog(raw: Any, *, source: str = "catalog") -> PlaceCatalog:
    """Validate the top-level shape of a raw catalog payload.

    Entries with unusable city collections are dropped with a warning; only a
    non-mapping payload is treated as malformed.
    """
    if not isinstance(raw, Mapping):
        raise MalformedInputError(f"Expected mapping of country -> cities in {source}")

    catalog: PlaceCatalog = {}
    for country, cities in raw.items():
        if not isinstance(country, str):
            _LOGGER.warning("Skipping non-string country key %r in %s", country, source)
            continue
        if cities is None:
            catalog[country] = []
            continue
        if not isinstance(cities, list):
            _LOGGER.warning("Expected list of cities for '%s' in %s; ignoring entry", country, source)
            catalog[country] = []
            continue
        names: list[str] = []
        for idx, city in enumerate(cities):
            if not isinstance(city, str):
                _LOGGER.warning("Skipping non-string city %s[%d] in %s", country, idx, source)
                continue
            names.append(city)
        catalog[country] = names
    return catalog


def load_catalog(path: Path) -> PlaceCatalog:
    """Load the input catalog, treating an absent or malformed file as empty."""
    if not path.exists():
        _LOGGER.info("Catalog file %s not found; using empty catalog", path)
        return {}
    try:
        raw = read_json(path)
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
        _LOGGER.warning("Catalog file %s is unreadable (%s); using empty catalog", path, exc)
        return {}
    try:
        return parse_catalog(raw, source=str(path))
    except MalformedInputError as exc:
        _LOGGER.warning("%s; using empty catalog", exc)
        return {}


@dataclass(frozen=True, slots=True)
class WorkList:
    """Deduplicated resolution tasks plus every country seen, in first-seen order."""

    countries: tuple[str, ...]
    items: tuple[WorkItem, ...]

    def __len__(self) -> int:
        return len(self.items)


def build_work_list(catalog: Mapping[str, Any]) -> WorkList:
    countries: dict[str, None] = {}
    items: list[WorkItem] = []
    seen_keys: set[str] = set()

    for country_raw, cities in catalog.items():
        country = normalize_name(country_raw)
        if not country:
            _LOGGER.debug("Skipping empty country name %r", country_raw)
            continue
        countries.setdefault(country, None)
        for city_raw in cities or ():
            city = normalize_name(city_raw)
            if not city:
                continue
            item = WorkItem.create(country, city)
            if item.key in seen_keys:
                continue
            seen_keys.add(item.key)
            items.append(item)

    return WorkList(countries=tuple(countries), items=tuple(items))
