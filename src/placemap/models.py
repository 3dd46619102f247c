"""Domain models shared across pipeline modules."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Mapping


KEY_SEPARATOR = "::"


def place_key(country: str, city: str) -> str:
    """Composite cache key for an already-normalized (country, city) pair."""
    return f"{country}{KEY_SEPARATOR}{city}"


def _finite_float(value: Any, field_name: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"Expected number for '{field_name}'")
    out = float(value)
    if not math.isfinite(out):
        raise ValueError(f"Expected finite number for '{field_name}'")
    return out


@dataclass(frozen=True, slots=True)
class Coordinate:
    """Resolved point as persisted in the cache and output files."""

    lat: float
    lng: float

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> Coordinate:
        return cls(
            lat=_finite_float(data.get("lat"), "lat"),
            lng=_finite_float(data.get("lng"), "lng"),
        )

    def to_dict(self) -> dict[str, float]:
        return {"lat": self.lat, "lng": self.lng}


@dataclass(frozen=True, slots=True)
class GeocodeResult:
    """Provider answer; `provider` is diagnostic only and never persisted."""

    coordinate: Coordinate
    provider: str


@dataclass(frozen=True, slots=True)
class WorkItem:
    country: str
    city: str
    key: str

    @classmethod
    def create(cls, country: str, city: str) -> WorkItem:
        return cls(country=country, city=city, key=place_key(country, city))


@dataclass(frozen=True, slots=True)
class CityCoordinate:
    """One entry of the geocoded output catalog."""

    name: str
    coordinate: Coordinate

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "lat": self.coordinate.lat, "lng": self.coordinate.lng}


@dataclass(frozen=True, slots=True)
class RunStats:
    total: int
    processed: int
    cache_hits: int
    resolved: int
    misses: int

    def to_dict(self) -> dict[str, int]:
        return {
            "total": self.total,
            "processed": self.processed,
            "cache_hits": self.cache_hits,
            "resolved": self.resolved,
            "misses": self.misses,
        }
