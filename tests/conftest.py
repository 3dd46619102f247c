from __future__ import annotations

import json
import threading
from pathlib import Path
from typing import Any, Mapping

import pytest
import requests

from placemap.config import AppConfig
from placemap.models import Coordinate, GeocodeResult
from placemap.providers import GeocodingProvider


class FakeProvider(GeocodingProvider):
    """Answers from a query -> (lat, lng) table; values may also be exceptions."""

    name = "fake"

    def __init__(self, answers: Mapping[str, Any] | None = None) -> None:
        self.answers = dict(answers or {})
        self.calls: list[tuple[str, str | None]] = []
        self._lock = threading.Lock()

    def resolve(self, query: str, country_hint: str | None = None) -> GeocodeResult | None:
        with self._lock:
            self.calls.append((query, country_hint))
        answer = self.answers.get(query)
        if isinstance(answer, Exception):
            raise answer
        if answer is None:
            return None
        lat, lng = answer
        return GeocodeResult(coordinate=Coordinate(lat=lat, lng=lng), provider=self.name)

    @property
    def queries(self) -> list[str]:
        return [query for query, _ in self.calls]


class FakeClock:
    def __init__(self, start: float = 1000.0) -> None:
        self.now = start
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


class FakeResponse:
    def __init__(self, payload: Any = None, *, status_code: int = 200, reason: str = "OK") -> None:
        self._payload = payload
        self.status_code = status_code
        self.reason = reason
        self.closed = False

    @property
    def ok(self) -> bool:
        return self.status_code < 400

    def json(self) -> Any:
        if isinstance(self._payload, Exception):
            raise self._payload
        return self._payload

    def raise_for_status(self) -> None:
        if not self.ok:
            raise requests.HTTPError(f"{self.status_code} {self.reason}")

    def close(self) -> None:
        self.closed = True


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def app_config(tmp_path: Path) -> AppConfig:
    return AppConfig.from_mapping({}, tmp_path / "config.yaml")


def write_catalog(cfg: AppConfig, catalog: Any) -> None:
    cfg.paths.catalog.parent.mkdir(parents=True, exist_ok=True)
    cfg.paths.catalog.write_text(json.dumps(catalog), encoding="utf-8")


def read_output(cfg: AppConfig) -> Any:
    return json.loads(cfg.paths.output.read_text(encoding="utf-8"))


def read_cache_file(cfg: AppConfig) -> Any:
    return json.loads(cfg.paths.cache.read_text(encoding="utf-8"))
