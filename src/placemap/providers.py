"""Geocoding backends: keyed MapTiler and rate-limited public Nominatim."""

from __future__ import annotations

import logging
import os
import threading
import time
from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import Any, Callable, Iterator, Mapping
from urllib.parse import quote

import requests

from .config import GeocodingConfig
from .errors import ProviderError
from .models import Coordinate, GeocodeResult
from .retry import RetryPolicy, exponential_backoff

_LOGGER = logging.getLogger("placemap.providers")

MAPTILER_GEOCODING_URL = "https://api.maptiler.com/geocoding/{query}.json"
NOMINATIM_SEARCH_URL = "https://nominatim.openstreetmap.org/search"

# Country name -> ISO 3166-1 alpha-2 hint for the keyed provider. Hints only
# narrow the search; they never change names written to the output.
ISO_HINTS: Mapping[str, str] = {
    "United States": "US",
    "United Kingdom": "GB",
    "South Korea": "KR",
    "North Macedonia": "MK",
    "Czech Republic": "CZ",
    "United Arab Emirates": "AE",
    "Russia": "RU",
    "Vietnam": "VN",
    "Laos": "LA",
    "Myanmar": "MM",
    "Myanmar (Burma)": "MM",
    "Taiwan": "TW",
    "Hong Kong": "HK",
}


def iso_hint(country: str | None) -> str | None:
    if not country:
        return None
    return ISO_HINTS.get(country)


class RateLimiter:
    """Serialize calls and keep at least `min_interval_s` between the end of one and the start of the next."""

    def __init__(
        self,
        min_interval_s: float,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.min_interval_s = max(float(min_interval_s), 0.0)
        self._clock = clock
        self._sleep = sleep
        self._lock = threading.Lock()
        self._last_finished_at: float | None = None

    @contextmanager
    def slot(self) -> Iterator[None]:
        with self._lock:
            if self._last_finished_at is not None:
                remaining = self._last_finished_at + self.min_interval_s - self._clock()
                if remaining > 0:
                    self._sleep(remaining)
            try:
                yield
            finally:
                self._last_finished_at = self._clock()


class GeocodingProvider(ABC):
    """Turn a free-text place query into zero-or-one coordinate.

    `resolve` returns None when the backend has no match and raises
    ProviderError when the call itself failed.
    """

    name: str = "provider"

    @abstractmethod
    def resolve(self, query: str, country_hint: str | None = None) -> GeocodeResult | None:
        raise NotImplementedError

    def close(self) -> None:
        return None


class HttpGeocodingProvider(GeocodingProvider):
    def __init__(
        self,
        *,
        user_agent: str,
        timeout_s: float,
        retry: RetryPolicy | None = None,
        session: requests.Session | None = None,
        session_factory: Callable[[], requests.Session] = requests.Session,
    ) -> None:
        """An injected `session` is shared by all callers. Otherwise each
        worker thread gets its own session from `session_factory`, since a
        `requests.Session` is not safe to share across threads.
        """
        self.timeout_s = timeout_s
        self.user_agent = user_agent
        self._retry = retry or RetryPolicy(max_attempts=1, retry_on=(ProviderError,))
        self._shared = session
        if session is not None:
            session.headers.update({"User-Agent": user_agent})
        self._session_factory = session_factory
        self._local = threading.local()
        self._owned: list[requests.Session] = []
        self._owned_lock = threading.Lock()

    @property
    def session(self) -> requests.Session:
        if self._shared is not None:
            return self._shared
        current = getattr(self._local, "session", None)
        if current is None:
            current = self._session_factory()
            current.headers.update({"User-Agent": self.user_agent})
            self._local.session = current
            with self._owned_lock:
                self._owned.append(current)
        return current

    def close(self) -> None:
        if self._shared is not None:
            self._shared.close()
        with self._owned_lock:
            owned, self._owned = self._owned, []
        for session in owned:
            session.close()

    def _get_json(self, url: str, params: Mapping[str, Any]) -> Any:
        return self._retry.call(lambda: self._get_json_once(url, params), label=f"{self.name} request")

    def _get_json_once(self, url: str, params: Mapping[str, Any]) -> Any:
        try:
            response = self.session.get(url, params=dict(params), timeout=self.timeout_s)
        except requests.RequestException as exc:
            raise ProviderError(self.name, str(exc)) from exc
        try:
            if not response.ok:
                raise ProviderError(self.name, response.reason or "request failed", status=response.status_code)
            try:
                return response.json()
            except ValueError as exc:
                raise ProviderError(self.name, f"invalid JSON: {exc}", status=response.status_code) from exc
        finally:
            response.close()


class MapTilerProvider(HttpGeocodingProvider):
    """Keyed forward geocoding; no client-side throttling."""

    name = "maptiler"

    def __init__(self, api_key: str, **kwargs: Any) -> None:
        if not api_key:
            raise ValueError("MapTiler provider requires a non-empty API key")
        super().__init__(**kwargs)
        self._api_key = api_key

    def resolve(self, query: str, country_hint: str | None = None) -> GeocodeResult | None:
        params = {"key": self._api_key, "limit": "1", "language": "en"}
        iso = iso_hint(country_hint)
        if iso:
            params["country"] = iso.lower()
        url = MAPTILER_GEOCODING_URL.format(query=quote(query, safe=""))
        payload = self._get_json(url, params)

        features = payload.get("features") if isinstance(payload, Mapping) else None
        if not isinstance(features, list) or not features:
            return None
        geometry = features[0].get("geometry") if isinstance(features[0], Mapping) else None
        coords = geometry.get("coordinates") if isinstance(geometry, Mapping) else None
        if not isinstance(coords, list) or len(coords) < 2:
            raise ProviderError(self.name, f"feature without point coordinates for '{query}'")
        lng, lat = coords[0], coords[1]
        try:
            coordinate = Coordinate.from_mapping({"lat": lat, "lng": lng})
        except ValueError as exc:
            raise ProviderError(self.name, f"bad coordinates for '{query}': {exc}") from exc
        return GeocodeResult(coordinate=coordinate, provider=self.name)


class NominatimProvider(HttpGeocodingProvider):
    """Public OpenStreetMap search, limited to one call per `min_interval_s`.

    The interval is enforced after every call, successful or not.
    """

    name = "nominatim"

    def __init__(self, *, rate_limiter: RateLimiter | None = None, min_interval_s: float = 1.1, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self.rate_limiter = rate_limiter or RateLimiter(min_interval_s)

    def resolve(self, query: str, country_hint: str | None = None) -> GeocodeResult | None:
        params = {"q": query, "format": "jsonv2", "limit": "1", "accept-language": "en"}
        payload = self._get_json(NOMINATIM_SEARCH_URL, params)

        if not isinstance(payload, list) or not payload:
            return None
        first = payload[0]
        if not isinstance(first, Mapping):
            raise ProviderError(self.name, f"unexpected result shape for '{query}'")
        try:
            coordinate = Coordinate.from_mapping(
                {"lat": float(first.get("lat")), "lng": float(first.get("lon"))}
            )
        except (TypeError, ValueError) as exc:
            raise ProviderError(self.name, f"bad coordinates for '{query}': {exc}") from exc
        return GeocodeResult(coordinate=coordinate, provider=self.name)

    def _get_json_once(self, url: str, params: Mapping[str, Any]) -> Any:
        with self.rate_limiter.slot():
            return super()._get_json_once(url, params)


def read_credential(cfg: GeocodingConfig, environ: Mapping[str, str] | None = None) -> str:
    env = os.environ if environ is None else environ
    return (env.get(cfg.credential_env) or "").strip()


def create_provider(cfg: GeocodingConfig, credential: str) -> tuple[GeocodingProvider, int]:
    """Pick the provider for the whole run and the matching worker bound."""
    retry = RetryPolicy(
        max_attempts=cfg.provider_retries + 1,
        backoff=exponential_backoff(cfg.provider_backoff_s),
        retry_on=(ProviderError,),
    )
    common = {"user_agent": cfg.user_agent, "timeout_s": cfg.request_timeout_s, "retry": retry}
    if credential:
        return MapTilerProvider(credential, **common), cfg.keyed_concurrency
    return NominatimProvider(min_interval_s=cfg.unkeyed_min_interval_s, **common), 1
