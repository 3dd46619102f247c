"""Exception types shared across the geocoding pipeline and its collaborators."""

from __future__ import annotations


class PlacemapError(Exception):
    """Base class for placemap failures."""


class ProviderError(PlacemapError):
    """A geocoding backend call failed (transport, HTTP status, or bad payload).

    Distinct from "no result", which providers report by returning ``None``.
    """

    def __init__(self, provider: str, reason: str, *, status: int | None = None) -> None:
        self.provider = provider
        self.status = status
        self.reason = reason
        detail = f"HTTP {status}" if status is not None else "transport failure"
        super().__init__(f"{provider} {detail}: {reason}")


class MalformedCacheError(PlacemapError, ValueError):
    """Persisted geocode cache is unreadable or has the wrong shape."""


class MalformedInputError(PlacemapError, ValueError):
    """Place catalog input is unreadable or has the wrong shape."""


class CatalogUnavailableError(PlacemapError):
    """No catalog endpoint produced usable data."""
