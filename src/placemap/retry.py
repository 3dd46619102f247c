"""Reusable retry-with-backoff policy."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Callable, TypeVar

_LOGGER = logging.getLogger("placemap.retry")

T = TypeVar("T")


def linear_backoff(step_s: float) -> Callable[[int], float]:
    """Delay grows by `step_s` per failed attempt: step, 2*step, 3*step..."""
    return lambda attempt: step_s * (attempt + 1)


def exponential_backoff(base_s: float, cap_s: float = 300.0) -> Callable[[int], float]:
    return lambda attempt: min(base_s * (2**attempt), cap_s)


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    """Run a callable up to `max_attempts` times, sleeping `backoff(attempt)` between tries.

    `attempt` passed to `backoff` is the zero-based index of the attempt that
    just failed. Only exceptions listed in `retry_on` are retried; the last
    one is re-raised once attempts are exhausted.
    """

    max_attempts: int = 1
    backoff: Callable[[int], float] = field(default=linear_backoff(0.4))
    retry_on: tuple[type[BaseException], ...] = (Exception,)
    sleep: Callable[[float], None] = time.sleep

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")

    def call(self, fn: Callable[[], T], *, label: str = "operation") -> T:
        for attempt in range(self.max_attempts):
            try:
                return fn()
            except self.retry_on as exc:
                if attempt + 1 >= self.max_attempts:
                    raise
                delay_s = max(float(self.backoff(attempt)), 0.0)
                _LOGGER.warning(
                    "%s failed (attempt %d/%d): %s; retrying in %.1fs",
                    label,
                    attempt + 1,
                    self.max_attempts,
                    exc,
                    delay_s,
                )
                self.sleep(delay_s)
        raise RuntimeError("Unreachable retry loop")
