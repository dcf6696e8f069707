"""In-memory rate limiter for credential-checking endpoints.

Used by the supervisor discount-override endpoint, which verifies a
password on every call. State is per process.
"""

from __future__ import annotations

import time
from collections.abc import Callable

from saleledger.app.core.errors import TooManyAttemptsError


class InMemoryRateLimiter:
    """Sliding-window limiter keyed by an arbitrary string (IP, username)."""

    def __init__(
        self,
        window_seconds: int = 60,
        max_attempts: int = 5,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._window = window_seconds
        self._max = max_attempts
        self._clock = clock
        self._attempts: dict[str, list[float]] = {}

    def __len__(self) -> int:
        return len(self._attempts)

    def _evict_idle(self, now: float) -> None:
        idle = [k for k, stamps in self._attempts.items() if now - stamps[-1] >= self._window]
        for key in idle:
            del self._attempts[key]

    def check(self, key: str) -> None:
        """Raise ``TooManyAttemptsError`` once *key* used up its attempts in the window."""
        now = self._clock()
        self._evict_idle(now)
        recent = [t for t in self._attempts.get(key, ()) if now - t < self._window]
        if len(recent) >= self._max:
            self._attempts[key] = recent
            raise TooManyAttemptsError(seconds=self._window)
        recent.append(now)
        self._attempts[key] = recent

    def reset(self, key: str | None = None) -> None:
        if key is None:
            self._attempts.clear()
        else:
            self._attempts.pop(key, None)
