"""Fixed-window request counters shared by every route in the process.

State lives in a ``RateLimitStore`` owned by whoever builds the pipeline, so
tests can hand each case a fresh store and a fake clock.
"""
from __future__ import annotations

import logging
import math
import time
from dataclasses import dataclass
from threading import Lock
from typing import Callable, Dict, Optional

logger = logging.getLogger(__name__)

PURGE_THRESHOLD = 10_000


@dataclass(frozen=True)
class RateLimitConfig:
    max_attempts: int
    window_ms: int

    def __post_init__(self) -> None:
        if not isinstance(self.max_attempts, int) or self.max_attempts <= 0:
            raise ValueError("max_attempts must be a positive integer")
        if not isinstance(self.window_ms, int) or self.window_ms <= 0:
            raise ValueError("window_ms must be a positive integer")

    @property
    def window_seconds(self) -> float:
        return self.window_ms / 1000.0


AUTHENTICATION = RateLimitConfig(max_attempts=5, window_ms=60 * 60 * 1000)
CRUD_READ = RateLimitConfig(max_attempts=100, window_ms=60 * 1000)
CRUD_WRITE = RateLimitConfig(max_attempts=20, window_ms=60 * 1000)
CRUD_DELETE = RateLimitConfig(max_attempts=5, window_ms=60 * 1000)
SEARCH = RateLimitConfig(max_attempts=50, window_ms=60 * 1000)
ADMIN = RateLimitConfig(max_attempts=10, window_ms=60 * 1000)
PUBLIC = RateLimitConfig(max_attempts=15, window_ms=60 * 1000)

CRUD_LIMITS = {
    "GET": CRUD_READ,
    "POST": CRUD_WRITE,
    "PUT": CRUD_WRITE,
    "PATCH": CRUD_WRITE,
    "DELETE": CRUD_DELETE,
}


@dataclass
class _Window:
    count: int
    window_start: float
    window_seconds: float

    def expired(self, now: float) -> bool:
        return now >= self.window_start + self.window_seconds


@dataclass(frozen=True)
class RateLimitDecision:
    allowed: bool
    limit: int
    remaining: int
    reset_at: float
    retry_after: int


class RateLimitStore:
    """Thread-safe mapping of caller key to ``{count, window_start}``."""

    def __init__(
        self,
        clock: Callable[[], float] = time.time,
        purge_threshold: int = PURGE_THRESHOLD,
    ) -> None:
        self._clock = clock
        self._purge_threshold = purge_threshold
        self._windows: Dict[str, _Window] = {}
        self._lock = Lock()

    def hit(self, key: str, config: RateLimitConfig, now: Optional[float] = None) -> RateLimitDecision:
        """Count one attempt for ``key`` and decide whether it is admitted."""
        with self._lock:
            current = self._clock() if now is None else now
            window = self._windows.get(key)
            if window is None or window.expired(current):
                if len(self._windows) >= self._purge_threshold:
                    self._purge_expired(current)
                window = _Window(count=0, window_start=current, window_seconds=config.window_seconds)
                self._windows[key] = window

            reset_at = window.window_start + window.window_seconds
            if window.count >= config.max_attempts:
                if window.count == config.max_attempts:
                    logger.warning(
                        "Rate limit exceeded for %s: %s attempts in %.0fms",
                        key,
                        config.max_attempts,
                        (current - window.window_start) * 1000,
                    )
                # Counts past the limit only feed the one-time warning above.
                window.count = config.max_attempts + 1
                return RateLimitDecision(
                    allowed=False,
                    limit=config.max_attempts,
                    remaining=0,
                    reset_at=reset_at,
                    retry_after=max(1, math.ceil(reset_at - current)),
                )

            window.count += 1
            return RateLimitDecision(
                allowed=True,
                limit=config.max_attempts,
                remaining=config.max_attempts - window.count,
                reset_at=reset_at,
                retry_after=0,
            )

    def _purge_expired(self, now: float) -> None:
        expired = [key for key, window in self._windows.items() if window.expired(now)]
        for key in expired:
            del self._windows[key]
        if expired:
            logger.debug("Purged %s expired rate-limit windows", len(expired))

    def reset(self) -> None:
        with self._lock:
            self._windows.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._windows)
