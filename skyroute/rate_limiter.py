"""Fixed-window limiter gating outbound weather queries."""

import threading
import time
from dataclasses import dataclass
from typing import Callable

from utils.logging_utils import get_tagged_logger

logger = get_tagged_logger(__name__, tag="rate_limiter")


@dataclass
class RateWindow:
    window_start: float
    count: int = 0


class FixedWindowRateLimiter:
    """Allow at most `max_requests` per `window_seconds`; thread-safe."""

    def __init__(self, max_requests: int, window_seconds: float, clock: Callable[[], float] = time.monotonic) -> None:
        if max_requests <= 0:
            raise ValueError("max_requests must be positive")
        if window_seconds <= 0:
            raise ValueError("window_seconds must be positive")
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock
        self._window = RateWindow(window_start=clock())
        self._lock = threading.Lock()

    def _roll(self, now: float) -> None:
        if now - self._window.window_start > self.window_seconds:
            self._window = RateWindow(window_start=now)

    def try_acquire(self) -> bool:
        """Consume one slot; returns False (without consuming) when the window is full."""
        with self._lock:
            now = self._clock()
            self._roll(now)
            if self._window.count >= self.max_requests:
                logger.warning(
                    "Rate limit reached",
                    extra={"max_requests": self.max_requests, "window_seconds": self.window_seconds},
                )
                return False
            self._window.count += 1
            return True

    def retry_after_seconds(self) -> float:
        """Seconds until the current window rolls over."""
        with self._lock:
            now = self._clock()
            self._roll(now)
            if self._window.count < self.max_requests:
                return 0.0
            return max(0.0, self._window.window_start + self.window_seconds - now)

    def remaining(self) -> int:
        with self._lock:
            self._roll(self._clock())
            return max(0, self.max_requests - self._window.count)

    def reset(self) -> None:
        with self._lock:
            self._window = RateWindow(window_start=self._clock())
