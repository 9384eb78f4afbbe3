"""Calls-per-second accounting against the directory API ceiling (COGNITO_TPS).

Two modes are offered. Page-level callers (export, group creation during the
table scan) open a window, count each call and pause for the rest of the
second once saturated. Call-level callers (post-import updates) use
:meth:`RateLimiter.acquire` before every single call.

A ceiling of 0 means "always wait": each call waits for the current window to
end before it is issued.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Optional, Tuple

from directory_sync.errors import ConfigurationError
from directory_sync.utils.clock import now_ms, sleep_ms
from directory_sync.utils.logger import get_logger


logger = get_logger(__name__)

WINDOW_MS = 1000


@dataclass
class RateWindow:
    call_count: int = 0
    window_end: int = 0

    def expired(self, now: int) -> bool:
        return now >= self.window_end

    def reset(self, now: int) -> None:
        self.call_count = 0
        self.window_end = now + WINDOW_MS


class RateLimiter:
    def __init__(
        self,
        ceiling: int,
        *,
        clock: Optional[Callable[[], int]] = None,
        sleep: Optional[Callable[[float], None]] = None,
    ) -> None:
        if ceiling < 0:
            raise ConfigurationError(f"Rate ceiling must not be negative ({ceiling})")
        self.ceiling = ceiling
        self._clock = clock or now_ms
        self._sleep = sleep or sleep_ms
        self.window = RateWindow()

    def allow(self, call_count: int, window_end: int, now: int) -> Tuple[int, int]:
        """Sleep out the window if ``call_count`` already reached the ceiling.

        Resetting the counter and window is the caller's responsibility.
        """
        if call_count >= self.ceiling and now < window_end:
            wait = window_end - now
            logger.info(
                "Transactions per second limit reached; waiting",
                extra={"ceiling": self.ceiling, "wait_ms": wait},
            )
            self._sleep(wait)
        return call_count, window_end

    # -- page-level -------------------------------------------------------

    def open_window(self) -> None:
        self.window.reset(self._clock())

    def record_call(self) -> None:
        self.window.call_count += 1

    def has_room(self) -> bool:
        """True while the open window has both calls and time left."""
        return self.window.call_count < self.ceiling and not self.window.expired(self._clock())

    def pause_if_saturated(self) -> None:
        self.allow(self.window.call_count, self.window.window_end, self._clock())

    # -- call-level -------------------------------------------------------

    def acquire(self) -> None:
        """Account for one call, waiting for the next window when saturated."""
        if not self.window.window_end:
            self.open_window()
        if self.window.call_count >= self.ceiling:
            self.allow(self.window.call_count, self.window.window_end + 1, self._clock())
        now = self._clock()
        if self.window.call_count >= self.ceiling or self.window.expired(now):
            self.window.reset(now)
        self.window.call_count += 1
