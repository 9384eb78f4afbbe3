"""Millisecond clock and sleep used by the rate, retry and batch loops."""

from __future__ import annotations

import time


def now_ms() -> int:
    return int(time.time() * 1000)


def sleep_ms(duration_ms: float) -> None:
    if duration_ms > 0:
        time.sleep(duration_ms / 1000.0)
