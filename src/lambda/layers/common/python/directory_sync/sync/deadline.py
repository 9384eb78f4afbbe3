"""Remaining-time accounting for a single Lambda invocation."""

from __future__ import annotations

from typing import Any, Callable, Optional


ONE_MINUTE_MS = 60 * 1000


class DeadlineGovernor:
    """Decide whether another page/batch/API round fits in the invocation.

    Loops call :meth:`has_capacity` before each round; when it returns False
    they stop and hand back their continuation token. Running out of time is
    a normal return path, not an error.
    """

    def __init__(self, remaining_ms: Callable[[], float], *, reserve_ms: int = ONE_MINUTE_MS) -> None:
        self._remaining_ms = remaining_ms
        self.reserve_ms = reserve_ms

    @classmethod
    def from_context(cls, context: Any, *, reserve_ms: int = ONE_MINUTE_MS) -> "DeadlineGovernor":
        """Bind to a Lambda context; contexts without a timer never run out."""
        getter = getattr(context, "get_remaining_time_in_millis", None)
        if callable(getter):
            return cls(getter, reserve_ms=reserve_ms)
        return cls.unbounded(reserve_ms=reserve_ms)

    @classmethod
    def unbounded(cls, *, reserve_ms: int = ONE_MINUTE_MS) -> "DeadlineGovernor":
        return cls(lambda: float("inf"), reserve_ms=reserve_ms)

    def remaining(self) -> float:
        return self._remaining_ms()

    def has_capacity(self, reserve: Optional[int] = None) -> bool:
        threshold = self.reserve_ms if reserve is None else reserve
        return self.remaining() > threshold
