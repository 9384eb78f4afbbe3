"""Exponential backoff for retryable upstream failures."""

from __future__ import annotations

import random
from dataclasses import dataclass
from typing import Callable, Optional, TypeVar

from directory_sync.errors import error_code, is_retryable
from directory_sync.sync.deadline import DeadlineGovernor
from directory_sync.utils.clock import sleep_ms
from directory_sync.utils.logger import get_logger


logger = get_logger(__name__)

T = TypeVar("T")


def compute_delay(
    base: int,
    attempt: int,
    maximum: int,
    with_jitter: bool = False,
    rng: Optional[random.Random] = None,
) -> int:
    """Return ``min(maximum, base * 2**attempt)`` ms, or a uniform draw from [1, that] with jitter."""
    delay = min(maximum, base * 2**attempt)
    if not with_jitter:
        return delay
    if delay < 1:
        return 1
    return (rng or random).randint(1, delay)


@dataclass(frozen=True)
class RetryPolicy:
    base_ms: int = 100
    max_ms: int = 60 * 1000
    jitter: bool = False
    max_attempts: Optional[int] = None

    def delay(self, attempt: int, rng: Optional[random.Random] = None) -> int:
        return compute_delay(self.base_ms, attempt, self.max_ms, self.jitter, rng)

    def run(
        self,
        operation: Callable[[], T],
        *,
        governor: Optional[DeadlineGovernor] = None,
        retry_on: Callable[[BaseException], bool] = is_retryable,
        sleep: Callable[[float], None] = sleep_ms,
        description: str = "operation",
    ) -> T:
        """Call ``operation`` until it succeeds.

        A failure is retried only when ``retry_on`` accepts it, the attempt cap
        (if any) is not reached and the governor (if any) still has capacity;
        otherwise the original exception propagates unchanged. The attempt
        counter lives for the duration of this call only.
        """
        attempt = 1
        while True:
            try:
                return operation()
            except Exception as exc:
                if not retry_on(exc):
                    raise
                if self.max_attempts is not None and attempt >= self.max_attempts:
                    logger.error(
                        "Retry attempts exhausted",
                        extra={"operation": description, "attempts": attempt, "error_code": error_code(exc)},
                    )
                    raise
                if governor is not None and not governor.has_capacity():
                    logger.warning(
                        "Not enough time left to retry",
                        extra={"operation": description, "attempts": attempt, "error_code": error_code(exc)},
                    )
                    raise
                wait = self.delay(attempt)
                attempt += 1
                logger.warning(
                    "Retryable failure; backing off",
                    extra={
                        "operation": description,
                        "sleep_ms": wait,
                        "next_attempt": attempt,
                        "error_code": error_code(exc),
                        "error": str(exc),
                    },
                )
                sleep(wait)
