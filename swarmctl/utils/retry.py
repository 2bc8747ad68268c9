"""Bounded retry with optional backoff.

Shared by readiness polling, the manager port check and connectivity probes.
"""

import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Generic, Optional, TypeVar

logger = logging.getLogger("swarm.retry")

T = TypeVar("T")


@dataclass
class RetryOutcome(Generic[T]):
    """Result of a retried operation."""
    value: Optional[T]
    attempts: int
    succeeded: bool


@dataclass(frozen=True)
class RetryPolicy:
    """Fixed attempt budget with a delay that can grow between attempts.

    Args:
        attempts: Maximum number of attempts (>= 1)
        delay: Seconds to wait before the second attempt
        backoff: Multiplier applied to the delay after every attempt
        max_delay: Upper bound for the delay, if any
    """
    attempts: int = 3
    delay: float = 1.0
    backoff: float = 1.0
    max_delay: Optional[float] = None

    def delays(self):
        """Yield the wait before each attempt after the first."""
        current = self.delay
        for _ in range(self.attempts - 1):
            yield current
            current = current * self.backoff
            if self.max_delay is not None:
                current = min(current, self.max_delay)

    def run(
        self,
        operation: Callable[[int], T],
        until: Callable[[T], Any] = bool,
        on_attempt: Optional[Callable[[int, T], None]] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> RetryOutcome[T]:
        """Call ``operation(attempt)`` until ``until(value)`` is truthy.

        Stops early on success and never sleeps after the final attempt.
        Exceptions raised by ``operation`` propagate to the caller.
        """
        if self.attempts < 1:
            raise ValueError("attempts must be at least 1")

        delays = self.delays()
        value = None
        for attempt in range(1, self.attempts + 1):
            value = operation(attempt)
            if until(value):
                return RetryOutcome(value=value, attempts=attempt, succeeded=True)
            if on_attempt:
                on_attempt(attempt, value)
            if attempt < self.attempts:
                wait = next(delays)
                logger.debug("Attempt %d/%d not satisfied, retrying in %.1fs", attempt, self.attempts, wait)
                sleep(wait)
        return RetryOutcome(value=value, attempts=self.attempts, succeeded=False)
