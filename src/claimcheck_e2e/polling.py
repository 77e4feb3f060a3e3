"""
Bounded polling for eventually-consistent conditions.
"""

import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Generic, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class PollResult(Generic[T]):
    """Outcome of poll_until. `value` is the first truthy predicate result."""

    succeeded: bool
    value: Optional[T]
    attempts: int
    elapsed: float

    @property
    def timed_out(self) -> bool:
        return not self.succeeded


def poll_until(
    predicate: Callable[[], Optional[T]],
    interval: float,
    timeout: float,
    *,
    description: str = "condition",
    sleep: Callable[[float], Any] = time.sleep,
    clock: Callable[[], float] = time.monotonic,
) -> PollResult[T]:
    """
    Calls *predicate* every *interval* seconds until it returns a truthy value
    or *timeout* seconds have elapsed.

    The predicate is always evaluated at least once. The final sleep is
    clipped so the loop never overruns the deadline by more than one
    predicate call. Exceptions raised by the predicate propagate.
    """
    if interval <= 0:
        raise ValueError("interval must be positive")
    if timeout < 0:
        raise ValueError("timeout must be non-negative")

    start = clock()
    deadline = start + timeout
    attempts = 0

    while True:
        attempts += 1
        value = predicate()
        now = clock()
        if value:
            logger.debug(
                "Poll succeeded",
                extra={"description": description, "attempts": attempts},
            )
            return PollResult(True, value, attempts, now - start)

        remaining = deadline - now
        if remaining <= 0:
            logger.debug(
                "Poll timed out",
                extra={"description": description, "attempts": attempts},
            )
            return PollResult(False, None, attempts, now - start)

        sleep(min(interval, remaining))
