"""Poll-with-timeout helper replacing fixed readiness sleeps."""
from __future__ import annotations

import time
from collections.abc import Callable


def wait_until(
    predicate: Callable[[], bool],
    *,
    timeout: float,
    interval: float = 1.0,
    clock: Callable[[], float] = time.monotonic,
    sleep: Callable[[float], None] = time.sleep,
) -> bool:
    """Evaluate *predicate* until it returns ``True`` or *timeout* elapses.

    The predicate is always evaluated at least once. Returns the last
    observed value, so ``False`` means the deadline passed.
    """
    deadline = clock() + timeout
    while True:
        if predicate():
            return True
        remaining = deadline - clock()
        if remaining <= 0:
            return False
        sleep(min(interval, remaining))


__all__ = ["wait_until"]
