"""Clock helpers shared by the rate-admission components."""

import time
from typing import Callable

# Returns the current time as integer epoch milliseconds
Clock = Callable[[], int]


def epoch_ms() -> int:
    """Current wall-clock time in epoch milliseconds.

    Wall time rather than a monotonic clock because cooldown timestamps are
    persisted and compared again after a restart.
    """
    return time.time_ns() // 1_000_000
