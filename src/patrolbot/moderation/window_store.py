"""
Sliding-window activity counter used by the flood rule.

Each key (usually ``(user, channel)``) owns a deque of epoch-millisecond
timestamps. Every write appends and then expires from the left, so a key
never retains more history than one window.
"""

from __future__ import annotations

import math
import threading
from collections import OrderedDict, deque
from typing import Any, Deque, Hashable

from patrolbot.util.logger import get_logger

logger = get_logger("window_store")

DEFAULT_WINDOW_SEC = 60
DEFAULT_WINDOW_MS = DEFAULT_WINDOW_SEC * 1000
DEFAULT_MAX_KEYS = 10_000


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


def ensure_window_ms(window_sec: Any) -> int:
    """Convert a configured window in seconds to milliseconds.

    Numeric strings are accepted. Anything non-numeric or below one second
    yields the 60 second default; fractional seconds are floored.
    """
    try:
        numeric = float(window_sec)
    except (TypeError, ValueError):
        return DEFAULT_WINDOW_MS
    if isinstance(window_sec, bool) or not math.isfinite(numeric) or numeric < 1:
        return DEFAULT_WINDOW_MS
    return math.floor(numeric) * 1000


def valid_window_ms(window_ms: Any) -> int:
    """Return ``window_ms`` if it is a usable positive duration, else the default."""
    if _is_number(window_ms) and window_ms > 0:
        return int(window_ms)
    return DEFAULT_WINDOW_MS


class WindowStore:
    """
    Thread-safe sliding-window counters with least-recently-touched eviction.

    Args:
        window_ms: Store-wide window. Invalid values fall back to 60 000 ms.
        max_keys: Ceiling on tracked keys; the least recently written key is
            evicted when a new key would exceed it.
    """

    def __init__(self, window_ms: Any = DEFAULT_WINDOW_MS, max_keys: int = DEFAULT_MAX_KEYS) -> None:
        self._window_ms = valid_window_ms(window_ms)
        self._max_keys = max(1, int(max_keys))
        self._windows: OrderedDict[Hashable, Deque[int]] = OrderedDict()
        self._lock = threading.Lock()

    @property
    def window_ms(self) -> int:
        return self._window_ms

    def record(self, key: Hashable, timestamp_ms: int, window_ms: Any = None) -> int:
        """
        Append ``timestamp_ms`` for ``key``, expire old entries and return the count.

        Args:
            key: Identity of the activity stream.
            timestamp_ms: Time of the activity in epoch milliseconds.
            window_ms: Per-call override of the store-wide window.

        Returns:
            int: Number of timestamps within ``[timestamp_ms - window, timestamp_ms]``.
        """
        window = self._window_ms if window_ms is None else valid_window_ms(window_ms)
        cutoff = timestamp_ms - window

        with self._lock:
            times = self._windows.get(key)
            if times is None:
                times = deque()
                self._windows[key] = times
                self._evict_locked()
            else:
                self._windows.move_to_end(key)

            times.append(timestamp_ms)
            while times and times[0] < cutoff:
                times.popleft()
            return len(times)

    def count(self, key: Hashable, now_ms: int, window_ms: Any = None) -> int:
        """Current count for ``key`` at ``now_ms``; expired entries are purged first."""
        window = self._window_ms if window_ms is None else valid_window_ms(window_ms)
        cutoff = now_ms - window

        with self._lock:
            times = self._windows.get(key)
            if times is None:
                return 0
            while times and times[0] < cutoff:
                times.popleft()
            if not times:
                del self._windows[key]
                return 0
            return len(times)

    def clear(self, key: Hashable) -> None:
        with self._lock:
            self._windows.pop(key, None)

    def __len__(self) -> int:
        return len(self._windows)

    def _evict_locked(self) -> None:
        while len(self._windows) > self._max_keys:
            evicted, _ = self._windows.popitem(last=False)
            logger.debug("[WINDOW STORE] Evicted activity window for %s", evicted)
