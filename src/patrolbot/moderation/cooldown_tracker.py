"""
Per-identity warning cooldowns.

Keeps the last admitted warning time for every (kind, identity) pair and
gates new warnings behind a minimum interval. The read-compare-write in
:meth:`CooldownTracker.try_admit` happens under one lock, so two callers for
the same key can never both be admitted inside the same interval.
"""

from __future__ import annotations

import threading
from collections import OrderedDict
from typing import Callable, Iterable, List, Tuple

from patrolbot.datatypes.rule_datatypes import CooldownEntry, CooldownKind
from patrolbot.util.logger import get_logger
from patrolbot.util.time_utils import Clock, epoch_ms

logger = get_logger("cooldown_tracker")

DEFAULT_MAX_KEYS = 10_000

CooldownKey = Tuple[CooldownKind, str]


class CooldownTracker:
    """
    Compare-and-set cooldown gate keyed by (kind, identity).

    Args:
        clock: Source of epoch milliseconds.
        max_keys: Ceiling on stored entries; least recently touched entries
            are evicted beyond it.
        on_change: Called after every committed mutation (used to schedule a
            persistence write). Must not block.
    """

    def __init__(
        self,
        clock: Clock = epoch_ms,
        max_keys: int = DEFAULT_MAX_KEYS,
        on_change: Callable[[], None] | None = None,
    ) -> None:
        self._clock = clock
        self._max_keys = max(1, int(max_keys))
        self._on_change = on_change
        self._last_warned: OrderedDict[CooldownKey, int] = OrderedDict()
        self._lock = threading.Lock()

    def set_change_listener(self, on_change: Callable[[], None] | None) -> None:
        self._on_change = on_change

    def try_admit(self, kind: CooldownKind, identity: str, min_interval_ms: int) -> bool:
        """
        Admit a warning for ``(kind, identity)`` unless it is still cooling down.

        Args:
            kind: User or channel map.
            identity: Opaque user or channel id.
            min_interval_ms: Required gap since the last admitted warning.

        Returns:
            bool: True when admitted (the stored time becomes now), False
            when denied (nothing is changed).
        """
        key = (kind, identity)
        with self._lock:
            now = self._clock()
            last = self._last_warned.get(key, 0)
            if now - last < min_interval_ms:
                return False
            self._last_warned[key] = now
            self._last_warned.move_to_end(key)
            self._evict_locked()

        if self._on_change is not None:
            self._on_change()
        return True

    def try_admit_pair(
        self,
        user: str,
        channel: str,
        user_interval_ms: int,
        channel_interval_ms: int,
    ) -> Tuple[bool, bool]:
        """
        Run the user gate and then the channel gate.

        Both gates always run. A gate that grants keeps its new timestamp even
        when the other gate denies, so a combined denial can still start a
        fresh cooldown on one side.

        Returns:
            Tuple[bool, bool]: ``(user_granted, channel_granted)``.
        """
        ok_user = self.try_admit(CooldownKind.USER, user, user_interval_ms)
        ok_channel = self.try_admit(CooldownKind.CHANNEL, channel, channel_interval_ms)
        return ok_user, ok_channel

    def last_warned_at(self, kind: CooldownKind, identity: str) -> int | None:
        with self._lock:
            return self._last_warned.get((kind, identity))

    def snapshot(self) -> List[CooldownEntry]:
        """Copy of every entry, for persistence."""
        with self._lock:
            return [
                CooldownEntry(kind=kind, identity=identity, last_warned_at=ts)
                for (kind, identity), ts in self._last_warned.items()
            ]

    def restore(self, entries: Iterable[CooldownEntry]) -> int:
        """Load persisted entries, replacing any in-memory value. Returns the count loaded.

        Entries are applied oldest first, so a restore larger than ``max_keys``
        keeps the most recent warnings.
        """
        loaded = 0
        with self._lock:
            for entry in sorted(entries, key=lambda e: e.last_warned_at):
                key = (entry.kind, entry.identity)
                self._last_warned[key] = entry.last_warned_at
                self._last_warned.move_to_end(key)
                loaded += 1
            self._evict_locked()
        return loaded

    def __len__(self) -> int:
        return len(self._last_warned)

    def _evict_locked(self) -> None:
        while len(self._last_warned) > self._max_keys:
            (kind, identity), _ = self._last_warned.popitem(last=False)
            logger.debug("[COOLDOWN TRACKER] Evicted %s cooldown for %s", kind, identity)
