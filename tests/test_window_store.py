"""Tests for the sliding-window flood counters."""

import math

import pytest

from patrolbot.moderation.window_store import (
    DEFAULT_WINDOW_MS,
    WindowStore,
    ensure_window_ms,
    valid_window_ms,
)


class TestEnsureWindowMs:
    def test_converts_seconds(self):
        assert ensure_window_ms(30) == 30_000

    def test_accepts_numeric_string(self):
        assert ensure_window_ms("45") == 45_000

    def test_floors_fractional_seconds(self):
        assert ensure_window_ms(2.9) == 2_000

    @pytest.mark.parametrize("value", [0, 0.5, -10, None, "abc", math.nan, math.inf, True])
    def test_invalid_values_fall_back_to_default(self, value):
        assert ensure_window_ms(value) == DEFAULT_WINDOW_MS


class TestWindowStore:
    def test_invalid_store_window_falls_back(self):
        assert WindowStore(window_ms=-5).window_ms == DEFAULT_WINDOW_MS
        assert valid_window_ms("soon") == DEFAULT_WINDOW_MS

    def test_count_grows_within_window(self):
        store = WindowStore(window_ms=60_000)
        key = ("U1", "C1")
        assert store.record(key, 1_000) == 1
        assert store.record(key, 2_000) == 2
        assert store.record(key, 3_000) == 3

    def test_entries_older_than_window_are_dropped_on_write(self):
        store = WindowStore(window_ms=10_000)
        key = ("U1", "C1")
        store.record(key, 0)
        store.record(key, 5_000)
        # 0 is strictly older than 20_000 - 10_000; 5_000 too
        assert store.record(key, 20_000) == 1

    def test_entry_exactly_at_cutoff_is_retained(self):
        store = WindowStore(window_ms=10_000)
        key = ("U1", "C1")
        store.record(key, 10_000)
        assert store.record(key, 20_000) == 2

    def test_per_call_window_override(self):
        store = WindowStore(window_ms=60_000)
        key = ("U1", "C1")
        store.record(key, 0)
        assert store.record(key, 2_000, window_ms=1_000) == 1

    def test_keys_are_independent(self):
        store = WindowStore()
        store.record(("U1", "C1"), 1)
        store.record(("U1", "C1"), 2)
        assert store.record(("U1", "C2"), 3) == 1
        assert store.record(("U2", "C1"), 4) == 1

    def test_threshold_reached_on_tth_event(self):
        store = WindowStore(window_ms=60_000)
        key = ("U777", "C1")
        threshold = 3
        counts = [store.record(key, t) for t in (0, 4_000, 9_000)]
        assert counts[threshold - 2] < threshold
        assert counts[threshold - 1] >= threshold

    def test_count_purges_and_forgets_empty_windows(self):
        store = WindowStore(window_ms=1_000)
        store.record(("U1", "C1"), 0)
        assert store.count(("U1", "C1"), 500) == 1
        assert store.count(("U1", "C1"), 5_000) == 0
        assert len(store) == 0

    def test_least_recently_touched_key_is_evicted(self):
        store = WindowStore(max_keys=2)
        store.record("a", 1)
        store.record("b", 2)
        store.record("a", 3)
        store.record("c", 4)
        assert len(store) == 2
        assert store.count("b", 4) == 0
        assert store.count("a", 4) == 2

    def test_clear(self):
        store = WindowStore()
        store.record("a", 1)
        store.clear("a")
        assert store.count("a", 1) == 0
