"""Tests for the per-identity cooldown gate."""

import threading
from unittest.mock import MagicMock

from conftest import START_MS, FakeClock

from patrolbot.datatypes.rule_datatypes import CooldownEntry, CooldownKind
from patrolbot.moderation.cooldown_tracker import CooldownTracker


def test_first_admission_is_granted(clock):
    tracker = CooldownTracker(clock=clock)
    assert tracker.try_admit(CooldownKind.USER, "U1", 60_000) is True
    assert tracker.last_warned_at(CooldownKind.USER, "U1") == START_MS


def test_denied_inside_interval_and_granted_after(clock):
    tracker = CooldownTracker(clock=clock)
    assert tracker.try_admit(CooldownKind.USER, "U1", 60_000)

    clock.advance(59_999)
    assert tracker.try_admit(CooldownKind.USER, "U1", 60_000) is False
    # Denial does not move the stored timestamp
    assert tracker.last_warned_at(CooldownKind.USER, "U1") == START_MS

    clock.advance(1)
    assert tracker.try_admit(CooldownKind.USER, "U1", 60_000) is True
    assert tracker.last_warned_at(CooldownKind.USER, "U1") == START_MS + 60_000


def test_zero_interval_always_grants(clock):
    tracker = CooldownTracker(clock=clock)
    assert tracker.try_admit(CooldownKind.CHANNEL, "C1", 0)
    assert tracker.try_admit(CooldownKind.CHANNEL, "C1", 0)


def test_kinds_are_separate_maps(clock):
    tracker = CooldownTracker(clock=clock)
    assert tracker.try_admit(CooldownKind.USER, "X", 60_000)
    assert tracker.try_admit(CooldownKind.CHANNEL, "X", 60_000)


def test_pair_keeps_partial_grant(clock):
    tracker = CooldownTracker(clock=clock)
    tracker.try_admit(CooldownKind.CHANNEL, "C1", 60_000)
    clock.advance(1_000)

    ok_user, ok_channel = tracker.try_admit_pair("U1", "C1", 300_000, 60_000)

    assert (ok_user, ok_channel) == (True, False)
    # The user gate committed even though the combined decision is a denial
    assert tracker.last_warned_at(CooldownKind.USER, "U1") == START_MS + 1_000


def test_change_listener_called_only_on_grant(clock):
    listener = MagicMock()
    tracker = CooldownTracker(clock=clock, on_change=listener)

    tracker.try_admit(CooldownKind.USER, "U1", 60_000)
    tracker.try_admit(CooldownKind.USER, "U1", 60_000)

    listener.assert_called_once_with()


def test_snapshot_and_restore_roundtrip(clock):
    tracker = CooldownTracker(clock=clock)
    tracker.try_admit(CooldownKind.USER, "U1", 0)
    tracker.try_admit(CooldownKind.CHANNEL, "C1", 0)

    other = CooldownTracker(clock=clock)
    assert other.restore(tracker.snapshot()) == 2
    assert set(other.snapshot()) == set(tracker.snapshot())


def test_restored_entry_blocks_admission(clock):
    tracker = CooldownTracker(clock=clock)
    tracker.restore([CooldownEntry(CooldownKind.USER, "U1", START_MS - 10_000)])
    assert tracker.try_admit(CooldownKind.USER, "U1", 60_000) is False


def test_eviction_bounds_entries(clock):
    tracker = CooldownTracker(clock=clock, max_keys=2)
    for user in ("U1", "U2", "U3"):
        tracker.try_admit(CooldownKind.USER, user, 0)
    assert len(tracker) == 2
    assert tracker.last_warned_at(CooldownKind.USER, "U1") is None


def test_oversized_restore_keeps_most_recent_entries(clock):
    tracker = CooldownTracker(clock=clock, max_keys=2)
    loaded = tracker.restore(
        [
            CooldownEntry(CooldownKind.USER, "U_new", START_MS - 1_000),
            CooldownEntry(CooldownKind.USER, "U_old", START_MS - 90_000),
            CooldownEntry(CooldownKind.CHANNEL, "C_mid", START_MS - 5_000),
        ]
    )

    assert loaded == 3
    assert len(tracker) == 2
    assert tracker.last_warned_at(CooldownKind.USER, "U_old") is None
    assert tracker.last_warned_at(CooldownKind.USER, "U_new") == START_MS - 1_000
    assert tracker.last_warned_at(CooldownKind.CHANNEL, "C_mid") == START_MS - 5_000


def test_concurrent_callers_for_same_key_admit_once():
    tracker = CooldownTracker(clock=FakeClock())
    barrier = threading.Barrier(16)
    results: list[bool] = []
    results_lock = threading.Lock()

    def worker() -> None:
        barrier.wait()
        granted = tracker.try_admit(CooldownKind.USER, "U1", 60_000)
        with results_lock:
            results.append(granted)

    threads = [threading.Thread(target=worker) for _ in range(16)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert results.count(True) == 1
    assert results.count(False) == 15
