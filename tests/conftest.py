"""
Pytest configuration and fixtures for Patrolbot tests.
"""

import sys
from dataclasses import replace
from pathlib import Path

import pytest

# Add src directory to path so imports work
src_path = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_path))

from patrolbot.configuration.app_configuration import PatrolSettings, RuleToggles  # noqa: E402
from patrolbot.datatypes.slack_datatypes import SlackEvent  # noqa: E402

DEFAULT_CHANNEL = "C123"
START_MS = 1_746_057_600_000  # 2025-05-01T00:00:00Z


class FakeClock:
    """Manually advanced epoch-millisecond clock."""

    def __init__(self, start_ms: int = START_MS) -> None:
        self.now_ms = start_ms

    def __call__(self) -> int:
        return self.now_ms

    def advance(self, ms: int) -> None:
        self.now_ms += ms


class RecordingNotifier:
    def __init__(self, result: bool = True) -> None:
        self.calls: list[tuple[str, str, str]] = []
        self.result = result

    async def post_ephemeral_warning(self, channel: str, user: str, message_key: str) -> bool:
        self.calls.append((channel, user, message_key))
        return self.result


class RecordingAudit:
    def __init__(self) -> None:
        self.rows: list[dict] = []

    async def record_event(self, rule, user, channel, event_ts, text, extra=None) -> None:
        self.rows.append(
            {"rule": rule, "user": user, "channel": channel, "ts": event_ts, "text": text, "extra": dict(extra or {})}
        )


def make_settings(**overrides) -> PatrolSettings:
    rules = overrides.pop("rules", {})
    base = PatrolSettings(
        mode="include",
        channels=frozenset({DEFAULT_CHANNEL}),
        rules=RuleToggles(no_mention=True, non_thread_reply=True, flood=True),
        cooldown_sec_user=300,
        cooldown_sec_channel=60,
        flood_window_sec=60,
        flood_max_posts=5,
    )
    if rules:
        base = replace(base, rules=replace(base.rules, **rules))
    return replace(base, **overrides)


def make_event(**overrides) -> SlackEvent:
    fields = {"text": "hello", "user": "U123", "channel": DEFAULT_CHANNEL, "ts": "123.456"}
    fields.update(overrides)
    return SlackEvent(**fields)


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture()
def audit() -> RecordingAudit:
    return RecordingAudit()
