"""
Rule, cooldown and outcome data structures.

This module defines the enums and dataclasses passed between the rule engine,
the cooldown tracker, the persistence layer and the service boundary.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List

from patrolbot.datatypes.slack_datatypes import SlackEvent


class RuleName(Enum):
    """Moderation rules in evaluation order. Values double as message keys."""

    NO_MENTION = "no_mention"
    NON_THREAD_REPLY = "non_thread_reply"
    FLOOD = "flood"

    def __str__(self) -> str:
        return self.value


class CooldownKind(Enum):
    """Which cooldown map an identity belongs to."""

    USER = "user"
    CHANNEL = "channel"

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True, slots=True)
class CooldownEntry:
    """Last time a warning was admitted for one (kind, identity)."""

    kind: CooldownKind
    identity: str
    last_warned_at: int


@dataclass(slots=True)
class RuleDecision:
    """Result of evaluating one rule against one event.

    Attributes:
        rule: The rule evaluated.
        matched: The rule's condition held for the event.
        admitted: Both the user and the channel cooldown gates granted.
        user_gate: Per-user gate result (None when the rule did not match).
        channel_gate: Per-channel gate result (None when the rule did not match).
        audit_extra: Extra fields for the audit record (e.g. flood ``count``).
    """

    rule: RuleName
    matched: bool
    admitted: bool = False
    user_gate: bool | None = None
    channel_gate: bool | None = None
    audit_extra: Dict[str, Any] = field(default_factory=dict)

    @property
    def message_key(self) -> str:
        return self.rule.value


class SkipReason(Enum):
    """Why an event was not evaluated at all."""

    SYSTEM_POST = "system_post"
    THREADED_REPLY = "threaded_reply"
    UNMONITORED_CHANNEL = "unmonitored_channel"

    def __str__(self) -> str:
        return self.value


@dataclass(slots=True)
class EvaluationResult:
    """Everything the engine decided for one event. No I/O has happened yet."""

    event: SlackEvent
    decisions: List[RuleDecision] = field(default_factory=list)
    skipped: SkipReason | None = None

    @property
    def warnings(self) -> List[RuleDecision]:
        """Decisions that must produce a warning, in evaluation order."""
        return [d for d in self.decisions if d.admitted]


class OutcomeStatus(Enum):
    HANDLED = "handled"
    SKIPPED = "skipped"
    FAILED = "failed"

    def __str__(self) -> str:
        return self.value


@dataclass(slots=True)
class EventOutcome:
    """Per-event result returned to the caller of the patrol service.

    Attributes:
        status: handled / skipped / failed.
        skip_reason: Set when status is SKIPPED.
        decisions: Every rule decision reached for the event.
        delivered: Rules whose warning the notifier accepted.
        error: Error text when status is FAILED.
    """

    status: OutcomeStatus
    skip_reason: SkipReason | None = None
    decisions: List[RuleDecision] = field(default_factory=list)
    delivered: List[RuleName] = field(default_factory=list)
    error: str | None = None
