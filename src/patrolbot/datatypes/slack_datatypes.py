"""
Strict input record for Slack message events.

Slack delivers message events as loosely shaped JSON objects. Everything the
rule engine consumes is lifted into :class:`SlackEvent` so that optional
fields (thread reference, subtype, bot marker) are explicit.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping


@dataclass(frozen=True, slots=True)
class SlackEvent:
    """A single inbound chat message.

    Attributes:
        text: Message text; empty string when Slack omits it.
        user: Identity of the author.
        channel: Identity of the channel the message was posted to.
        ts: Slack message timestamp string (e.g. ``"1714521600.000100"``).
        thread_ts: Parent thread timestamp; present only for threaded replies.
        subtype: Slack message subtype (edits, joins, bot posts...).
        bot_id: Set when the message was posted by a bot integration.
    """

    text: str
    user: str
    channel: str
    ts: str
    thread_ts: str | None = None
    subtype: str | None = None
    bot_id: str | None = None

    @property
    def is_system_post(self) -> bool:
        """True for bot posts and any message carrying a subtype."""
        return bool(self.subtype or self.bot_id)

    @property
    def is_threaded_reply(self) -> bool:
        return bool(self.thread_ts)

    def snippet(self, limit: int = 120) -> str:
        """Shortened text for log lines."""
        if len(self.text) > limit:
            return f"{self.text[:limit - 3]}..."
        return self.text

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "SlackEvent":
        """
        Build an event from a raw Slack ``message`` event payload.

        Args:
            payload: Mapping as delivered by the Events API / Socket Mode.

        Returns:
            SlackEvent: The normalised record.

        Raises:
            ValueError: If the payload is not a mapping.
        """
        if not isinstance(payload, Mapping):
            raise ValueError(f"Cannot create SlackEvent from {type(payload).__name__}")

        def _optional(key: str) -> str | None:
            value = payload.get(key)
            return str(value) if value else None

        return cls(
            text=str(payload.get("text") or ""),
            user=str(payload.get("user") or ""),
            channel=str(payload.get("channel") or ""),
            ts=str(payload.get("ts") or ""),
            thread_ts=_optional("thread_ts"),
            subtype=_optional("subtype"),
            bot_id=_optional("bot_id"),
        )
