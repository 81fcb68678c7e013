"""Lexical checks on message text used by the moderation rules."""

import re

# <@U123ABC> or <@W123ABC>, optionally with a display label (<@U123|name>)
USER_MENTION_PATTERN = re.compile(r"<@([UW][A-Z0-9]+)(?:\|[^>]*)?>")

# "re:" at the start of the message, optionally after leading mentions
REPLY_MARKER_PATTERN = re.compile(
    r"^\s*(?:<@[UW][A-Z0-9]+(?:\|[^>]*)?>\s*)*re:",
    re.IGNORECASE,
)


def contains_user_mention(text: str | None) -> bool:
    """True when the text contains at least one Slack user mention token."""
    return bool(USER_MENTION_PATTERN.search(text or ""))


def looks_like_reply_text(text: str | None) -> bool:
    """True when the text opens with a ``re:`` reply marker.

    ``"re: ok"``, ``"  RE: test"`` and ``"<@U999> re: ok"`` match;
    ``"reference value"`` does not.
    """
    return bool(REPLY_MARKER_PATTERN.match(text or ""))
