"""Ephemeral warning delivery through the Slack Web API."""

from __future__ import annotations

import asyncio
from typing import Mapping, Protocol

import requests

from patrolbot.util.logger import get_logger

logger = get_logger("notification_service")

SLACK_POST_EPHEMERAL_URL = "https://slack.com/api/chat.postEphemeral"
REQUEST_TIMEOUT_SECONDS = 5


class WarningNotifier(Protocol):
    async def post_ephemeral_warning(self, channel: str, user: str, message_key: str) -> bool:
        ...


def post_ephemeral(token: str, channel: str, user: str, text: str, url: str = SLACK_POST_EPHEMERAL_URL) -> bool:
    """
    Call ``chat.postEphemeral``. Blocks the calling thread.

    Returns:
        bool: True when Slack answered ``ok: true``. Transport and API
        errors are logged and reported as False.
    """
    try:
        response = requests.post(
            url,
            headers={"Authorization": f"Bearer {token}"},
            json={"channel": channel, "user": user, "text": text},
            timeout=REQUEST_TIMEOUT_SECONDS,
        )
        response.raise_for_status()
        body = response.json()
    except requests.RequestException as exc:
        logger.warning("[NOTIFY] chat.postEphemeral request failed channel=%s user=%s: %s", channel, user, exc)
        return False
    except ValueError as exc:
        logger.warning("[NOTIFY] chat.postEphemeral returned invalid JSON channel=%s: %s", channel, exc)
        return False

    if not body.get("ok"):
        logger.warning(
            "[NOTIFY] chat.postEphemeral rejected channel=%s user=%s error=%s",
            channel, user, body.get("error")
        )
        return False
    return True


class SlackNotifier:
    """
    Posts the configured warning text for a rule as an ephemeral message.

    Args:
        token: Bot token (``xoxb-...``).
        templates: Warning text keyed by rule name.
    """

    def __init__(self, token: str, templates: Mapping[str, str]) -> None:
        self._token = token
        self._templates = dict(templates)

    async def post_ephemeral_warning(self, channel: str, user: str, message_key: str) -> bool:
        text = self._templates.get(message_key)
        if not text:
            logger.error("[NOTIFY] No warning template for %s", message_key)
            return False
        # Run in a worker thread so the event loop keeps evaluating other events
        return await asyncio.to_thread(post_ephemeral, self._token, channel, user, text)
