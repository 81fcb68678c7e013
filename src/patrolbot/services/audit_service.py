"""
Best-effort audit trail for issued warnings.

Each admitted warning is posted as one JSON row to a webhook (typically a
spreadsheet Apps Script endpoint). An unset webhook URL turns the recorder
into a silent no-op.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import Any, Dict, Mapping, Protocol

import requests

from patrolbot.util.logger import get_logger

logger = get_logger("audit_service")

REQUEST_TIMEOUT_SECONDS = 5
MAX_TEXT_LENGTH = 500


class AuditRecorder(Protocol):
    async def record_event(
        self,
        rule: str,
        user: str,
        channel: str,
        event_ts: str,
        text: str,
        extra: Mapping[str, Any] | None = None,
    ) -> None:
        ...


def build_audit_row(
    rule: str,
    user: str,
    channel: str,
    event_ts: str,
    text: str,
    extra: Mapping[str, Any] | None = None,
) -> Dict[str, Any]:
    """Assemble the webhook payload; ``text`` is cut to 500 characters."""
    row: Dict[str, Any] = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "rule": rule,
        "user": user,
        "channel": channel,
        "ts": event_ts,
        "text": (text or "")[:MAX_TEXT_LENGTH],
    }
    row.update(extra or {})
    return row


class WebhookAuditRecorder:
    """Posts audit rows to ``webhook_url``; failures are logged, never raised."""

    def __init__(self, webhook_url: str | None) -> None:
        self._webhook_url = (webhook_url or "").strip() or None

    @property
    def enabled(self) -> bool:
        return self._webhook_url is not None

    async def record_event(
        self,
        rule: str,
        user: str,
        channel: str,
        event_ts: str,
        text: str,
        extra: Mapping[str, Any] | None = None,
    ) -> None:
        if self._webhook_url is None:
            logger.debug("[AUDIT] SHEETS_WEBHOOK_URL not set; skipping audit row for %s", rule)
            return

        row = build_audit_row(rule, user, channel, event_ts, text, extra)
        await asyncio.to_thread(self._post_row, row)

    def _post_row(self, row: Dict[str, Any]) -> None:
        try:
            response = requests.post(self._webhook_url, json=row, timeout=REQUEST_TIMEOUT_SECONDS)
            response.raise_for_status()
        except requests.RequestException as exc:
            logger.warning("[AUDIT] Failed to send audit row rule=%s: %s", row.get("rule"), exc)
            return
        logger.debug("[AUDIT] Sent audit row rule=%s user=%s channel=%s", row["rule"], row["user"], row["channel"])
