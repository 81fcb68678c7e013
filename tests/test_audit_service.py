"""Tests for the webhook audit recorder."""

from unittest.mock import Mock, patch

import pytest
import requests

from patrolbot.services.audit_service import WebhookAuditRecorder, build_audit_row


def test_build_audit_row_truncates_text_and_merges_extra():
    row = build_audit_row("flood", "U1", "C1", "123.456", "x" * 600, {"count": 4})

    assert row["rule"] == "flood"
    assert row["user"] == "U1"
    assert row["channel"] == "C1"
    assert row["ts"] == "123.456"
    assert len(row["text"]) == 500
    assert row["count"] == 4
    assert "timestamp" in row


def test_build_audit_row_handles_missing_text():
    assert build_audit_row("no_mention", "U1", "C1", "1", None)["text"] == ""


@pytest.mark.asyncio
@patch("patrolbot.services.audit_service.requests.post")
async def test_unset_webhook_is_silent_noop(mock_post):
    recorder = WebhookAuditRecorder(None)

    assert recorder.enabled is False
    await recorder.record_event("no_mention", "U1", "C1", "1", "text")
    mock_post.assert_not_called()


@pytest.mark.asyncio
@patch("patrolbot.services.audit_service.requests.post")
async def test_posts_row_to_webhook(mock_post):
    mock_post.return_value = Mock(raise_for_status=Mock())
    recorder = WebhookAuditRecorder("https://example.com/hook")

    await recorder.record_event("flood", "U1", "C1", "1.2", "spam", {"count": 3})

    mock_post.assert_called_once()
    args, kwargs = mock_post.call_args
    assert args == ("https://example.com/hook",)
    assert kwargs["timeout"] == 5
    assert kwargs["json"]["rule"] == "flood"
    assert kwargs["json"]["count"] == 3


@pytest.mark.asyncio
@patch("patrolbot.services.audit_service.requests.post")
async def test_webhook_failure_is_logged_not_raised(mock_post):
    mock_post.side_effect = requests.Timeout("slow")
    recorder = WebhookAuditRecorder("https://example.com/hook")

    await recorder.record_event("flood", "U1", "C1", "1.2", "spam")

    mock_post.assert_called_once()
