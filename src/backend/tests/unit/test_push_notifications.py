"""
Unit tests for push notification delivery.

Tests:
- Gateway payload shape
- Delivery failures are logged, never raised
- Disabled push drops notifications
"""

import logging
from unittest.mock import patch

import httpx
import pytest

from core.config import settings
from schemas.notification import PushNotification
from services.notification_service import (
    OPEN_TICKET_DETAIL_PAGE,
    NotificationDispatcher,
    NotificationService,
)


def _notification(recipient_id: str = "42") -> PushNotification:
    return PushNotification(
        recipient_id=recipient_id,
        token="device-token",
        title="New Issue Created",
        body="Delta Foods raised issue: 2025-001.",
        data=NotificationService.ticket_payload("issue-id", "2025-001"),
    )


def test_gateway_payload():
    payload = _notification().to_gateway_payload()

    assert payload == {
        "token": "device-token",
        "notification": {
            "title": "New Issue Created",
            "body": "Delta Foods raised issue: 2025-001.",
        },
        "data": {
            "action": OPEN_TICKET_DETAIL_PAGE,
            "issueId": "issue-id",
            "ticketNo": "2025-001",
        },
    }


@pytest.mark.asyncio
async def test_delivery_failure_is_logged_and_swallowed(push_sender, caplog):
    push_sender.side_effect = [httpx.ConnectError("gateway down"), None]

    with caplog.at_level(logging.ERROR, logger="lifecycle.notifications"):
        NotificationDispatcher.dispatch([_notification("1"), _notification("2")])
        await NotificationDispatcher.drain()

    assert push_sender.await_count == 2
    assert "Notification failed" in caplog.text
    assert "Recipient: 1" in caplog.text


@pytest.mark.asyncio
async def test_disabled_push_sends_nothing(push_sender):
    with patch.object(settings.push, "enabled", False):
        NotificationDispatcher.dispatch([_notification()])
        await NotificationDispatcher.drain()

    push_sender.assert_not_awaited()
