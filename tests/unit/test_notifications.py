"""
Tests for lifecycle notifications
"""

import pytest
from unittest.mock import AsyncMock, MagicMock, patch

import httpx

from orchestration.notifications import (
    Notification,
    NotificationType,
    Notifier,
    build_notification_content,
)
from schemas.workflow import NotificationConfig


def failed_sync():
    return Notification(
        type=NotificationType.SYNC_FAILED,
        connection_id="warehouse",
        workflow_id="sync-1",
        payload={
            "status": {
                "phase": "failed",
                "progress": {"processed_tables": 3, "total_tables": 5, "records_processed": 120},
                "metrics": {"tables_skipped": 1},
                "errors": [{"object": "table:public.orders", "message": "permission denied"}],
            },
        },
    )


def mock_http_client(response=None, error=None):
    client = MagicMock()
    client.post = AsyncMock(return_value=response, side_effect=error)
    client.__aenter__ = AsyncMock(return_value=client)
    client.__aexit__ = AsyncMock(return_value=False)
    return client


def test_content_summarizes_status_and_errors():
    content = build_notification_content(failed_sync())

    assert content["subject"] == "Data Sync Failed - Connection warehouse"
    assert "Tables: 3/5" in content["content"]
    assert "- table:public.orders: permission denied" in content["content"]
    assert content["payload"]["event"] == "sync_failed"
    assert content["payload"]["workflow_id"] == "sync-1"
    assert NotificationType.SYNC_FAILED.is_failure
    assert not NotificationType.SYNC_COMPLETED.is_failure


@pytest.mark.asyncio
async def test_webhook_receives_json_payload():
    response = MagicMock(status_code=200)
    client = mock_http_client(response=response)

    with patch("orchestration.notifications.httpx.AsyncClient", return_value=client):
        await Notifier().send(failed_sync(), NotificationConfig(webhook="https://hooks.example.com/etl"))

    url = client.post.await_args.args[0]
    payload = client.post.await_args.kwargs["json"]
    assert url == "https://hooks.example.com/etl"
    assert payload["event"] == "sync_failed"
    assert payload["status"]["phase"] == "failed"
    response.raise_for_status.assert_called_once()


@pytest.mark.asyncio
async def test_delivery_failure_never_raises():
    client = mock_http_client(error=httpx.ConnectError("connection refused"))

    with patch("orchestration.notifications.httpx.AsyncClient", return_value=client):
        await Notifier().send(failed_sync(), NotificationConfig(webhook="https://hooks.example.com/etl"))

    client.post.assert_awaited_once()


@pytest.mark.asyncio
async def test_email_sent_through_smtp():
    notifier = Notifier(smtp_host="mail.example.com", smtp_port=2525, sender="etl@example.com")

    with patch("orchestration.notifications.smtplib.SMTP") as mock_smtp:
        await notifier.send(failed_sync(), NotificationConfig(email=["ops@example.com", "data@example.com"]))

    mock_smtp.assert_called_once_with("mail.example.com", 2525, timeout=notifier.timeout)
    message = mock_smtp.return_value.__enter__.return_value.send_message.call_args.args[0]
    assert message["To"] == "ops@example.com, data@example.com"
    assert message["Subject"] == "Data Sync Failed - Connection warehouse"


@pytest.mark.asyncio
async def test_email_skipped_without_smtp_host():
    notifier = Notifier()
    notifier.smtp_host = None

    with patch("orchestration.notifications.smtplib.SMTP") as mock_smtp:
        await notifier.send(failed_sync(), NotificationConfig(email=["ops@example.com"]))

    mock_smtp.assert_not_called()


def test_webhook_must_be_http():
    with pytest.raises(ValueError):
        NotificationConfig(webhook="ftp://example.com/hook")
