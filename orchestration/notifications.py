"""
Lifecycle notifications delivered by email and webhook.

Notifications are non-critical: delivery failures are logged and never
propagate into the workflow outcome.
"""

import asyncio
import enum
import logging
import smtplib
from datetime import datetime
from email.message import EmailMessage
from typing import Any, Dict, List, Optional

import httpx
from pydantic import BaseModel, Field

from core.config import settings
from schemas.workflow import NotificationConfig

logger = logging.getLogger(__name__)


class NotificationType(str, enum.Enum):
    SYNC_COMPLETED = "sync_completed"
    SYNC_FAILED = "sync_failed"
    DISCOVERY_COMPLETED = "discovery_completed"
    DISCOVERY_FAILED = "discovery_failed"
    QUALITY_CHECK_COMPLETED = "quality_check_completed"
    QUALITY_CHECK_FAILED = "quality_check_failed"

    @property
    def is_failure(self) -> bool:
        return self.value.endswith("_failed")


SUBJECTS = {
    NotificationType.SYNC_COMPLETED: "Data Sync Completed",
    NotificationType.SYNC_FAILED: "Data Sync Failed",
    NotificationType.DISCOVERY_COMPLETED: "Schema Discovery Completed",
    NotificationType.DISCOVERY_FAILED: "Schema Discovery Failed",
    NotificationType.QUALITY_CHECK_COMPLETED: "Data Quality Check Completed",
    NotificationType.QUALITY_CHECK_FAILED: "Data Quality Check Failed",
}


class Notification(BaseModel):
    type: NotificationType
    connection_id: str
    workflow_id: Optional[str] = None
    payload: Dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=datetime.utcnow)


def build_notification_content(notification: Notification) -> Dict[str, Any]:
    """Subject, plain-text body and webhook payload of a notification."""
    subject = f"{SUBJECTS[notification.type]} - Connection {notification.connection_id}"

    lines = [subject, ""]
    if notification.workflow_id:
        lines.append(f"Workflow: {notification.workflow_id}")
    status = notification.payload.get("status") or {}
    progress = status.get("progress") or {}
    metrics = status.get("metrics") or {}
    if status:
        lines.append(f"Phase: {status.get('phase')}")
        lines.append(f"Tables: {progress.get('processed_tables', 0)}/{progress.get('total_tables', 0)}")
        lines.append(f"Records processed: {progress.get('records_processed', 0)}")
        lines.append(f"Tables skipped: {metrics.get('tables_skipped', 0)}")
    report = notification.payload.get("report")
    if report:
        lines.append(f"Overall score: {report.get('overall_score')}")
        lines.append(f"Critical issues: {report.get('critical_issues', 0)}, warnings: {report.get('warnings', 0)}")
    errors: List[Dict[str, Any]] = status.get("errors") or []
    if errors:
        lines.append("")
        lines.append(f"Errors ({len(errors)}):")
        for entry in errors[:20]:
            lines.append(f"- {entry.get('object') or 'workflow'}: {entry.get('message')}")

    payload = {
        "event": notification.type.value,
        "connection_id": notification.connection_id,
        "workflow_id": notification.workflow_id,
        "timestamp": notification.timestamp.isoformat(),
        **notification.payload,
    }
    return {"subject": subject, "content": "\n".join(lines), "payload": payload}


class Notifier:
    """Sends notifications to the sinks named in a NotificationConfig"""

    def __init__(
        self,
        smtp_host: Optional[str] = None,
        smtp_port: Optional[int] = None,
        sender: Optional[str] = None,
        timeout: Optional[float] = None,
    ):
        self.smtp_host = smtp_host or settings.SMTP_HOST
        self.smtp_port = smtp_port or settings.SMTP_PORT
        self.sender = sender or settings.SMTP_SENDER
        self.timeout = timeout or settings.NOTIFICATION_TIMEOUT_SECONDS

    async def send(self, notification: Notification, config: NotificationConfig) -> None:
        """Deliver to every configured sink. Never raises."""
        logger.info(
            f"Sending {notification.type.value} notification for {notification.connection_id} "
            f"(email recipients: {len(config.email)}, webhook: {bool(config.webhook)})"
        )
        try:
            content = build_notification_content(notification)

            if config.email:
                await self.send_email(config.email, content["subject"], content["content"])

            if config.webhook:
                await self.send_webhook(config.webhook, content["payload"])

        except Exception as e:
            logger.error(
                f"Failed to send {notification.type.value} notification for "
                f"{notification.connection_id}: {e}"
            )

    async def send_webhook(self, url: str, payload: Dict[str, Any]) -> None:
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            response = await client.post(
                url,
                json=payload,
                headers={"User-Agent": "ETL-Orchestrator-Webhook/1.0"},
            )
            response.raise_for_status()
        logger.info(f"Webhook notification delivered to {url} ({response.status_code})")

    async def send_email(self, recipients: List[str], subject: str, content: str) -> None:
        if not self.smtp_host:
            logger.info(f"SMTP not configured; email '{subject}' to {len(recipients)} recipient(s) not sent")
            return

        message = EmailMessage()
        message["From"] = self.sender
        message["To"] = ", ".join(recipients)
        message["Subject"] = subject
        message.set_content(content)

        def _deliver():
            with smtplib.SMTP(self.smtp_host, self.smtp_port, timeout=self.timeout) as smtp:
                smtp.send_message(message)

        await asyncio.to_thread(_deliver)
        logger.info(f"Email notification '{subject}' sent to {len(recipients)} recipient(s)")
