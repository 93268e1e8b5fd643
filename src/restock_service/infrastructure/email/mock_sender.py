"""Mock delivery gateway for testing and development."""

from datetime import datetime, timezone
from pathlib import Path
from typing import Any
from uuid import uuid4

import orjson
import structlog

from restock_service.domain.models import NotificationMessage, SendOutcome

logger = structlog.get_logger()


class MockEmailSender:
    """
    Mock email gateway for testing and development.

    Records sent notifications in memory and, when a storage path is
    configured, as JSON files for inspection instead of actually sending
    them. ``fail_for`` lets tests make specific recipients fail.
    """

    def __init__(
        self,
        storage_path: str | None = None,
        fail_for: set[str] | None = None,
        failure_message: str = "Simulated provider rejection",
    ):
        """
        Initialize the mock email sender.

        Args:
            storage_path: Directory to store mock emails. Nothing is written
                         to disk when omitted.
            fail_for: Recipient addresses whose sends should fail
            failure_message: Error reported for failing recipients
        """
        self.storage_path = Path(storage_path) if storage_path else None
        if self.storage_path is not None:
            self.storage_path.mkdir(parents=True, exist_ok=True)
        self.fail_for = set(fail_for or ())
        self.failure_message = failure_message
        self.sent_emails: list[dict[str, Any]] = []
        self.attempted: list[str] = []

    async def send(self, message: NotificationMessage) -> SendOutcome:
        """
        Simulate sending a notification.

        Args:
            message: Recipient, subject and template data

        Returns:
            SendOutcome with a generated message_id on success
        """
        self.attempted.append(message.to)
        if message.to in self.fail_for:
            logger.info("Mock email rejected", to_email=message.to)
            return SendOutcome(success=False, error=self.failure_message)

        message_id = str(uuid4())
        timestamp = datetime.now(timezone.utc)

        email_record = {
            "message_id": message_id,
            "to_email": message.to,
            "subject": message.subject,
            "template_data": message.template_data,
            "sent_at": timestamp.isoformat(),
            "status": "sent",
        }
        self.sent_emails.append(email_record)

        stored_at = None
        if self.storage_path is not None:
            filename = f"{timestamp.strftime('%Y%m%d_%H%M%S')}_{message_id}.json"
            filepath = self.storage_path / filename
            filepath.write_bytes(orjson.dumps(email_record, option=orjson.OPT_INDENT_2))
            stored_at = str(filepath)

        logger.info(
            "Mock email sent",
            message_id=message_id,
            to_email=message.to,
            subject=message.subject,
            stored_at=stored_at,
        )
        return SendOutcome(success=True, message_id=message_id)

    async def close(self) -> None:
        """Nothing to release."""

    def get_sent_emails(
        self,
        limit: int = 50,
        to_email: str | None = None,
    ) -> list[dict[str, Any]]:
        """
        Retrieve recently sent mock emails.

        Args:
            limit: Maximum number of emails to return
            to_email: Optional filter by recipient

        Returns:
            list: List of sent email records
        """
        emails = self.sent_emails

        if to_email:
            emails = [e for e in emails if e["to_email"] == to_email]

        return emails[-limit:]

    def clear_stored_emails(self) -> int:
        """
        Clear all stored mock emails.

        Returns:
            int: Number of emails deleted
        """
        count = 0
        if self.storage_path is not None:
            for filepath in self.storage_path.glob("*.json"):
                filepath.unlink()
                count += 1

        self.sent_emails.clear()
        logger.info("Cleared mock emails", count=count)

        return count
