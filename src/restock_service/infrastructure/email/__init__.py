"""Delivery gateways for restock notifications."""

from typing import Protocol

from restock_service.config import Settings
from restock_service.domain.models import NotificationMessage, SendOutcome
from restock_service.infrastructure.email.mock_sender import MockEmailSender
from restock_service.infrastructure.email.sendgrid_sender import SendGridEmailSender


class DeliveryGateway(Protocol):
    """Anything that can deliver one notification and report the outcome."""

    async def send(self, message: NotificationMessage) -> SendOutcome: ...

    async def close(self) -> None: ...


def build_delivery_gateway(settings: Settings) -> DeliveryGateway:
    """Gateway selected by the ``email_service`` setting."""
    if settings.email_service == "sendgrid":
        return SendGridEmailSender(
            api_key=settings.sendgrid_api_key,
            from_email=settings.email_from_address,
            from_name=settings.email_from_name,
            template_id=settings.sendgrid_template_id,
            api_url=settings.sendgrid_api_url,
            timeout=settings.email_timeout_seconds,
        )
    return MockEmailSender(storage_path=settings.email_mock_storage_path)


__all__ = [
    "DeliveryGateway",
    "MockEmailSender",
    "SendGridEmailSender",
    "build_delivery_gateway",
]
