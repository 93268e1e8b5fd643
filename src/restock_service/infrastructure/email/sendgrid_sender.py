"""SendGrid delivery gateway using dynamic templates."""

import httpx
import structlog

from restock_service.domain.models import NotificationMessage, SendOutcome

logger = structlog.get_logger()


class SendGridEmailSender:
    """Sends notifications through the SendGrid v3 mail/send endpoint."""

    def __init__(
        self,
        api_key: str,
        from_email: str,
        from_name: str,
        template_id: str = "",
        api_url: str = "https://api.sendgrid.com/v3/mail/send",
        timeout: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ):
        self.api_key = api_key
        self.from_email = from_email
        self.from_name = from_name
        self.template_id = template_id
        self.api_url = api_url
        self.client = client or httpx.AsyncClient(timeout=timeout)

    def _payload(self, message: NotificationMessage) -> dict:
        personalization: dict = {"to": [{"email": message.to}]}
        payload: dict = {
            "from": {"email": self.from_email, "name": self.from_name},
            "personalizations": [personalization],
        }
        if self.template_id:
            personalization["dynamic_template_data"] = message.template_data
            payload["template_id"] = self.template_id
        else:
            payload["subject"] = message.subject
            payload["content"] = [
                {"type": "text/plain", "value": _plain_text(message)},
            ]
        return payload

    async def send(self, message: NotificationMessage) -> SendOutcome:
        try:
            response = await self.client.post(
                self.api_url,
                json=self._payload(message),
                headers={"Authorization": f"Bearer {self.api_key}"},
            )
        except httpx.HTTPError as e:
            logger.warning("SendGrid request failed", to_email=message.to, error=str(e))
            return SendOutcome(success=False, error=f"SendGrid request failed: {e}")

        if response.status_code >= 400:
            logger.warning(
                "SendGrid rejected message",
                to_email=message.to,
                status=response.status_code,
            )
            return SendOutcome(
                success=False,
                error=f"SendGrid rejected message ({response.status_code}): {response.text}",
            )

        message_id = response.headers.get("X-Message-Id")
        logger.info("SendGrid accepted message", to_email=message.to, message_id=message_id)
        return SendOutcome(success=True, message_id=message_id)

    async def close(self) -> None:
        await self.client.aclose()


def _plain_text(message: NotificationMessage) -> str:
    data = message.template_data
    return (
        f"Hi {data.get('to_name', '')},\n\n"
        f"{data.get('product_name', 'A product you asked about')} is back in stock "
        f"at {data.get('product_price', '')}.\n"
        f"{data.get('product_url', '')}\n\n"
        f"Unsubscribe: {data.get('unsubscribe_url', '')}\n"
    )
