"""Builds back-in-stock notification messages from cached product details."""

from datetime import datetime, timezone

from restock_service.domain.models import NotificationMessage, ProductDetails, Subscription
from restock_service.errors import MalformedSubscriptionError
from shared.constants import BACK_IN_STOCK_SUBJECT, PLACEHOLDER_PRODUCT_IMAGE


class MessageBuilder:
    """Turns a subscription plus product details into gateway template data."""

    def __init__(self, storefront_base_url: str, company_name: str):
        self.storefront_base_url = storefront_base_url.rstrip("/")
        self.company_name = company_name

    def build(self, subscription: Subscription, product: ProductDetails) -> NotificationMessage:
        email = subscription.email.strip()
        local_part, _, domain = email.partition("@")
        if not local_part or not domain:
            raise MalformedSubscriptionError(
                f"Subscription {subscription.id} has an invalid contact address: {email!r}"
            )

        now = datetime.now(timezone.utc)
        template_data = {
            "email": email,
            "to_name": local_part,
            "product_name": product.name,
            "product_image": product.image_url or PLACEHOLDER_PRODUCT_IMAGE,
            "product_price": product.price,
            "product_url": f"{self.storefront_base_url}/product/{product.id}",
            "company_name": self.company_name,
            "unsubscribe_url": f"{self.storefront_base_url}/unsubscribe?token={subscription.id}",
            "current_year": now.year,
            "notification_date": now.strftime("%B %d, %Y"),
        }
        return NotificationMessage(
            to=email,
            subject=BACK_IN_STOCK_SUBJECT.format(product_name=product.name),
            template_data=template_data,
        )
