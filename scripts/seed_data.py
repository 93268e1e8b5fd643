#!/usr/bin/env python3
"""
Seed database with out-of-stock products and waiting subscribers.

Usage:
    python scripts/seed_data.py
"""

import asyncio
import sys
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from restock_service.infrastructure.database.connection import (
    dispose_engine,
    get_db_session,
)
from restock_service.infrastructure.database.models import Product, StockSubscription


def sample_products() -> list[Product]:
    """Sample catalogue; every item starts out of stock."""
    products = [
        ("Wireless Noise-Canceling Headphones", 299.99, "https://example.com/headphones.jpg"),
        ("Mechanical Gaming Keyboard", 149.99, "https://example.com/keyboard.jpg"),
        ("Ergonomic Office Chair", 399.99, "https://example.com/chair.jpg"),
        ("4K Ultra HD Monitor", 449.99, "https://example.com/monitor.jpg"),
        ("Standing Desk Converter", 199.99, None),
    ]
    return [
        Product(
            name=name,
            price=price,
            images=[image] if image else [],
            stock_quantity=0,
        )
        for name, price, image in products
    ]


def sample_subscribers() -> list[tuple[str, str]]:
    return [
        ("user-001", "alice@example.com"),
        ("user-002", "bob@example.com"),
        ("user-003", "charlie@example.com"),
    ]


async def main():
    """Run seeding."""
    print("Seeding database with test data...")
    print("=" * 50)

    products = sample_products()
    subscriptions = []
    # Alice waits on everything, Bob on the furniture, Charlie on the headphones
    interests = {
        "user-001": range(len(products)),
        "user-002": [2, 4],
        "user-003": [0],
    }
    for subscriber_id, email in sample_subscribers():
        for index in interests[subscriber_id]:
            subscriptions.append((subscriber_id, email, index))

    async with get_db_session() as session:
        session.add_all(products)
        await session.flush()
        session.add_all(
            StockSubscription(
                product_id=products[index].id,
                subscriber_id=subscriber_id,
                email=email,
            )
            for subscriber_id, email, index in subscriptions
        )

    await dispose_engine()

    print(f"Created {len(products)} out-of-stock products")
    print(f"Created {len(subscriptions)} stock subscriptions")
    print("=" * 50)
    print("Seeding complete!")
    print("")
    print("Restock a product with:")
    print(f"  PUT /api/v1/products/{products[0].id}/stock {{\"stock_quantity\": 10}}")


if __name__ == "__main__":
    asyncio.run(main())
