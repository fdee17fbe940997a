#!/usr/bin/env python
"""Script to print the most recent orders.

Shows status, buyer, credential and notification state for quick operator
checks after a payment incident.

Usage:
    python scripts/check_latest_orders.py
    python scripts/check_latest_orders.py --limit 20
"""

import argparse
import asyncio
import sys
from pathlib import Path

# Add the project root to the path
sys.path.insert(0, str(Path(__file__).parent.parent))

from src.services.order_service import OrderLedger


def format_order(order: dict) -> str:
    buyer = order.get("buyer_profile") or {}
    items = ", ".join(item.get("name", "?") for item in order.get("line_items") or [])
    return "\n".join(
        [
            f"Order: {order.get('order_id')}",
            f"  Status: {order.get('status')}  Total: {order.get('total_amount')} {order.get('currency', 'INR')}",
            f"  Buyer: {buyer.get('name')} <{buyer.get('email')}>",
            f"  Items: {items or '-'}",
            f"  Credential issued: {bool(order.get('credential_issued'))}",
            f"  Email sent: {bool(order.get('notification_sent'))}",
            f"  Created: {order.get('created_at')}",
        ]
    )


async def main() -> None:
    parser = argparse.ArgumentParser(description="Show the most recent orders.")
    parser.add_argument("--limit", type=int, default=5, help="Number of orders to show")
    args = parser.parse_args()

    orders = await OrderLedger().find_recent(args.limit)
    if not orders:
        print("No orders found.")
        return

    print(f"Latest {len(orders)} orders:\n")
    for order in orders:
        print(format_order(order))
        print()


if __name__ == "__main__":
    asyncio.run(main())
