#!/usr/bin/env python
"""Script to re-send registration confirmations.

This script:
1. Finds completed orders whose confirmation email was never delivered
   (or takes a single order id)
2. Looks up the buyer identity by its stored reference, then by email
3. Reuses the identity's ticket credential, issuing one only if it has none
4. Re-sends the confirmation and stamps the order and identity on success

It never re-runs order completion, so it is safe to run at any time.

Usage:
    python scripts/retry_notifications.py
    python scripts/retry_notifications.py --limit 50
    python scripts/retry_notifications.py --order-id order_87dc80135ffa
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

# Add the project root to the path
sys.path.insert(0, str(Path(__file__).parent.parent))

from src.core.gateway import shutdown_gateway_client
from src.services.errors import OrderNotFoundError
from src.services.reconciliation_service import ReconciliationService

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Re-send registration confirmation emails.")
    parser.add_argument("--order-id", help="Re-send for this order only (even if already notified)")
    parser.add_argument("--limit", type=int, default=10, help="Maximum number of orders to process")
    return parser.parse_args(argv)


async def main(argv: list[str] | None = None) -> None:
    """Main entry point for the backfill script."""
    args = parse_args(argv)
    service = ReconciliationService()

    try:
        outcomes = await service.backfill_notifications(limit=args.limit, order_id=args.order_id)
    except OrderNotFoundError as e:
        logger.error(str(e))
        sys.exit(1)
    finally:
        await shutdown_gateway_client()

    sent = sum(1 for o in outcomes if o["status"] == "sent")
    skipped = sum(1 for o in outcomes if o["status"] == "skipped")
    failed = sum(1 for o in outcomes if o["status"] == "failed")

    logger.info("=" * 60)
    logger.info("Orders processed: %d", len(outcomes))
    logger.info("Emails sent: %d", sent)
    logger.info("Skipped: %d", skipped)
    logger.info("Failed: %d", failed)
    logger.info("=" * 60)

    if failed > 0:
        sys.exit(1)


if __name__ == "__main__":
    asyncio.run(main())
