#!/usr/bin/env python
"""Script to seed the event catalog.

This script upserts every event below into the events table, keyed on name,
so it can be re-run after price changes without creating duplicates.

Usage:
    python scripts/seed_events.py

Requirements:
    - SUPABASE_URL and SUPABASE_SECRET_KEY environment variables must be set
    - events.name must carry a unique constraint
"""

import asyncio
import logging
import sys
from pathlib import Path

# Add the project root to the path
sys.path.insert(0, str(Path(__file__).parent.parent))

from postgrest.exceptions import APIError

from src.core.supabase import get_supabase_client

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

DEFAULT_CATEGORY = "Sports"

# Variants are separate catalog rows named "<Event> (<Category>)"
EVENTS_DATA: list[dict] = [
    # Flagship
    {"name": "Leather Cricket (Boys)", "price": 400},
    {"name": "Leather Cricket (Girls)", "price": 0},
    {"name": "Football (7v7 / 5v5) (Boys)", "price": 250},
    {"name": "Football (7v7 / 5v5) (Girls)", "price": 0},
    # Core sports
    {"name": "Basketball (Boys)", "price": 250},
    {"name": "Basketball (Girls)", "price": 0},
    {"name": "Volleyball (Boys)", "price": 250},
    {"name": "Volleyball (Girls)", "price": 0},
    # Racquet sports
    {"name": "Badminton (Singles) (Boys)", "price": 250},
    {"name": "Badminton (Singles) (Girls)", "price": 0},
    {"name": "Badminton (Doubles) (Boys)", "price": 500},
    {"name": "Badminton (Doubles) (Girls)", "price": 0},
    {"name": "Badminton (Mixed)", "price": 250},
    # Fun events
    {"name": "Box Cricket", "price": 1100},
    {"name": "Kabaddi", "price": 1100},
    {"name": "E-Sports", "price": 500},
    # Strategy
    {"name": "Chess (Boys)", "price": 150},
    {"name": "Chess (Girls)", "price": 0},
    # Fallback for carts without a specific event
    {"name": "General Registration", "price": 100},
]


async def seed_events() -> dict[str, int]:
    """Upsert all events.

    Returns:
        dict: Counts of synced and failed events.
    """
    client = get_supabase_client()
    synced = 0
    failed = 0

    for event in EVENTS_DATA:
        row = {"category": DEFAULT_CATEGORY, "active": True, **event}
        try:
            client.table("events").upsert(row, on_conflict="name").execute()
            logger.info("Synced: %s (INR %s)", event["name"], event["price"])
            synced += 1
        except APIError as e:
            logger.error("Failed to sync %s: %s", event["name"], e.message)
            failed += 1

    return {"synced": synced, "failed": failed}


async def main() -> None:
    """Main entry point for the seed script."""
    logger.info("Seeding %d events...", len(EVENTS_DATA))

    results = await seed_events()

    logger.info("=" * 60)
    logger.info("Events synced: %d", results["synced"])
    logger.info("Failed: %d", results["failed"])
    logger.info("=" * 60)

    if results["failed"] > 0:
        sys.exit(1)


if __name__ == "__main__":
    asyncio.run(main())
