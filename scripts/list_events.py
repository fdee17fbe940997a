#!/usr/bin/env python
"""Script to print the active event catalog.

Usage:
    python scripts/list_events.py
    python scripts/list_events.py --json
"""

import argparse
import asyncio
import json
import sys
from pathlib import Path

# Add the project root to the path
sys.path.insert(0, str(Path(__file__).parent.parent))

from src.services.catalog_service import CatalogService


async def main() -> None:
    parser = argparse.ArgumentParser(description="List active catalog events.")
    parser.add_argument("--json", action="store_true", help="Print raw rows as JSON")
    args = parser.parse_args()

    events = await CatalogService().list_events()
    if args.json:
        print(json.dumps(events, indent=2, default=str))
        return

    if not events:
        print("No active events.")
        return

    for event in events:
        print(f"{event.get('name'):<40} {event.get('price'):>8}  {event.get('category') or '-'}")
    print(f"\n{len(events)} active events")


if __name__ == "__main__":
    asyncio.run(main())
