"""Seed the listing database with the demo gigs."""

import argparse
import asyncio

from gigdiscovery.config import settings
from gigdiscovery.db.repository import ListingRepository
from gigdiscovery.logging_config import setup_logging
from gigdiscovery.services.discovery.fallback import DemoFallbackProvider

logger = setup_logging("seed_listings")


async def seed(db_path: str) -> int:
    """Create the schema if needed and store the demo listings."""
    repository = await ListingRepository(db_path).ainit()
    written = await repository.insert_listings(DemoFallbackProvider().demo_listings())
    logger.info("Seeded listings", extra={"db_path": db_path, "listing_count": written})
    return written


def main() -> None:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--db-path", default=settings.db_path, help="SQLite database file")
    args = parser.parse_args()
    asyncio.run(seed(args.db_path))


if __name__ == "__main__":
    main()
