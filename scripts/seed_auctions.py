"""Seed a handful of demo auctions into the configured store."""

import asyncio
from datetime import timedelta

from famwish.auctions.service import AuctionService
from famwish.config import get_server_config
from famwish.storage import build_storage
from famwish.transport.timestamps import format_timestamp, utc_now

DEMO_AUCTIONS = [
    {"title": "Signed cricket bat", "starting_bid": 5000, "category": "Sports"},
    {"title": "Film premiere tickets", "starting_bid": 2500, "category": "Experiences"},
    {"title": "Handwritten song lyrics", "starting_bid": 1000, "category": "Music"},
]


async def main() -> None:
    config = get_server_config()
    storage = build_storage(config)
    await storage.open()
    service = AuctionService(storage=storage, min_increment=config.bidding.min_increment)
    end_date = format_timestamp(utc_now() + timedelta(days=7))
    try:
        for item in DEMO_AUCTIONS:
            auction = await service.create_auction("seed-celebrity", {**item, "end_date": end_date})
            print(f"created {auction.auction_id} {auction.title}")
    finally:
        await storage.close()


if __name__ == "__main__":
    asyncio.run(main())
