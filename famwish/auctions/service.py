"""Auction management: creation, lookup, search, edits and deletion."""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from typing import Any, Iterable

from ..ledger.errors import AuctionNotFound, Forbidden, InvalidAmount
from ..ledger.lifecycle import auction_state
from ..storage import AuctionStore
from ..storage.mutations import SetField
from ..transport.timestamps import TimestampError, format_timestamp, normalize_timestamp, utc_now
from .formatting import format_inr, parse_amount
from .models import Auction

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = ("title", "description", "category", "end_date", "title_image")
SEARCH_FIELDS = ("title", "description", "category")


@dataclass
class AuctionService:
    storage: AuctionStore
    min_increment: int

    async def create_auction(self, creator_id: str, payload: dict[str, Any]) -> Auction:
        starting_bid = parse_amount(payload.get("starting_bid"))
        if starting_bid is None or starting_bid <= 0:
            raise InvalidAmount("starting bid must be a positive whole number")
        try:
            end_date = normalize_timestamp(payload["end_date"])
        except TimestampError as exc:
            raise ValueError(f"end_date: {exc}") from exc
        auction = Auction(
            auction_id=f"auc_{uuid.uuid4().hex}",
            title=payload["title"],
            starting_bid=starting_bid,
            current_high_bid=starting_bid,
            bid_display=format_inr(starting_bid),
            bid_count=0,
            created_by=creator_id,
            created_at=format_timestamp(utc_now()),
            end_date=end_date,
            description=payload.get("description") or "",
            category=payload.get("category") or "Other",
            title_image=payload.get("title_image"),
        )
        await self.storage.create_auction(auction.to_document())
        logger.info("auction created auction=%s creator=%s", auction.auction_id, creator_id)
        return auction

    async def get_auction(self, auction_id: str) -> Auction:
        try:
            document = await self.storage.get_auction(auction_id)
        except KeyError as exc:
            raise AuctionNotFound(auction_id) from exc
        return Auction.from_document(document)

    async def list_auctions(
        self,
        *,
        search: str | None = None,
        created_by: str | None = None,
    ) -> list[Auction]:
        documents = await self.storage.list_auctions()
        auctions = [Auction.from_document(document) for document in documents]
        if created_by:
            auctions = [auction for auction in auctions if auction.created_by == created_by]
        if search:
            needle = search.casefold()
            auctions = [auction for auction in auctions if _matches(auction, needle)]
        return sorted(auctions, key=lambda auction: auction.created_at, reverse=True)

    async def update_auction(
        self,
        auction_id: str,
        editor_id: str,
        updates: dict[str, Any],
    ) -> Auction:
        auction = await self.get_auction(auction_id)
        self._assert_owner(auction, editor_id)
        changes = {key: value for key, value in updates.items() if key in EDITABLE_FIELDS}
        if "end_date" in changes:
            try:
                changes["end_date"] = normalize_timestamp(changes["end_date"])
            except TimestampError as exc:
                raise ValueError(f"end_date: {exc}") from exc
        if not changes:
            return auction
        try:
            document = await self.storage.conditional_update_auction(
                auction_id,
                (),
                tuple(SetField(key, value) for key, value in changes.items()),
            )
        except KeyError as exc:
            raise AuctionNotFound(auction_id) from exc
        logger.info("auction updated auction=%s fields=%s", auction_id, sorted(changes))
        return Auction.from_document(document)

    async def delete_auction(self, auction_id: str, editor_id: str) -> None:
        auction = await self.get_auction(auction_id)
        self._assert_owner(auction, editor_id)
        try:
            await self.storage.delete_auction(auction_id)
        except KeyError as exc:
            raise AuctionNotFound(auction_id) from exc
        logger.info("auction deleted auction=%s", auction_id)

    def min_next_bid(self, auction: Auction) -> int:
        return auction.current_high_bid + self.min_increment

    def summarize(self, auction: Auction) -> dict[str, Any]:
        """List view of an auction: everything except the bid history."""
        document = auction.to_document()
        document.pop("bid_history", None)
        document["status"] = auction_state(auction.end_date).value
        return document

    def describe(self, auction: Auction) -> dict[str, Any]:
        document = auction.to_document()
        document["status"] = auction_state(auction.end_date).value
        document["min_next_bid"] = self.min_next_bid(auction)
        return document

    def _assert_owner(self, auction: Auction, editor_id: str) -> None:
        if auction.created_by != editor_id:
            raise Forbidden("only the auction creator may change this auction")


def _matches(auction: Auction, needle: str) -> bool:
    haystacks: Iterable[str] = (getattr(auction, name) or "" for name in SEARCH_FIELDS)
    return any(needle in value.casefold() for value in haystacks)
