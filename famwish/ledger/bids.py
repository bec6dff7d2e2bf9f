"""Bid ledger: validate a bid and atomically append it to an auction."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable

from ..auctions.formatting import MAX_AMOUNT, format_inr, parse_amount
from ..auctions.models import Auction, Bid
from ..config import BiddingConfig
from ..storage import AuctionStore, PreconditionFailed
from ..storage.mutations import FieldEquals, IncrementField, PrependToSequence, SetField
from ..transport.timestamps import format_timestamp, utc_now
from .errors import AuctionClosed, AuctionNotFound, BidConflict, BidTooLow, InvalidAmount
from .lifecycle import AuctionState, auction_state

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BidReceipt:
    bid: Bid
    current_high_bid: int
    bid_count: int
    bid_display: str
    auction: Auction
    attempts: int

    def to_response(self) -> dict[str, Any]:
        return {
            "new_bid": self.bid.to_document(),
            "current_high_bid": self.current_high_bid,
            "bid_count": self.bid_count,
            "bid_display": self.bid_display,
            "top_bidder_id": self.auction.top_bidder_id,
            "attempts": self.attempts,
        }


@dataclass
class BidLedger:
    """Sole writer of an auction's bid history and derived bid fields.

    Each attempt reads the auction, validates the amount against the
    current high bid and issues one conditional update guarded by the
    values it read. When another bidder wins the race the update is
    rejected without effect; the ledger then re-reads and re-validates,
    up to ``config.attempts`` rounds, before surfacing ``BidConflict``.
    """

    storage: AuctionStore
    config: BiddingConfig
    clock: Callable[[], datetime] = utc_now

    def min_required_bid(self, auction: Auction) -> int:
        return auction.current_high_bid + self.config.min_increment

    async def place_bid(
        self,
        auction_id: str,
        bidder_id: str,
        bidder_name: str,
        amount: Any,
    ) -> BidReceipt:
        numeric_amount = parse_amount(amount)
        if numeric_amount is None or numeric_amount <= 0:
            raise InvalidAmount(
                f"bid amount must be a whole number between 1 and {MAX_AMOUNT}"
            )

        attempts = self.config.attempts
        for attempt in range(1, attempts + 1):
            auction = await self._load(auction_id)
            self._assert_open(auction)
            min_required = self.min_required_bid(auction)
            if numeric_amount < min_required:
                logger.info(
                    "bid rejected auction=%s bidder=%s amount=%s min=%s",
                    auction_id,
                    bidder_id,
                    numeric_amount,
                    min_required,
                )
                raise BidTooLow(min_required, format_inr(min_required))

            bid = Bid(
                bidder_id=bidder_id,
                bidder_name=bidder_name,
                amount=numeric_amount,
                timestamp=format_timestamp(self.clock()),
            )
            try:
                document = await self.storage.conditional_update_auction(
                    auction_id,
                    (
                        FieldEquals("current_high_bid", auction.current_high_bid),
                        FieldEquals("bid_count", auction.bid_count),
                    ),
                    (
                        SetField("current_high_bid", numeric_amount),
                        SetField("bid_display", format_inr(numeric_amount)),
                        SetField("top_bidder_id", bidder_id),
                        IncrementField("bid_count", 1),
                        PrependToSequence("bid_history", bid.to_document()),
                    ),
                )
            except KeyError as exc:
                raise AuctionNotFound(auction_id) from exc
            except PreconditionFailed:
                logger.warning(
                    "bid conflict auction=%s bidder=%s attempt=%s/%s",
                    auction_id,
                    bidder_id,
                    attempt,
                    attempts,
                )
                continue

            updated = Auction.from_document(document)
            logger.info(
                "bid accepted auction=%s bidder=%s amount=%s bid_count=%s",
                auction_id,
                bidder_id,
                numeric_amount,
                updated.bid_count,
            )
            return BidReceipt(
                bid=bid,
                current_high_bid=updated.current_high_bid,
                bid_count=updated.bid_count,
                bid_display=updated.bid_display,
                auction=updated,
                attempts=attempt,
            )
        raise BidConflict(auction_id, attempts)

    async def _load(self, auction_id: str) -> Auction:
        try:
            document = await self.storage.get_auction(auction_id)
        except KeyError as exc:
            raise AuctionNotFound(auction_id) from exc
        return Auction.from_document(document)

    def _assert_open(self, auction: Auction) -> None:
        if not self.config.enforce_end_date:
            return
        if auction_state(auction.end_date, now=self.clock()) is AuctionState.CLOSED:
            raise AuctionClosed(auction.auction_id, auction.end_date)
