"""Auction bidding lifecycle."""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from ..transport.timestamps import TimestampError, parse_timestamp, utc_now


class AuctionState(str, Enum):
    OPEN = "open"
    CLOSED = "closed"


def auction_state(end_date: str | None, *, now: datetime | None = None) -> AuctionState:
    """Derive the bidding state from ``end_date``.

    Auctions without a parseable end date never close.
    """
    if not end_date:
        return AuctionState.OPEN
    try:
        closes_at = parse_timestamp(end_date)
    except TimestampError:
        return AuctionState.OPEN
    ref = now or utc_now()
    return AuctionState.CLOSED if ref >= closes_at else AuctionState.OPEN
