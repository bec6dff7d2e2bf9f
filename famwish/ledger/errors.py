"""Bid placement error taxonomy."""

from __future__ import annotations

from ..storage.errors import StoreUnavailable


class BidError(Exception):
    """Base class for every failure the bid path reports to its caller."""

    kind = "bid_error"
    retryable = False

    def to_detail(self) -> dict[str, object]:
        return {"error": self.kind, "message": str(self)}


class AuctionNotFound(BidError):
    kind = "not_found"

    def __init__(self, auction_id: str) -> None:
        super().__init__(f"auction {auction_id} not found")
        self.auction_id = auction_id


class InvalidAmount(BidError, ValueError):
    kind = "invalid_amount"


class Forbidden(BidError):
    kind = "forbidden"


class BidTooLow(BidError, ValueError):
    kind = "bid_too_low"
    retryable = True

    def __init__(self, min_required_bid: int, display: str | None = None) -> None:
        super().__init__(f"bid must be at least {display or min_required_bid}")
        self.min_required_bid = min_required_bid

    def to_detail(self) -> dict[str, object]:
        detail = super().to_detail()
        detail["min_required_bid"] = self.min_required_bid
        return detail


class BidConflict(BidError):
    kind = "conflict"
    retryable = True

    def __init__(self, auction_id: str, attempts: int) -> None:
        super().__init__("bid amount changed, please retry")
        self.auction_id = auction_id
        self.attempts = attempts


class AuctionClosed(BidError):
    kind = "auction_closed"

    def __init__(self, auction_id: str, end_date: str) -> None:
        super().__init__(f"auction {auction_id} closed at {end_date}")
        self.auction_id = auction_id
        self.end_date = end_date


__all__ = [
    "AuctionClosed",
    "AuctionNotFound",
    "BidConflict",
    "BidError",
    "BidTooLow",
    "Forbidden",
    "InvalidAmount",
    "StoreUnavailable",
]
