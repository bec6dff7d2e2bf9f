"""Auction and bid data structures and their stored document form."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Mapping


@dataclass(frozen=True)
class Bid:
    bidder_id: str
    bidder_name: str
    amount: int
    timestamp: str

    def to_document(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_document(cls, data: Mapping[str, Any]) -> "Bid":
        return cls(
            bidder_id=str(data["bidder_id"]),
            bidder_name=str(data.get("bidder_name", "")),
            amount=int(data["amount"]),
            timestamp=str(data["timestamp"]),
        )


@dataclass(frozen=True)
class Auction:
    auction_id: str
    title: str
    starting_bid: int
    current_high_bid: int
    bid_display: str
    bid_count: int
    created_by: str
    created_at: str
    end_date: str
    description: str = ""
    category: str = "Other"
    title_image: str | None = None
    top_bidder_id: str | None = None
    bid_history: tuple[Bid, ...] = field(default_factory=tuple)

    def to_document(self) -> dict[str, Any]:
        document = asdict(self)
        document["bid_history"] = [bid.to_document() for bid in self.bid_history]
        return document

    @classmethod
    def from_document(cls, data: Mapping[str, Any]) -> "Auction":
        history = tuple(Bid.from_document(item) for item in data.get("bid_history") or [])
        starting_bid = int(data["starting_bid"])
        return cls(
            auction_id=str(data["auction_id"]),
            title=str(data.get("title", "")),
            starting_bid=starting_bid,
            current_high_bid=int(data.get("current_high_bid", starting_bid)),
            bid_display=str(data.get("bid_display", "")),
            bid_count=int(data.get("bid_count", len(history))),
            created_by=str(data.get("created_by", "")),
            created_at=str(data.get("created_at", "")),
            end_date=str(data.get("end_date", "")),
            description=str(data.get("description") or ""),
            category=str(data.get("category") or "Other"),
            title_image=data.get("title_image"),
            top_bidder_id=data.get("top_bidder_id"),
            bid_history=history,
        )
