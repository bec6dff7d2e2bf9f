"""Operational stats endpoint."""

from __future__ import annotations

from collections import Counter
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Request

from ..ledger.lifecycle import auction_state
from ..storage import AuctionStore, StoreUnavailable

router = APIRouter(prefix="/admin", tags=["admin"])


def _get_storage(request: Request) -> AuctionStore:
    return request.app.state.storage


@router.get("/stats")
async def stats(storage: AuctionStore = Depends(_get_storage)) -> dict[str, Any]:
    try:
        records = await storage.list_auctions()
    except StoreUnavailable as exc:
        raise HTTPException(status_code=503, detail="storage temporarily unavailable") from exc
    total_auctions = len(records)
    total_bids = sum(int(record.get("bid_count", 0)) for record in records)
    without_bids = sum(1 for record in records if not record.get("bid_history"))

    states: Counter[str] = Counter()
    categories: Counter[str] = Counter()
    gross_high_bids = 0
    for record in records:
        states[auction_state(record.get("end_date")).value] += 1
        categories[record.get("category") or "Other"] += 1
        if record.get("bid_history"):
            gross_high_bids += int(record.get("current_high_bid", 0))

    return {
        "total_auctions": total_auctions,
        "total_bids": total_bids,
        "open_auctions": states.get("open", 0),
        "closed_auctions": states.get("closed", 0),
        "no_bid_rate": round(without_bids / total_auctions, 4) if total_auctions else 0.0,
        "gross_high_bids": gross_high_bids,
        "category_distribution": dict(categories),
    }
