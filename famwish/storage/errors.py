"""Errors raised by auction storage backends."""

from __future__ import annotations


class PreconditionFailed(Exception):
    """Raised when a conditional update finds the document in a different state."""

    def __init__(self, auction_id: str) -> None:
        super().__init__(f"precondition failed for auction {auction_id}")
        self.auction_id = auction_id


class StoreUnavailable(RuntimeError):
    """Raised when the backing store cannot be reached or times out."""
