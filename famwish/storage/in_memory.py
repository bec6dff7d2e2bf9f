"""In-memory storage backend for auction documents."""

from __future__ import annotations

import asyncio
from copy import deepcopy
from typing import Any, Iterable

from .mutations import Mutation, Precondition, apply_mutations, preconditions_hold
from .errors import PreconditionFailed


class InMemoryStorage:
    def __init__(self) -> None:
        self._auctions: dict[str, dict[str, Any]] = {}
        self._lock = asyncio.Lock()

    async def create_auction(self, document: dict[str, Any]) -> dict[str, Any]:
        async with self._lock:
            auction_id = document["auction_id"]
            if auction_id in self._auctions:
                raise ValueError(f"auction {auction_id} already exists")
            self._auctions[auction_id] = deepcopy(document)
            return deepcopy(document)

    async def get_auction(self, auction_id: str) -> dict[str, Any]:
        async with self._lock:
            try:
                return deepcopy(self._auctions[auction_id])
            except KeyError as exc:
                raise KeyError(f"auction {auction_id} not found") from exc

    async def list_auctions(self) -> list[dict[str, Any]]:
        async with self._lock:
            return [deepcopy(document) for document in self._auctions.values()]

    async def conditional_update_auction(
        self,
        auction_id: str,
        preconditions: Iterable[Precondition],
        mutations: Iterable[Mutation],
    ) -> dict[str, Any]:
        async with self._lock:
            if auction_id not in self._auctions:
                raise KeyError(auction_id)
            current = self._auctions[auction_id]
            if not preconditions_hold(current, preconditions):
                raise PreconditionFailed(auction_id)
            updated = apply_mutations(current, mutations)
            self._auctions[auction_id] = updated
            return deepcopy(updated)

    async def delete_auction(self, auction_id: str) -> None:
        async with self._lock:
            if auction_id not in self._auctions:
                raise KeyError(auction_id)
            del self._auctions[auction_id]

    async def open(self) -> None:
        return None

    async def ping(self) -> None:
        return None

    async def close(self) -> None:
        return None
