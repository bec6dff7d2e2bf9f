"""Storage backend factory."""

from __future__ import annotations

from typing import Any, Iterable, Protocol

from ..config import ServerConfig
from .errors import PreconditionFailed, StoreUnavailable
from .firestore import FirestoreStorage
from .in_memory import InMemoryStorage
from .mongodb import MongoStorage
from .mutations import Mutation, Precondition
from .postgres import PostgresStorage
from .redis import RedisStorage


class AuctionStore(Protocol):
    async def open(self) -> None:
        """Acquire connections. Called once at startup before any other call."""
        ...

    async def ping(self) -> None:
        """Round-trip to the backend; raises ``StoreUnavailable`` when unreachable."""
        ...

    async def create_auction(self, document: dict[str, Any]) -> dict[str, Any]: ...

    async def get_auction(self, auction_id: str) -> dict[str, Any]: ...

    async def list_auctions(self) -> list[dict[str, Any]]: ...

    async def conditional_update_auction(
        self,
        auction_id: str,
        preconditions: Iterable[Precondition],
        mutations: Iterable[Mutation],
    ) -> dict[str, Any]:
        """Apply ``mutations`` only if every precondition holds, atomically.

        Raises ``KeyError`` for an unknown auction and ``PreconditionFailed``
        when the stored document no longer matches.
        """
        ...

    async def delete_auction(self, auction_id: str) -> None: ...

    async def close(self) -> None: ...


def build_storage(config: ServerConfig) -> AuctionStore:
    backend = config.storage.backend
    options = dict(config.storage.options)
    if backend == "in_memory":
        return InMemoryStorage()
    if backend == "mongodb":
        return MongoStorage(**options)
    if backend == "redis":
        return RedisStorage(**options)
    if backend == "postgres":
        return PostgresStorage(**options)
    if backend == "firestore":
        return FirestoreStorage(**options)
    raise ValueError(f"unknown storage backend {backend}")


__all__ = [
    "AuctionStore",
    "InMemoryStorage",
    "PreconditionFailed",
    "StoreUnavailable",
    "build_storage",
]
