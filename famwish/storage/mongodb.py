"""MongoDB storage backend using the motor asyncio driver.

Conditional updates map onto a single ``find_one_and_update`` whose filter
carries the preconditions, so the check and the write are one server-side
atomic operation on the auction document.
"""

from __future__ import annotations

from typing import Any, Iterable

from motor.motor_asyncio import AsyncIOMotorClient
from pymongo import ReturnDocument
from pymongo.errors import ConnectionFailure, DuplicateKeyError, ServerSelectionTimeoutError

from .errors import PreconditionFailed, StoreUnavailable
from .mutations import Mutation, Precondition, to_mongo_update

_UNAVAILABLE_ERRORS = (ConnectionFailure, ServerSelectionTimeoutError)


def _strip_id(document: dict[str, Any] | None) -> dict[str, Any] | None:
    if document is not None:
        document.pop("_id", None)
    return document


class MongoStorage:
    def __init__(
        self,
        *,
        url: str,
        database: str = "famwish",
        collection: str = "auctions",
        **client_kwargs: Any,
    ) -> None:
        if not url:
            raise ValueError("mongodb url missing")
        self._client = AsyncIOMotorClient(url, **client_kwargs)
        self._collection = self._client[database][collection]

    async def create_auction(self, document: dict[str, Any]) -> dict[str, Any]:
        try:
            await self._collection.insert_one({"_id": document["auction_id"], **document})
        except DuplicateKeyError as exc:
            raise ValueError(f"auction {document['auction_id']} already exists") from exc
        except _UNAVAILABLE_ERRORS as exc:
            raise StoreUnavailable(str(exc)) from exc
        return document

    async def get_auction(self, auction_id: str) -> dict[str, Any]:
        try:
            document = await self._collection.find_one({"_id": auction_id})
        except _UNAVAILABLE_ERRORS as exc:
            raise StoreUnavailable(str(exc)) from exc
        if document is None:
            raise KeyError(auction_id)
        return _strip_id(document)

    async def list_auctions(self) -> list[dict[str, Any]]:
        try:
            documents = await self._collection.find({}).to_list(length=None)
        except _UNAVAILABLE_ERRORS as exc:
            raise StoreUnavailable(str(exc)) from exc
        return [_strip_id(document) for document in documents]

    async def conditional_update_auction(
        self,
        auction_id: str,
        preconditions: Iterable[Precondition],
        mutations: Iterable[Mutation],
    ) -> dict[str, Any]:
        query: dict[str, Any] = {"_id": auction_id}
        for condition in preconditions:
            query[condition.field] = condition.value
        update = to_mongo_update(mutations)
        try:
            updated = await self._collection.find_one_and_update(
                query,
                update,
                return_document=ReturnDocument.AFTER,
            )
            if updated is not None:
                return _strip_id(updated)
            # Distinguish a missing auction from a lost race.
            exists = await self._collection.count_documents({"_id": auction_id}, limit=1)
        except _UNAVAILABLE_ERRORS as exc:
            raise StoreUnavailable(str(exc)) from exc
        if not exists:
            raise KeyError(auction_id)
        raise PreconditionFailed(auction_id)

    async def delete_auction(self, auction_id: str) -> None:
        try:
            result = await self._collection.delete_one({"_id": auction_id})
        except _UNAVAILABLE_ERRORS as exc:
            raise StoreUnavailable(str(exc)) from exc
        if result.deleted_count == 0:
            raise KeyError(auction_id)

    async def open(self) -> None:
        return None

    async def ping(self) -> None:
        try:
            await self._client.admin.command("ping")
        except _UNAVAILABLE_ERRORS as exc:
            raise StoreUnavailable(str(exc)) from exc

    async def close(self) -> None:
        self._client.close()
