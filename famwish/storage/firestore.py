"""Firestore storage backend leveraging google-cloud-firestore."""

from __future__ import annotations

import asyncio
from typing import Any, Callable, Iterable

from google.api_core import exceptions as google_exceptions
from google.cloud import firestore
from google.oauth2 import service_account

from .errors import PreconditionFailed, StoreUnavailable
from .mutations import Mutation, Precondition, apply_mutations, preconditions_hold

_UNAVAILABLE_ERRORS = (
    google_exceptions.ServiceUnavailable,
    google_exceptions.DeadlineExceeded,
)


class FirestoreStorage:
    def __init__(
        self,
        *,
        project_id: str,
        collection: str = "auctions",
        credentials_path: str | None = None,
    ) -> None:
        if not project_id:
            raise ValueError("project_id required for firestore backend")
        client_kwargs: dict[str, Any] = {"project": project_id}
        if credentials_path:
            client_kwargs["credentials"] = service_account.Credentials.from_service_account_file(
                credentials_path
            )
        self._client = firestore.Client(**client_kwargs)
        self._collection_name = collection

    def _collection(self):
        return self._client.collection(self._collection_name)

    async def _run(self, func: Callable, *args, **kwargs):
        try:
            return await asyncio.to_thread(func, *args, **kwargs)
        except _UNAVAILABLE_ERRORS as exc:
            raise StoreUnavailable(str(exc)) from exc

    async def create_auction(self, document: dict[str, Any]) -> dict[str, Any]:
        try:
            await self._run(self._collection().document(document["auction_id"]).create, document)
        except google_exceptions.AlreadyExists as exc:
            raise ValueError(f"auction {document['auction_id']} already exists") from exc
        return document

    async def get_auction(self, auction_id: str) -> dict[str, Any]:
        doc = await self._run(self._collection().document(auction_id).get)
        if not doc.exists:
            raise KeyError(auction_id)
        return doc.to_dict()

    async def list_auctions(self) -> list[dict[str, Any]]:
        docs = await self._run(lambda: list(self._collection().stream()))
        return [doc.to_dict() for doc in docs]

    def _conditional_update_sync(
        self,
        auction_id: str,
        preconditions: list[Precondition],
        mutations: list[Mutation],
    ) -> dict[str, Any]:
        ref = self._collection().document(auction_id)

        @firestore.transactional
        def _apply(transaction) -> dict[str, Any]:
            snapshot = ref.get(transaction=transaction)
            if not snapshot.exists:
                raise KeyError(auction_id)
            current = snapshot.to_dict()
            if not preconditions_hold(current, preconditions):
                raise PreconditionFailed(auction_id)
            updated = apply_mutations(current, mutations)
            transaction.set(ref, updated)
            return updated

        return _apply(self._client.transaction())

    async def conditional_update_auction(
        self,
        auction_id: str,
        preconditions: Iterable[Precondition],
        mutations: Iterable[Mutation],
    ) -> dict[str, Any]:
        return await self._run(
            self._conditional_update_sync,
            auction_id,
            list(preconditions),
            list(mutations),
        )

    async def delete_auction(self, auction_id: str) -> None:
        ref = self._collection().document(auction_id)
        doc = await self._run(ref.get)
        if not doc.exists:
            raise KeyError(auction_id)
        await self._run(ref.delete)

    async def open(self) -> None:
        return None

    async def ping(self) -> None:
        await self._run(lambda: list(self._collection().limit(1).stream()))

    async def close(self) -> None:
        await self._run(self._client.close)
