"""Redis storage backend using redis-py asyncio client."""

from __future__ import annotations

from typing import Any, Iterable

import orjson
from redis import asyncio as aioredis
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import TimeoutError as RedisTimeoutError
from redis.exceptions import WatchError

from .errors import PreconditionFailed, StoreUnavailable
from .mutations import Mutation, Precondition, apply_mutations, preconditions_hold


class RedisStorage:
    def __init__(self, *, url: str, prefix: str = "famwish") -> None:
        if not url:
            raise ValueError("redis url missing")
        self._redis = aioredis.from_url(url)
        self._prefix = prefix.rstrip(":")

    def _auction_key(self, auction_id: str) -> str:
        return f"{self._prefix}:auction:{auction_id}"

    async def create_auction(self, document: dict[str, Any]) -> dict[str, Any]:
        key = self._auction_key(document["auction_id"])
        try:
            created = await self._redis.set(key, orjson.dumps(document), nx=True)
        except (RedisConnectionError, RedisTimeoutError) as exc:
            raise StoreUnavailable(str(exc)) from exc
        if not created:
            raise ValueError(f"auction {document['auction_id']} already exists")
        return document

    async def get_auction(self, auction_id: str) -> dict[str, Any]:
        try:
            raw = await self._redis.get(self._auction_key(auction_id))
        except (RedisConnectionError, RedisTimeoutError) as exc:
            raise StoreUnavailable(str(exc)) from exc
        if raw is None:
            raise KeyError(auction_id)
        return orjson.loads(raw)

    async def list_auctions(self) -> list[dict[str, Any]]:
        pattern = self._auction_key("*")
        keys: list[bytes] = []
        cursor = 0
        try:
            while True:
                cursor, batch = await self._redis.scan(cursor=cursor, match=pattern, count=100)
                keys.extend(batch)
                if cursor == 0:
                    break
            if not keys:
                return []
            values = await self._redis.mget(keys)
        except (RedisConnectionError, RedisTimeoutError) as exc:
            raise StoreUnavailable(str(exc)) from exc
        return [orjson.loads(value) for value in values if value]

    async def conditional_update_auction(
        self,
        auction_id: str,
        preconditions: Iterable[Precondition],
        mutations: Iterable[Mutation],
    ) -> dict[str, Any]:
        key = self._auction_key(auction_id)
        try:
            async with self._redis.pipeline(transaction=True) as pipe:
                await pipe.watch(key)
                raw = await pipe.get(key)
                if raw is None:
                    raise KeyError(auction_id)
                current = orjson.loads(raw)
                if not preconditions_hold(current, preconditions):
                    raise PreconditionFailed(auction_id)
                updated = apply_mutations(current, mutations)
                pipe.multi()
                pipe.set(key, orjson.dumps(updated))
                try:
                    await pipe.execute()
                except WatchError as exc:
                    # Another writer touched the key between WATCH and EXEC.
                    raise PreconditionFailed(auction_id) from exc
        except (RedisConnectionError, RedisTimeoutError) as exc:
            raise StoreUnavailable(str(exc)) from exc
        return updated

    async def delete_auction(self, auction_id: str) -> None:
        try:
            removed = await self._redis.delete(self._auction_key(auction_id))
        except (RedisConnectionError, RedisTimeoutError) as exc:
            raise StoreUnavailable(str(exc)) from exc
        if not removed:
            raise KeyError(auction_id)

    async def open(self) -> None:
        return None

    async def ping(self) -> None:
        try:
            await self._redis.ping()
        except (RedisConnectionError, RedisTimeoutError) as exc:
            raise StoreUnavailable(str(exc)) from exc

    async def close(self) -> None:
        await self._redis.aclose()
