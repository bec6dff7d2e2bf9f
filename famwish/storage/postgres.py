"""Postgres storage backend leveraging asyncpg."""

from __future__ import annotations

import asyncio
from typing import Any, Iterable

import asyncpg
import orjson

from .errors import PreconditionFailed, StoreUnavailable
from .mutations import Mutation, Precondition, apply_mutations, preconditions_hold

_CONNECTION_ERRORS = (
    OSError,
    asyncpg.exceptions.PostgresConnectionError,
    asyncpg.exceptions.InterfaceError,
)


class PostgresStorage:
    def __init__(self, *, dsn: str | None = None, table: str = "auctions", **connect_kwargs: Any) -> None:
        if not dsn and not connect_kwargs:
            raise ValueError("postgres connection details missing")
        if not table.isidentifier():
            raise ValueError(f"invalid table name {table!r}")
        self._dsn = dsn
        self._table = table
        self._connect_kwargs = connect_kwargs
        self._pool: asyncpg.Pool | None = None
        self._open_lock = asyncio.Lock()

    def _encode(self, payload: dict[str, Any]) -> str:
        return orjson.dumps(payload).decode()

    def _decode(self, value: Any) -> dict[str, Any]:
        if isinstance(value, (bytes, bytearray)):
            value = value.decode()
        if isinstance(value, str):
            return orjson.loads(value)
        return value

    async def open(self) -> None:
        """Create the connection pool and the auctions table. Idempotent."""
        async with self._open_lock:
            if self._pool is not None:
                return
            try:
                pool = await asyncpg.create_pool(dsn=self._dsn, **self._connect_kwargs)
            except _CONNECTION_ERRORS as exc:
                raise StoreUnavailable(str(exc)) from exc
            try:
                async with pool.acquire() as conn:
                    await conn.execute(
                        f"""
                        CREATE TABLE IF NOT EXISTS {self._table} (
                            auction_id TEXT PRIMARY KEY,
                            data JSONB NOT NULL,
                            created_at TIMESTAMP DEFAULT NOW(),
                            updated_at TIMESTAMP DEFAULT NOW()
                        );
                        """
                    )
            except _CONNECTION_ERRORS as exc:
                await pool.close()
                raise StoreUnavailable(str(exc)) from exc
            self._pool = pool

    def _require_pool(self) -> asyncpg.Pool:
        if self._pool is None:
            raise StoreUnavailable("postgres storage is not open")
        return self._pool

    async def create_auction(self, document: dict[str, Any]) -> dict[str, Any]:
        pool = self._require_pool()
        try:
            async with pool.acquire() as conn:
                await conn.execute(
                    f"INSERT INTO {self._table}(auction_id, data) VALUES($1, $2)",
                    document["auction_id"],
                    self._encode(document),
                )
        except asyncpg.exceptions.UniqueViolationError as exc:
            raise ValueError(f"auction {document['auction_id']} already exists") from exc
        except _CONNECTION_ERRORS as exc:
            raise StoreUnavailable(str(exc)) from exc
        return document

    async def get_auction(self, auction_id: str) -> dict[str, Any]:
        pool = self._require_pool()
        try:
            async with pool.acquire() as conn:
                row = await conn.fetchrow(
                    f"SELECT data FROM {self._table} WHERE auction_id=$1",
                    auction_id,
                )
        except _CONNECTION_ERRORS as exc:
            raise StoreUnavailable(str(exc)) from exc
        if not row:
            raise KeyError(auction_id)
        return self._decode(row["data"])

    async def list_auctions(self) -> list[dict[str, Any]]:
        pool = self._require_pool()
        try:
            async with pool.acquire() as conn:
                rows = await conn.fetch(f"SELECT data FROM {self._table} ORDER BY auction_id")
        except _CONNECTION_ERRORS as exc:
            raise StoreUnavailable(str(exc)) from exc
        return [self._decode(row["data"]) for row in rows]

    async def conditional_update_auction(
        self,
        auction_id: str,
        preconditions: Iterable[Precondition],
        mutations: Iterable[Mutation],
    ) -> dict[str, Any]:
        pool = self._require_pool()
        try:
            async with pool.acquire() as conn:
                async with conn.transaction():
                    # Row lock serialises concurrent writers on the same auction.
                    row = await conn.fetchrow(
                        f"SELECT data FROM {self._table} WHERE auction_id=$1 FOR UPDATE",
                        auction_id,
                    )
                    if not row:
                        raise KeyError(auction_id)
                    current = self._decode(row["data"])
                    if not preconditions_hold(current, preconditions):
                        raise PreconditionFailed(auction_id)
                    updated = apply_mutations(current, mutations)
                    await conn.execute(
                        f"UPDATE {self._table} SET data=$2, updated_at=NOW() WHERE auction_id=$1",
                        auction_id,
                        self._encode(updated),
                    )
        except _CONNECTION_ERRORS as exc:
            raise StoreUnavailable(str(exc)) from exc
        return updated

    async def delete_auction(self, auction_id: str) -> None:
        pool = self._require_pool()
        try:
            async with pool.acquire() as conn:
                status = await conn.execute(
                    f"DELETE FROM {self._table} WHERE auction_id=$1",
                    auction_id,
                )
        except _CONNECTION_ERRORS as exc:
            raise StoreUnavailable(str(exc)) from exc
        if status.endswith(" 0"):
            raise KeyError(auction_id)

    async def ping(self) -> None:
        pool = self._require_pool()
        try:
            async with pool.acquire() as conn:
                await conn.fetchval("SELECT 1")
        except _CONNECTION_ERRORS as exc:
            raise StoreUnavailable(str(exc)) from exc

    async def close(self) -> None:
        if self._pool is not None:
            await self._pool.close()
            self._pool = None
