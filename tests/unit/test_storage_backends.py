"""Unit tests for the networked storage backends against mocked drivers."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, MagicMock

import orjson
import pytest
from google.api_core import exceptions as google_exceptions
from pymongo import ReturnDocument
from pymongo.errors import ConnectionFailure, ServerSelectionTimeoutError
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import WatchError

from famwish.storage import PreconditionFailed, StoreUnavailable
from famwish.storage import firestore as firestore_backend
from famwish.storage import mongodb as mongo_backend
from famwish.storage import postgres as postgres_backend
from famwish.storage import redis as redis_backend
from famwish.storage.mutations import FieldEquals, IncrementField, SetField, to_mongo_update

PRECONDITIONS = (FieldEquals("current_high_bid", 1000), FieldEquals("bid_count", 0))
MUTATIONS = (SetField("current_high_bid", 1050), IncrementField("bid_count", 1))


def stored_auction(**overrides):
    document = {"auction_id": "auc_1", "current_high_bid": 1000, "bid_count": 0}
    document.update(overrides)
    return document


class TestMongoStorage:
    @pytest.fixture
    def collection(self, monkeypatch):
        collection = MagicMock()
        collection.find_one_and_update = AsyncMock(return_value=None)
        collection.count_documents = AsyncMock(return_value=0)
        client = MagicMock()
        client.__getitem__.return_value.__getitem__.return_value = collection
        client.admin.command = AsyncMock(return_value={"ok": 1})
        monkeypatch.setattr(mongo_backend, "AsyncIOMotorClient", MagicMock(return_value=client))
        return collection

    @pytest.fixture
    def storage(self, collection):
        return mongo_backend.MongoStorage(url="mongodb://localhost:27017")

    @pytest.mark.asyncio
    async def test_preconditions_go_into_the_filter(self, storage, collection):
        collection.find_one_and_update.return_value = {
            "_id": "auc_1",
            **stored_auction(current_high_bid=1050, bid_count=1),
        }

        updated = await storage.conditional_update_auction("auc_1", PRECONDITIONS, MUTATIONS)

        assert updated == stored_auction(current_high_bid=1050, bid_count=1)
        collection.find_one_and_update.assert_awaited_once_with(
            {"_id": "auc_1", "current_high_bid": 1000, "bid_count": 0},
            to_mongo_update(MUTATIONS),
            return_document=ReturnDocument.AFTER,
        )
        collection.count_documents.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_no_match_and_no_document_is_missing_auction(self, storage, collection):
        collection.count_documents.return_value = 0

        with pytest.raises(KeyError):
            await storage.conditional_update_auction("auc_1", PRECONDITIONS, MUTATIONS)

        collection.count_documents.assert_awaited_once_with({"_id": "auc_1"}, limit=1)

    @pytest.mark.asyncio
    async def test_no_match_with_existing_document_is_lost_race(self, storage, collection):
        collection.count_documents.return_value = 1

        with pytest.raises(PreconditionFailed):
            await storage.conditional_update_auction("auc_1", PRECONDITIONS, MUTATIONS)

    @pytest.mark.asyncio
    async def test_server_selection_timeout_is_unavailable(self, storage, collection):
        collection.find_one_and_update.side_effect = ServerSelectionTimeoutError("no servers")

        with pytest.raises(StoreUnavailable):
            await storage.conditional_update_auction("auc_1", PRECONDITIONS, MUTATIONS)

    @pytest.mark.asyncio
    async def test_ping(self, storage):
        await storage.ping()

        storage._client.admin.command.side_effect = ConnectionFailure("refused")
        with pytest.raises(StoreUnavailable):
            await storage.ping()


class TestRedisStorage:
    @pytest.fixture
    def client(self, monkeypatch):
        client = MagicMock()
        monkeypatch.setattr(redis_backend.aioredis, "from_url", MagicMock(return_value=client))
        return client

    @pytest.fixture
    def storage(self, client):
        return redis_backend.RedisStorage(url="redis://localhost:6379/0")

    @staticmethod
    def pipeline(client, stored=None, execute_error=None):
        pipe = MagicMock()
        pipe.__aenter__.return_value = pipe
        pipe.__aexit__.return_value = False
        pipe.watch = AsyncMock()
        pipe.get = AsyncMock(return_value=None if stored is None else orjson.dumps(stored))
        pipe.execute = AsyncMock(side_effect=execute_error)
        client.pipeline.return_value = pipe
        return pipe

    @pytest.mark.asyncio
    async def test_successful_transaction_writes_updated_document(self, storage, client):
        pipe = self.pipeline(client, stored=stored_auction())

        updated = await storage.conditional_update_auction("auc_1", PRECONDITIONS, MUTATIONS)

        assert updated == stored_auction(current_high_bid=1050, bid_count=1)
        client.pipeline.assert_called_once_with(transaction=True)
        pipe.watch.assert_awaited_once_with("famwish:auction:auc_1")
        pipe.multi.assert_called_once_with()
        pipe.set.assert_called_once_with("famwish:auction:auc_1", orjson.dumps(updated))

    @pytest.mark.asyncio
    async def test_watch_error_is_precondition_failure(self, storage, client):
        self.pipeline(client, stored=stored_auction(), execute_error=WatchError("key changed"))

        with pytest.raises(PreconditionFailed):
            await storage.conditional_update_auction("auc_1", PRECONDITIONS, MUTATIONS)

    @pytest.mark.asyncio
    async def test_stale_snapshot_never_queues_a_write(self, storage, client):
        pipe = self.pipeline(client, stored=stored_auction(current_high_bid=1100, bid_count=1))

        with pytest.raises(PreconditionFailed):
            await storage.conditional_update_auction("auc_1", PRECONDITIONS, MUTATIONS)

        pipe.multi.assert_not_called()
        pipe.execute.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_missing_key(self, storage, client):
        self.pipeline(client, stored=None)

        with pytest.raises(KeyError):
            await storage.conditional_update_auction("auc_1", PRECONDITIONS, MUTATIONS)

    @pytest.mark.asyncio
    async def test_connection_errors_are_unavailable(self, storage, client):
        client.get = AsyncMock(side_effect=RedisConnectionError("refused"))
        client.ping = AsyncMock(side_effect=RedisConnectionError("refused"))
        pipe = self.pipeline(client)
        pipe.watch.side_effect = RedisConnectionError("refused")

        with pytest.raises(StoreUnavailable):
            await storage.get_auction("auc_1")
        with pytest.raises(StoreUnavailable):
            await storage.conditional_update_auction("auc_1", PRECONDITIONS, MUTATIONS)
        with pytest.raises(StoreUnavailable):
            await storage.ping()


class TestPostgresStorage:
    @pytest.fixture
    def connection(self):
        conn = MagicMock()
        conn.execute = AsyncMock(return_value="UPDATE 1")
        conn.fetchrow = AsyncMock(return_value=None)
        conn.fetchval = AsyncMock(return_value=1)
        conn.transaction.return_value.__aexit__.return_value = False
        return conn

    @pytest.fixture
    def pool(self, connection):
        pool = MagicMock()
        pool.acquire.return_value.__aenter__.return_value = connection
        pool.acquire.return_value.__aexit__.return_value = False
        pool.close = AsyncMock()
        return pool

    @pytest.fixture
    def create_pool(self, monkeypatch, pool):
        create_pool = AsyncMock(return_value=pool)
        monkeypatch.setattr(postgres_backend.asyncpg, "create_pool", create_pool)
        return create_pool

    @pytest.fixture
    def storage(self, create_pool):
        return postgres_backend.PostgresStorage(dsn="postgresql://localhost/famwish")

    @staticmethod
    def executed_sql(connection):
        return [call.args[0] for call in connection.execute.await_args_list]

    @pytest.mark.asyncio
    async def test_concurrent_open_creates_one_pool(self, storage, create_pool, pool, connection):
        await asyncio.gather(storage.open(), storage.open(), storage.open())

        create_pool.assert_awaited_once_with(dsn="postgresql://localhost/famwish")
        assert sum("CREATE TABLE" in sql for sql in self.executed_sql(connection)) == 1

        await storage.close()
        pool.close.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_calls_before_open_are_unavailable(self, storage, create_pool):
        with pytest.raises(StoreUnavailable):
            await storage.get_auction("auc_1")
        create_pool.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_failed_open_leaves_store_closed(self, storage, create_pool):
        create_pool.side_effect = OSError("connection refused")

        with pytest.raises(StoreUnavailable):
            await storage.open()
        with pytest.raises(StoreUnavailable):
            await storage.conditional_update_auction("auc_1", PRECONDITIONS, MUTATIONS)

    @pytest.mark.asyncio
    async def test_update_locks_the_row_and_writes_the_new_document(self, storage, connection):
        await storage.open()
        connection.fetchrow.return_value = {"data": orjson.dumps(stored_auction()).decode()}

        updated = await storage.conditional_update_auction("auc_1", PRECONDITIONS, MUTATIONS)

        assert updated == stored_auction(current_high_bid=1050, bid_count=1)
        assert "FOR UPDATE" in connection.fetchrow.await_args.args[0]
        update_call = connection.execute.await_args_list[-1]
        assert update_call.args[0].startswith("UPDATE auctions")
        assert orjson.loads(update_call.args[2]) == updated

    @pytest.mark.asyncio
    async def test_stale_snapshot_is_precondition_failure(self, storage, connection):
        await storage.open()
        connection.fetchrow.return_value = {
            "data": orjson.dumps(stored_auction(current_high_bid=1100, bid_count=1)).decode()
        }

        with pytest.raises(PreconditionFailed):
            await storage.conditional_update_auction("auc_1", PRECONDITIONS, MUTATIONS)

        assert not any(sql.startswith("UPDATE") for sql in self.executed_sql(connection))

    @pytest.mark.asyncio
    async def test_missing_row(self, storage):
        await storage.open()

        with pytest.raises(KeyError):
            await storage.conditional_update_auction("auc_1", PRECONDITIONS, MUTATIONS)

    @pytest.mark.asyncio
    async def test_connection_loss_is_unavailable(self, storage, connection):
        await storage.open()
        connection.fetchrow.side_effect = OSError("connection reset")
        connection.fetchval.side_effect = OSError("connection reset")

        with pytest.raises(StoreUnavailable):
            await storage.conditional_update_auction("auc_1", PRECONDITIONS, MUTATIONS)
        with pytest.raises(StoreUnavailable):
            await storage.ping()


class TestFirestoreStorage:
    @pytest.fixture
    def client(self, monkeypatch):
        client = MagicMock()
        monkeypatch.setattr(firestore_backend.firestore, "Client", MagicMock(return_value=client))
        return client

    @pytest.fixture
    def storage(self, client):
        return firestore_backend.FirestoreStorage(project_id="famwish-test")

    @pytest.mark.asyncio
    async def test_missing_document(self, storage, client):
        client.collection.return_value.document.return_value.get.return_value.exists = False

        with pytest.raises(KeyError):
            await storage.get_auction("auc_1")

    @pytest.mark.asyncio
    async def test_service_errors_are_unavailable(self, storage, client):
        collection = client.collection.return_value
        collection.document.return_value.get.side_effect = google_exceptions.ServiceUnavailable("down")
        collection.limit.return_value.stream.side_effect = google_exceptions.DeadlineExceeded("slow")

        with pytest.raises(StoreUnavailable):
            await storage.get_auction("auc_1")
        with pytest.raises(StoreUnavailable):
            await storage.ping()
