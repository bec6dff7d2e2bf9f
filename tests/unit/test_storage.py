"""Unit tests for mutation descriptors and the in-memory auction store."""

from __future__ import annotations

import pytest

from famwish.config import parse_server_config
from famwish.storage import InMemoryStorage, PreconditionFailed, build_storage
from famwish.storage.mutations import (
    FieldEquals,
    IncrementField,
    PrependToSequence,
    SetField,
    apply_mutations,
    preconditions_hold,
    to_mongo_update,
)


class TestMutations:
    def test_apply_mutations_leaves_input_untouched(self):
        original = {"count": 1, "history": [{"amount": 10}], "high": 10}

        updated = apply_mutations(
            original,
            [
                SetField("high", 60),
                IncrementField("count", 1),
                PrependToSequence("history", {"amount": 60}),
            ],
        )

        assert updated == {"count": 2, "history": [{"amount": 60}, {"amount": 10}], "high": 60}
        assert original == {"count": 1, "history": [{"amount": 10}], "high": 10}

    def test_prepend_creates_missing_sequence(self):
        assert apply_mutations({}, [PrependToSequence("history", 1)]) == {"history": [1]}

    def test_increment_missing_field_starts_at_zero(self):
        assert apply_mutations({}, [IncrementField("count", 3)]) == {"count": 3}

    def test_unknown_mutation_rejected(self):
        with pytest.raises(TypeError):
            apply_mutations({}, [object()])

    def test_preconditions(self):
        document = {"high": 100, "count": 2}
        assert preconditions_hold(document, [FieldEquals("high", 100), FieldEquals("count", 2)])
        assert not preconditions_hold(document, [FieldEquals("high", 100), FieldEquals("count", 3)])
        assert preconditions_hold(document, [])

    def test_mongo_translation(self):
        update = to_mongo_update(
            [
                SetField("current_high_bid", 1150),
                SetField("top_bidder_id", "u1"),
                IncrementField("bid_count", 1),
                PrependToSequence("bid_history", {"amount": 1150}),
            ]
        )

        assert update == {
            "$set": {"current_high_bid": 1150, "top_bidder_id": "u1"},
            "$inc": {"bid_count": 1},
            "$push": {"bid_history": {"$each": [{"amount": 1150}], "$position": 0}},
        }


class TestInMemoryStorage:
    @pytest.fixture
    def storage(self):
        return InMemoryStorage()

    @pytest.mark.asyncio
    async def test_create_and_get_return_copies(self, storage):
        created = await storage.create_auction({"auction_id": "a1", "bid_history": []})
        created["bid_history"].append("tampered")

        fetched = await storage.get_auction("a1")
        fetched["bid_history"].append("tampered")

        assert await storage.get_auction("a1") == {"auction_id": "a1", "bid_history": []}

    @pytest.mark.asyncio
    async def test_duplicate_create_rejected(self, storage):
        await storage.create_auction({"auction_id": "a1"})
        with pytest.raises(ValueError):
            await storage.create_auction({"auction_id": "a1"})

    @pytest.mark.asyncio
    async def test_missing_auction_raises_key_error(self, storage):
        with pytest.raises(KeyError):
            await storage.get_auction("nope")
        with pytest.raises(KeyError):
            await storage.conditional_update_auction("nope", [], [SetField("title", "x")])
        with pytest.raises(KeyError):
            await storage.delete_auction("nope")

    @pytest.mark.asyncio
    async def test_failed_precondition_has_no_effect(self, storage):
        await storage.create_auction({"auction_id": "a1", "high": 100, "count": 0})

        with pytest.raises(PreconditionFailed):
            await storage.conditional_update_auction(
                "a1",
                [FieldEquals("high", 50)],
                [SetField("high", 150), IncrementField("count")],
            )

        assert await storage.get_auction("a1") == {"auction_id": "a1", "high": 100, "count": 0}

    @pytest.mark.asyncio
    async def test_successful_update_returns_new_document(self, storage):
        await storage.create_auction({"auction_id": "a1", "high": 100, "count": 0})

        updated = await storage.conditional_update_auction(
            "a1",
            [FieldEquals("high", 100)],
            [SetField("high", 150), IncrementField("count")],
        )

        assert updated == {"auction_id": "a1", "high": 150, "count": 1}
        assert await storage.get_auction("a1") == updated

    @pytest.mark.asyncio
    async def test_list_and_delete(self, storage):
        await storage.create_auction({"auction_id": "a1"})
        await storage.create_auction({"auction_id": "a2"})

        await storage.delete_auction("a1")

        assert await storage.list_auctions() == [{"auction_id": "a2"}]


def test_build_storage_defaults_to_in_memory():
    config = parse_server_config({})
    assert isinstance(build_storage(config), InMemoryStorage)


def test_build_storage_rejects_unknown_backend():
    config = parse_server_config({"storage": {"backend": "cassandra"}})
    with pytest.raises(ValueError, match="unknown storage backend"):
        build_storage(config)
