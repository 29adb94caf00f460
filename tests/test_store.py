import asyncio

import pytest

from stockpick.db.store import DocumentStore, subcollection
from stockpick.errors import RemoteOperationError


def _make_store(tmp_path) -> DocumentStore:
    store = DocumentStore(str(tmp_path / "db.sqlite"))
    store.init_db()
    return store


def test_create_get_update_delete(tmp_path) -> None:
    store = _make_store(tmp_path)

    async def scenario():
        doc_id = await store.create("products", {"name": "Rice", "stockQuantity": 4})
        got = await store.get("products", doc_id)
        assert got == {"id": doc_id, "name": "Rice", "stockQuantity": 4}

        await store.update("products", doc_id, {"name": "Brown rice"})
        await store.increment("products", doc_id, "stockQuantity", -3)
        got = await store.get("products", doc_id)
        assert got["name"] == "Brown rice"
        assert got["stockQuantity"] == 1

        await store.delete("products", doc_id)
        assert await store.get("products", doc_id) is None

    asyncio.run(scenario())


def test_update_of_missing_document_fails(tmp_path) -> None:
    store = _make_store(tmp_path)
    with pytest.raises(RemoteOperationError, match="No document to update"):
        asyncio.run(store.update("orders", "nope", {"status": "picked"}))


def test_batch_is_all_or_nothing(tmp_path) -> None:
    store = _make_store(tmp_path)

    async def scenario():
        await store.set("products", "A", {"stockQuantity": 10})
        batch = store.batch()
        batch.increment("products", "A", "stockQuantity", -4)
        batch.set("orders", "o1", {"status": "picked"})
        batch.increment("products", "MISSING", "stockQuantity", -1)
        with pytest.raises(RemoteOperationError):
            await batch.commit()

        assert (await store.get("products", "A"))["stockQuantity"] == 10
        assert await store.get("orders", "o1") is None

    asyncio.run(scenario())


def test_batch_commit_applies_every_operation(tmp_path) -> None:
    store = _make_store(tmp_path)

    async def scenario():
        await store.set("products", "A", {"stockQuantity": 10})
        await store.set("orders", "gone", {"status": "pending"})
        batch = store.batch()
        new_id = batch.create("orders", {"status": "pending"})
        batch.increment("products", "A", "stockQuantity", -4)
        batch.delete("orders", "gone")
        assert len(batch) == 3
        await batch.commit()

        assert (await store.get("orders", new_id))["status"] == "pending"
        assert (await store.get("products", "A"))["stockQuantity"] == 6
        assert await store.get("orders", "gone") is None

    asyncio.run(scenario())


def test_next_sequence_counts_from_one(tmp_path) -> None:
    store = _make_store(tmp_path)

    async def scenario():
        return [await store.next_sequence("counters", "orderCounter") for _ in range(3)]

    assert asyncio.run(scenario()) == [1, 2, 3]


def test_get_all_filters_and_orders(tmp_path) -> None:
    store = _make_store(tmp_path)

    async def scenario():
        await store.set("orders", "a", {"status": "pending", "createdAt": "2024-01-01"})
        await store.set("orders", "b", {"status": "picked", "createdAt": "2024-01-03"})
        await store.set("orders", "c", {"status": "pending", "createdAt": "2024-01-02"})
        await store.set("orders", "d", {"status": "pending"})

        pending = await store.get_all(
            "orders", where=[("status", "==", "pending")], order_by="createdAt", descending=True
        )
        assert [d["id"] for d in pending] == ["c", "a", "d"]

        chosen = await store.get_all("orders", where=[("status", "in", ["picked"])])
        assert [d["id"] for d in chosen] == ["b"]

        with pytest.raises(ValueError):
            await store.get_all("orders", where=[("status", "~", "x")])

    asyncio.run(scenario())


def test_subcollections_are_separate(tmp_path) -> None:
    store = _make_store(tmp_path)

    async def scenario():
        await store.create(subcollection("orders", "o1", "orderItems"), {"productId": "A"})
        await store.create(subcollection("orders", "o2", "orderItems"), {"productId": "B"})
        one = await store.get_all("orders/o1/orderItems")
        assert [d["productId"] for d in one] == ["A"]
        assert await store.get_all("orders") == []

    asyncio.run(scenario())
