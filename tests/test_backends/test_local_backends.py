"""Contract tests run against both InMemoryBackend and SQLiteBackend."""

import pytest

from context_store import BulkWriteError


async def test_find_missing_collection(doc_backend):
    assert await doc_backend.find("nope", None, ("_id", "value")) == []
    assert await doc_backend.find("nope", ["a"], ("value",)) == []


async def test_upsert_and_find_projected(doc_backend):
    await doc_backend.bulk_upsert("flow", [{"_id": "a", "value": 1}])

    assert await doc_backend.find("flow", ["a"], ("value",)) == [{"value": 1}]
    assert await doc_backend.find("flow", None, ("_id",)) == [{"_id": "a"}]


async def test_upsert_overwrites_and_keeps_store_order(doc_backend):
    await doc_backend.bulk_upsert(
        "flow",
        [{"_id": "a", "value": 1}, {"_id": "b", "value": 2}, {"_id": "c", "value": 3}],
    )
    await doc_backend.bulk_upsert("flow", [{"_id": "a", "value": 10}])

    docs = await doc_backend.find("flow", None, ("_id", "value"))
    assert docs == [
        {"_id": "a", "value": 10},
        {"_id": "b", "value": 2},
        {"_id": "c", "value": 3},
    ]


async def test_find_by_ids_and_limit(doc_backend):
    await doc_backend.bulk_upsert(
        "flow",
        [{"_id": k, "value": i} for i, k in enumerate(["a", "b", "c", "d"])],
    )

    docs = await doc_backend.find("flow", ["d", "b", "zzz"], ("_id",))
    assert docs == [{"_id": "b"}, {"_id": "d"}]

    assert len(await doc_backend.find("flow", None, ("_id",), limit=2)) == 2
    assert await doc_backend.find("flow", [], ("_id",)) == []


async def test_nested_values_round_trip(doc_backend):
    value = {"list": [1, "two", None], "map": {"x": 1.5, "y": True}}
    await doc_backend.bulk_upsert("flow", [{"_id": "k", "value": value}])
    assert await doc_backend.find("flow", ["k"], ("value",)) == [{"value": value}]


async def test_returned_documents_are_copies(doc_backend):
    await doc_backend.bulk_upsert("flow", [{"_id": "k", "value": {"n": 1}}])

    docs = await doc_backend.find("flow", ["k"], ("value",))
    docs[0]["value"]["n"] = 99

    assert await doc_backend.find("flow", ["k"], ("value",)) == [{"value": {"n": 1}}]


async def test_unordered_bulk_attempts_every_document(doc_backend):
    docs = [{"_id": "a", "value": 1}, {"_id": 5, "value": 2}, {"_id": "c", "value": 3}]

    with pytest.raises(BulkWriteError) as exc_info:
        await doc_backend.bulk_upsert("flow", docs, ordered=False)

    assert [doc_id for doc_id, _ in exc_info.value.failures] == [5]
    assert isinstance(exc_info.value.failures[0][1], TypeError)
    assert await doc_backend.find("flow", None, ("_id",)) == [{"_id": "a"}, {"_id": "c"}]


async def test_ordered_bulk_stops_at_first_failure(doc_backend):
    docs = [{"_id": "a", "value": 1}, {"_id": 5, "value": 2}, {"_id": "c", "value": 3}]

    with pytest.raises(BulkWriteError):
        await doc_backend.bulk_upsert("flow", docs, ordered=True)

    assert await doc_backend.find("flow", None, ("_id",)) == [{"_id": "a"}]


async def test_skip_validation_accepts_any_document(doc_backend):
    await doc_backend.bulk_upsert("meta", [{"_id": "flow", "date": 1}], skip_validation=True)
    assert await doc_backend.find("meta", ["flow"], ("date",)) == [{"date": 1}]


async def test_delete_many_keeps_collection_listed(doc_backend):
    await doc_backend.bulk_upsert("flow", [{"_id": "a", "value": 1}, {"_id": "b", "value": 2}])

    assert await doc_backend.delete_many("flow") == 2
    assert await doc_backend.find("flow", None, ("_id",)) == []
    assert "flow" in await doc_backend.list_collections()


async def test_delete_many_missing_collection(doc_backend):
    assert await doc_backend.delete_many("nope") == 0


async def test_list_collections(doc_backend):
    assert await doc_backend.list_collections() == []

    await doc_backend.bulk_upsert("flowA", [{"_id": "a", "value": 1}])
    await doc_backend.bulk_upsert("flowB", [{"_id": "a", "value": 1}])

    assert sorted(await doc_backend.list_collections()) == ["flowA", "flowB"]


async def test_collections_are_isolated(doc_backend):
    await doc_backend.bulk_upsert("flowA", [{"_id": "k", "value": 1}])
    await doc_backend.bulk_upsert("flowB", [{"_id": "k", "value": 2}])

    await doc_backend.delete_many("flowA")

    assert await doc_backend.find("flowB", ["k"], ("value",)) == [{"value": 2}]
