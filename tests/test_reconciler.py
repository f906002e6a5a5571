"""Tests for the clean sweep."""

import pytest

from context_store import ContextStore, StoreOperationError, StoreUnavailableError
from context_store.reconciler import is_reserved
from context_store.registry import META_SCOPE


@pytest.fixture
async def populated(store):
    await store.set("flowA", ["a", "b"], [1, 2])
    await store.set("flowB", "c", 3)
    await store.registry.flush()
    return store


async def test_clean_with_no_active_scopes_empties_all(populated, backend):
    swept = await populated.clean([])

    assert sorted(swept) == ["flowA", "flowB"]
    assert await populated.keys("flowA") == []
    assert await populated.keys("flowB") == []


async def test_clean_keeps_active_scopes(populated):
    swept = await populated.clean(["flowA"])

    assert swept == ["flowB"]
    assert set(await populated.keys("flowA")) == {"a", "b"}
    assert await populated.keys("flowB") == []


async def test_clean_never_touches_meta_collection(populated, backend):
    await populated.clean([])

    assert ("delete_many", META_SCOPE) not in backend.calls
    assert sorted(await populated.keys(META_SCOPE)) == ["flowA", "flowB"]


async def test_clean_nothing_stored(store):
    assert await store.clean(["flowA"]) == []


async def test_clean_everything_active(populated, backend):
    assert await populated.clean(["flowA", "flowB"]) == []
    assert not any(method == "delete_many" for method, _ in backend.calls)


async def test_clean_uncached_collection(backend):
    await backend.bulk_upsert("stale", [{"_id": "k", "value": 1}])
    store = ContextStore({"backend": "memory"}, backend=backend)
    await store.open()
    try:
        assert await store.clean([]) == ["stale"]
        assert await store.keys("stale") == []
    finally:
        await store.close()


async def test_listing_failure(populated, backend):
    backend.failures["list_collections"] = RuntimeError("listing failed")

    with pytest.raises(StoreOperationError, match="listing failed") as exc_info:
        await populated.clean([])

    assert exc_info.value.operation == "clean"


async def test_deletion_failure(populated, backend):
    backend.failures["delete_many"] = RuntimeError("locked")

    with pytest.raises(StoreOperationError, match="locked"):
        await populated.clean([])


async def test_clean_before_open(backend):
    store = ContextStore({"backend": "memory"}, backend=backend)
    with pytest.raises(StoreUnavailableError):
        await store.clean([])


@pytest.mark.parametrize(
    ("name", "reserved"),
    [("_collections", True), ("system.views", True), ("flowA", False), ("global", False)],
)
def test_is_reserved(name, reserved):
    assert is_reserved(name) is reserved
