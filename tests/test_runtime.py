import pytest

from jsondoc import runtime
from jsondoc.config import Settings
from jsondoc.runtime import build_store, get_store, reset_store_for_tests
from jsondoc.storage.errors import ContractViolation
from jsondoc.storage.memory import MemoryDocumentStore


def test_get_store_is_cached_memory_store():
    store = get_store()

    assert isinstance(store, MemoryDocumentStore)
    assert get_store() is store


def test_get_store_bootstraps_collections(monkeypatch):
    monkeypatch.setenv("JSONDOC_COLLECTIONS", "users,orders")
    reset_store_for_tests()

    store = get_store()

    assert store.collections.known() == ["orders", "users"]
    assert store.documents == {"users": [], "orders": []}


def test_reset_closes_store():
    store = get_store()
    store.insert("users", {"id": "u1"})

    reset_store_for_tests()

    assert runtime.store is None
    assert store.documents == {}
    assert get_store() is not store


def test_build_store_rejects_bad_collection_names():
    settings = Settings(use_memory_store=True, collections=["ok", "not ok"])

    with pytest.raises(ContractViolation):
        build_store(settings)


def test_build_store_honours_lookup_column():
    store = build_store(Settings(use_memory_store=True, lookup_column=False))
    try:
        assert store.ensure_collection("users").lookup_column is None
    finally:
        store.close()

