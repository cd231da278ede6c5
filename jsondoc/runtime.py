from __future__ import annotations

import threading

from jsondoc.config import Settings, get_settings, reset_settings_cache
from jsondoc.logging import get_logger, mask_url_password
from jsondoc.storage.common import DocumentStore
from jsondoc.storage.memory import MemoryDocumentStore
from jsondoc.storage.postgres import PostgresDocumentStore

logger = get_logger(__name__)


def build_store(settings: Settings) -> DocumentStore:
    """Create the store described by ``settings`` and bootstrap its collections."""
    store_type = "memory" if settings.use_memory_store else "postgres"
    try:
        if settings.use_memory_store:
            store: DocumentStore = MemoryDocumentStore(lookup_column=settings.lookup_column)
        else:
            store = PostgresDocumentStore(
                settings.database_url,
                lookup_column=settings.lookup_column,
                min_size=settings.pool_min_size,
                max_size=settings.pool_max_size,
                timeout=settings.pool_timeout,
            )
    except Exception as exc:
        logger.error(
            "store_init_failed",
            store_type=store_type,
            url=mask_url_password(settings.database_url),
            error_type=type(exc).__name__,
            error=str(exc),
        )
        raise
    if settings.collections:
        store.bootstrap(settings.collections)
    logger.info(
        "store_ready",
        store_type=store_type,
        url=None if settings.use_memory_store else mask_url_password(settings.database_url),
        collections=settings.collections,
    )
    return store


store: DocumentStore | None = None
_store_lock = threading.Lock()


def get_store() -> DocumentStore:
    """Get or create the process-wide store.

    Double-checked locking: the fast path skips the lock once the store exists.
    """
    global store
    if store is not None:
        return store
    with _store_lock:
        if store is None:
            store = build_store(get_settings())
        return store


def reset_store_for_tests() -> None:
    """Close the process-wide store and forget cached settings."""
    global store
    with _store_lock:
        if store is not None:
            store.close()
        store = None
        reset_settings_cache()
