from __future__ import annotations

import threading
from typing import Optional, Union

from recordstore.config import Settings, get_settings, reset_settings_cache
from recordstore.logging import get_logger, mask_url_password
from recordstore.storage.memory import MemoryRecordStore
from recordstore.storage.postgres import PostgresRecordStore

logger = get_logger(__name__)

RecordStore = Union[MemoryRecordStore, PostgresRecordStore]


def create_store(settings: Optional[Settings] = None) -> RecordStore:
    """Build the record store selected by ``settings``.

    The Postgres pool is created closed; it connects on first use.
    """
    settings = settings or get_settings()
    store_type = "memory" if settings.use_memory_store else "postgres"
    try:
        if settings.use_memory_store:
            built: RecordStore = MemoryRecordStore()
        else:
            built = PostgresRecordStore(
                settings.database_url,
                min_size=settings.pool_min_size,
                max_size=settings.pool_max_size,
            )
    except Exception as exc:
        logger.error(
            "runtime_store_init_failed",
            store_type=store_type,
            error_type=type(exc).__name__,
            error=str(exc),
        )
        raise
    logger.info(
        "runtime_store_initialized",
        store_type=store_type,
        database_url=None if settings.use_memory_store else mask_url_password(settings.database_url),
    )
    return built


store: RecordStore | None = None
_store_lock = threading.Lock()


def get_store() -> RecordStore:
    """Get or create the process-wide store.

    Double-checked locking: the unlocked read is the fast path once built.
    """
    global store
    if store is not None:
        return store
    with _store_lock:
        if store is None:
            store = create_store()
        return store


def reset_store_for_tests() -> RecordStore:
    """Rebuild the process-wide store from a fresh read of the environment.

    The previous store is dropped without closing its pool; tests that open a
    Postgres store are expected to close it themselves.
    """
    global store

    with _store_lock:
        reset_settings_cache()
        settings = get_settings()
        if not settings.test_mode:
            raise RuntimeError("store reset is only allowed in TEST_MODE")
        store = create_store(settings)
        return store
