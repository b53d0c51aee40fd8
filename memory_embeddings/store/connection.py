"""
Shared store connection - created lazily on first use, exactly once.
"""

import threading
from typing import Optional

from util.logging import logger

from ..core import config
from .index import IMemoryStore, InMemoryMemoryStore

_store: Optional[IMemoryStore] = None
_store_lock = threading.Lock()


def build_memory_store() -> IMemoryStore:
    """Build the configured store implementation without connecting it."""
    issues = config.validate_store_config()
    provider = config.get_store_provider()

    if provider == "opensearch":
        store_issues = [i for i in issues if "OPENSEARCH" in i or "STORE_PROVIDER" in i]
        if store_issues:
            raise ValueError(f"Invalid store configuration: {'; '.join(store_issues)}")
        from .opensearch_store import OpenSearchMemoryStore
        return OpenSearchMemoryStore(
            endpoint=config.OPENSEARCH_ENDPOINT,
            port=config.OPENSEARCH_PORT,
            index_name=config.COLLECTION_NAME,
            dimension=config.VECTOR_DIMENSIONS,
            username=config.OPENSEARCH_USERNAME,
            password=config.OPENSEARCH_PASSWORD,
            use_ssl=config.OPENSEARCH_USE_SSL,
            verify_certs=config.OPENSEARCH_VERIFY_CERTS,
            timeout=config.OPENSEARCH_TIMEOUT_SEC,
        )
    elif provider == "memory":
        return InMemoryMemoryStore(collection=config.COLLECTION_NAME, dimension=config.VECTOR_DIMENSIONS)
    else:
        raise ValueError(f"Invalid STORE_PROVIDER: {provider}")


def get_memory_store() -> IMemoryStore:
    """Return the connected store, connecting on first call.

    Concurrent first callers block on the lock; only one of them builds and
    connects, the rest reuse its result. A failed connect leaves nothing
    cached so the next call retries.
    """
    global _store
    if _store is not None:
        return _store

    with _store_lock:
        if _store is None:
            store = build_memory_store()
            store.connect()
            _store = store
            logger.log_operation("store.connect", "success", {"provider": config.get_store_provider()})
    return _store


def set_memory_store(store: Optional[IMemoryStore]) -> None:
    """Install an already-connected store (or clear it with None)."""
    global _store
    with _store_lock:
        _store = store


def close_memory_store() -> None:
    """Disconnect and drop the shared store, if one was opened."""
    global _store
    with _store_lock:
        if _store is None:
            return
        try:
            _store.disconnect()
            logger.log_operation("store.disconnect", "success")
        finally:
            _store = None
