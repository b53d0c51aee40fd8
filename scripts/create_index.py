#!/usr/bin/env python3
"""
Provision the OpenSearch index for memory embeddings.

Creates the index with the 90-dimension knn_vector mapping if it does not
already exist, then reports its health. Requires STORE_PROVIDER=opensearch.
"""

import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from memory_embeddings.core import config
from memory_embeddings.store.connection import build_memory_store
from memory_embeddings.store.opensearch_store import OpenSearchMemoryStore


def main():
    if config.get_store_provider() != "opensearch":
        print("ERROR: STORE_PROVIDER must be 'opensearch' to provision an index")
        sys.exit(1)

    try:
        store = build_memory_store()
    except ValueError as e:
        print(f"ERROR: {e}")
        sys.exit(1)

    if not isinstance(store, OpenSearchMemoryStore):
        print("ERROR: Configured store is not OpenSearch")
        sys.exit(1)

    store.connect()
    try:
        health = store.health_check()
    finally:
        store.disconnect()

    if not health.healthy:
        print(f"ERROR: Index {health.collection} is not healthy: {health.error}")
        sys.exit(1)

    print(f"✓ Index {health.collection} ready ({health.vector_dimensions} dimensions)")


if __name__ == "__main__":
    main()
