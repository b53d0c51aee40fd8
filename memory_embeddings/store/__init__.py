"""
Store adapters for the external vector database.
"""

from .index import IMemoryStore, InMemoryMemoryStore
from .types import FilterCondition, FilterPredicate, ScoredDocument, SortSpec, StoreHealth
from .connection import get_memory_store, set_memory_store, close_memory_store

__all__ = [
    'IMemoryStore',
    'InMemoryMemoryStore',
    'FilterCondition',
    'FilterPredicate',
    'ScoredDocument',
    'SortSpec',
    'StoreHealth',
    'get_memory_store',
    'set_memory_store',
    'close_memory_store',
]
