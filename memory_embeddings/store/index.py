"""
Store adapter contract and the in-process implementation.
The service depends only on IMemoryStore; ranking and tie-breaking belong to the store.
"""

import copy
import threading
from abc import ABC, abstractmethod
from typing import Any, Dict, Iterable, List, Optional

import numpy as np

from .types import (
    OP_EQ,
    OP_GTE,
    OP_IN,
    OP_LTE,
    FilterCondition,
    FilterPredicate,
    ScoredDocument,
    SortSpec,
    StoreHealth,
)


class IMemoryStore(ABC):
    """Abstract interface for the external vector database."""

    @abstractmethod
    def connect(self) -> None:
        """Open the connection and make sure the collection exists."""
        pass

    @abstractmethod
    def disconnect(self) -> None:
        """Release the connection."""
        pass

    @abstractmethod
    def health_check(self) -> StoreHealth:
        """Probe the store."""
        pass

    @abstractmethod
    def insert(self, document: Dict[str, Any]) -> str:
        """Insert a document keyed by document['id']; returns the id."""
        pass

    @abstractmethod
    def find_one(self, record_id: str) -> Optional[Dict[str, Any]]:
        """Point lookup by id."""
        pass

    @abstractmethod
    def find_one_and_update(self, record_id: str, set_fields: Optional[Dict[str, Any]] = None,
                            inc_fields: Optional[Dict[str, int]] = None) -> Optional[Dict[str, Any]]:
        """Atomically apply $set/$inc to one document and return it post-update, or None."""
        pass

    @abstractmethod
    def delete_one(self, record_id: str) -> int:
        """Delete by id; returns the number of deleted documents (0 or 1)."""
        pass

    @abstractmethod
    def find(self, predicate: FilterPredicate, sort: Optional[SortSpec] = None,
             skip: int = 0, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        """Filtered scan with sort, skip and limit."""
        pass

    @abstractmethod
    def vector_search(self, predicate: FilterPredicate, vector: List[float], limit: int) -> List[ScoredDocument]:
        """Filtered scan ranked by cosine similarity to vector, most similar first."""
        pass

    @abstractmethod
    def count_documents(self, predicate: FilterPredicate) -> int:
        """Count documents matching the predicate."""
        pass

    @abstractmethod
    def aggregate_counts(self, field: str, predicate: Optional[FilterPredicate] = None) -> List[Dict[str, Any]]:
        """Group matching documents by field; returns [{'key': ..., 'count': ...}]."""
        pass

    @abstractmethod
    def aggregate_averages(self, fields: Iterable[str],
                           predicate: Optional[FilterPredicate] = None) -> Dict[str, Optional[float]]:
        """Average of each numeric field over matching documents; None when nothing matches."""
        pass


def _matches_condition(document: Dict[str, Any], condition: FilterCondition) -> bool:
    value = document.get(condition.field)

    if condition.op == OP_EQ:
        return value == condition.value
    if condition.op == OP_IN:
        candidates = condition.value or []
        if isinstance(value, list):
            return any(item in candidates for item in value)
        return value in candidates
    if value is None:
        return False
    if condition.op == OP_GTE:
        return value >= condition.value
    if condition.op == OP_LTE:
        return value <= condition.value
    return False


def matches(document: Dict[str, Any], predicate: Optional[FilterPredicate]) -> bool:
    """True when the document satisfies every condition of the predicate."""
    if predicate is None:
        return True
    return all(_matches_condition(document, c) for c in predicate.conditions)


def cosine_similarity(query: np.ndarray, vectors: np.ndarray) -> np.ndarray:
    """Similarity in [0, 1] as (1 + cos) / 2; zero-norm rows score 0.5."""
    query_norm = np.linalg.norm(query)
    norms = np.linalg.norm(vectors, axis=1)
    safe_norms = np.where(norms == 0, 1.0, norms)
    cos = (vectors @ query) / (safe_norms * query_norm)
    cos = np.where(norms == 0, 0.0, cos)
    return (1.0 + np.clip(cos, -1.0, 1.0)) / 2.0


class InMemoryMemoryStore(IMemoryStore):
    """Dict-backed implementation of IMemoryStore using numpy cosine similarity.

    Used for development and tests. Mutations hold a re-entrant lock so every
    single-document operation is atomic.
    """

    def __init__(self, collection: str = "memory_embeddings", dimension: int = 90):
        self.collection = collection
        self.dimension = dimension
        self._documents: Dict[str, Dict[str, Any]] = {}  # record_id -> document
        self._lock = threading.RLock()
        self.connected = False

    def connect(self) -> None:
        self.connected = True

    def disconnect(self) -> None:
        self.connected = False

    def _require_connection(self):
        if not self.connected:
            raise RuntimeError("Store is not connected")

    def health_check(self) -> StoreHealth:
        return StoreHealth(
            healthy=self.connected,
            collection=self.collection,
            vector_dimensions=self.dimension,
            error=None if self.connected else "Store is not connected",
        )

    def insert(self, document: Dict[str, Any]) -> str:
        self._require_connection()
        record_id = document["id"]
        vector = document.get("feature_vector")
        if vector is not None and len(vector) != self.dimension:
            raise ValueError(f"Vector dimension {len(vector)} does not match expected dimension {self.dimension}")

        with self._lock:
            if record_id in self._documents:
                raise ValueError(f"Document with id {record_id} already exists")
            self._documents[record_id] = copy.deepcopy(document)
        return record_id

    def find_one(self, record_id: str) -> Optional[Dict[str, Any]]:
        self._require_connection()
        with self._lock:
            document = self._documents.get(record_id)
            return copy.deepcopy(document) if document is not None else None

    def find_one_and_update(self, record_id: str, set_fields: Optional[Dict[str, Any]] = None,
                            inc_fields: Optional[Dict[str, int]] = None) -> Optional[Dict[str, Any]]:
        self._require_connection()
        with self._lock:
            document = self._documents.get(record_id)
            if document is None:
                return None
            for key, amount in (inc_fields or {}).items():
                document[key] = (document.get(key) or 0) + amount
            for key, value in (set_fields or {}).items():
                document[key] = copy.deepcopy(value)
            return copy.deepcopy(document)

    def delete_one(self, record_id: str) -> int:
        self._require_connection()
        with self._lock:
            return 1 if self._documents.pop(record_id, None) is not None else 0

    def _matching(self, predicate: Optional[FilterPredicate]) -> List[Dict[str, Any]]:
        with self._lock:
            return [copy.deepcopy(d) for d in self._documents.values() if matches(d, predicate)]

    def find(self, predicate: FilterPredicate, sort: Optional[SortSpec] = None,
             skip: int = 0, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        self._require_connection()
        documents = self._matching(predicate)

        if sort is not None:
            present = [d for d in documents if d.get(sort.field) is not None]
            missing = [d for d in documents if d.get(sort.field) is None]
            present.sort(key=lambda d: d[sort.field], reverse=sort.descending)
            documents = present + missing

        end = None if limit is None else skip + limit
        return documents[skip:end]

    def vector_search(self, predicate: FilterPredicate, vector: List[float], limit: int) -> List[ScoredDocument]:
        self._require_connection()
        query = np.asarray(vector, dtype=float)
        if np.linalg.norm(query) == 0:
            # Return empty results if query vector is zero
            return []

        candidates = [d for d in self._matching(predicate) if d.get("feature_vector") is not None]
        if not candidates:
            return []

        matrix = np.asarray([d["feature_vector"] for d in candidates], dtype=float)
        scores = cosine_similarity(query, matrix)

        # Stable sort keeps insertion order among equal scores
        order = np.argsort(-scores, kind="stable")[:limit]
        return [ScoredDocument(document=candidates[i], similarity=float(scores[i])) for i in order]

    def count_documents(self, predicate: FilterPredicate) -> int:
        self._require_connection()
        with self._lock:
            return sum(1 for d in self._documents.values() if matches(d, predicate))

    def aggregate_counts(self, field: str, predicate: Optional[FilterPredicate] = None) -> List[Dict[str, Any]]:
        self._require_connection()
        counts: Dict[Any, int] = {}
        for document in self._matching(predicate):
            key = document.get(field)
            counts[key] = counts.get(key, 0) + 1
        return [{"key": key, "count": count} for key, count in counts.items()]

    def aggregate_averages(self, fields: Iterable[str],
                           predicate: Optional[FilterPredicate] = None) -> Dict[str, Optional[float]]:
        self._require_connection()
        documents = self._matching(predicate)
        averages: Dict[str, Optional[float]] = {}
        for field in fields:
            values = [d[field] for d in documents if isinstance(d.get(field), (int, float))]
            averages[field] = float(np.mean(values)) if values else None
        return averages
