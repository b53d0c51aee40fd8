"""
Memory embedding service - turns validated requests into store calls and
maps stored documents back to the public record shape.
"""

import uuid
from contextlib import contextmanager
from datetime import timedelta
from typing import Any, Callable, Dict, List, Optional

from util.logging import logger

from ..store.connection import get_memory_store
from ..store.index import IMemoryStore
from ..store.types import FilterPredicate, SortSpec
from .config import COLLECTION_NAME, VECTOR_DIMENSIONS
from .errors import ForbiddenError, MemoryEmbeddingError, NotFoundError, StoreError, ValidationError
from .filters import FilterBuilder, build_filter_predicate
from .pagination import build_pagination
from .timestamps import now_iso, utc_now

# Public record fields, in response order
RECORD_FIELDS = [
    'id',
    'user_id',
    'memory_type',
    'content_summary',
    'original_entry_id',
    'importance_score',
    'emotional_significance',
    'temporal_relevance',
    'access_frequency',
    'last_accessed',
    'created_at',
    'feature_vector',
    'gate_scores',
    'relationships',
    'context_needed',
    'retrieval_triggers',
    'updated_at',
]

AVERAGED_FIELDS = ['importance_score', 'emotional_significance', 'temporal_relevance', 'access_frequency']
RECENT_WINDOW = timedelta(days=7)


def to_record(document: Dict[str, Any], include_vector: bool = True) -> Dict[str, Any]:
    """Map a stored document to the public record shape."""
    record = {field: document.get(field) for field in RECORD_FIELDS}
    if not include_vector:
        record.pop('feature_vector')
    return record


def new_document(data: Any) -> Dict[str, Any]:
    """Build a storable document from a validated create request."""
    now = now_iso()
    return {
        'id': str(uuid.uuid4()),
        'user_id': data.user_id,
        'memory_type': data.memory_type,
        'content_summary': data.content_summary,
        'original_entry_id': data.original_entry_id,
        'importance_score': data.importance_score,
        'emotional_significance': data.emotional_significance,
        'temporal_relevance': data.temporal_relevance,
        'access_frequency': data.access_frequency or 0,
        'last_accessed': now,
        'created_at': now,
        'feature_vector': list(data.feature_vector),
        'gate_scores': data.gate_scores.model_dump(),
        'relationships': list(data.relationships or []),
        'context_needed': dict(data.context_needed or {}),
        'retrieval_triggers': list(data.retrieval_triggers or []),
        'updated_at': now,
    }


class MemoryEmbeddingService:
    """CRUD, similarity search, query and statistics over the memory store."""

    def __init__(self, store_provider: Callable[[], IMemoryStore] = get_memory_store):
        self._store_provider = store_provider

    @contextmanager
    def _store_operation(self, operation: str, record_id: Optional[str] = None):
        """Wrap store failures as StoreError; domain errors pass through."""
        try:
            yield
        except MemoryEmbeddingError:
            raise
        except Exception as e:
            logger.log_store_operation(operation.replace(' ', '_'), record_id, {"error": str(e)}, status="failed")
            raise StoreError(f"Failed to {operation}: {e}") from e

    def _store(self) -> IMemoryStore:
        with self._store_operation("connect to store"):
            return self._store_provider()

    def create_memory_embedding(self, data: Any) -> Dict[str, Any]:
        store = self._store()
        document = new_document(data)
        with self._store_operation("create memory embedding"):
            store.insert(document)
        logger.log_store_operation("insert", document['id'], {"memory_type": document['memory_type']})
        return to_record(document)

    def get_memory_embedding(self, record_id: str) -> Dict[str, Any]:
        store = self._store()
        with self._store_operation("get memory embedding", record_id):
            document = store.find_one(record_id)
        if document is None:
            raise NotFoundError()
        return to_record(document)

    def update_memory_embedding(self, record_id: str, data: Any) -> Dict[str, Any]:
        store = self._store()
        changes = data.changes()
        if 'gate_scores' in changes:
            changes['gate_scores'] = dict(changes['gate_scores'])
        changes['updated_at'] = now_iso()

        with self._store_operation("update memory embedding", record_id):
            document = store.find_one_and_update(record_id, set_fields=changes)
        if document is None:
            raise NotFoundError()

        logger.log_store_operation("update", record_id, {"fields": sorted(changes)})
        return to_record(document)

    def delete_memory_embedding(self, record_id: str) -> Dict[str, Any]:
        store = self._store()
        with self._store_operation("delete memory embedding", record_id):
            deleted_count = store.delete_one(record_id)
        if deleted_count == 0:
            raise NotFoundError()

        logger.log_store_operation("delete", record_id)
        return {'id': record_id, 'deleted': True, 'deleted_count': deleted_count}

    def record_memory_access(self, record_id: str) -> Dict[str, Any]:
        store = self._store()
        now = now_iso()
        with self._store_operation("record memory access", record_id):
            document = store.find_one_and_update(
                record_id,
                set_fields={'last_accessed': now, 'updated_at': now},
                inc_fields={'access_frequency': 1},
            )
        if document is None:
            raise NotFoundError()

        return {
            'id': document['id'],
            'access_frequency': document['access_frequency'],
            'last_accessed': document['last_accessed'],
        }

    def find_similar_memory_embeddings(self, feature_vector: List[float], limit: int = 10,
                                       filters: Any = None) -> Dict[str, Any]:
        """Rank stored records by cosine similarity to feature_vector.

        The order, and how ties are broken, is whatever the store returns.
        """
        store = self._store()
        predicate = build_filter_predicate(filters)
        with self._store_operation("find similar memory embeddings"):
            hits = store.vector_search(predicate, list(feature_vector), limit)
        logger.log_store_operation("vector_search", details={"filter": predicate.to_dict(), "limit": limit, "hits": len(hits)})

        results = []
        for hit in hits:
            record = to_record(hit.document)
            record['similarity_score'] = hit.similarity
            results.append(record)

        return {
            'query_vector_dimensions': len(feature_vector),
            'results_count': len(results),
            'max_similarity_score': max((r['similarity_score'] for r in results), default=0),
            'min_similarity_score': min((r['similarity_score'] for r in results), default=0),
            'results': results,
        }

    def query_memory_embeddings(self, query: Any) -> Dict[str, Any]:
        """Filtered listing with sort, offset/limit and a pagination summary."""
        if query.limit < 1:
            raise ValidationError([f"limit: must be at least 1, got {query.limit}"], error="Query Validation Error")

        store = self._store()
        predicate = build_filter_predicate(query)
        sort = SortSpec(field=query.sort_by, descending=query.sort_order == 'desc')

        with self._store_operation("query memory embeddings"):
            documents = store.find(predicate, sort=sort, skip=query.offset, limit=query.limit)
            total_count = store.count_documents(predicate)
        logger.log_store_operation("find", details={
            "filter": predicate.to_dict(), "sort": query.sort_by, "offset": query.offset, "total": total_count,
        })

        return {
            'results': [to_record(d, include_vector=False) for d in documents[:query.limit]],
            'pagination': build_pagination(total_count, query.offset, query.limit),
        }

    def create_memory_embeddings_batch(self, embeddings: List[Any]) -> Dict[str, Any]:
        """Insert each record independently.

        Not atomic: a failure part-way through leaves earlier inserts in place
        and reports only how many made it.
        """
        store = self._store()
        documents = []
        for data in embeddings:
            document = new_document(data)
            try:
                store.insert(document)
            except Exception as e:
                logger.log_store_operation("batch_insert", document['id'],
                                           {"inserted": len(documents), "total": len(embeddings), "error": str(e)},
                                           status="failed")
                raise StoreError(
                    f"Failed to create memory embeddings batch: inserted {len(documents)} of "
                    f"{len(embeddings)} before failure: {e}"
                ) from e
            documents.append(document)

        logger.log_store_operation("batch_insert", details={"inserted": len(documents)})
        return {
            'inserted_count': len(documents),
            'inserted_ids': [d['id'] for d in documents],
            'documents': [
                {
                    'id': d['id'],
                    'user_id': d['user_id'],
                    'memory_type': d['memory_type'],
                    'content_summary': d['content_summary'],
                    'original_entry_id': d['original_entry_id'],
                    'created_at': d['created_at'],
                }
                for d in documents
            ],
        }

    def get_related_memories(self, user_id: str, memory_id: str) -> Dict[str, Any]:
        """The user's memory plus those of its relationships that exist and belong to the same user."""
        source = self.get_memory_embedding(memory_id)
        if source['user_id'] != user_id:
            raise ForbiddenError()

        related = []
        for related_id in source.get('relationships') or []:
            try:
                memory = self.get_memory_embedding(related_id)
            except NotFoundError:
                # Dangling relationships are skipped
                continue
            if memory['user_id'] == user_id:
                related.append(memory)

        return {
            'source_memory': source,
            'related_memories': related,
            'relationship_count': len(related),
        }

    def get_statistics(self) -> Dict[str, Any]:
        store = self._store()
        everything = FilterPredicate()
        recent = FilterBuilder().between('created_at', start=utc_now() - RECENT_WINDOW).build()

        with self._store_operation("get statistics"):
            total_count = store.count_documents(everything)
            type_counts = store.aggregate_counts('memory_type', everything)
            recent_count = store.count_documents(recent)
            averages = store.aggregate_averages(AVERAGED_FIELDS, everything)

        return {
            'total_memories': total_count,
            'recent_memories_7_days': recent_count,
            'memory_type_distribution': {
                group['key']: group['count'] for group in type_counts if group['key'] is not None
            },
            'score_statistics': {
                f"avg_{field}": averages.get(field) or 0 for field in AVERAGED_FIELDS
            },
            'collection_info': {
                'name': COLLECTION_NAME,
                'vector_dimensions': VECTOR_DIMENSIONS,
            },
        }


# Global service instance
memory_embedding_service = MemoryEmbeddingService()
