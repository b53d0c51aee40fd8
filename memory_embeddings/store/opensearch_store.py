"""
OpenSearch-backed implementation of IMemoryStore.
Vector ranking uses the k-NN plugin (lucene engine, cosinesimil space), whose
scores are already (1 + cos) / 2.
"""

from typing import Any, Dict, Iterable, List, Optional

from opensearchpy import OpenSearch
from opensearchpy.exceptions import NotFoundError, OpenSearchException, RequestError

from util.logging import logger

from ..core.config import MAX_RESULT_WINDOW
from .index import IMemoryStore
from .types import OP_EQ, OP_GTE, OP_IN, OP_LTE, FilterPredicate, ScoredDocument, SortSpec, StoreHealth

# Applies $inc then $set so one request updates the document atomically
UPDATE_SCRIPT = (
    "for (entry in params.inc.entrySet()) {"
    " def current = ctx._source[entry.getKey()];"
    " ctx._source[entry.getKey()] = (current == null ? 0 : current) + entry.getValue(); }"
    " for (entry in params.set.entrySet()) { ctx._source[entry.getKey()] = entry.getValue(); }"
)


class OpenSearchError(Exception):
    """Custom exception for OpenSearch errors."""
    pass


def build_index_body(dimension: int) -> Dict[str, Any]:
    """Index settings and mappings for the memory embeddings collection."""
    return {
        'settings': {
            'index': {
                'knn': True,
            }
        },
        'mappings': {
            'properties': {
                'id': {'type': 'keyword'},
                'user_id': {'type': 'keyword'},
                'memory_type': {'type': 'keyword'},
                'content_summary': {'type': 'text'},
                'original_entry_id': {'type': 'keyword'},
                'importance_score': {'type': 'float'},
                'emotional_significance': {'type': 'float'},
                'temporal_relevance': {'type': 'float'},
                'access_frequency': {'type': 'integer'},
                'last_accessed': {'type': 'date'},
                'created_at': {'type': 'date'},
                'updated_at': {'type': 'date'},
                'feature_vector': {
                    'type': 'knn_vector',
                    'dimension': dimension,
                    'method': {
                        'name': 'hnsw',
                        'space_type': 'cosinesimil',
                        'engine': 'lucene'
                    }
                },
                'gate_scores': {
                    'properties': {
                        'forget_score': {'type': 'float'},
                        'input_score': {'type': 'float'},
                        'output_score': {'type': 'float'},
                        'confidence': {'type': 'float'},
                    }
                },
                'relationships': {'type': 'keyword'},
                # Opaque map, stored but never indexed
                'context_needed': {'type': 'object', 'enabled': False},
                'retrieval_triggers': {'type': 'keyword'},
            }
        }
    }


def build_filter_clauses(predicate: Optional[FilterPredicate]) -> List[Dict[str, Any]]:
    """Translate a predicate into bool-filter clauses. Range bounds on one field share a clause."""
    if predicate is None:
        return []

    clauses: List[Dict[str, Any]] = []
    ranges: Dict[str, Dict[str, Any]] = {}
    for condition in predicate.conditions:
        if condition.op == OP_EQ:
            clauses.append({'term': {condition.field: condition.value}})
        elif condition.op == OP_IN:
            clauses.append({'terms': {condition.field: list(condition.value)}})
        elif condition.op in (OP_GTE, OP_LTE):
            ranges.setdefault(condition.field, {})[condition.op] = condition.value

    for field, bounds in ranges.items():
        clauses.append({'range': {field: bounds}})
    return clauses


def build_query(predicate: Optional[FilterPredicate]) -> Dict[str, Any]:
    if predicate is None or predicate.is_empty():
        return {'match_all': {}}
    return {'bool': {'filter': build_filter_clauses(predicate)}}


class OpenSearchMemoryStore(IMemoryStore):
    """OpenSearch client wrapper implementing the memory store contract."""

    def __init__(self, endpoint: str, port: int, index_name: str = "memory_embeddings", dimension: int = 90,
                 username: Optional[str] = None, password: Optional[str] = None, use_ssl: bool = False,
                 verify_certs: bool = True, timeout: int = 30, refresh: str = "wait_for", client: Any = None):
        """
        Initialize the store. No network traffic happens until connect().

        Args:
            endpoint: OpenSearch host, with or without protocol
            port: OpenSearch port
            index_name: Index holding memory embeddings
            dimension: Feature vector dimension
            refresh: Refresh policy for writes ("wait_for" keeps reads consistent with writes)
            client: Pre-built OpenSearch client (tests inject a mock here)
        """
        if '://' in endpoint:
            # Remove protocol if present
            endpoint = endpoint.split('://', 1)[1]
        self.endpoint = endpoint
        self.port = port
        self.index_name = index_name
        self.dimension = dimension
        self.username = username
        self.password = password
        self.use_ssl = use_ssl
        self.verify_certs = verify_certs
        self.timeout = timeout
        self.refresh = refresh
        self.client = client

    def connect(self) -> None:
        if self.client is None:
            http_auth = (self.username, self.password) if self.username else None
            self.client = OpenSearch(
                hosts=[{'host': self.endpoint, 'port': self.port}],
                http_auth=http_auth,
                use_ssl=self.use_ssl,
                verify_certs=self.verify_certs,
                timeout=self.timeout,
            )
        logger.info(f"Connecting to OpenSearch at {self.endpoint}:{self.port}, index {self.index_name}")
        self.create_index_if_not_exists()

    def disconnect(self) -> None:
        if self.client is not None:
            try:
                self.client.close()
            finally:
                self.client = None
            logger.info("Disconnected from OpenSearch")

    def create_index_if_not_exists(self) -> str:
        """Create the index with its k-NN mapping; tolerates a concurrent creator."""
        try:
            if self.client.indices.exists(index=self.index_name):
                logger.debug(f"Index {self.index_name} already exists")
                return 'exists'
            self.client.indices.create(index=self.index_name, body=build_index_body(self.dimension))
            logger.info(f"Created index {self.index_name}")
            return 'created'
        except RequestError as e:
            if 'resource_already_exists_exception' in str(e):
                return 'exists'
            raise OpenSearchError(f"Failed to create index: {e}") from e
        except OpenSearchException as e:
            raise OpenSearchError(f"Failed to create index: {e}") from e

    def health_check(self) -> StoreHealth:
        try:
            if self.client is None or not self.client.ping():
                return StoreHealth(False, self.index_name, self.dimension, "OpenSearch is unreachable")
            if not self.client.indices.exists(index=self.index_name):
                return StoreHealth(False, self.index_name, self.dimension, f"Index {self.index_name} is missing")
            return StoreHealth(True, self.index_name, self.dimension)
        except Exception as e:
            logger.error(f"OpenSearch health check failed: {e}")
            return StoreHealth(False, self.index_name, self.dimension, str(e))

    def insert(self, document: Dict[str, Any]) -> str:
        try:
            response = self.client.create(index=self.index_name, id=document['id'], body=document,
                                          refresh=self.refresh)
        except OpenSearchException as e:
            raise OpenSearchError(f"Failed to index document: {e}") from e
        return response.get('_id', document['id'])

    def find_one(self, record_id: str) -> Optional[Dict[str, Any]]:
        try:
            response = self.client.get(index=self.index_name, id=record_id)
        except NotFoundError:
            return None
        except OpenSearchException as e:
            raise OpenSearchError(f"Failed to get document: {e}") from e
        return response['_source']

    def find_one_and_update(self, record_id: str, set_fields: Optional[Dict[str, Any]] = None,
                            inc_fields: Optional[Dict[str, int]] = None) -> Optional[Dict[str, Any]]:
        body = {
            'script': {
                'source': UPDATE_SCRIPT,
                'lang': 'painless',
                'params': {'set': set_fields or {}, 'inc': inc_fields or {}},
            }
        }
        try:
            response = self.client.update(index=self.index_name, id=record_id, body=body,
                                          params={'_source': 'true', 'refresh': self.refresh})
        except NotFoundError:
            return None
        except OpenSearchException as e:
            raise OpenSearchError(f"Failed to update document: {e}") from e
        return response['get']['_source']

    def delete_one(self, record_id: str) -> int:
        try:
            response = self.client.delete(index=self.index_name, id=record_id, refresh=self.refresh)
        except NotFoundError:
            return 0
        except OpenSearchException as e:
            raise OpenSearchError(f"Failed to delete document: {e}") from e
        return 1 if response.get('result') == 'deleted' else 0

    def find(self, predicate: FilterPredicate, sort: Optional[SortSpec] = None,
             skip: int = 0, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        body: Dict[str, Any] = {
            'query': build_query(predicate),
            'from': skip,
            'size': max(MAX_RESULT_WINDOW - skip, 0) if limit is None else limit,
        }
        if sort is not None:
            body['sort'] = [{sort.field: {'order': 'desc' if sort.descending else 'asc', 'missing': '_last'}}]

        try:
            response = self.client.search(index=self.index_name, body=body)
        except OpenSearchException as e:
            raise OpenSearchError(f"Search failed: {e}") from e
        return [hit['_source'] for hit in response['hits']['hits']]

    def vector_search(self, predicate: FilterPredicate, vector: List[float], limit: int) -> List[ScoredDocument]:
        knn: Dict[str, Any] = {'vector': list(vector), 'k': limit}
        clauses = build_filter_clauses(predicate)
        if clauses:
            knn['filter'] = {'bool': {'filter': clauses}}

        body = {
            'size': limit,
            'query': {'knn': {'feature_vector': knn}},
        }
        try:
            response = self.client.search(index=self.index_name, body=body)
        except OpenSearchException as e:
            raise OpenSearchError(f"Vector search failed: {e}") from e

        results = []
        for hit in response['hits']['hits']:
            results.append(ScoredDocument(document=hit['_source'], similarity=float(hit['_score'])))
        logger.debug(f"Vector search returned {len(results)} results")
        return results

    def count_documents(self, predicate: FilterPredicate) -> int:
        try:
            response = self.client.count(index=self.index_name, body={'query': build_query(predicate)})
        except OpenSearchException as e:
            raise OpenSearchError(f"Count failed: {e}") from e
        return int(response['count'])

    def aggregate_counts(self, field: str, predicate: Optional[FilterPredicate] = None) -> List[Dict[str, Any]]:
        body = {
            'size': 0,
            'query': build_query(predicate),
            'aggs': {'groups': {'terms': {'field': field, 'size': 100}}},
        }
        try:
            response = self.client.search(index=self.index_name, body=body)
        except OpenSearchException as e:
            raise OpenSearchError(f"Aggregation failed: {e}") from e
        buckets = response['aggregations']['groups']['buckets']
        return [{'key': b['key'], 'count': b['doc_count']} for b in buckets]

    def aggregate_averages(self, fields: Iterable[str],
                           predicate: Optional[FilterPredicate] = None) -> Dict[str, Optional[float]]:
        fields = list(fields)
        body = {
            'size': 0,
            'query': build_query(predicate),
            'aggs': {f"avg_{field}": {'avg': {'field': field}} for field in fields},
        }
        try:
            response = self.client.search(index=self.index_name, body=body)
        except OpenSearchException as e:
            raise OpenSearchError(f"Aggregation failed: {e}") from e
        aggregations = response['aggregations']
        return {field: aggregations[f"avg_{field}"]['value'] for field in fields}
