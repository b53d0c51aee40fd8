"""
Memory embeddings HTTP routes.
Static paths are declared before /{record_id} so they are not captured by it.
"""

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from ..core.service import memory_embedding_service
from .schemas import (
    BatchCreateRequest,
    MemoryEmbeddingCreate,
    MemoryEmbeddingUpdate,
    MemoryQuery,
    SimilaritySearchRequest,
)
from .security import enforce_rate_limit, require_api_key
from .validation import QUERY_ERROR, parse_query_params, validate

router = APIRouter(dependencies=[Depends(enforce_rate_limit), Depends(require_api_key)])

# Query keys that may repeat
LIST_QUERY_FIELDS = ['retrieval_triggers']


def ok(data: Any, message: str = None, status_code: int = 200):
    body = {"success": True, "data": data}
    if message:
        body["message"] = message
    return JSONResponse(status_code=status_code, content=body)


def run_query(request: Request, operation: str, defaults: Dict[str, Any] = None,
              fixed: Dict[str, Any] = None) -> Dict[str, Any]:
    """Parse the query string, apply route defaults and path values, validate and query."""
    params = parse_query_params(request.query_params.multi_items(), list_fields=LIST_QUERY_FIELDS)
    merged = dict(defaults or {})
    merged.update(params)
    merged.update(fixed or {})
    query = validate(MemoryQuery, merged, operation, error=QUERY_ERROR)
    return memory_embedding_service.query_memory_embeddings(query)


@router.get("/stats")
def get_statistics():
    return ok(memory_embedding_service.get_statistics())


@router.post("/similarity")
def find_similar(search: SimilaritySearchRequest):
    """Find similar memory embeddings by cosine similarity."""
    result = memory_embedding_service.find_similar_memory_embeddings(
        search.feature_vector, limit=search.limit, filters=search.filters
    )
    return ok(result, f"Found {result['results_count']} similar memory embeddings")


@router.post("/batch")
def create_batch(batch: BatchCreateRequest):
    """Create up to 50 memory embeddings. Not atomic."""
    result = memory_embedding_service.create_memory_embeddings_batch(batch.embeddings)
    return ok(result, f"Successfully created {result['inserted_count']} memory embeddings", status_code=201)


@router.get("/query")
def query_embeddings(request: Request):
    """Query memory embeddings with filters and pagination."""
    result = run_query(request, "query")
    return ok(result, f"Found {len(result['results'])} memory embeddings")


@router.get("/user/{user_id}/important")
def get_important_memories(user_id: str, request: Request):
    params = parse_query_params(request.query_params.multi_items())
    result = run_query(
        request,
        "user_important",
        defaults={"limit": 10},
        fixed={
            "user_id": user_id,
            "min_importance_score": params.get("min_score", 0.7),
            "sort_by": "importance_score",
            "sort_order": "desc",
        },
    )
    return ok(result, f"Found {len(result['results'])} important memories for user {user_id}")


@router.get("/user/{user_id}/recent")
def get_recent_memories(user_id: str, request: Request):
    result = run_query(
        request,
        "user_recent",
        defaults={"limit": 10},
        fixed={"user_id": user_id, "sort_by": "last_accessed", "sort_order": "desc"},
    )
    return ok(result, f"Found {len(result['results'])} recently accessed memories for user {user_id}")


@router.get("/user/{user_id}/relationships/{memory_id}")
def get_related_memories(user_id: str, memory_id: str):
    result = memory_embedding_service.get_related_memories(user_id, memory_id)
    return ok(result, f"Found {result['relationship_count']} related memories")


@router.get("/user/{user_id}")
def get_user_memories(user_id: str, request: Request):
    result = run_query(request, "user_memories", fixed={"user_id": user_id})
    return ok(result, f"Found {len(result['results'])} memory embeddings for user {user_id}")


@router.get("/type/{memory_type}")
def get_memories_by_type(memory_type: str, request: Request):
    result = run_query(
        request,
        "type_memories",
        defaults={"sort_by": "importance_score"},
        fixed={"memory_type": memory_type},
    )
    return ok(result, f"Found {len(result['results'])} {memory_type} memory embeddings")


@router.post("")
def create_memory_embedding(data: MemoryEmbeddingCreate):
    record = memory_embedding_service.create_memory_embedding(data)
    return ok(record, "Memory embedding created successfully", status_code=201)


@router.get("/{record_id}")
def get_memory_embedding(record_id: str):
    return ok(memory_embedding_service.get_memory_embedding(record_id))


@router.put("/{record_id}")
def update_memory_embedding(record_id: str, data: Optional[MemoryEmbeddingUpdate] = None):
    """Partial update; only supplied fields change."""
    record = memory_embedding_service.update_memory_embedding(
        record_id, data if data is not None else MemoryEmbeddingUpdate()
    )
    return ok(record, "Memory embedding updated successfully")


@router.delete("/{record_id}")
def delete_memory_embedding(record_id: str):
    result = memory_embedding_service.delete_memory_embedding(record_id)
    return ok(result, "Memory embedding deleted successfully")


@router.post("/{record_id}/access")
def record_access(record_id: str):
    result = memory_embedding_service.record_memory_access(record_id)
    return ok(result, "Memory access recorded successfully")
