"""
Request schemas for the memory embeddings API.
Unknown fields are stripped; every constraint violation is reported.
NaN and Infinity are rejected wherever a number is accepted.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from ..core.config import MAX_RESULT_WINDOW, VECTOR_DIMENSIONS
from ..core.timestamps import as_utc

MEMORY_TYPES = ['conversation', 'event', 'emotion', 'insight']
SORT_FIELDS = [
    'created_at',
    'last_accessed',
    'importance_score',
    'emotional_significance',
    'temporal_relevance',
    'access_frequency',
]
SORT_ORDERS = ['asc', 'desc']
MAX_BATCH_SIZE = 50
MAX_PAGE_SIZE = 100


def _check_memory_type(v):
    if v is not None and v not in MEMORY_TYPES:
        raise ValueError(f'memory_type must be one of: {MEMORY_TYPES}')
    return v


def _check_identifier(v):
    if v is not None and not v.strip():
        raise ValueError('identifier cannot be empty')
    return v


def _check_vector(v, message='Feature vector must have exactly 90 dimensions'):
    if v is not None and len(v) != VECTOR_DIMENSIONS:
        raise ValueError(message)
    return v


class GateScores(BaseModel):
    """Forget/input/output/confidence quadruple; always supplied and replaced together."""
    model_config = ConfigDict(extra='ignore', allow_inf_nan=False)

    forget_score: float = Field(..., ge=0, le=1)
    input_score: float = Field(..., ge=0, le=1)
    output_score: float = Field(..., ge=0, le=1)
    confidence: float = Field(..., ge=0, le=1)


class MemoryEmbeddingCreate(BaseModel):
    model_config = ConfigDict(extra='ignore', allow_inf_nan=False)

    user_id: str = Field(..., max_length=256)
    memory_type: str
    content_summary: str = Field(..., min_length=1, max_length=5000)
    original_entry_id: str = Field(..., max_length=256)
    importance_score: float = Field(..., ge=0, le=1)
    emotional_significance: float = Field(..., ge=0, le=1)
    temporal_relevance: float = Field(..., ge=0, le=1)
    access_frequency: int = Field(0, ge=0)
    feature_vector: List[float]
    gate_scores: GateScores
    relationships: List[str] = Field(default_factory=list)
    context_needed: Dict[str, Any] = Field(default_factory=dict)
    retrieval_triggers: List[str] = Field(default_factory=list)

    @field_validator('memory_type')
    @classmethod
    def memory_type_must_be_valid(cls, v):
        return _check_memory_type(v)

    @field_validator('user_id', 'original_entry_id')
    @classmethod
    def identifiers_must_not_be_empty(cls, v):
        return _check_identifier(v)

    @field_validator('feature_vector')
    @classmethod
    def feature_vector_must_have_90_dimensions(cls, v):
        return _check_vector(v)


class MemoryEmbeddingUpdate(BaseModel):
    """Partial update. Fields are optional but not nullable: an explicit null is rejected."""
    model_config = ConfigDict(extra='ignore', allow_inf_nan=False)

    content_summary: str = Field(None, min_length=1, max_length=5000)
    importance_score: float = Field(None, ge=0, le=1)
    emotional_significance: float = Field(None, ge=0, le=1)
    temporal_relevance: float = Field(None, ge=0, le=1)
    access_frequency: int = Field(None, ge=0)
    feature_vector: List[float] = None
    gate_scores: GateScores = None
    relationships: List[str] = None
    context_needed: Dict[str, Any] = None
    retrieval_triggers: List[str] = None

    @field_validator('feature_vector')
    @classmethod
    def feature_vector_must_have_90_dimensions(cls, v):
        return _check_vector(v)

    def changes(self) -> Dict[str, Any]:
        """Only the fields the caller actually supplied, including 0 and []."""
        return self.model_dump(include=self.model_fields_set)


class DateRange(BaseModel):
    model_config = ConfigDict(allow_inf_nan=False)

    start: Optional[datetime] = None
    end: Optional[datetime] = None

    @model_validator(mode='after')
    def start_must_not_follow_end(self):
        if self.start is not None and self.end is not None:
            if as_utc(self.start) > as_utc(self.end):
                raise ValueError('date_range.start must not be after date_range.end')
        return self


class SearchFilters(BaseModel):
    """Optional narrowing constraints shared by similarity search and query."""
    model_config = ConfigDict(extra='ignore', allow_inf_nan=False)

    user_id: Optional[str] = None
    memory_type: Optional[str] = None
    min_importance_score: Optional[float] = Field(None, ge=0, le=1)
    min_emotional_significance: Optional[float] = Field(None, ge=0, le=1)
    min_temporal_relevance: Optional[float] = Field(None, ge=0, le=1)
    date_range: Optional[DateRange] = None
    retrieval_triggers: Optional[List[str]] = None

    @field_validator('memory_type')
    @classmethod
    def memory_type_must_be_valid(cls, v):
        return _check_memory_type(v)


class SimilaritySearchRequest(BaseModel):
    model_config = ConfigDict(extra='ignore', allow_inf_nan=False)

    feature_vector: List[float]
    limit: int = Field(10, ge=1, le=MAX_PAGE_SIZE)
    filters: SearchFilters = Field(default_factory=SearchFilters)

    @field_validator('feature_vector')
    @classmethod
    def feature_vector_must_have_90_dimensions(cls, v):
        return _check_vector(v, 'Feature vector must have exactly 90 dimensions for similarity search')

    @field_validator('filters', mode='before')
    @classmethod
    def null_filters_mean_none(cls, v):
        return {} if v is None else v


class BatchCreateRequest(BaseModel):
    model_config = ConfigDict(extra='ignore', allow_inf_nan=False)

    embeddings: List[MemoryEmbeddingCreate]

    @field_validator('embeddings', mode='before')
    @classmethod
    def batch_size_must_be_within_bounds(cls, v):
        # Size is checked before any item so an oversized batch is rejected outright
        if isinstance(v, list):
            if len(v) < 1:
                raise ValueError('At least one embedding is required')
            if len(v) > MAX_BATCH_SIZE:
                raise ValueError(f'Maximum {MAX_BATCH_SIZE} embeddings allowed per batch')
        return v


class MemoryQuery(SearchFilters):
    """Filtered, sorted, paginated listing."""

    limit: int = Field(20, ge=1, le=MAX_PAGE_SIZE)
    offset: int = Field(0, ge=0)
    sort_by: str = 'created_at'
    sort_order: str = 'desc'

    @field_validator('sort_by')
    @classmethod
    def sort_by_must_be_valid(cls, v):
        if v not in SORT_FIELDS:
            raise ValueError(f'sort_by must be one of: {SORT_FIELDS}')
        return v

    @field_validator('sort_order')
    @classmethod
    def sort_order_must_be_valid(cls, v):
        if v not in SORT_ORDERS:
            raise ValueError(f'sort_order must be one of: {SORT_ORDERS}')
        return v

    @model_validator(mode='after')
    def page_must_fit_result_window(self):
        if self.offset + self.limit > MAX_RESULT_WINDOW:
            raise ValueError(f'offset + limit must not exceed {MAX_RESULT_WINDOW}')
        return self
