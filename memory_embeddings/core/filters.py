"""
Filter predicate construction for similarity search and query.
"""

from datetime import datetime
from typing import Any, Iterable, Optional

from ..store.types import OP_EQ, OP_GTE, OP_IN, OP_LTE, FilterCondition, FilterPredicate
from .timestamps import to_iso

# Inclusive lower-bound filter -> document field
SCORE_THRESHOLDS = {
    'min_importance_score': 'importance_score',
    'min_emotional_significance': 'emotional_significance',
    'min_temporal_relevance': 'temporal_relevance',
}


class FilterBuilder:
    """Folds present-only constraints into a conjunctive FilterPredicate.

    Each method is a no-op when its value is None, so callers can pass every
    optional field straight through.
    """

    def __init__(self):
        self._conditions = []

    def _add(self, field: str, op: str, value: Any) -> "FilterBuilder":
        self._conditions.append(FilterCondition(field=field, op=op, value=value))
        return self

    def equals(self, field: str, value: Any) -> "FilterBuilder":
        if value is not None:
            self._add(field, OP_EQ, value)
        return self

    def at_least(self, field: str, value: Optional[float]) -> "FilterBuilder":
        if value is not None:
            self._add(field, OP_GTE, value)
        return self

    def any_of(self, field: str, values: Optional[Iterable[Any]]) -> "FilterBuilder":
        # An empty list narrows nothing
        if values:
            self._add(field, OP_IN, list(values))
        return self

    def between(self, field: str, start: Optional[datetime] = None,
                end: Optional[datetime] = None) -> "FilterBuilder":
        if start is not None:
            self._add(field, OP_GTE, to_iso(start))
        if end is not None:
            self._add(field, OP_LTE, to_iso(end))
        return self

    def build(self) -> FilterPredicate:
        return FilterPredicate(conditions=list(self._conditions))


def build_filter_predicate(filters: Any) -> FilterPredicate:
    """Build the predicate for a SearchFilters-shaped object (or None)."""
    builder = FilterBuilder()
    if filters is None:
        return builder.build()

    builder.equals('user_id', getattr(filters, 'user_id', None))
    builder.equals('memory_type', getattr(filters, 'memory_type', None))
    for threshold, field in SCORE_THRESHOLDS.items():
        builder.at_least(field, getattr(filters, threshold, None))

    date_range = getattr(filters, 'date_range', None)
    if date_range is not None:
        builder.between('created_at', date_range.start, date_range.end)

    builder.any_of('retrieval_triggers', getattr(filters, 'retrieval_triggers', None))
    return builder.build()
