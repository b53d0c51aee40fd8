"""
Store-neutral query types shared by the service and the store adapters.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

# Supported condition operators
OP_EQ = "eq"
OP_GTE = "gte"
OP_LTE = "lte"
OP_IN = "in"

OPERATORS = (OP_EQ, OP_GTE, OP_LTE, OP_IN)


@dataclass(frozen=True)
class FilterCondition:
    """A single constraint on one document field."""

    field: str
    """Document field the condition applies to"""

    op: str
    """One of eq, gte, lte, in"""

    value: Any
    """Comparison value; a list for the 'in' operator"""

    def __post_init__(self):
        if self.op not in OPERATORS:
            raise ValueError(f"Unsupported filter operator: {self.op}")


@dataclass
class FilterPredicate:
    """Conjunction of filter conditions. An empty predicate matches everything."""

    conditions: List[FilterCondition] = field(default_factory=list)

    def is_empty(self) -> bool:
        return not self.conditions

    def to_dict(self) -> Dict[str, Any]:
        """Mongo-style rendering, used for logging."""
        rendered: Dict[str, Any] = {}
        for c in self.conditions:
            if c.op == OP_EQ:
                rendered[c.field] = c.value
            else:
                rendered.setdefault(c.field, {})
                if isinstance(rendered[c.field], dict):
                    rendered[c.field][f"${c.op}"] = c.value
        return rendered


@dataclass(frozen=True)
class SortSpec:
    """Sort key and direction for a filtered scan."""

    field: str
    descending: bool = True


@dataclass
class ScoredDocument:
    """A stored document returned from a ranked vector search."""

    document: Dict[str, Any]
    """The raw stored document, including id and vector"""

    similarity: float
    """Similarity of the document to the query vector (higher is closer)"""


@dataclass
class StoreHealth:
    """Result of a store health probe."""

    healthy: bool
    collection: str
    vector_dimensions: int
    error: Optional[str] = None
