"""
Pagination summary for offset/limit queries.
"""

import math
from typing import Any, Dict

from .errors import ValidationError


def build_pagination(total_count: int, offset: int, limit: int) -> Dict[str, Any]:
    """Summarise a page of a result set.

    limit must be >= 1; a zero or negative page size is rejected instead of
    producing a division by zero.
    """
    if limit < 1:
        raise ValidationError([f"limit: must be at least 1, got {limit}"], error="Query Validation Error")
    if offset < 0:
        raise ValidationError([f"offset: must be at least 0, got {offset}"], error="Query Validation Error")

    return {
        "total_count": total_count,
        "current_page": offset // limit + 1,
        "total_pages": math.ceil(total_count / limit),
        "has_next": offset + limit < total_count,
        "has_previous": offset > 0,
    }
