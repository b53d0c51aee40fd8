"""
Error taxonomy for the memory embeddings service.
Each error carries the HTTP status the handlers translate it to.
"""

from typing import List, Optional


class MemoryEmbeddingError(Exception):
    """Base class for service errors."""

    status_code = 500
    error = "Internal server error"

    def __init__(self, message: Optional[str] = None, details: Optional[str] = None):
        super().__init__(message or self.error)
        self.message = message or self.error
        self.details = details


class ValidationError(MemoryEmbeddingError):
    """Malformed request input. Lists every violated field, not just the first."""

    status_code = 400
    error = "Validation Error"

    def __init__(self, violations: List[str], error: Optional[str] = None):
        self.violations = list(violations)
        super().__init__(error or self.error, details=", ".join(self.violations))


class NotFoundError(MemoryEmbeddingError):
    """No record with the requested id."""

    status_code = 404
    error = "Memory embedding not found"


class AuthError(MemoryEmbeddingError):
    """Missing or incorrect API key."""

    status_code = 401
    error = "Invalid or missing API key"


class ForbiddenError(MemoryEmbeddingError):
    """Record exists but belongs to a different user."""

    status_code = 403
    error = "Access denied to this memory"


class RateLimitedError(MemoryEmbeddingError):
    """Global request budget for the current window is exhausted."""

    status_code = 429
    error = "Too many requests, please try again later."


class StoreError(MemoryEmbeddingError):
    """Any other failure raised by the underlying store."""

    status_code = 500
    error = "Store operation failed"
