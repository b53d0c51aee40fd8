"""
Structured operation logging for the memory embeddings service.
Store calls, validation rejections and auth failures are logged as single
"Operation: ..., Status: ..., Details: ..." lines.
"""

import logging
import os
from typing import Any, Dict, List

# Fields whose values never reach a log line verbatim
SENSITIVE_FIELDS = ['feature_vector', 'content_summary', 'context_needed', 'api_key', 'password', 'secret']


class StructuredLogger:
    """Structured logger for store, validation and request operations."""

    def __init__(self, name: str = "memory_embeddings"):
        self.logger = logging.getLogger(name)
        self.logger.setLevel(getattr(logging, os.getenv("LOG_LEVEL", "INFO").upper(), logging.INFO))

        # Create handler if not already set
        if not self.logger.handlers:
            handler = logging.StreamHandler()
            formatter = logging.Formatter(
                '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
            )
            handler.setFormatter(formatter)
            self.logger.addHandler(handler)

    def log_operation(self, operation: str, status: str, details: Dict[str, Any] = None):
        """Log a structured operation."""
        message = f"Operation: {operation}, Status: {status}"
        if details:
            message += f", Details: {sanitize_payload(details)}"

        if status in ("failed", "error"):
            self.logger.error(message)
        elif status in ("rejected", "denied"):
            self.logger.warning(message)
        else:
            self.logger.info(message)

    def log_store_operation(self, operation: str, record_id: str = None, details: Dict[str, Any] = None, status: str = "success"):
        """Log a store operation keyed by record id."""
        log_details = {}
        if record_id is not None:
            log_details["record_id"] = record_id
        if details:
            log_details.update(details)

        self.log_operation(f"store.{operation}", status, log_details)

    def log_validation_error(self, operation: str, errors: List[Any], source_record: Dict[str, Any] = None):
        """Log validation errors with sanitized details."""
        sanitized_errors = [str(error)[:100] for error in errors]

        log_details = {
            "operation": operation,
            "errors": sanitized_errors,
            "error_count": len(sanitized_errors)
        }

        if source_record and isinstance(source_record, dict):
            # Only log identifiers, not sensitive values
            for key in ("id", "user_id", "memory_type"):
                if key in source_record:
                    log_details[key] = source_record[key]

        self.log_operation("validation.error", "rejected", log_details)

    def log_auth_failure(self, path: str, reason: str):
        """Log a rejected API key check."""
        self.log_operation("auth.api_key", "denied", {"path": path, "reason": reason})

    def log_rate_limited(self, path: str, window_count: int, limit: int):
        """Log a request rejected by the rate limiter."""
        self.log_operation("rate_limit", "rejected", {"path": path, "count": window_count, "limit": limit})

    def log_request(self, method: str, path: str, status_code: int, duration_ms: float):
        """Log one handled HTTP request."""
        status = "error" if status_code >= 500 else "success"
        self.log_operation("http.request", status, {
            "method": method,
            "path": path,
            "status_code": status_code,
            "duration_ms": round(duration_ms, 2)
        })

    # Standard logging methods for compatibility
    def info(self, message: str) -> None:
        """Log an info message."""
        self.logger.info(message)

    def warning(self, message: str) -> None:
        """Log a warning message."""
        self.logger.warning(message)

    def error(self, message: str) -> None:
        """Log an error message."""
        self.logger.error(message)

    def debug(self, message: str) -> None:
        """Log a debug message."""
        self.logger.debug(message)


# Global logger instance
logger = StructuredLogger()


def sanitize_payload(payload: Any, reveal_sensitive: bool = False, sensitive_fields: List[str] = None) -> Any:
    """Sanitize payloads for logging."""
    if sensitive_fields is None:
        sensitive_fields = SENSITIVE_FIELDS

    if isinstance(payload, dict):
        sanitized = {}
        for k, v in payload.items():
            if reveal_sensitive or k not in sensitive_fields:
                sanitized[k] = sanitize_payload(v, reveal_sensitive, sensitive_fields)
            elif k == 'feature_vector' and isinstance(v, list):
                sanitized[k] = f"[{len(v)} dims]"
            else:
                sanitized[k] = "[REDACTED]"
        return sanitized
    elif isinstance(payload, str):
        # Truncate long strings
        return payload[:100] + "..." if len(payload) > 100 else payload
    elif isinstance(payload, list):
        return [sanitize_payload(item, reveal_sensitive, sensitive_fields) for item in payload]
    else:
        return payload
