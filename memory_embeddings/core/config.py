"""
Service configuration - environment driven, loaded once from .env.
"""

import os

from dotenv import load_dotenv

load_dotenv()

# Runtime environment
ENVIRONMENT = os.getenv("ENVIRONMENT", "development")
DEBUG = os.getenv("DEBUG", "true").lower() == "true"
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

# HTTP surface
HOST = os.getenv("HOST", "0.0.0.0")
PORT = int(os.getenv("PORT", "3000"))
API_PREFIX = os.getenv("API_PREFIX", "/api")
CORS_ORIGINS = os.getenv("CORS_ORIGINS", "http://localhost:3000,http://localhost:3001")

# Store configuration
STORE_PROVIDER = os.getenv("STORE_PROVIDER", "memory")  # memory|opensearch
COLLECTION_NAME = os.getenv("OPENSEARCH_INDEX", "memory_embeddings")
OPENSEARCH_ENDPOINT = os.getenv("OPENSEARCH_ENDPOINT", "localhost")
OPENSEARCH_PORT = int(os.getenv("OPENSEARCH_PORT", "9200"))
OPENSEARCH_USE_SSL = os.getenv("OPENSEARCH_USE_SSL", "false").lower() == "true"
OPENSEARCH_VERIFY_CERTS = os.getenv("OPENSEARCH_VERIFY_CERTS", "true").lower() == "true"
OPENSEARCH_USERNAME = os.getenv("OPENSEARCH_USERNAME")
OPENSEARCH_PASSWORD = os.getenv("OPENSEARCH_PASSWORD")
OPENSEARCH_TIMEOUT_SEC = int(os.getenv("OPENSEARCH_TIMEOUT_SEC", "30"))

# Engineered feature vectors are always 90-dimensional
VECTOR_DIMENSIONS = 90

# OpenSearch index.max_result_window; from + size may not exceed it
MAX_RESULT_WINDOW = 10000

# Rate limiting (blunt global fixed window)
RATE_LIMIT_ENABLED = os.getenv("RATE_LIMIT_ENABLED", "true").lower() == "true"
RATE_LIMIT_MAX_REQUESTS = int(os.getenv("RATE_LIMIT_MAX_REQUESTS", "100"))
RATE_LIMIT_WINDOW_SEC = int(os.getenv("RATE_LIMIT_WINDOW_SEC", "900"))  # 15 minutes

SERVICE_NAME = "memory-embeddings-service"
VERSION = "1.0.0"


def debug_enabled():
    """Check if debug mode is enabled."""
    return os.getenv("DEBUG", "true").lower() == "true"


def is_production():
    """Check if running in production."""
    return os.getenv("ENVIRONMENT", ENVIRONMENT).lower() == "production"


def strict_auth_enabled():
    """API key enforcement. Defaults on in production, off elsewhere."""
    default = "true" if is_production() else "false"
    return os.getenv("STRICT_AUTH", default).lower() == "true"


def get_api_key():
    """Shared secret expected in the X-API-Key header."""
    return os.getenv("API_KEY")


def get_store_provider():
    """Get configured store provider (memory|opensearch)."""
    return os.getenv("STORE_PROVIDER", STORE_PROVIDER).lower()


def rate_limit_enabled():
    """Check if the global rate limiter is active."""
    return os.getenv("RATE_LIMIT_ENABLED", "true").lower() == "true"


def get_rate_limit():
    """Get (max_requests, window_seconds) for the rate limiter."""
    return (
        int(os.getenv("RATE_LIMIT_MAX_REQUESTS", str(RATE_LIMIT_MAX_REQUESTS))),
        int(os.getenv("RATE_LIMIT_WINDOW_SEC", str(RATE_LIMIT_WINDOW_SEC))),
    )


def get_cors_origins():
    """Allowed CORS origins as a list."""
    return [o.strip() for o in CORS_ORIGINS.split(",") if o.strip()]


def validate_store_config():
    """Validate store configuration and return any issues."""
    issues = []
    provider = get_store_provider()

    if provider not in ["memory", "opensearch"]:
        issues.append(f"Invalid STORE_PROVIDER: {provider}")

    if provider == "opensearch":
        if not OPENSEARCH_ENDPOINT:
            issues.append("OPENSEARCH_ENDPOINT is required when STORE_PROVIDER=opensearch")
        if OPENSEARCH_USERNAME and not OPENSEARCH_PASSWORD:
            issues.append("OPENSEARCH_PASSWORD is required when OPENSEARCH_USERNAME is set")
        if OPENSEARCH_PORT < 1:
            issues.append("OPENSEARCH_PORT must be >= 1")

    if strict_auth_enabled() and not get_api_key():
        issues.append("API_KEY must be set when STRICT_AUTH is enabled")

    return issues
