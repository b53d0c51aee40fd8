"""
Memory Embeddings Service - FastAPI application.
Mounts the memory embeddings router, health and banner endpoints, and maps
service errors to the {success, error, details} envelope.
"""

import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from util.logging import logger

from ..core.config import API_PREFIX, SERVICE_NAME, VERSION, debug_enabled, get_cors_origins, validate_store_config
from ..core.errors import MemoryEmbeddingError
from ..core.timestamps import now_iso
from ..store.connection import close_memory_store, get_memory_store
from .routes import router as memory_embeddings_router
from .validation import request_violations

MEMORY_EMBEDDINGS_PATH = f"{API_PREFIX}/memory-embeddings"
_started_at = time.monotonic()


@asynccontextmanager
async def lifespan(app: FastAPI):
    for issue in validate_store_config():
        logger.warning(f"Configuration issue: {issue}")
    logger.log_operation("service.start", "success", {"version": VERSION})
    yield
    close_memory_store()
    logger.log_operation("service.shutdown", "success")


app = FastAPI(
    title="Memory Embeddings Service",
    version=VERSION,
    description="Memory embedding storage and cosine-similarity search over a managed vector store",
    docs_url="/docs" if debug_enabled() else None,
    redoc_url="/redoc" if debug_enabled() else None,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_cors_origins(),
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization", "X-API-Key"],
)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    started = time.perf_counter()
    response = await call_next(request)
    logger.log_request(request.method, request.url.path, response.status_code,
                       (time.perf_counter() - started) * 1000)
    return response


def error_response(status_code: int, error: str, details: str = None, **extra):
    body = {"success": False, "error": error}
    if details:
        body["details"] = details
    body.update(extra)
    return JSONResponse(status_code=status_code, content=body)


@app.exception_handler(MemoryEmbeddingError)
async def memory_embedding_error_handler(request: Request, exc: MemoryEmbeddingError):
    return error_response(exc.status_code, exc.message, exc.details)


@app.exception_handler(RequestValidationError)
async def request_validation_error_handler(request: Request, exc: RequestValidationError):
    violations = request_violations(exc.errors())
    logger.log_validation_error(request.url.path, violations, exc.body if isinstance(exc.body, dict) else None)
    return error_response(400, "Validation Error", ", ".join(violations))


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    if exc.status_code in (404, 405):
        return error_response(
            404,
            "Endpoint not found",
            message=f"Cannot {request.method} {request.url.path}",
            availableEndpoints={
                "health": "/health",
                "memoryEmbeddings": MEMORY_EMBEDDINGS_PATH,
            },
        )
    return error_response(exc.status_code, str(exc.detail))


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled error on {request.method} {request.url.path}: {exc}")
    return error_response(500, "Internal server error", str(exc) if debug_enabled() else None)


@app.get("/health")
def health_check_endpoint():
    """Check store connectivity. Not behind the API key or rate limiter."""
    body = {
        "timestamp": now_iso(),
        "service": SERVICE_NAME,
        "version": VERSION,
        "uptime": round(time.monotonic() - _started_at, 3),
    }
    try:
        health = get_memory_store().health_check()
        error = health.error
    except Exception as e:
        health, error = None, str(e)

    if health is not None and health.healthy:
        return {"success": True, "status": "healthy", "database": "connected", **body}

    logger.log_operation("health_check", "failed", {"error": error})
    return JSONResponse(
        status_code=503,
        content={"success": False, "status": "unhealthy", "database": "disconnected", "error": error, **body},
    )


@app.get("/")
def root():
    return {
        "success": True,
        "message": "Memory Embeddings Semantic Search Service",
        "version": VERSION,
        "endpoints": {
            "health": "/health",
            "memoryEmbeddings": MEMORY_EMBEDDINGS_PATH,
        },
        "timestamp": now_iso(),
    }


app.include_router(memory_embeddings_router, prefix=MEMORY_EMBEDDINGS_PATH, tags=["memory-embeddings"])
