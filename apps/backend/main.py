"""
LexFill - API Service
=====================
HTTP entry point: legal template upload, placeholder review through the
document agent, company data reuse and filled document generation.
"""

import sys
import time
import uuid
from pathlib import Path

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from pydantic import BaseModel
from sqlalchemy import text
from starlette.middleware.base import BaseHTTPMiddleware

import metrics as app_metrics
from config import get_settings
from database import create_session_factory, init_models
from exceptions import (
    LexFillBaseException,
    LLMServiceError,
    NotFoundError,
    UnsupportedFileTypeError,
    ValidationError,
)
from logging_config import configure_logging, get_logger
from routers import chat_router, companies_router, documents_router
from services.document_service import DocumentService

# Will be configured in startup
logger = get_logger(__name__)

app = FastAPI(
    title="LexFill",
    description="Legal document template filling with reusable company data",
    version="0.1.0",
    docs_url="/docs",
    redoc_url="/redoc",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# =============================================================================
# Request Correlation Middleware
# =============================================================================

class RequestIDMiddleware(BaseHTTPMiddleware):
    """Inject request ID into all logs for request tracing."""

    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            request_id=request_id,
            method=request.method,
            path=request.url.path,
        )
        request.state.request_id = request_id

        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        return response


class MetricsMiddleware(BaseHTTPMiddleware):
    """Record request metrics for observability."""

    async def dispatch(self, request: Request, call_next):
        if request.url.path == "/metrics":
            return await call_next(request)

        start_time = time.time()
        response = await call_next(request)
        duration = time.time() - start_time

        # Route templates keep label cardinality bounded
        route = request.scope.get("route")
        endpoint = getattr(route, "path", request.url.path)

        app_metrics.http_requests_total.labels(
            method=request.method,
            endpoint=endpoint,
            status=response.status_code,
        ).inc()
        app_metrics.http_request_duration_seconds.labels(
            method=request.method,
            endpoint=endpoint,
        ).observe(duration)
        return response


app.add_middleware(RequestIDMiddleware)
app.add_middleware(MetricsMiddleware)

app.include_router(documents_router, prefix="/api/v1", tags=["documents"])
app.include_router(companies_router, prefix="/api/v1/companies", tags=["companies"])
app.include_router(chat_router, prefix="/api/v1/chat", tags=["chat"])


# =============================================================================
# Exception Handlers
# =============================================================================

def _status_code_for(exc: LexFillBaseException) -> int:
    if isinstance(exc, ValidationError):
        return 400
    if isinstance(exc, NotFoundError):
        return 404
    if isinstance(exc, UnsupportedFileTypeError):
        return 415
    if isinstance(exc, LLMServiceError):
        return 502
    return 500


@app.exception_handler(LexFillBaseException)
async def lexfill_exception_handler(request: Request, exc: LexFillBaseException):
    """Handle all LexFill exceptions with structured responses."""
    status_code = _status_code_for(exc)
    log = logger.warning if status_code < 500 else logger.error
    log(
        "Request failed",
        error_type=exc.__class__.__name__,
        error=exc.message,
        context=exc.context,
        status_code=status_code,
    )

    error = exc.to_dict()
    # Wrapped library errors can carry paths or provider details
    error.pop("original_error", None)
    return JSONResponse(
        status_code=status_code,
        content={"error": error, "path": str(request.url.path)},
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    """Catch-all handler for unexpected exceptions."""
    logger.exception("Unexpected error", path=str(request.url.path))
    return JSONResponse(
        status_code=500,
        content={
            "error": {
                "error_type": "InternalServerError",
                "message": "An unexpected error occurred",
                "path": str(request.url.path),
            }
        },
    )


# =============================================================================
# Service Endpoints
# =============================================================================

class HealthResponse(BaseModel):
    status: str
    version: str
    services: dict


@app.get("/health", response_model=HealthResponse)
async def health_check():
    """
    Health check endpoint for container orchestration.

    Returns 200 when the database answers, 503 otherwise.
    """
    settings = get_settings()
    services = {}

    engine, _ = create_session_factory(settings.database_url)
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        services["database"] = "healthy"
    except Exception as e:
        logger.warning("Database health check failed", error=str(e))
        services["database"] = "unhealthy"
    finally:
        await engine.dispose()

    services["upload_dir"] = "healthy" if Path(settings.upload_dir).is_dir() else "missing"
    services["llm"] = "configured" if settings.llm_api_key else "not_configured"

    healthy = services["database"] == "healthy"
    response = HealthResponse(
        status="healthy" if healthy else "unhealthy",
        version=app.version,
        services=services,
    )
    return JSONResponse(status_code=200 if healthy else 503, content=response.model_dump())


@app.get("/")
async def root():
    """Root endpoint with API information."""
    return {
        "name": "LexFill",
        "status": "operational",
        "docs": "/docs",
    }


@app.get("/metrics")
async def metrics():
    """Prometheus metrics endpoint."""
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


@app.on_event("startup")
async def startup_event():
    """Initialize resources on startup."""
    try:
        settings = get_settings()
    except Exception as e:
        print(f"Configuration validation failed: {e}", file=sys.stderr)
        print("Please check your .env file and environment variables.", file=sys.stderr)
        sys.exit(1)

    configure_logging(environment=settings.environment, log_level=settings.log_level)
    logger.info("Starting backend", environment=settings.environment, llm_model=settings.llm_model)

    Path(settings.upload_dir).mkdir(parents=True, exist_ok=True)
    await init_models(settings.database_url)
    logger.info("Database tables initialized")

    # Documents interrupted by a restart can never finish parsing
    async with DocumentService() as documents:
        rescued = await documents.rescue_stuck_documents()
        consistency = await documents.sync_storage_consistency()
    logger.info(
        "Startup consistency check complete",
        rescued=rescued["rescued"],
        corrupted=consistency["corrupted"],
    )
