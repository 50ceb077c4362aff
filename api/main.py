"""Main FastAPI application entry point."""

import time
import uuid
from contextlib import asynccontextmanager
from typing import Optional
from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from api.config import api_config
from api.schemas.common import ErrorResponse, ErrorCode
from api.routers.v1 import health, interpretability, predictions
from app.utils.logger import get_logger, setup_logging_from_settings, set_correlation_id
from config.settings import Settings, get_settings
from models.qualifying.errors import CorruptArtifact, InvalidInput, MissingArtifact, UnknownFeature
from models.qualifying.inference import ServiceContext

logger = get_logger(__name__)


def _error_response(request: Request, status_code: int, error: ErrorResponse) -> JSONResponse:
    error.request_id = getattr(request.state, "request_id", None)
    return JSONResponse(status_code=status_code, content=error.model_dump(mode="json"))


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """
    Create the API application.

    The artifact bundle is loaded in the lifespan; if loading fails the
    application does not start.

    Args:
        settings: Application settings (cached settings if None)

    Returns:
        FastAPI application
    """
    settings = settings or get_settings()
    setup_logging_from_settings(settings.logging)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan manager for startup and shutdown."""
        logger.info("Starting F1 Qualifying Weather API...")
        logger.info(f"Environment: {settings.env}")
        logger.info(f"Debug mode: {settings.debug}")

        try:
            logger.info(f"Loading artifact bundle from {settings.artifacts.dir}...")
            app.state.context = ServiceContext.from_settings(settings)
            app.state.started_at = time.time()
            logger.info("✓ Artifacts loaded successfully")
            logger.info("🚀 API startup complete")

        except Exception as e:
            logger.error(f"❌ Startup failed: {e}", exc_info=True)
            raise

        yield  # Application runs here

        logger.info("👋 API shutdown complete")

    app = FastAPI(
        title=api_config.API_TITLE,
        version=api_config.API_VERSION,
        description=api_config.API_DESCRIPTION,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/api/v1/openapi.json",
        lifespan=lifespan,
    )

    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.api.cors_origins,
        allow_credentials=api_config.CORS_CREDENTIALS,
        allow_methods=api_config.CORS_METHODS,
        allow_headers=api_config.CORS_HEADERS,
    )

    # GZip compression
    if api_config.ENABLE_COMPRESSION:
        app.add_middleware(GZipMiddleware, minimum_size=1000, compresslevel=api_config.COMPRESSION_LEVEL)

    @app.exception_handler(InvalidInput)
    async def invalid_input_handler(request: Request, exc: InvalidInput):
        """Reject a malformed feature vector, naming the field."""
        logger.warning(f"Invalid input: {exc}", extra={"path": request.url.path, "field": exc.field})
        return _error_response(
            request,
            status.HTTP_422_UNPROCESSABLE_ENTITY,
            ErrorResponse(
                error_code=ErrorCode.VALIDATION_ERROR,
                message=str(exc),
                details={"field": exc.field, "error": exc.message},
            ),
        )

    @app.exception_handler(UnknownFeature)
    async def unknown_feature_handler(request: Request, exc: UnknownFeature):
        """Reject a lookup outside the enumerated feature set."""
        logger.warning(f"Unknown feature: {exc.feature!r}", extra={"path": request.url.path})
        return _error_response(
            request,
            status.HTTP_404_NOT_FOUND,
            ErrorResponse(
                error_code=ErrorCode.NOT_FOUND,
                message=str(exc),
                details={"feature": exc.feature, "valid": exc.valid},
            ),
        )

    @app.exception_handler(MissingArtifact)
    @app.exception_handler(CorruptArtifact)
    async def artifact_error_handler(request: Request, exc):
        """Artifact integrity failures are deployment defects."""
        logger.error(f"Artifact error: {exc}", extra={"path": request.url.path})
        return _error_response(
            request,
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            ErrorResponse(
                error_code=ErrorCode.ARTIFACT_ERROR,
                message=str(exc),
                details={"artifact": exc.path},
            ),
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        """Handle HTTP exceptions."""
        error_code_map = {
            400: ErrorCode.BAD_REQUEST,
            404: ErrorCode.NOT_FOUND,
        }
        logger.warning(
            f"HTTP {exc.status_code}: {exc.detail}",
            extra={"path": request.url.path, "method": request.method, "status_code": exc.status_code},
        )
        return _error_response(
            request,
            exc.status_code,
            ErrorResponse(
                error_code=error_code_map.get(exc.status_code, ErrorCode.INTERNAL_ERROR),
                message=str(exc.detail),
            ),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        """Handle request validation errors."""
        logger.warning(
            f"Validation error: {exc.errors()}",
            extra={"path": request.url.path, "method": request.method},
        )
        return _error_response(
            request,
            status.HTTP_422_UNPROCESSABLE_ENTITY,
            ErrorResponse(
                error_code=ErrorCode.VALIDATION_ERROR,
                message="Request validation failed",
                details={"errors": [
                    {"loc": list(error.get("loc", ())), "msg": error.get("msg")} for error in exc.errors()
                ]},
            ),
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        """Handle unexpected exceptions."""
        logger.error(
            f"Unexpected error: {exc}",
            exc_info=True,
            extra={"path": request.url.path, "method": request.method},
        )
        return _error_response(
            request,
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            ErrorResponse(
                error_code=ErrorCode.INTERNAL_ERROR,
                message="An unexpected error occurred",
                details={"error": str(exc)} if settings.debug else None,
            ),
        )

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        """Log all requests and responses with timing."""
        correlation_id = getattr(request.state, "correlation_id", "unknown")
        start_time = time.time()

        logger.info(
            f"→ {request.method} {request.url.path}",
            extra={
                "correlation_id": correlation_id,
                "method": request.method,
                "path": request.url.path,
                "query_params": str(request.query_params),
                "client_host": request.client.host if request.client else None,
            }
        )

        response = await call_next(request)

        latency_ms = (time.time() - start_time) * 1000
        logger.info(
            f"← {response.status_code} ({latency_ms:.2f}ms)",
            extra={
                "correlation_id": correlation_id,
                "status_code": response.status_code,
                "latency_ms": latency_ms,
            }
        )

        response.headers["X-Response-Time"] = f"{latency_ms:.2f}ms"
        return response

    # Registered last so it wraps request logging
    @app.middleware("http")
    async def correlation_id_middleware(request: Request, call_next):
        """
        Add correlation ID to each request and set it in the logging context.

        The correlation ID allows tracking all logs for a single request.
        """
        correlation_id = request.headers.get(
            "X-Correlation-ID",
            request.headers.get("X-Request-ID", str(uuid.uuid4()))
        )
        set_correlation_id(correlation_id)

        request.state.correlation_id = correlation_id
        request.state.request_id = correlation_id

        response = await call_next(request)

        response.headers["X-Correlation-ID"] = correlation_id
        response.headers["X-Request-ID"] = correlation_id
        return response

    # Include routers
    app.include_router(predictions.router, prefix="/api/v1", tags=["Predictions"])
    app.include_router(interpretability.router, prefix="/api/v1", tags=["Interpretability"])
    app.include_router(health.router, prefix="/api/v1", tags=["Health & Monitoring"])

    @app.get("/", include_in_schema=False)
    async def root():
        """Root endpoint."""
        return {
            "name": api_config.API_TITLE,
            "version": api_config.API_VERSION,
            "status": "running",
            "docs": "/docs",
            "health": "/api/v1/health",
        }

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    settings = get_settings()
    uvicorn.run(
        "api.main:app",
        host=settings.api.host,
        port=settings.api.port,
        workers=settings.api.workers,
        reload=settings.api.reload,
        log_level=api_config.LOG_LEVEL,
    )
