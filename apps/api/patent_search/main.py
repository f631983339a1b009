"""
Patent Search API

Main application entry point for the FastAPI backend.
Serves filtered, paginated patent search and CSV export of filtered results.
"""
from __future__ import annotations

import time
from contextlib import asynccontextmanager
from typing import Dict

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse

from patent_search.api.v1.routes.search import router as search_router
from patent_search.core.errors import ExportFailed, ExportInProgress, QueryFailed
from patent_search.core.logging import bind_request_id, configure_logging, get_logger
from patent_search.core.settings import get_settings
from patent_search.services.export.engine import BulkExporter
from patent_search.services.storage.factory import configuration_issues, create_executor

settings = get_settings()
configure_logging(settings)
log = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan context manager.
    Creates the query executor on startup and closes it on shutdown.
    """
    log.info("Starting Patent Search API")
    log.info(f"Environment: {settings.env}")
    log.info(f"Search backend: {settings.search_backend}")

    for issue in configuration_issues(settings):
        log.warning(f"Search backend not ready: {issue}")

    # A misconfigured backend keeps the app up; /ready and searches report 503
    try:
        app.state.executor = create_executor(settings)
    except ValueError as e:
        log.error(f"Failed to create query executor: {e}")
        app.state.executor = None
        app.state.exporter = None
    else:
        app.state.exporter = BulkExporter(app.state.executor)

    yield

    log.info("Shutting down Patent Search API")
    if app.state.executor is not None:
        await app.state.executor.close()


def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.

    Returns:
        Configured FastAPI application instance
    """
    app = FastAPI(
        title="Patent Search API",
        description="Keyword, assignee and filing-date search over patents, "
                    "with paginated browsing and CSV export of the filtered set",
        version="1.0.0",
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    _configure_cors(app)
    _configure_middleware(app)
    _register_exception_handlers(app)
    _register_routes(app)

    return app


def _configure_cors(app: FastAPI) -> None:
    """Configure CORS middleware with settings from environment."""
    origins = settings.cors_allow_origins if settings.cors_allow_origins else ["*"]

    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID", "Content-Disposition"],
    )
    log.info(f"CORS configured with origins: {origins}")


def _configure_middleware(app: FastAPI) -> None:
    """Configure additional middleware for the application."""
    app.add_middleware(GZipMiddleware, minimum_size=1000)

    @app.middleware("http")
    async def add_process_time_header(request: Request, call_next):
        """Add processing time header to all responses."""
        start_time = time.time()
        response = await call_next(request)
        process_time = time.time() - start_time
        response.headers["X-Process-Time"] = f"{process_time:.4f}"
        return response

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        """Tag the request with an ID and log it."""
        request_id = bind_request_id(request.headers.get("X-Request-ID"))
        log.info(f"Request: {request.method} {request.url.path}")
        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        log.info(f"Response: {request.method} {request.url.path} - Status: {response.status_code}")
        return response


def _register_exception_handlers(app: FastAPI) -> None:
    """Register global exception handlers."""

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        """Handle request validation errors with detailed error messages."""
        log.warning(f"Validation error for {request.url.path}: {exc.errors()}")
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content={
                "error": "Validation Error",
                "detail": exc.errors(),
            },
        )

    @app.exception_handler(ExportInProgress)
    async def export_in_progress_handler(request: Request, exc: ExportInProgress):
        log.warning(f"Rejected concurrent export for {request.url.path}")
        return JSONResponse(
            status_code=status.HTTP_409_CONFLICT,
            content={"detail": exc.user_message},
        )

    @app.exception_handler(ExportFailed)
    async def export_failed_handler(request: Request, exc: ExportFailed):
        log.warning(f"Export failed for {request.url.path}: {exc.detail}")
        return JSONResponse(
            status_code=status.HTTP_502_BAD_GATEWAY,
            content={"detail": exc.user_message},
        )

    @app.exception_handler(QueryFailed)
    async def query_failed_handler(request: Request, exc: QueryFailed):
        log.warning(f"Query failed for {request.url.path}: {exc.detail}")
        return JSONResponse(
            status_code=status.HTTP_502_BAD_GATEWAY,
            content={"detail": exc.user_message},
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        """Handle unexpected exceptions."""
        log.exception(f"Unhandled exception for {request.url.path}")
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "error": "Internal Server Error",
                "detail": "An unexpected error occurred. Please try again later.",
            },
        )


def _register_routes(app: FastAPI) -> None:
    """Register all API routes."""

    @app.get("/health", tags=["Health"])
    async def health_check() -> Dict[str, str]:
        """
        Basic health check endpoint.
        Returns 200 if the service is running.
        """
        return {"status": "healthy", "service": "patent-search-api"}

    @app.get("/ready", tags=["Health"])
    async def readiness_check() -> JSONResponse:
        """
        Readiness check endpoint.
        Validates that the selected search backend is configured.
        """
        issues = configuration_issues(settings)
        ready = not issues

        status_code = status.HTTP_200_OK if ready else status.HTTP_503_SERVICE_UNAVAILABLE

        return JSONResponse(
            status_code=status_code,
            content={
                "ready": ready,
                "issues": issues,
                "backend": settings.search_backend,
                "service": "patent-search-api",
            },
        )

    app.include_router(
        search_router,
        prefix="/api/v1",
        tags=["Search"],
    )

    log.info("Routes registered successfully")

app = create_app()
