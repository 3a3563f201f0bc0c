"""
API Service - Main Application
REST endpoints under the API prefix, backed by Postgres.

Startup blocks on the database readiness gate. uvicorn completes the lifespan
startup before it binds its socket, so no traffic is accepted until the
database answers.
"""

import time
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from shared import __version__
from shared.utils.config import ApiServiceSettings, load_api_settings
from shared.utils.database import DatabaseManager, wait_for_database
from shared.utils.logger import get_request_logger

from .routes import health, items
from .utils.database import ItemRepository

logger = structlog.get_logger(__name__)


def create_app(settings: Optional[ApiServiceSettings] = None) -> FastAPI:
    """Build the API service application"""
    settings = settings or load_api_settings()
    prefix = settings.api_prefix

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Application lifespan events"""
        logger.info("Starting API Service", mode=settings.deployment_mode.value)

        await wait_for_database(
            settings.database,
            max_wait=settings.db_ready_timeout,
            initial_delay=settings.db_ready_initial_delay,
            max_delay=settings.db_ready_max_delay,
        )

        db = DatabaseManager(
            settings.database,
            min_size=settings.db_pool_min_size,
            max_size=settings.db_pool_max_size,
        )
        await db.initialize()
        try:
            repository = ItemRepository(db)
            await repository.ensure_schema(seed=settings.seed_sample_data)
            app.state.db = db
            app.state.items = repository
            logger.info("API Service ready")

            yield
        finally:
            await db.close()
            logger.info("API Service shutdown complete")

    app = FastAPI(
        title="edgestack - API Service",
        description="REST API served behind the edge router",
        version=__version__,
        docs_url=f"{prefix}/docs",
        redoc_url=None,
        openapi_url=f"{prefix}/openapi.json",
        lifespan=lifespan
    )
    app.state.settings = settings

    request_logger = get_request_logger()

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        """Log all incoming requests"""
        started = time.perf_counter()
        response = await call_next(request)
        request_logger.log_request(
            method=request.method,
            path=request.url.path,
            status_code=response.status_code,
            response_time=time.perf_counter() - started,
            ip_address=request.client.host if request.client else None,
        )
        return response

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """Global exception handler"""
        logger.error(
            "Unhandled exception",
            error=str(exc),
            method=request.method,
            path=request.url.path,
            exc_info=True
        )
        return JSONResponse(
            status_code=500,
            content={
                "error": "Internal server error",
                "message": "An unexpected error occurred"
            }
        )

    # Register routes; /health stays reachable for container health checks
    app.include_router(health.router, tags=["Health"])
    app.include_router(health.router, prefix=prefix, tags=["Health"])
    app.include_router(items.router, prefix=f"{prefix}/items", tags=["Items"])

    @app.get(prefix)
    async def root():
        """Root endpoint"""
        return {
            "service": "api-service",
            "version": __version__,
            "status": "running",
            "docs": f"{prefix}/docs"
        }

    return app
