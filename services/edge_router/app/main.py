"""
Edge Router - Main Application
Single ingress for the stack: forwards API traffic to the API service and
everything else to the frontend dev server or the prebuilt static bundle
"""

import time
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

import httpx
import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from shared import __version__
from shared.utils.composition import plan_for
from shared.utils.config import EdgeRouterSettings, load_edge_settings
from shared.utils.errors import UpstreamUnavailableError
from shared.utils.logger import get_request_logger

from .routes import gateway as gateway_routes
from .services.gateway import Gateway
from .utils.websocket_proxy import WebSocketConnector

logger = structlog.get_logger(__name__)


def create_app(
    settings: Optional[EdgeRouterSettings] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
    websocket_connect: Optional[WebSocketConnector] = None,
) -> FastAPI:
    """
    Build the edge router application

    The composition plan and routing table are fixed here; a missing static
    bundle in production raises ConfigurationError before anything is served.
    """
    settings = settings or load_edge_settings()
    plan = plan_for(settings.deployment_mode)
    gateway = Gateway.from_plan(settings, plan, transport=transport, websocket_connect=websocket_connect)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Application lifespan events"""
        logger.info(
            "Starting Edge Router",
            mode=plan.mode.value,
            frontend=plan.frontend.value,
            routes=[f"{rule.prefix} -> {rule.target.value}" for rule in gateway.table.rules],
        )
        await gateway.start()

        yield

        await gateway.stop()
        logger.info("Edge Router shutdown complete")

    # Docs are disabled so their paths fall through to the frontend
    app = FastAPI(
        title="edgestack - Edge Router",
        description="Path-based ingress for the API service and the frontend",
        version=__version__,
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
        lifespan=lifespan
    )
    app.state.settings = settings
    app.state.plan = plan
    app.state.gateway = gateway

    request_logger = get_request_logger()

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        """Log every routed request"""
        started = time.perf_counter()
        response = await call_next(request)
        request_logger.log_request(
            method=request.method,
            path=request.url.path,
            status_code=response.status_code,
            response_time=time.perf_counter() - started,
            target=getattr(request.state, "route_target", None),
            ip_address=request.client.host if request.client else None,
        )
        return response

    @app.exception_handler(UpstreamUnavailableError)
    async def upstream_unavailable_handler(request: Request, exc: UpstreamUnavailableError):
        """Gateway failure; details stay in the log"""
        logger.warning(
            "Upstream unavailable",
            upstream=exc.upstream,
            reason=exc.reason,
            timed_out=exc.timed_out,
            method=request.method,
            path=request.url.path,
        )
        if exc.timed_out:
            return JSONResponse(status_code=504, content={"error": "Gateway Timeout"})
        return JSONResponse(status_code=502, content={"error": "Bad Gateway"})

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

    # Mounted, not routed: any method and any upgrade reaches the routing table
    app.mount("/", gateway_routes.dispatch, name="gateway")

    return app
