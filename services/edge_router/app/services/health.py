"""
Router health handler

Bound to its own route rule so container health checks reach the router
without claiming paths the frontend might use.
"""

from datetime import datetime, timezone
from typing import Any, Dict

import structlog
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.websockets import WebSocket

from shared import __version__
from shared.schemas.routing import RouteTarget, normalize_path

from ..utils.websocket_proxy import POLICY_VIOLATION

logger = structlog.get_logger(__name__)

READ_METHODS = ("GET", "HEAD")


class RouterHealth:
    """Serves {prefix}/health and {prefix}/health/detailed"""

    def __init__(self, prefix: str):
        self.prefix = prefix

    def _payload(self, request: Request) -> Dict[str, Any]:
        return {
            "service": "edge-router",
            "status": "healthy",
            "mode": request.app.state.plan.mode.value,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "version": __version__
        }

    async def health_check(self, request: Request) -> Dict[str, Any]:
        """Health check endpoint"""
        return self._payload(request)

    async def detailed_health_check(self, request: Request) -> Dict[str, Any]:
        """Detailed health check with upstream status, by logical name only"""
        gateway = request.app.state.gateway
        health_data = self._payload(request)
        health_data["components"] = {}

        for name, client in gateway.upstreams.items():
            status = await client.health_check()
            health_data["components"][name] = {"status": status}
            if status != "healthy":
                health_data["status"] = "degraded"

        if RouteTarget.STATIC in gateway.handlers:
            health_data["components"]["static"] = {"status": "healthy"}

        if health_data["status"] != "healthy":
            logger.warning("Edge router degraded", components=health_data["components"])
        return health_data

    async def handle(self, request: Request) -> Response:
        endpoints = {
            f"{self.prefix}/health": self.health_check,
            f"{self.prefix}/health/detailed": self.detailed_health_check,
        }
        endpoint = endpoints.get(normalize_path(request.url.path).rstrip("/"))
        if endpoint is None:
            return JSONResponse({"error": "Not Found"}, status_code=404)
        if request.method not in READ_METHODS:
            return JSONResponse(
                {"error": "Method Not Allowed"},
                status_code=405,
                headers={"Allow": ", ".join(READ_METHODS)},
            )
        return JSONResponse(await endpoint(request))

    async def handle_websocket(self, websocket: WebSocket) -> None:
        await websocket.close(code=POLICY_VIOLATION)
