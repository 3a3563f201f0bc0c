"""
Gateway: dispatches every request through the active routing table

Handlers are built once from the composition plan, one per route target that
the table can produce. Dispatch is a table lookup followed by a handler call.
"""

from typing import Callable, Dict, Optional, Protocol

import httpx
import structlog
from starlette.requests import Request
from starlette.responses import Response
from starlette.websockets import WebSocket

from shared.schemas.routing import RouteRule, RouteTarget, RoutingTable
from shared.utils.composition import CompositionPlan
from shared.utils.config import EdgeRouterSettings
from shared.utils.errors import ConfigurationError

from ..utils.static_files import StaticAssetResolver
from ..utils.upstream_client import UpstreamClient
from ..utils.websocket_proxy import WebSocketConnector
from .health import RouterHealth

logger = structlog.get_logger(__name__)


class RouteHandler(Protocol):
    async def handle(self, request: Request) -> Response: ...

    async def handle_websocket(self, websocket: WebSocket) -> None: ...


HandlerFactory = Callable[
    [EdgeRouterSettings, Optional[httpx.AsyncBaseTransport], Optional[WebSocketConnector]],
    RouteHandler,
]


def _api_handler(settings, transport, websocket_connect) -> RouteHandler:
    return UpstreamClient(
        settings.api_endpoint,
        connect_timeout=settings.upstream_connect_timeout,
        read_timeout=settings.upstream_read_timeout,
        health_path=f"{settings.api_prefix}/health",
        transport=transport,
        websocket_connect=websocket_connect,
    )


def _frontend_handler(settings, transport, websocket_connect) -> RouteHandler:
    return UpstreamClient(
        settings.frontend_endpoint,
        connect_timeout=settings.upstream_connect_timeout,
        read_timeout=settings.upstream_read_timeout,
        health_path="/",
        transport=transport,
        websocket_connect=websocket_connect,
    )


def _static_handler(settings, transport, websocket_connect) -> RouteHandler:
    return StaticAssetResolver(settings.static_root, entry_document=settings.entry_document)


def _router_handler(settings, transport, websocket_connect) -> RouteHandler:
    return RouterHealth(settings.router_health_prefix)


HANDLER_FACTORIES: Dict[RouteTarget, HandlerFactory] = {
    RouteTarget.API: _api_handler,
    RouteTarget.FRONTEND: _frontend_handler,
    RouteTarget.STATIC: _static_handler,
    RouteTarget.ROUTER: _router_handler,
}


class Gateway:
    """Routing table plus the handler bound to each of its targets"""

    def __init__(self, table: RoutingTable, handlers: Dict[RouteTarget, RouteHandler]):
        missing = table.targets - set(handlers)
        if missing:
            raise ConfigurationError(
                "No handler for route targets: " + ", ".join(sorted(t.value for t in missing))
            )
        self.table = table
        self.handlers = dict(handlers)

    @classmethod
    def from_plan(
        cls,
        settings: EdgeRouterSettings,
        plan: CompositionPlan,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        websocket_connect: Optional[WebSocketConnector] = None,
    ) -> "Gateway":
        """Build the table for the plan's routing variant and a handler per target"""
        table = plan.routing.route_table(settings.api_prefix, settings.router_health_prefix)
        handlers = {
            target: HANDLER_FACTORIES[target](settings, transport, websocket_connect)
            for target in table.targets
        }
        return cls(table, handlers)

    @property
    def upstreams(self) -> Dict[str, UpstreamClient]:
        return {
            handler.name: handler
            for handler in self.handlers.values()
            if isinstance(handler, UpstreamClient)
        }

    async def start(self):
        for client in self.upstreams.values():
            await client.start()

    async def stop(self):
        for client in self.upstreams.values():
            await client.stop()

    def route(self, path: str) -> RouteRule:
        return self.table.match(path)

    async def handle(self, request: Request) -> Response:
        rule = self.route(request.url.path)
        request.state.route_target = rule.target.value
        return await self.handlers[rule.target].handle(request)

    async def handle_websocket(self, websocket: WebSocket) -> None:
        rule = self.route(websocket.url.path)
        await self.handlers[rule.target].handle_websocket(websocket)
