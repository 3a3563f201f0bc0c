"""
Upstream HTTP client for the edge router

Forwards requests to one proxied service (the API or the frontend dev server)
over a shared, pooled httpx.AsyncClient.

Lifecycle:
    - Call start() during app startup (FastAPI lifespan)
    - Call stop() during app shutdown
"""

from typing import Iterable, List, Optional, Tuple

import httpx
import structlog
from starlette.background import BackgroundTask
from starlette.requests import Request
from starlette.responses import Response, StreamingResponse
from starlette.websockets import WebSocket

from shared.schemas.routing import ServiceEndpoint, normalize_path
from shared.utils.errors import UpstreamUnavailableError

from .websocket_proxy import WebSocketConnector, proxy_websocket

logger = structlog.get_logger(__name__)

# RFC 7230 section 6.1; never forwarded in either direction
HOP_BY_HOP_HEADERS = frozenset({
    "connection",
    "keep-alive",
    "proxy-authenticate",
    "proxy-authorization",
    "proxy-connection",
    "te",
    "trailer",
    "trailers",
    "transfer-encoding",
    "upgrade",
})


def strip_hop_by_hop(headers: Iterable[Tuple[str, str]]) -> List[Tuple[str, str]]:
    """Drop hop-by-hop headers, including any named in Connection"""
    headers = list(headers)
    dropped = set(HOP_BY_HOP_HEADERS)
    for name, value in headers:
        if name.lower() == "connection":
            dropped.update(token.strip().lower() for token in value.split(",") if token.strip())
    return [(name, value) for name, value in headers if name.lower() not in dropped]


def forwarded_headers(request: Request) -> List[Tuple[str, str]]:
    """Client headers to send upstream: originals minus hop-by-hop, plus X-Forwarded-*"""
    headers = strip_hop_by_hop(request.headers.items())
    client_ip = request.client.host if request.client else None

    if client_ip:
        prior = request.headers.get("x-forwarded-for")
        headers = [(name, value) for name, value in headers if name.lower() != "x-forwarded-for"]
        headers.append(("x-forwarded-for", f"{prior}, {client_ip}" if prior else client_ip))
        if "x-real-ip" not in request.headers:
            headers.append(("x-real-ip", client_ip))
    if "x-forwarded-proto" not in request.headers:
        headers.append(("x-forwarded-proto", request.url.scheme))
    host = request.headers.get("host")
    if host and "x-forwarded-host" not in request.headers:
        headers.append(("x-forwarded-host", host))
    return headers


def upstream_target(request: Request) -> str:
    """
    Path and query to request upstream.

    The path is normalized the same way the routing table sees it, keeping the
    client's percent-encoding. The query string is passed through untouched.
    """
    raw_path = request.scope.get("raw_path") or request.url.path.encode("utf-8")
    path = normalize_path(raw_path.split(b"?", 1)[0].decode("latin-1"))
    query = request.scope.get("query_string", b"").decode("latin-1")
    return f"{path}?{query}" if query else path


class UpstreamClient:
    """
    HTTP client for one proxied upstream.

    Uses a shared AsyncClient with connection pooling. Requests are never
    retried here; a failure surfaces as UpstreamUnavailableError.
    """

    # Connection pool settings (per worker)
    MAX_CONNECTIONS = 100
    MAX_KEEPALIVE = 20
    KEEPALIVE_EXPIRY = 5.0

    WRITE_TIMEOUT = 10.0
    POOL_TIMEOUT = 10.0

    def __init__(
        self,
        endpoint: ServiceEndpoint,
        connect_timeout: float = 5.0,
        read_timeout: float = 60.0,
        health_path: str = "/health",
        transport: Optional[httpx.AsyncBaseTransport] = None,
        websocket_connect: Optional[WebSocketConnector] = None,
    ):
        self.endpoint = endpoint
        self.connect_timeout = connect_timeout
        self.read_timeout = read_timeout
        self.health_path = health_path
        self._transport = transport
        self._websocket_connect = websocket_connect
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def name(self) -> str:
        return self.endpoint.name

    async def start(self):
        """Initialize the shared HTTP client"""
        if self._client is not None:
            logger.warning("Upstream client already started", upstream=self.name)
            return

        limits = httpx.Limits(
            max_connections=self.MAX_CONNECTIONS,
            max_keepalive_connections=self.MAX_KEEPALIVE,
            keepalive_expiry=self.KEEPALIVE_EXPIRY
        )
        timeout = httpx.Timeout(
            connect=self.connect_timeout,
            read=self.read_timeout,
            write=self.WRITE_TIMEOUT,
            pool=self.POOL_TIMEOUT
        )
        self._client = httpx.AsyncClient(
            base_url=self.endpoint.url,
            limits=limits,
            timeout=timeout,
            transport=self._transport,
            follow_redirects=False,
        )
        logger.info("Upstream client started", upstream=self.name, max_connections=self.MAX_CONNECTIONS)

    async def stop(self):
        """Close the HTTP client and release pooled connections"""
        if self._client:
            await self._client.aclose()
            self._client = None
            logger.info("Upstream client stopped", upstream=self.name)

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            logger.warning("Upstream client not started, starting on first use", upstream=self.name)
            await self.start()
        return self._client

    async def handle(self, request: Request) -> Response:
        """Forward a request and stream the upstream response back unchanged"""
        client = await self._get_client()
        body = await request.body()
        upstream_request = client.build_request(
            request.method,
            upstream_target(request),
            headers=forwarded_headers(request),
            content=body,
        )

        try:
            upstream = await client.send(upstream_request, stream=True)
        except httpx.TimeoutException as e:
            raise UpstreamUnavailableError(self.name, type(e).__name__, timed_out=True) from e
        except httpx.RequestError as e:
            raise UpstreamUnavailableError(self.name, type(e).__name__) from e

        response = StreamingResponse(
            upstream.aiter_raw(),
            status_code=upstream.status_code,
            background=BackgroundTask(upstream.aclose),
        )
        response.raw_headers = [
            (name.lower().encode("latin-1"), value.encode("latin-1"))
            for name, value in strip_hop_by_hop(upstream.headers.multi_items())
        ]
        return response

    async def handle_websocket(self, websocket: WebSocket) -> None:
        """Bridge a protocol upgrade to the upstream"""
        await proxy_websocket(
            websocket,
            self.endpoint,
            connect=self._websocket_connect,
            open_timeout=self.connect_timeout,
        )

    async def health_check(self) -> str:
        """Check if the upstream answers"""
        client = await self._get_client()
        try:
            response = await client.get(self.health_path, timeout=self.connect_timeout)
            if response.status_code < 500:
                return "healthy"
            return "unhealthy"
        except httpx.HTTPError as e:
            logger.warning("Upstream health check failed", upstream=self.name, error=type(e).__name__)
            return "unreachable"
