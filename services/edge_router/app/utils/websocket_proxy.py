"""
WebSocket upgrade proxying for the edge router

Bridges a client websocket to an upstream one, used for the dev server's
live-reload channel. Frames are pumped in both directions until either side
closes.
"""

import asyncio
from typing import Any, Awaitable, Callable, List, Optional, Tuple

import structlog
from starlette.responses import JSONResponse
from starlette.websockets import WebSocket, WebSocketState
from websockets.asyncio.client import connect as websockets_connect
from websockets.exceptions import ConnectionClosed, WebSocketException

from shared.schemas.routing import ServiceEndpoint, normalize_path

logger = structlog.get_logger(__name__)

WebSocketConnector = Callable[..., Awaitable[Any]]

# RFC 6455 close codes
NORMAL_CLOSURE = 1000
POLICY_VIOLATION = 1008
BAD_GATEWAY = 1014
# Reserved codes that must not appear in a close frame
RESERVED_CLOSE_CODES = frozenset({1005, 1006, 1015})
# ASGI extension for answering a handshake with a plain HTTP response
DENIAL_RESPONSE_EXTENSION = "websocket.http.response"

_SKIPPED_HEADERS = frozenset({
    "host",
    "connection",
    "upgrade",
    "content-length",
    "sec-websocket-key",
    "sec-websocket-version",
    "sec-websocket-extensions",
    "sec-websocket-protocol",
    "sec-websocket-accept",
})


def upgrade_headers(websocket: WebSocket) -> List[Tuple[str, str]]:
    """Client handshake headers that are safe to repeat upstream"""
    return [
        (name, value)
        for name, value in websocket.headers.items()
        if name.lower() not in _SKIPPED_HEADERS
    ]


async def proxy_websocket(
    websocket: WebSocket,
    endpoint: ServiceEndpoint,
    connect: Optional[WebSocketConnector] = None,
    open_timeout: float = 5.0,
) -> None:
    """Connect upstream first, then accept the client with the negotiated subprotocol"""
    connect = connect or websockets_connect
    url = endpoint.websocket_url(normalize_path(websocket.url.path), websocket.url.query)
    subprotocols = list(websocket.scope.get("subprotocols") or [])

    try:
        upstream = await connect(
            url,
            subprotocols=subprotocols or None,
            additional_headers=upgrade_headers(websocket),
            open_timeout=open_timeout,
        )
    except (OSError, asyncio.TimeoutError, WebSocketException) as e:
        logger.warning("Upstream websocket unavailable", upstream=endpoint.name, error=type(e).__name__)
        await reject_handshake(websocket, timed_out=isinstance(e, asyncio.TimeoutError))
        return

    try:
        await websocket.accept(subprotocol=upstream.subprotocol)
        logger.debug("Websocket bridged", upstream=endpoint.name, path=websocket.url.path)
        await _pump(websocket, upstream, endpoint.name)
    finally:
        await upstream.close()


async def reject_handshake(websocket: WebSocket, timed_out: bool = False) -> None:
    """
    Refuse an upgrade whose upstream could not be reached.

    Answers the handshake with 502 (504 on timeout) so clients see a gateway
    failure. Servers without the denial response extension only get a close
    frame, which they may surface as 403.
    """
    if DENIAL_RESPONSE_EXTENSION not in websocket.scope.get("extensions", {}):
        await websocket.close(code=BAD_GATEWAY)
        return

    if timed_out:
        response = JSONResponse({"error": "Gateway Timeout"}, status_code=504)
    else:
        response = JSONResponse({"error": "Bad Gateway"}, status_code=502)
    await websocket.send_denial_response(response)


async def _client_to_upstream(websocket: WebSocket, upstream: Any, name: str) -> None:
    while True:
        message = await websocket.receive()
        if message["type"] == "websocket.disconnect":
            return
        try:
            if message.get("text") is not None:
                await upstream.send(message["text"])
            elif message.get("bytes") is not None:
                await upstream.send(message["bytes"])
        except ConnectionClosed:
            logger.debug("Upstream websocket closed while sending", upstream=name)
            return


async def _upstream_to_client(websocket: WebSocket, upstream: Any, name: str) -> None:
    try:
        async for message in upstream:
            if isinstance(message, str):
                await websocket.send_text(message)
            else:
                await websocket.send_bytes(message)
    except ConnectionClosed as e:
        logger.debug("Upstream websocket closed", upstream=name, code=e.rcvd.code if e.rcvd else None)


async def _pump(websocket: WebSocket, upstream: Any, name: str) -> None:
    inbound = asyncio.create_task(
        _client_to_upstream(websocket, upstream, name), name=f"websocket-pump-{name}-inbound"
    )
    outbound = asyncio.create_task(
        _upstream_to_client(websocket, upstream, name), name=f"websocket-pump-{name}-outbound"
    )
    try:
        done, _ = await asyncio.wait({inbound, outbound}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        # Also runs when the handler itself is cancelled, e.g. on shutdown
        inbound.cancel()
        outbound.cancel()
        await asyncio.gather(inbound, outbound, return_exceptions=True)

    for task in done:
        task.result()

    if outbound in done and websocket.application_state is WebSocketState.CONNECTED \
            and websocket.client_state is WebSocketState.CONNECTED:
        code = getattr(upstream, "close_code", None)
        if not code or code in RESERVED_CLOSE_CODES:
            code = NORMAL_CLOSURE
        await websocket.close(code=code)
