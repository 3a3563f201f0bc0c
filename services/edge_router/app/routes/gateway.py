"""
Catch-all mount: every path and every method goes through the gateway
"""

from starlette.requests import Request
from starlette.types import Receive, Scope, Send
from starlette.websockets import WebSocket


async def dispatch(scope: Scope, receive: Receive, send: Send) -> None:
    """Route by path to the API, the dev server, the static bundle or router health"""
    gateway = scope["app"].state.gateway
    if scope["type"] == "http":
        response = await gateway.handle(Request(scope, receive))
        await response(scope, receive, send)
    elif scope["type"] == "websocket":
        await gateway.handle_websocket(WebSocket(scope, receive, send))
