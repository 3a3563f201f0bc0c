"""
Pytest fixtures for edge router tests
"""

import asyncio
import socket
from contextlib import asynccontextmanager
from typing import AsyncIterator, Callable, List, Optional

import httpx
import pytest
import uvicorn
from fastapi import FastAPI
from fastapi.testclient import TestClient

from shared.utils.config import EdgeRouterSettings, load_edge_settings
from services.edge_router.app.main import create_app

INDEX_HTML = "<!doctype html><html><body><div id=\"app\"></div></body></html>"
APP_JS = "console.log('edgestack');"


class RecordedStream(httpx.AsyncByteStream):
    """Response body delivered as a stream, the way a real transport does"""

    def __init__(self, body: bytes):
        self.body = body

    async def __aiter__(self) -> AsyncIterator[bytes]:
        if self.body:
            yield self.body


class UpstreamRecorder:
    """
    Stands in for every upstream; records what the router forwarded.

    Responders return ordinary httpx.Response objects. They are re-wrapped
    around a RecordedStream, since the router reads upstream bodies as streams.
    """

    def __init__(self):
        self.requests: List[httpx.Request] = []
        self.responder: Callable[[httpx.Request], httpx.Response] = self.default_response

    @staticmethod
    def default_response(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"upstream": request.url.host, "path": request.url.path})

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        response = self.responder(request)
        return httpx.Response(
            response.status_code,
            headers=response.headers.multi_items(),
            stream=RecordedStream(response.content),
        )

    @property
    def last(self) -> httpx.Request:
        return self.requests[-1]

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self)


class FakeUpstreamSocket:
    """Echoing upstream websocket; hangs up with hangup_code when it receives hangup_on"""

    def __init__(self, subprotocol: Optional[str] = None, hangup_on: Optional[str] = None,
                 hangup_code: int = 4001):
        self.subprotocol = subprotocol
        self.hangup_on = hangup_on
        self.hangup_code = hangup_code
        self.sent = []
        self.closed = False
        self.close_code = None
        self._inbox = asyncio.Queue()

    async def send(self, message):
        self.sent.append(message)
        if self.hangup_on is not None and message == self.hangup_on:
            self.close_code = self.hangup_code
            await self._inbox.put(None)
            return
        await self._inbox.put(message)

    async def close(self, code: int = 1000):
        self.closed = True
        if self.close_code is None:
            self.close_code = code
        await self._inbox.put(None)

    def __aiter__(self):
        return self

    async def __anext__(self):
        message = await self._inbox.get()
        if message is None:
            raise StopAsyncIteration
        return message


class FakeConnector:
    """Replacement for websockets' connect()"""

    def __init__(self, subprotocol: Optional[str] = None, error: Optional[BaseException] = None,
                 hangup_on: Optional[str] = None):
        self.subprotocol = subprotocol
        self.error = error
        self.hangup_on = hangup_on
        self.calls = []
        self.sockets: List[FakeUpstreamSocket] = []

    async def __call__(self, url, **kwargs):
        self.calls.append((url, kwargs))
        if self.error is not None:
            raise self.error
        socket = FakeUpstreamSocket(self.subprotocol, hangup_on=self.hangup_on)
        self.sockets.append(socket)
        return socket


@pytest.fixture
def static_root(tmp_path):
    """A built frontend bundle"""
    root = tmp_path / "dist"
    (root / "assets").mkdir(parents=True)
    (root / "index.html").write_text(INDEX_HTML)
    (root / "assets" / "app.3f9c.js").write_text(APP_JS)
    (root / "robots.txt").write_text("User-agent: *\n")
    return root


@pytest.fixture
def dev_settings() -> EdgeRouterSettings:
    return load_edge_settings(
        deployment_mode="development",
        api_service_url="http://api:8000",
        frontend_dev_url="http://frontend:5173",
    )


@pytest.fixture
def prod_settings(static_root) -> EdgeRouterSettings:
    return load_edge_settings(
        deployment_mode="production",
        api_service_url="http://api:8000",
        static_root=str(static_root),
    )


@pytest.fixture
def upstream() -> UpstreamRecorder:
    return UpstreamRecorder()


@pytest.fixture
def connector() -> FakeConnector:
    return FakeConnector(subprotocol="vite-hmr")


@pytest.fixture
def dev_client(dev_settings, upstream, connector):
    """Router in development mode, with upstreams replaced"""
    app = create_app(dev_settings, transport=upstream.transport, websocket_connect=connector)
    with TestClient(app) as client:
        yield client


@pytest.fixture
def prod_client(prod_settings, upstream, connector):
    """Router in production mode, with the API upstream replaced"""
    app = create_app(prod_settings, transport=upstream.transport, websocket_connect=connector)
    with TestClient(app) as client:
        yield client


@asynccontextmanager
async def live_router(app: FastAPI) -> AsyncIterator[str]:
    """Serve app with uvicorn on a free local port; yields the ws:// base URL"""
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    sock.bind(("127.0.0.1", 0))
    host, port = sock.getsockname()
    server = uvicorn.Server(uvicorn.Config(app, log_config=None, access_log=False, lifespan="on"))
    serving = asyncio.create_task(server.serve(sockets=[sock]))
    try:
        while not server.started:
            if serving.done():
                serving.result()
                raise RuntimeError("uvicorn exited during startup")
            await asyncio.sleep(0.01)
        yield f"ws://{host}:{port}"
    finally:
        server.should_exit = True
        await serving
        sock.close()


async def eventually(condition: Callable[[], bool], timeout: float = 2.0) -> bool:
    """Poll condition until it holds or timeout expires"""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not condition():
        if loop.time() >= deadline:
            return False
        await asyncio.sleep(0.01)
    return True
