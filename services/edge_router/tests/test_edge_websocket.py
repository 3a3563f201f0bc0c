"""
Tests for protocol upgrade proxying

Bridged sessions run against a real uvicorn server, so handshakes, close
codes and shutdown behave as they do in a deployment.
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest
from starlette.websockets import WebSocketDisconnect
from websockets.asyncio.client import connect
from websockets.exceptions import ConnectionClosed, InvalidStatus

from services.edge_router.app.main import create_app
from services.edge_router.app.utils.websocket_proxy import BAD_GATEWAY, _pump, reject_handshake

from .conftest import FakeConnector, eventually, live_router


class TestWebsocketBridge:
    """Test the live-reload channel through the router"""

    @pytest.mark.asyncio
    async def test_messages_flow_both_ways(self, dev_settings, upstream, connector):
        app = create_app(dev_settings, transport=upstream.transport, websocket_connect=connector)

        async with live_router(app) as base_url:
            async with connect(f"{base_url}/@vite/hmr?token=abc", subprotocols=["vite-hmr"]) as ws:
                await ws.send("ping")
                assert await ws.recv() == "ping"
                await ws.send(b"\x01\x02")
                assert await ws.recv() == b"\x01\x02"

        url, kwargs = connector.calls[0]
        assert url == "ws://frontend:5173/@vite/hmr?token=abc"
        assert kwargs["subprotocols"] == ["vite-hmr"]
        assert connector.sockets[0].sent == ["ping", b"\x01\x02"]

    @pytest.mark.asyncio
    async def test_negotiated_subprotocol_is_returned(self, dev_settings, upstream, connector):
        app = create_app(dev_settings, transport=upstream.transport, websocket_connect=connector)

        async with live_router(app) as base_url:
            async with connect(f"{base_url}/ws", subprotocols=["vite-hmr"]) as ws:
                assert ws.subprotocol == "vite-hmr"

    @pytest.mark.asyncio
    async def test_upstream_is_closed_when_client_leaves(self, dev_settings, upstream, connector):
        app = create_app(dev_settings, transport=upstream.transport, websocket_connect=connector)

        async with live_router(app) as base_url:
            async with connect(f"{base_url}/ws") as ws:
                await ws.send("hello")
                await ws.recv()

            assert await eventually(lambda: connector.sockets[0].closed)

    @pytest.mark.asyncio
    async def test_upstream_close_code_reaches_client(self, dev_settings, upstream):
        connector = FakeConnector(hangup_on="bye")
        app = create_app(dev_settings, transport=upstream.transport, websocket_connect=connector)

        async with live_router(app) as base_url:
            async with connect(f"{base_url}/ws") as ws:
                await ws.send("bye")
                with pytest.raises(ConnectionClosed) as exc_info:
                    await ws.recv()

        assert exc_info.value.rcvd.code == 4001

    @pytest.mark.asyncio
    async def test_api_upgrades_go_to_api_service(self, dev_settings, upstream, connector):
        app = create_app(dev_settings, transport=upstream.transport, websocket_connect=connector)

        async with live_router(app) as base_url:
            async with connect(f"{base_url}/api//events") as ws:
                await ws.send("x")
                await ws.recv()

        assert connector.calls[0][0] == "ws://api:8000/api/events"


class TestUpgradeFailures:
    """Test handshakes the router cannot complete"""

    @pytest.mark.asyncio
    async def test_unreachable_upstream_is_bad_gateway(self, dev_settings, upstream):
        connector = FakeConnector(error=OSError("Connection refused"))
        app = create_app(dev_settings, transport=upstream.transport, websocket_connect=connector)

        async with live_router(app) as base_url:
            with pytest.raises(InvalidStatus) as exc_info:
                async with connect(f"{base_url}/@vite/hmr"):
                    pass

        assert exc_info.value.response.status_code == 502
        assert b"Bad Gateway" in exc_info.value.response.body

    @pytest.mark.asyncio
    async def test_upstream_handshake_timeout_is_gateway_timeout(self, dev_settings, upstream):
        connector = FakeConnector(error=asyncio.TimeoutError())
        app = create_app(dev_settings, transport=upstream.transport, websocket_connect=connector)

        async with live_router(app) as base_url:
            with pytest.raises(InvalidStatus) as exc_info:
                async with connect(f"{base_url}/api/events"):
                    pass

        assert exc_info.value.response.status_code == 504

    @pytest.mark.asyncio
    async def test_close_frame_without_denial_support(self):
        websocket = MagicMock()
        websocket.scope = {"type": "websocket", "extensions": {}}
        websocket.close = AsyncMock()
        websocket.send_denial_response = AsyncMock()

        await reject_handshake(websocket)

        websocket.close.assert_awaited_once_with(code=BAD_GATEWAY)
        websocket.send_denial_response.assert_not_awaited()

    def test_static_paths_refuse_upgrades(self, prod_client, connector):
        with pytest.raises(WebSocketDisconnect) as exc_info:
            with prod_client.websocket_connect("/ws"):
                pass

        assert exc_info.value.code == 1008
        assert connector.calls == []


class IdleClient:
    """Client side of a bridge that never sends anything"""

    async def receive(self):
        await asyncio.Event().wait()


class IdleUpstream:
    """Upstream side of a bridge that never sends anything"""

    def __aiter__(self):
        return self

    async def __anext__(self):
        await asyncio.Event().wait()


class TestBridgeShutdown:
    """Test that a cancelled bridge leaves no frame pumps behind"""

    @pytest.mark.asyncio
    async def test_cancelled_bridge_stops_both_pumps(self):
        bridge = asyncio.create_task(_pump(IdleClient(), IdleUpstream(), "frontend"))
        assert await eventually(lambda: len(_pump_tasks()) == 2)

        bridge.cancel()
        with pytest.raises(asyncio.CancelledError):
            await bridge

        assert _pump_tasks() == []


def _pump_tasks():
    return [
        task for task in asyncio.all_tasks()
        if task.get_name().startswith("websocket-pump-") and not task.done()
    ]
