"""
Tests for the Live-Reload Channel.

Requires Python 3.11+.
"""

import asyncio
import json
import time

import pytest

from api.routes.websocket import ConnectionManager
from protocol.messages import FsNotify, Scroll, ServedFile


async def _settle() -> None:
    """Let sender tasks drain their queues."""
    for _ in range(5):
        await asyncio.sleep(0)


class TestConnectionManager:
    """Test cases for ConnectionManager."""

    @pytest.mark.asyncio
    async def test_connect_registers_and_accepts(self, fake_websocket):
        """Connecting accepts the socket and adds it to the registry."""
        manager = ConnectionManager()
        ws = fake_websocket()

        connection = await manager.connect(ws)

        assert ws.accepted
        assert manager.connection_count == 1

        await manager.disconnect(connection)
        await manager.disconnect(connection)
        assert manager.connection_count == 0

    @pytest.mark.asyncio
    async def test_broadcast_reaches_every_client(self, fake_websocket):
        """A broadcast is delivered to all connected clients."""
        manager = ConnectionManager()
        sockets = [fake_websocket() for _ in range(3)]
        for ws in sockets:
            await manager.connect(ws)

        item = ServedFile(path="/srv/site/app.js", web_path="/app.js")
        delivered = await manager.broadcast(FsNotify(item=item))
        await _settle()

        assert delivered == 3
        for ws in sockets:
            assert [json.loads(t)["kind"] for t in ws.sent] == ["FsNotify"]

        await manager.close_all()

    @pytest.mark.asyncio
    async def test_broadcast_skips_excluded_sender(self, fake_websocket):
        """Scroll relays are not echoed back to their sender."""
        manager = ConnectionManager()
        sender_ws, other_ws = fake_websocket(), fake_websocket()
        sender = await manager.connect(sender_ws)
        await manager.connect(other_ws)

        await manager.broadcast(Scroll(x=0, y=120), exclude=sender.id)
        await _settle()

        assert sender_ws.sent == []
        assert json.loads(other_ws.sent[0]) == {"kind": "Scroll", "x": 0.0, "y": 120.0}

        await manager.close_all()

    @pytest.mark.asyncio
    async def test_unresponsive_client_does_not_block_others(self, fake_websocket):
        """A stuck client is dropped while the rest keep receiving."""
        manager = ConnectionManager(queue_size=1)
        stuck_ws = fake_websocket(stuck=True)
        healthy_ws = fake_websocket()
        await manager.connect(stuck_ws)
        await manager.connect(healthy_ws)

        item = ServedFile(path="/srv/site/index.html", web_path="/index.html")
        for _ in range(4):
            await asyncio.wait_for(manager.broadcast(FsNotify(item=item)), timeout=1.0)
            await _settle()

        assert len(healthy_ws.sent) == 4
        assert stuck_ws.sent == []
        assert manager.connection_count == 1

        await manager.close_all()
        assert stuck_ws.closed_with == 1001

    @pytest.mark.asyncio
    async def test_close_all_closes_sockets(self, fake_websocket):
        """Shutdown closes every connection and empties the registry."""
        manager = ConnectionManager()
        sockets = [fake_websocket(), fake_websocket()]
        for ws in sockets:
            await manager.connect(ws)

        await manager.close_all()

        assert manager.connection_count == 0
        assert all(ws.closed_with == 1001 for ws in sockets)

    @pytest.mark.asyncio
    async def test_broadcast_without_clients(self, fake_websocket):
        """Broadcasting to nobody is a no-op."""
        assert await ConnectionManager().broadcast(Scroll(x=1, y=2)) == 0


class TestWebSocketEndpoint:
    """Test cases for the /__livecoord/ws endpoint."""

    WS_URL = "/__livecoord/ws"

    def test_connect_is_confirmed(self, client):
        """A new client is told it has been registered."""
        with client.websocket_connect(self.WS_URL) as ws:
            assert ws.receive_json() == {"kind": "Connect"}

    def test_scroll_relayed_to_other_clients(self, client):
        """Scroll from one page is forwarded to the other pages."""
        with client.websocket_connect(self.WS_URL) as first, client.websocket_connect(self.WS_URL) as second:
            assert first.receive_json()["kind"] == "Connect"
            assert second.receive_json()["kind"] == "Connect"

            first.send_json({"kind": "Scroll", "x": 10, "y": 250})

            assert second.receive_json() == {"kind": "Scroll", "x": 10.0, "y": 250.0}

    def test_malformed_message_keeps_connection(self, client):
        """Garbage is dropped and the connection stays usable."""
        with client.websocket_connect(self.WS_URL) as first, client.websocket_connect(self.WS_URL) as second:
            first.receive_json()
            second.receive_json()

            first.send_text("{not json")
            first.send_json({"kind": "Unknown"})
            first.send_json({"kind": "Scroll", "x": 0, "y": 5})

            assert second.receive_json() == {"kind": "Scroll", "x": 0.0, "y": 5.0}

    def test_binary_garbage_keeps_connection(self, client):
        """Undecodable binary frames are dropped without closing the socket."""
        with client.websocket_connect(self.WS_URL) as first, client.websocket_connect(self.WS_URL) as second:
            first.receive_json()
            second.receive_json()

            first.send_bytes(b"\xff\xfe garbage")
            first.send_json({"kind": "Scroll", "x": 3, "y": 4})

            assert second.receive_json() == {"kind": "Scroll", "x": 3.0, "y": 4.0}
            assert client.app.state.connections.connection_count == 2

    def test_binary_scroll_is_relayed(self, client):
        """A valid message sent as a binary frame is handled like text."""
        with client.websocket_connect(self.WS_URL) as first, client.websocket_connect(self.WS_URL) as second:
            first.receive_json()
            second.receive_json()

            first.send_bytes(b'{"kind":"Scroll","x":1,"y":2}')

            assert second.receive_json() == {"kind": "Scroll", "x": 1.0, "y": 2.0}

    def test_disconnect_unregisters(self, client):
        """Closing the socket removes the client from the registry."""
        with client.websocket_connect(self.WS_URL) as ws:
            ws.receive_json()
            assert client.app.state.connections.connection_count == 1

        for _ in range(50):
            if client.app.state.connections.connection_count == 0:
                break
            time.sleep(0.02)

        health = client.get("/__livecoord/health").json()
        assert health["connections"] == 0
