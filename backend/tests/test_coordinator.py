"""
Tests for the Reload Coordinator.

Requires Python 3.11+.
"""

import asyncio
import json
import time

import pytest

from api.routes.websocket import ConnectionManager
from protocol.messages import ServedFile
from reload.classifier import ReloadDecision
from reload.coordinator import ReloadCoordinator
from watcher.debouncer import Debouncer


class TestReloadCoordinator:
    """Test cases for ReloadCoordinator.handle_batch."""

    @pytest.mark.asyncio
    async def test_reload_notifies_every_client(self, fake_websocket, make_batch):
        """A reload batch sends one FsNotify naming the first trigger."""
        manager = ConnectionManager()
        sockets = [fake_websocket(), fake_websocket()]
        for ws in sockets:
            await manager.connect(ws)
        coordinator = ReloadCoordinator(connections=manager)

        decision = await coordinator.handle_batch(make_batch("/style.css", "/app.js", "/index.html"))
        await asyncio.sleep(0)
        await asyncio.sleep(0)

        assert decision is ReloadDecision.RELOAD
        assert coordinator.last_decision is ReloadDecision.RELOAD
        for ws in sockets:
            assert len(ws.sent) == 1
            message = json.loads(ws.sent[0])
            assert message["kind"] == "FsNotify"
            assert message["item"]["web_path"] == "/app.js"

        await manager.close_all()

    @pytest.mark.asyncio
    async def test_inject_sends_nothing(self, fake_websocket, make_batch):
        """An injectable batch is silent on the wire."""
        manager = ConnectionManager()
        ws = fake_websocket()
        await manager.connect(ws)
        coordinator = ReloadCoordinator(connections=manager)

        decision = await coordinator.handle_batch(make_batch("/style.css", "/logo.png"))
        await asyncio.sleep(0)

        assert decision is ReloadDecision.INJECT
        assert ws.sent == []

        await manager.close_all()

    @pytest.mark.asyncio
    async def test_ignored_batch_has_no_decision(self, fake_websocket, make_batch):
        """A batch of source maps produces nothing at all."""
        manager = ConnectionManager()
        ws = fake_websocket()
        await manager.connect(ws)
        coordinator = ReloadCoordinator(connections=manager)

        assert await coordinator.handle_batch(make_batch("/app.js.map")) is None
        assert coordinator.last_decision is None
        assert ws.sent == []

        await manager.close_all()

    @pytest.mark.asyncio
    async def test_notify_runs_full_pipeline(self, fake_websocket, served_file):
        """Changes go through the debouncer before being classified."""
        manager = ConnectionManager()
        ws = fake_websocket()
        await manager.connect(ws)
        coordinator = ReloadCoordinator(connections=manager, debouncer=Debouncer(delay_ms=50))
        coordinator.attach(asyncio.get_running_loop())

        coordinator.notify(served_file("/style.css"))
        coordinator.notify(served_file("/index.html"))

        for _ in range(100):
            if ws.sent:
                break
            await asyncio.sleep(0.02)

        assert len(ws.sent) == 1
        assert json.loads(ws.sent[0])["item"]["web_path"] == "/index.html"

        coordinator.shutdown()
        await manager.close_all()

    @pytest.mark.asyncio
    async def test_shutdown_drops_open_batch(self, fake_websocket, served_file):
        """Tearing down never emits a partial batch."""
        manager = ConnectionManager()
        ws = fake_websocket()
        await manager.connect(ws)
        coordinator = ReloadCoordinator(connections=manager, debouncer=Debouncer(delay_ms=50))
        coordinator.attach(asyncio.get_running_loop())

        coordinator.notify(served_file("/app.js"))
        coordinator.shutdown()
        await asyncio.sleep(0.15)

        assert ws.sent == []
        assert coordinator.debouncer.pending_count == 0

        await manager.close_all()


class TestLiveReloadEndToEnd:
    """Changes reported to the running app reach connected pages."""

    WS_URL = "/__livecoord/ws"

    def test_reload_reaches_connected_page(self, client, site_dir):
        """A script change makes the page reload."""
        coordinator = client.app.state.coordinator

        with client.websocket_connect(self.WS_URL) as ws:
            assert ws.receive_json()["kind"] == "Connect"

            coordinator.notify(ServedFile(path=str(site_dir / "app.js"), web_path="/app.js"))

            message = ws.receive_json()
            assert message["kind"] == "FsNotify"
            assert message["item"]["web_path"] == "/app.js"

    def test_injectable_change_is_silent(self, client, site_dir):
        """A stylesheet change sends nothing; the next reload is the first frame."""
        coordinator = client.app.state.coordinator

        with client.websocket_connect(self.WS_URL) as ws:
            ws.receive_json()

            coordinator.notify(ServedFile(path=str(site_dir / "style.css"), web_path="/style.css"))
            for _ in range(100):
                if coordinator.last_decision is ReloadDecision.INJECT:
                    break
                time.sleep(0.02)
            assert coordinator.last_decision is ReloadDecision.INJECT

            coordinator.notify(ServedFile(path=str(site_dir / "index.html"), web_path="/index.html"))

            message = ws.receive_json()
            assert message["item"]["web_path"] == "/index.html"
