"""
LiveCoord Test Configuration.

Pytest fixtures and configuration.
Requires Python 3.11+.
"""

import asyncio
from collections.abc import Callable
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from protocol.messages import ServedFile
from utils.config import (
    ReloadSettings,
    ServerSettings,
    Settings,
    SupervisorSettings,
    WatcherSettings,
)
from watcher.debouncer import ChangeBatch, ChangeEvent


class FakeWebSocket:
    """Stand-in for a Starlette WebSocket recording what is sent."""

    def __init__(self, stuck: bool = False) -> None:
        self.accepted = False
        self.closed_with: int | None = None
        self.sent: list[str] = []
        self.stuck = stuck
        self._release = asyncio.Event()

    async def accept(self) -> None:
        self.accepted = True

    async def send_text(self, text: str) -> None:
        if self.stuck:
            # Never returns until released, like a client that stopped reading
            await self._release.wait()
        self.sent.append(text)

    async def close(self, code: int = 1000) -> None:
        self.closed_with = code


@pytest.fixture
def fake_websocket() -> type[FakeWebSocket]:
    """The FakeWebSocket class, for tests that need several."""
    return FakeWebSocket


@pytest.fixture
def served_file() -> Callable[..., ServedFile]:
    """Factory for served files under /srv/site."""

    def _make(web_path: str, referer: str | None = None) -> ServedFile:
        return ServedFile(
            path=f"/srv/site{web_path}",
            web_path=web_path,
            referer=referer,
        )

    return _make


@pytest.fixture
def make_batch(served_file) -> Callable[..., ChangeBatch]:
    """Build a batch from web paths, in the given order."""

    def _make(*web_paths: str) -> ChangeBatch:
        return ChangeBatch(events=tuple(ChangeEvent(item=served_file(p)) for p in web_paths))

    return _make


@pytest.fixture
def site_dir(tmp_path: Path) -> Path:
    """A small served directory."""
    root = tmp_path / "site"
    root.mkdir()
    (root / "index.html").write_text("<html><body>hello</body></html>")
    (root / "style.css").write_text("body { color: red; }")
    (root / "app.js").write_text("console.log('hi');")
    return root


@pytest.fixture
def settings(site_dir: Path) -> Settings:
    """Settings with a short quiet window and the watcher switched off."""
    return Settings(
        watcher=WatcherSettings(root=site_dir, debounce_delay_ms=50, enabled=False),
        reload=ReloadSettings(),
        server=ServerSettings(),
        supervisor=SupervisorSettings(command=[]),
    )


@pytest.fixture
def client(settings: Settings):
    """A test client with the application lifespan running."""
    from api.main import create_app

    with TestClient(create_app(settings)) as test_client:
        yield test_client
