"""
LiveCoord Reload Coordinator.

Debouncer -> classifier -> connected clients.
Requires Python 3.11+.
"""

import asyncio

from api.routes.websocket import ConnectionManager
from protocol.messages import FsNotify, ServedFile
from reload.classifier import ReloadClassifier, ReloadDecision
from utils.config import Settings
from utils.logger import LoggerMixin
from watcher.debouncer import ChangeBatch, ChangeEvent, Debouncer


class ReloadCoordinator(LoggerMixin):
    """
    Decides, once per quiet window, what open pages should do.

    Classification happens here and only here: on RELOAD every client
    receives one FsNotify naming the change that forced it, on INJECT
    nothing is sent. Clients that are not connected when a decision is
    made never see it.
    """

    def __init__(
        self,
        connections: ConnectionManager,
        classifier: ReloadClassifier | None = None,
        debouncer: Debouncer | None = None,
    ) -> None:
        self._connections = connections
        self._classifier = classifier or ReloadClassifier()
        self._debouncer = debouncer or Debouncer()
        self._debouncer.set_callback(self.handle_batch)
        self._last_decision: ReloadDecision | None = None

    @classmethod
    def from_settings(cls, settings: Settings, connections: ConnectionManager) -> "ReloadCoordinator":
        """Build a coordinator from application settings."""
        return cls(
            connections=connections,
            classifier=ReloadClassifier(
                inject_patterns=settings.reload.inject_patterns,
                ignore_patterns=settings.reload.ignore_patterns,
            ),
            debouncer=Debouncer(delay_ms=settings.watcher.debounce_delay_ms),
        )

    @property
    def debouncer(self) -> Debouncer:
        return self._debouncer

    @property
    def last_decision(self) -> ReloadDecision | None:
        return self._last_decision

    def attach(self, loop: asyncio.AbstractEventLoop) -> None:
        """Deliver closed batches on ``loop``; call from the loop's thread."""
        self._debouncer.set_event_loop(loop)

    def notify(self, item: ServedFile | ChangeEvent) -> None:
        """Record one change. Thread-safe."""
        self._debouncer.debounce(item)

    async def handle_batch(self, batch: ChangeBatch) -> ReloadDecision | None:
        """Classify a closed batch and tell clients if they must reload."""
        decision = self._classifier.classify(batch)
        if decision is None:
            self.log.debug("batch_ignored", paths=batch.web_paths)
            return None

        self._last_decision = decision

        if decision is ReloadDecision.INJECT:
            self.log.info("assets_injectable", paths=batch.web_paths)
            return decision

        trigger = self._classifier.first_reload_trigger(batch)
        assert trigger is not None
        delivered = await self._connections.broadcast(FsNotify(item=trigger.item))
        self.log.info(
            "reload_requested",
            trigger=trigger.item.web_path,
            paths=batch.web_paths,
            clients=delivered,
        )
        return decision

    def shutdown(self) -> None:
        """Drop any open batch without classifying it."""
        self._debouncer.clear()
