"""
LiveCoord Debouncer.

Groups bursts of served-file changes into batches.
Requires Python 3.11+.
"""

import asyncio
import inspect
import threading
import time
from collections.abc import Callable, Iterator
from dataclasses import dataclass, field
from typing import Any

from protocol.messages import ServedFile
from utils.logger import LoggerMixin


@dataclass(frozen=True, slots=True)
class ChangeEvent:
    """One change notification for a served file."""

    item: ServedFile
    received_at: float = field(default_factory=time.monotonic)


@dataclass(frozen=True, slots=True)
class ChangeBatch:
    """All events that arrived inside one quiet window, in arrival order."""

    events: tuple[ChangeEvent, ...]

    def __post_init__(self) -> None:
        if not self.events:
            raise ValueError("a change batch cannot be empty")

    def __iter__(self) -> Iterator[ChangeEvent]:
        return iter(self.events)

    def __len__(self) -> int:
        return len(self.events)

    @property
    def web_paths(self) -> list[str]:
        return [event.item.web_path for event in self.events]


BatchCallback = Callable[[ChangeBatch], Any]


class Debouncer(LoggerMixin):
    """
    Debounces rapid file changes.

    Accumulates changes and triggers callback after a delay period
    with no new changes. Every event cancels the pending timer and arms
    a fresh one inside the same critical section; a generation counter
    stops a timer that already fired from closing a batch that a newer
    event has extended.
    """

    def __init__(
        self,
        delay_ms: int = 500,
        callback: BatchCallback | None = None,
    ) -> None:
        """
        Initialize the debouncer.

        Args:
            delay_ms: Quiet window in milliseconds
            callback: Function to call with each closed batch
        """
        self._delay = delay_ms / 1000.0
        self._callback = callback
        self._pending: list[ChangeEvent] = []
        self._timer: threading.Timer | None = None
        self._generation = 0
        self._lock = threading.Lock()
        self._loop: asyncio.AbstractEventLoop | None = None

    def set_callback(self, callback: BatchCallback) -> None:
        """Set or update the callback function."""
        self._callback = callback

    def set_event_loop(self, loop: asyncio.AbstractEventLoop) -> None:
        """Set the event loop for async callbacks."""
        self._loop = loop

    def debounce(self, event: ChangeEvent | ServedFile) -> None:
        """
        Add a change to the open batch and restart the quiet window.

        Args:
            event: The change, or the served file that changed
        """
        if isinstance(event, ServedFile):
            event = ChangeEvent(item=event)

        with self._lock:
            if self._timer is not None:
                self._timer.cancel()

            self._pending.append(event)
            self._generation += 1

            self._timer = threading.Timer(
                self._delay, self._process_pending, args=(self._generation,)
            )
            self._timer.daemon = True
            self._timer.start()

    def _close_batch(self) -> ChangeBatch | None:
        # Caller holds the lock.
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        if not self._pending:
            return None
        batch = ChangeBatch(events=tuple(self._pending))
        self._pending = []
        return batch

    def _process_pending(self, generation: int) -> None:
        """Close the open batch if no event arrived since this timer was armed."""
        with self._lock:
            if generation != self._generation:
                return
            batch = self._close_batch()

        if batch is None:
            return

        self.log.debug("batch_closed", count=len(batch))
        self._dispatch(batch)

    def _dispatch(self, batch: ChangeBatch) -> None:
        if self._callback is None:
            return
        try:
            if inspect.iscoroutinefunction(self._callback):
                if self._loop is not None:
                    future = asyncio.run_coroutine_threadsafe(
                        self._callback(batch),
                        self._loop,
                    )
                    future.add_done_callback(self._async_callback_done)
                else:
                    # No event loop set, run in a new loop on this thread
                    asyncio.run(self._callback(batch))
            else:
                self._callback(batch)
        except Exception as e:
            self.log.error("debounce_callback_failed", error=str(e))

    def _async_callback_done(self, future: Any) -> None:
        if not future.cancelled() and future.exception() is not None:
            self.log.error("debounce_callback_failed", error=str(future.exception()))

    def flush(self) -> ChangeBatch | None:
        """
        Immediately close and dispatch the open batch.

        Returns:
            The batch that was pending, or None when nothing was
        """
        with self._lock:
            self._generation += 1
            batch = self._close_batch()

        if batch is not None:
            self._dispatch(batch)
        return batch

    def clear(self) -> None:
        """Cancel the quiet window and drop pending changes without emitting."""
        with self._lock:
            self._generation += 1
            dropped = len(self._pending)
            self._close_batch()

        if dropped:
            self.log.debug("pending_changes_dropped", count=dropped)

    @property
    def pending_count(self) -> int:
        """Get number of pending changes."""
        with self._lock:
            return len(self._pending)
