"""
LiveCoord Reload Classifier.

Decides whether a batch of served-file changes can be hot-injected
into open pages or needs a full page reload.
Requires Python 3.11+.
"""

from collections.abc import Iterable, Sequence
from enum import Enum
from fnmatch import fnmatchcase

from protocol.messages import ServedFile
from watcher.debouncer import ChangeBatch, ChangeEvent

DEFAULT_INJECT_PATTERNS = ("*.css", "*.jpg", "*.png")
DEFAULT_IGNORE_PATTERNS = ("*.map",)


class ReloadDecision(str, Enum):
    """What connected clients should do about a batch."""

    INJECT = "inject"
    RELOAD = "reload"


def _matches(web_path: str, patterns: Iterable[str]) -> bool:
    return any(fnmatchcase(web_path, pattern) for pattern in patterns)


class ReloadClassifier:
    """
    All-or-nothing classifier over served paths.

    A batch is injectable only when every event in it matches at least
    one inject pattern. Events matching an ignore pattern (source maps
    by default) are removed first and never influence the result.
    Matching uses the served ``web_path``, never the on-disk path.
    """

    def __init__(
        self,
        inject_patterns: Iterable[str] = DEFAULT_INJECT_PATTERNS,
        ignore_patterns: Iterable[str] = DEFAULT_IGNORE_PATTERNS,
    ) -> None:
        self._inject = frozenset(inject_patterns)
        self._ignore = frozenset(ignore_patterns)

    def is_ignored(self, item: ServedFile) -> bool:
        return _matches(item.web_path, self._ignore)

    def is_injectable(self, item: ServedFile) -> bool:
        return _matches(item.web_path, self._inject)

    def filter_batch(self, batch: Iterable[ChangeEvent]) -> list[ChangeEvent]:
        """Drop ignored events, keeping arrival order."""
        return [event for event in batch if not self.is_ignored(event.item)]

    def first_reload_trigger(self, events: Iterable[ChangeEvent]) -> ChangeEvent | None:
        """The earliest event that cannot be injected, if any."""
        for event in events:
            if not self.is_ignored(event.item) and not self.is_injectable(event.item):
                return event
        return None

    def classify(self, batch: ChangeBatch | Sequence[ChangeEvent]) -> ReloadDecision | None:
        """
        Classify one batch.

        Returns:
            INJECT or RELOAD, or None when every event was ignored

        Raises:
            ValueError: if the batch has no events at all
        """
        if len(batch) == 0:
            raise ValueError("cannot classify an empty batch")

        remaining = self.filter_batch(batch)
        if not remaining:
            return None

        if all(self.is_injectable(event.item) for event in remaining):
            return ReloadDecision.INJECT
        return ReloadDecision.RELOAD
