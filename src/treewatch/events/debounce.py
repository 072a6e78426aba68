"""Single-timer debounce queue batching path events into flush cycles."""

import asyncio

import structlog

from treewatch.events.bus import EventBus
from treewatch.events.types import EventKind, FlushBatch, FlushEvent, PathEvent, PendingEntry

logger = structlog.get_logger()

BASE_DEBOUNCE_MS = 50


class DebounceQueue:
    """Ordered pending-event map drained by one shared timer.

    Every post re-arms the timer, so the queue only flushes once posts have
    been quiet for the whole delay. A path keeps the position of its first
    post in the window while later posts overwrite its kind.

    A ``*`` entry only reserves a position for a path whose classification
    is still running. It is held back at flush time and keeps its place
    until the classified kind is posted.

    Attributes:
        delay: Quiet period in seconds before a flush.
    """

    def __init__(self, bus: EventBus, timeout_ms: int = 0) -> None:
        """Initialize debounce queue.

        Args:
            bus: Bus receiving flushed events.
            timeout_ms: Milliseconds added to ``BASE_DEBOUNCE_MS``.
        """
        self._bus = bus
        self._delay_ms = BASE_DEBOUNCE_MS + timeout_ms
        self._pending: dict[str, EventKind] = {}
        self._timer: asyncio.TimerHandle | None = None
        self._flush_count = 0

    @property
    def delay(self) -> float:
        """Quiet period in seconds before a flush."""
        return self._delay_ms / 1000.0

    @property
    def pending(self) -> list[tuple[str, EventKind]]:
        """Pending ``(path, kind)`` pairs in first-touch order."""
        return list(self._pending.items())

    @property
    def armed(self) -> bool:
        """Whether a flush is scheduled."""
        return self._timer is not None

    @property
    def flush_count(self) -> int:
        """Number of flush cycles emitted."""
        return self._flush_count

    def post(self, kind: EventKind, path: str) -> None:
        """Record an event for a path and restart the quiet period.

        Args:
            kind: Per-path event kind.
            path: Absolute affected path.
        """
        if self._timer is not None:
            self._timer.cancel()
        self._pending[path] = EventKind(kind)
        loop = asyncio.get_running_loop()
        self._timer = loop.call_later(self.delay, self._on_timer)

    def _on_timer(self) -> None:
        self._timer = None
        self._emit_pending()

    def flush(self) -> FlushBatch | None:
        """Emit the pending entries now instead of waiting for the timer.

        Returns:
            The emitted snapshot, or None if no classified entry was pending.
        """
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        return self._emit_pending()

    def discard(self) -> None:
        """Drop pending entries and disarm the timer without emitting."""
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        if self._pending:
            logger.debug("pending_discarded", count=len(self._pending))
        self._pending.clear()

    def _emit_pending(self) -> FlushBatch | None:
        ready = [
            PendingEntry(path=path, kind=kind)
            for path, kind in self._pending.items()
            if kind is not EventKind.ANY
        ]
        if not ready:
            return None

        batch = FlushBatch(entries=tuple(ready))
        self._pending = {
            path: kind for path, kind in self._pending.items() if kind is EventKind.ANY
        }
        self._flush_count += 1

        self._bus.emit(FlushEvent(kind=EventKind.BEFORE, batch=batch))
        for entry in batch.entries:
            self._bus.emit(PathEvent(kind=entry.kind, path=entry.path))
        self._bus.emit(FlushEvent(kind=EventKind.AFTER, batch=batch))

        logger.debug("flush_emitted", count=len(batch), cycle=self._flush_count)
        return batch
