"""In-process event bus with per-kind subscriptions."""
import asyncio
import inspect
from collections.abc import Awaitable, Callable
from typing import Any

import structlog

from treewatch.events.types import EventKind, FlushEvent, PathEvent

logger = structlog.get_logger()

Handler = Callable[[Any], Awaitable[None] | None]


class EventBus:
    """Named-event fan-out with deferred handler invocation.

    Handlers are scheduled on the event loop rather than called inline,
    so a slow or raising handler never blocks delivery to the others.

    Attributes:
        listener_count: Total number of registered handlers.
    """

    def __init__(self) -> None:
        """Initialize an empty listener table."""
        self._listeners: dict[EventKind, list[Handler]] = {kind: [] for kind in EventKind}
        self._tasks: set[asyncio.Task[None]] = set()
        self._failed_count = 0

    @property
    def listener_count(self) -> int:
        """Total number of registered handlers."""
        return sum(len(handlers) for handlers in self._listeners.values())

    @property
    def failed_handlers(self) -> int:
        """Number of handler invocations that raised."""
        return self._failed_count

    def listeners(self, kind: EventKind | str) -> list[Handler]:
        """Return a copy of the handlers subscribed to a kind."""
        return list(self._listeners[EventKind(kind)])

    def on(self, kind: EventKind | str, handler: Handler) -> None:
        """Subscribe a handler to an event kind.

        Args:
            kind: Event kind or its string name (``"change"``, ``"*"``...).
            handler: Callable or coroutine function receiving the event.

        Raises:
            ValueError: If the name is not a known event kind.
        """
        self._listeners[EventKind(kind)].append(handler)

    def emit(self, event: PathEvent | FlushEvent) -> int:
        """Schedule every handler subscribed to the event.

        Args:
            event: Per-path or bracket event.

        Returns:
            Number of handler invocations scheduled.
        """
        match event:
            case FlushEvent(kind=kind) | PathEvent(kind=kind):
                handlers = list(self._listeners[kind])
            case _:
                raise TypeError(f"Unsupported event: {event!r}")

        if not handlers:
            return 0

        loop = asyncio.get_running_loop()
        for handler in handlers:
            loop.call_soon(self._invoke, handler, event)
        return len(handlers)

    def _invoke(self, handler: Handler, event: PathEvent | FlushEvent) -> None:
        try:
            result = handler(event)
        except Exception as e:
            self._record_failure(event, e)
            return

        if inspect.isawaitable(result):
            task = asyncio.ensure_future(self._await_handler(result, event))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)

    async def _await_handler(
        self,
        result: Awaitable[None],
        event: PathEvent | FlushEvent,
    ) -> None:
        try:
            await result
        except Exception as e:
            self._record_failure(event, e)

    def _record_failure(self, event: PathEvent | FlushEvent, error: Exception) -> None:
        self._failed_count += 1
        logger.error(
            "listener_failed",
            kind=EventKind(event.kind).value,
            error=str(error),
            exc_info=error,
        )

    async def drain(self) -> None:
        """Wait for scheduled handler invocations to finish."""
        while True:
            await asyncio.sleep(0)
            if not self._tasks:
                return
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
