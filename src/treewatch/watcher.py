"""Recursive directory watcher with debounced event delivery."""

import asyncio
import os
from collections.abc import Coroutine
from typing import Any

import structlog
from pydantic import BaseModel, ConfigDict, Field

from treewatch.config import Settings
from treewatch.events.bus import EventBus, Handler
from treewatch.events.debounce import DebounceQueue
from treewatch.events.normalizer import EventNormalizer
from treewatch.events.types import EventKind, FlushBatch
from treewatch.ignore import IgnoreSpec
from treewatch.native import WatchBackend, WatchdogBackend
from treewatch.registry import WatchRegistry

logger = structlog.get_logger()


class WatcherOptions(BaseModel):
    """Validated construction options.

    Attributes:
        ignore: Ignore rules for directories, files and extensions.
        timeout: Milliseconds added to the base debounce interval.
    """

    model_config = ConfigDict(frozen=True)

    ignore: IgnoreSpec = Field(default_factory=IgnoreSpec)
    timeout: int = Field(default=0, ge=0)


def list_subdirectories(path: str) -> list[str]:
    """List the immediate subdirectories of a directory.

    Symbolic links are not followed.

    Args:
        path: Directory to enumerate.

    Returns:
        Absolute paths of the subdirectories.

    Raises:
        OSError: If the directory cannot be listed.
    """
    with os.scandir(path) as entries:
        return [entry.path for entry in entries if entry.is_dir(follow_symlinks=False)]


class Watcher:
    """Watches a directory tree and publishes debounced change events.

    Every non-ignored subdirectory gets its own native watch. Raw
    notifications are classified with a stat into ``change``, ``unlink``
    or ``unlinkDir``, collected by a single debounce timer and delivered
    as ``before`` / per-path / ``after`` flush cycles.

    Must be used from inside a running asyncio event loop.
    """

    def __init__(
        self,
        ignore: IgnoreSpec | dict[str, Any] | None = None,
        timeout: int = 0,
        backend: WatchBackend | None = None,
    ) -> None:
        """Initialize watcher.

        Args:
            ignore: Ignore rules, as an IgnoreSpec or a mapping with
                ``dirs``, ``files`` and ``exts`` keys.
            timeout: Extra debounce milliseconds.
            backend: Native watch primitive, watchdog by default.

        Raises:
            pydantic.ValidationError: If the options are invalid.
        """
        self._options = WatcherOptions(
            ignore=ignore if ignore is not None else IgnoreSpec(),
            timeout=timeout,
        )
        self._backend = backend if backend is not None else WatchdogBackend()
        self._bus = EventBus()
        self._queue = DebounceQueue(self._bus, timeout_ms=self._options.timeout)
        self._registry = WatchRegistry(self._backend)
        self._normalizer = EventNormalizer(
            registry=self._registry,
            ignore=self._options.ignore,
            bus=self._bus,
            queue=self._queue,
            install=self._start_install,
            spawn=self._spawn,
        )
        self._tasks: set[asyncio.Task[Any]] = set()
        self._generation = 0

    @classmethod
    def from_settings(
        cls,
        settings: Settings | None = None,
        backend: WatchBackend | None = None,
    ) -> "Watcher":
        """Build a watcher from environment configuration.

        Args:
            settings: Loaded settings, read from the environment if None.
            backend: Native watch primitive, watchdog by default.

        Returns:
            Configured watcher with no directories watched yet.
        """
        settings = settings if settings is not None else Settings()
        return cls(
            ignore=settings.ignore_spec(),
            timeout=settings.timeout_ms,
            backend=backend,
        )

    @property
    def ignore(self) -> IgnoreSpec:
        """Ignore rules in effect."""
        return self._options.ignore

    @property
    def watched(self) -> list[str]:
        """Sorted paths of the directories currently watched."""
        return sorted(self._registry.paths)

    @property
    def pending(self) -> list[tuple[str, EventKind]]:
        """Events waiting for the next flush, in emission order."""
        return self._queue.pending

    def is_watching(self, path: str) -> bool:
        """Whether a directory currently has an active watch."""
        return os.path.abspath(path) in self._registry

    def on(self, kind: EventKind | str, handler: Handler) -> None:
        """Subscribe to an event kind.

        Args:
            kind: ``before``, ``after``, ``*``, ``change``, ``unlink`` or
                ``unlinkDir``.
            handler: Callable or coroutine function receiving the event.
        """
        self._bus.on(kind, handler)

    def watch(self, path: str | None = None) -> "Watcher":
        """Start watching a directory tree.

        Returns immediately; installation continues in the background.
        Watching an already watched directory does not add a second handle.

        Args:
            path: Root directory, the current working directory if None.

        Returns:
            This watcher.
        """
        target = os.path.abspath(path if path is not None else os.getcwd())
        logger.info("watch_requested", path=target)
        self._start_install(target)
        return self

    def stop(self, path: str | None = None) -> None:
        """Stop watching one directory, or every directory.

        Subscribers are kept, and events already pending are still flushed.

        Args:
            path: Directory to unwatch; the whole tree if None.
        """
        if path is not None:
            self._registry.remove(os.path.abspath(path))
            return

        self._generation += 1
        count = len(self._registry)
        self._registry.clear()
        logger.info("watcher_stopped", released=count)

    def flush(self) -> FlushBatch | None:
        """Deliver pending events immediately instead of waiting."""
        return self._queue.flush()

    def close(self) -> None:
        """Stop everything, drop pending events and release the backend."""
        self.stop()
        for task in list(self._tasks):
            task.cancel()
        self._queue.discard()
        self._backend.shutdown()

    async def drain(self) -> None:
        """Wait until background installation and classification settle."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def _spawn(self, coro: Coroutine[Any, Any, Any]) -> asyncio.Task[Any]:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._on_task_done)
        return task

    def _on_task_done(self, task: asyncio.Task[Any]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error("background_task_failed", error=str(error), exc_info=error)

    def _start_install(self, path: str) -> None:
        self._spawn(self._install(path, self._generation))

    async def _install(self, path: str, generation: int) -> None:
        if self._options.ignore.is_ignored(path):
            logger.debug("directory_ignored", path=path)
            return

        try:
            children = await asyncio.to_thread(list_subdirectories, path)
        except OSError as e:
            logger.debug("listing_failed", path=path, error=str(e))
            return

        if generation != self._generation:
            return

        for child in children:
            self._spawn(self._install(child, generation))

        self._registry.install(path, self._normalizer.handler_for(path))
