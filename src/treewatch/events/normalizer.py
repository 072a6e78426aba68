"""Normalization of raw directory notifications into path events."""

import asyncio
import os
import stat
from collections.abc import Callable, Coroutine
from functools import partial
from typing import Any

import structlog

from treewatch.events.bus import EventBus
from treewatch.events.debounce import DebounceQueue
from treewatch.events.types import EventKind, PathEvent
from treewatch.ignore import IgnoreSpec
from treewatch.native import RawNotification
from treewatch.registry import WatchRegistry

logger = structlog.get_logger()

Spawn = Callable[[Coroutine[Any, Any, Any]], asyncio.Task[Any]]


def resolve_target(directory: str, name: str | None) -> str:
    """Resolve the absolute path a notification refers to.

    A missing name, or a name that recomposes to the watched directory
    itself, means the directory is the target.

    Args:
        directory: Absolute path of the watched directory.
        name: Entry name carried by the notification.

    Returns:
        Absolute affected path.
    """
    if not name:
        return directory
    if os.path.join(os.path.dirname(directory), name) == directory:
        return directory
    return os.path.join(directory, name)


class EventNormalizer:
    """Turns unlabelled notifications into ``change``/``unlink``/``unlinkDir``.

    Native notifications do not say whether something was created, removed
    or modified, so each one is followed by a stat of the affected path.
    Newly appearing directories are handed to the installer.
    """

    def __init__(
        self,
        registry: WatchRegistry,
        ignore: IgnoreSpec,
        bus: EventBus,
        queue: DebounceQueue,
        install: Callable[[str], None],
        spawn: Spawn,
    ) -> None:
        """Initialize normalizer.

        Args:
            registry: Registry of watched directories.
            ignore: Ignore rules applied to affected paths.
            bus: Bus receiving the immediate ``*`` event of each notification.
            queue: Debounce queue receiving classified events.
            install: Starts recursive installation for a directory.
            spawn: Schedules a background coroutine.
        """
        self._registry = registry
        self._ignore = ignore
        self._bus = bus
        self._queue = queue
        self._install = install
        self._spawn = spawn

    def handler_for(self, directory: str) -> Callable[[RawNotification], None]:
        """Return the notification callback bound to one directory."""
        return partial(self.on_notification, directory)

    def on_notification(self, directory: str, raw: RawNotification) -> None:
        """Handle one raw notification from a directory's watch.

        Args:
            directory: Watched directory that produced the notification.
            raw: Notification as delivered by the native primitive.
        """
        if directory not in self._registry:
            return

        path = resolve_target(directory, raw.name)
        if self._ignore.is_ignored(path):
            return

        self._bus.emit(PathEvent(kind=EventKind.ANY, path=path))
        self._queue.post(EventKind.ANY, path)
        self._spawn(self.classify(directory, path))

    async def classify(self, directory: str, path: str) -> EventKind:
        """Classify a path by checking whether it still exists.

        Args:
            directory: Watched directory that reported the path.
            path: Absolute affected path.

        Returns:
            The kind that was posted for the path.
        """
        try:
            st = await asyncio.to_thread(os.stat, path)
        except OSError as e:
            kind = EventKind.UNLINK_DIR if path in self._registry else EventKind.UNLINK
            logger.debug("path_vanished", path=path, kind=kind.value, error=str(e))
            self._queue.post(kind, path)
            self._registry.remove(path)
            return kind

        if stat.S_ISDIR(st.st_mode) and directory in self._registry:
            self._install(path)
        self._queue.post(EventKind.CHANGE, path)
        return EventKind.CHANGE
