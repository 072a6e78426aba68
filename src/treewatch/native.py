"""Adapter over the native per-directory change notification primitive."""

import asyncio
import os
import threading
from collections.abc import Callable
from typing import Protocol

import structlog
from pydantic import BaseModel, ConfigDict
from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer
from watchdog.observers.api import ObservedWatch

logger = structlog.get_logger()

# Read-only access and the directory's own metadata updates carry no change.
SKIPPED_EVENT_TYPES: frozenset[str] = frozenset({"opened", "closed_no_write"})


class RawNotification(BaseModel):
    """Unlabelled signal delivered by a directory watch.

    Attributes:
        event_type: Platform event tag (``modified``, ``deleted``, ...).
        name: Affected entry name relative to the watched directory, the
            directory's own base name when it is the target, or None.
    """

    model_config = ConfigDict(frozen=True)

    event_type: str
    name: str | None = None


NotificationCallback = Callable[[RawNotification], None]
ErrorCallback = Callable[[BaseException], None]


class WatchHandle(Protocol):
    """Live watch bound to a single directory."""

    path: str

    @property
    def closed(self) -> bool: ...

    def close(self) -> None: ...


class WatchBackend(Protocol):
    """Factory for directory watch handles."""

    def open(
        self,
        path: str,
        on_notification: NotificationCallback,
        on_error: ErrorCallback,
    ) -> WatchHandle: ...

    def shutdown(self) -> None: ...


def _decode(path: str | bytes) -> str:
    if isinstance(path, str):
        return path
    return bytes(path).decode("utf-8", errors="replace")


class _DirectoryHandler(FileSystemEventHandler):
    """Watchdog handler forwarding one directory's events to the loop."""

    def __init__(self, handle: "WatchdogHandle") -> None:
        super().__init__()
        self._handle = handle

    def _name_for(self, path: str) -> str | None:
        directory = self._handle.path
        if path == directory:
            return os.path.basename(directory)
        if os.path.dirname(path) == directory:
            return os.path.basename(path)
        return None

    def on_any_event(self, event: FileSystemEvent) -> None:
        if event.event_type in SKIPPED_EVENT_TYPES:
            return

        src_path = _decode(event.src_path)
        if event.event_type == "modified" and src_path == self._handle.path:
            return

        names = [self._name_for(src_path)]
        if event.event_type == "moved":
            dest_name = self._name_for(_decode(event.dest_path))
            if dest_name is not None:
                names.append(dest_name)

        for name in names:
            if name is None:
                continue
            self._handle.deliver(RawNotification(event_type=event.event_type, name=name))


class WatchdogHandle:
    """Handle wrapping one non-recursive watchdog schedule.

    Attributes:
        path: Absolute directory path the handle is bound to.
    """

    def __init__(
        self,
        backend: "WatchdogBackend",
        path: str,
        loop: asyncio.AbstractEventLoop,
        on_notification: NotificationCallback,
        on_error: ErrorCallback,
    ) -> None:
        self.path = path
        self._backend = backend
        self._loop = loop
        self._on_notification = on_notification
        self._on_error = on_error
        self._watch: ObservedWatch | None = None
        self._closed = False

    @property
    def closed(self) -> bool:
        """Whether the handle has been released."""
        return self._closed

    def deliver(self, notification: RawNotification) -> None:
        """Hand a notification from a watchdog thread to the event loop."""
        if self._closed or self._loop.is_closed():
            return
        try:
            self._loop.call_soon_threadsafe(self._dispatch, notification)
        except RuntimeError:
            # loop closed between the check and the call
            logger.debug("notification_dropped", path=self.path)

    def _dispatch(self, notification: RawNotification) -> None:
        if not self._closed:
            self._on_notification(notification)

    def fail(self, error: BaseException) -> None:
        """Report an internal fault through the error channel.

        Called when scheduling the watch fails. watchdog has no per-watch
        hook for faults inside a running emitter; a removed directory is
        reported as a ``deleted`` notification for the directory instead.
        """
        if not self._closed:
            self._on_error(error)

    def close(self) -> None:
        """Release the native watch. Idempotent."""
        if self._closed:
            return
        self._closed = True
        self._backend.release(self)


class WatchdogBackend:
    """Directory watches backed by a shared watchdog Observer.

    The observer thread starts with the first open handle and keeps running
    until ``shutdown``, so releasing handles never joins a thread and a
    stopped watcher can be re-armed on the same observer.
    """

    def __init__(self) -> None:
        self._observer: Observer | None = None  # pyright: ignore[reportInvalidTypeForm]
        self._watches: dict[WatchdogHandle, tuple[ObservedWatch, _DirectoryHandler]] = {}
        self._lock = threading.Lock()

    @property
    def handle_count(self) -> int:
        """Number of open handles."""
        return len(self._watches)

    @property
    def running(self) -> bool:
        """Whether the observer thread is alive."""
        return self._observer is not None and self._observer.is_alive()

    def open(
        self,
        path: str,
        on_notification: NotificationCallback,
        on_error: ErrorCallback,
    ) -> WatchdogHandle:
        """Schedule a non-recursive watch on a directory.

        Args:
            path: Absolute directory path.
            on_notification: Called on the event loop for each notification.
            on_error: Called on the event loop if the watch cannot be kept.

        Returns:
            The live handle. If scheduling fails the handle reports the
            failure through ``on_error`` on the next loop iteration.
        """
        loop = asyncio.get_running_loop()
        handle = WatchdogHandle(self, path, loop, on_notification, on_error)
        with self._lock:
            if self._observer is None:
                self._observer = Observer()
                self._observer.start()
                logger.debug("observer_started")
            handler = _DirectoryHandler(handle)
            try:
                watch = self._observer.schedule(handler, path, recursive=False)
            except OSError as e:
                loop.call_soon(handle.fail, e)
                return handle
            self._watches[handle] = (watch, handler)
        return handle

    def release(self, handle: WatchdogHandle) -> None:
        """Detach a handle and tear its watch down off the event loop.

        Unscheduling joins the directory's emitter thread, so from the event
        loop it runs in the default executor.
        """
        with self._lock:
            entry = self._watches.pop(handle, None)
            observer = self._observer
        if entry is None or observer is None:
            return

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self._unschedule(observer, *entry, handle.path)
            return
        loop.run_in_executor(None, self._unschedule, observer, *entry, handle.path)

    def _unschedule(
        self,
        observer: Observer,  # pyright: ignore[reportInvalidTypeForm]
        watch: ObservedWatch,
        handler: _DirectoryHandler,
        path: str,
    ) -> None:
        with self._lock:
            try:
                # same path re-opened meanwhile: the emitter is shared, keep it
                if any(live == watch for live, _ in self._watches.values()):
                    observer.remove_handler_for_watch(handler, watch)
                else:
                    observer.unschedule(watch)
            except (KeyError, ValueError, OSError, RuntimeError) as e:
                logger.debug("unschedule_failed", path=path, error=str(e))

    def shutdown(self) -> None:
        """Close every handle and stop the observer thread.

        Blocks until the observer thread exits.
        """
        with self._lock:
            handles = list(self._watches)
            self._watches.clear()
            observer, self._observer = self._observer, None
        for handle in handles:
            handle.close()
        if observer is None:
            return
        observer.stop()
        if observer.is_alive() and threading.current_thread() is not observer:
            observer.join(timeout=5.0)
        logger.debug("observer_stopped")
