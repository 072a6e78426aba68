"""Pytest configuration and fixtures."""

import asyncio
import sys
from functools import partial
from pathlib import Path

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

import pytest

from treewatch.events.types import EventKind, FlushEvent, PathEvent
from treewatch.native import ErrorCallback, NotificationCallback, RawNotification
from treewatch.watcher import Watcher


class FakeHandle:
    """In-memory watch handle driven by the tests."""

    def __init__(
        self,
        backend: "FakeBackend",
        path: str,
        on_notification: NotificationCallback,
        on_error: ErrorCallback,
    ) -> None:
        self.path = path
        self._backend = backend
        self._on_notification = on_notification
        self._on_error = on_error
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        if not self._closed:
            self._closed = True
            self._backend.closed.append(self.path)

    def fire(self, event_type: str, name: str | None) -> bool:
        if self._closed:
            return False
        self._on_notification(RawNotification(event_type=event_type, name=name))
        return True

    def fail(self, error: BaseException) -> None:
        if not self._closed:
            self._on_error(error)


class FakeBackend:
    """Native primitive stand-in recording every handle it opens."""

    def __init__(self) -> None:
        self.handles: dict[str, FakeHandle] = {}
        self.opened: list[str] = []
        self.closed: list[str] = []
        self.shut_down = False

    def open(
        self,
        path: str,
        on_notification: NotificationCallback,
        on_error: ErrorCallback,
    ) -> FakeHandle:
        handle = FakeHandle(self, path, on_notification, on_error)
        self.handles[path] = handle
        self.opened.append(path)
        return handle

    def shutdown(self) -> None:
        for handle in self.handles.values():
            handle.close()
        self.shut_down = True

    def fire(self, directory: Path | str, event_type: str, name: str | None) -> bool:
        return self.handles[str(directory)].fire(event_type, name)


class Recorder:
    """Subscribes to every event kind and keeps what it receives."""

    def __init__(self, watcher: Watcher) -> None:
        self.events: list[tuple[str, object]] = []
        self.flushes = 0
        self._flushed = asyncio.Event()
        for kind in EventKind:
            watcher.on(kind, partial(self._record, kind))

    def _record(self, subscribed: EventKind, event: PathEvent | FlushEvent) -> None:
        match event:
            case FlushEvent(batch=batch):
                self.events.append((subscribed.value, batch))
                if subscribed is EventKind.AFTER:
                    self.flushes += 1
                    self._flushed.set()
            case PathEvent(path=path):
                self.events.append((subscribed.value, path))

    def of(self, kind: str) -> list[object]:
        return [payload for name, payload in self.events if name == kind]

    async def wait_flush(self, timeout: float = 2.0) -> None:
        await asyncio.wait_for(self._flushed.wait(), timeout=timeout)
        self._flushed.clear()
        # let the rest of the cycle's handlers run
        for _ in range(5):
            await asyncio.sleep(0)


@pytest.fixture
def backend() -> FakeBackend:
    """Create a fake native backend."""
    return FakeBackend()


@pytest.fixture
def watcher(backend: FakeBackend) -> Watcher:
    """Create a watcher with basic ignore rules and no extra timeout."""
    return Watcher(
        ignore={"dirs": {"node_modules", ".git"}, "files": {"ignored"}, "exts": {"tmp", ".swp"}},
        backend=backend,
    )


@pytest.fixture
def recorder(watcher: Watcher) -> Recorder:
    """Record every event emitted by the watcher."""
    return Recorder(watcher)


@pytest.fixture
def tree(tmp_path: Path) -> Path:
    """Create the directory tree A/B/C with a file at each level."""
    root = tmp_path / "A"
    (root / "B" / "C").mkdir(parents=True)
    (root / "a.txt").write_text("a")
    (root / "B" / "b.txt").write_text("b")
    (root / "B" / "C" / "c.txt").write_text("c")
    return root
