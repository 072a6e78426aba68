"""Normalizer and registry tests."""

import asyncio
from pathlib import Path

import pytest

from treewatch.events.bus import EventBus
from treewatch.events.debounce import DebounceQueue
from treewatch.events.normalizer import EventNormalizer, resolve_target
from treewatch.events.types import EventKind
from treewatch.ignore import IgnoreSpec
from treewatch.native import RawNotification
from treewatch.registry import WatchRegistry

from conftest import FakeBackend


@pytest.mark.parametrize(
    ("directory", "name", "expected"),
    [
        ("/w/src", "main.py", "/w/src/main.py"),
        ("/w/src", "src", "/w/src"),
        ("/w/src", None, "/w/src"),
        ("/w/src", "", "/w/src"),
    ],
)
def test_resolve_target(directory: str, name: str | None, expected: str) -> None:
    """Names are joined unless they denote the watched directory itself."""
    assert resolve_target(directory, name) == expected


class Harness:
    """Normalizer wired to a fake backend, recording installs."""

    def __init__(self, ignore: IgnoreSpec | None = None) -> None:
        self.backend = FakeBackend()
        self.registry = WatchRegistry(self.backend)
        self.bus = EventBus()
        self.wildcards: list[str] = []
        self.bus.on(EventKind.ANY, lambda event: self.wildcards.append(event.path))
        self.queue = DebounceQueue(self.bus)
        self.installed: list[str] = []
        self.tasks: list[asyncio.Task[object]] = []
        self.normalizer = EventNormalizer(
            registry=self.registry,
            ignore=ignore or IgnoreSpec(),
            bus=self.bus,
            queue=self.queue,
            install=self.installed.append,
            spawn=self._spawn,
        )

    def _spawn(self, coro):
        task = asyncio.get_running_loop().create_task(coro)
        self.tasks.append(task)
        return task

    def watch(self, path: Path) -> None:
        self.registry.install(str(path), self.normalizer.handler_for(str(path)))

    async def settle(self) -> None:
        await asyncio.gather(*self.tasks)
        self.queue.discard()


async def test_wildcard_posted_before_classification(tmp_path: Path) -> None:
    """Every notification emits * and reserves a queue slot until its stat completes."""
    h = Harness()
    h.watch(tmp_path)
    (tmp_path / "f.txt").write_text("x")

    h.backend.fire(tmp_path, "modified", "f.txt")
    h.backend.fire(tmp_path, "modified", "f.txt")
    assert h.queue.pending == [(str(tmp_path / "f.txt"), EventKind.ANY)]
    await asyncio.sleep(0)
    assert h.wildcards == [str(tmp_path / "f.txt")] * 2

    await asyncio.gather(*h.tasks)
    assert h.queue.pending == [(str(tmp_path / "f.txt"), EventKind.CHANGE)]
    await h.settle()


async def test_classify_file_and_directory(tmp_path: Path) -> None:
    """Existing paths become change; directories are also installed."""
    h = Harness()
    h.watch(tmp_path)
    (tmp_path / "sub").mkdir()
    (tmp_path / "f.txt").write_text("x")

    assert await h.normalizer.classify(str(tmp_path), str(tmp_path / "f.txt")) is EventKind.CHANGE
    assert await h.normalizer.classify(str(tmp_path), str(tmp_path / "sub")) is EventKind.CHANGE
    assert h.installed == [str(tmp_path / "sub")]
    h.queue.discard()


async def test_classify_vanished_paths(tmp_path: Path) -> None:
    """Missing paths are unlinkDir when watched, unlink otherwise."""
    h = Harness()
    gone_dir = tmp_path / "gone"
    gone_dir.mkdir()
    h.watch(tmp_path)
    h.watch(gone_dir)
    gone_dir.rmdir()

    kind = await h.normalizer.classify(str(tmp_path), str(gone_dir))
    assert kind is EventKind.UNLINK_DIR
    assert str(gone_dir) not in h.registry
    assert h.backend.handles[str(gone_dir)].closed

    kind = await h.normalizer.classify(str(tmp_path), str(tmp_path / "never.txt"))
    assert kind is EventKind.UNLINK
    h.queue.discard()


async def test_no_install_once_parent_unwatched(tmp_path: Path) -> None:
    """A directory discovered after its parent was released is not installed."""
    h = Harness()
    (tmp_path / "sub").mkdir()

    await h.normalizer.classify(str(tmp_path), str(tmp_path / "sub"))

    assert h.installed == []
    assert h.queue.pending == [(str(tmp_path / "sub"), EventKind.CHANGE)]
    h.queue.discard()


async def test_notifications_from_unregistered_directory_dropped(tmp_path: Path) -> None:
    """Late notifications for released directories are ignored."""
    h = Harness()
    h.normalizer.on_notification(str(tmp_path), RawNotification(event_type="modified", name="f"))

    assert h.queue.pending == []
    assert h.tasks == []


async def test_ignored_notification_dropped(tmp_path: Path) -> None:
    """Ignored targets are never posted or stat'ed."""
    h = Harness(IgnoreSpec(exts={"log"}))
    h.watch(tmp_path)

    h.backend.fire(tmp_path, "modified", "debug.log")

    assert h.queue.pending == []
    assert h.tasks == []
    await asyncio.sleep(0)
    assert h.wildcards == []


def test_registry_is_idempotent(tmp_path: Path) -> None:
    """Install and remove tolerate repeats."""
    backend = FakeBackend()
    registry = WatchRegistry(backend)

    assert registry.install(str(tmp_path), lambda raw: None)
    assert not registry.install(str(tmp_path), lambda raw: None)
    assert len(registry) == 1 and str(tmp_path) in registry

    assert registry.remove(str(tmp_path))
    assert not registry.remove(str(tmp_path))
    assert backend.opened == [str(tmp_path)]
    assert backend.closed == [str(tmp_path)]


def test_registry_ignores_error_from_replaced_handle(tmp_path: Path) -> None:
    """An error from a stale handle does not remove its replacement."""
    backend = FakeBackend()
    registry = WatchRegistry(backend)
    registry.install(str(tmp_path), lambda raw: None)
    stale = backend.handles[str(tmp_path)]
    registry.remove(str(tmp_path))
    registry.install(str(tmp_path), lambda raw: None)

    stale._on_error(OSError("late"))

    assert str(tmp_path) in registry
    registry.clear()
    assert len(registry) == 0
