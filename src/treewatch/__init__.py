"""Recursive filesystem watcher with debounced, normalized events."""
from treewatch.config import Settings
from treewatch.events import EventKind, FlushBatch, FlushEvent, PathEvent
from treewatch.ignore import IgnoreSpec
from treewatch.native import RawNotification, WatchBackend, WatchdogBackend
from treewatch.watcher import Watcher

__all__ = [
    "EventKind",
    "FlushBatch",
    "FlushEvent",
    "IgnoreSpec",
    "PathEvent",
    "RawNotification",
    "Settings",
    "WatchBackend",
    "WatchdogBackend",
    "Watcher",
]
