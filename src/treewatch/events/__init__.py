"""Events subsystem: normalization, debouncing and delivery."""
from treewatch.events.bus import EventBus
from treewatch.events.debounce import BASE_DEBOUNCE_MS, DebounceQueue
from treewatch.events.normalizer import EventNormalizer, resolve_target
from treewatch.events.types import EventKind, FlushBatch, FlushEvent, PathEvent, PendingEntry

__all__ = [
    "BASE_DEBOUNCE_MS",
    "DebounceQueue",
    "EventBus",
    "EventKind",
    "EventNormalizer",
    "FlushBatch",
    "FlushEvent",
    "PathEvent",
    "PendingEntry",
    "resolve_target",
]
