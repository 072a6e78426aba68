"""Event kinds and payloads delivered to subscribers."""
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator


class EventKind(str, Enum):
    """Closed set of event names a subscriber can listen to."""

    BEFORE = "before"
    AFTER = "after"
    ANY = "*"
    CHANGE = "change"
    UNLINK = "unlink"
    UNLINK_DIR = "unlinkDir"


PATH_KINDS: frozenset[EventKind] = frozenset(
    {EventKind.ANY, EventKind.CHANGE, EventKind.UNLINK, EventKind.UNLINK_DIR}
)
FLUSH_KINDS: frozenset[EventKind] = frozenset({EventKind.BEFORE, EventKind.AFTER})


def _check_kind(value: EventKind, allowed: frozenset[EventKind]) -> EventKind:
    if value not in allowed:
        raise ValueError(f"{value.value!r} is not allowed here")
    return value


class PendingEntry(BaseModel):
    """One path and the last kind posted for it during a debounce window.

    Attributes:
        path: Absolute affected path.
        kind: Event kind that will be emitted for the path.
    """

    model_config = ConfigDict(frozen=True)

    path: str
    kind: EventKind

    @field_validator("kind")
    @classmethod
    def _path_kind(cls, value: EventKind) -> EventKind:
        return _check_kind(value, PATH_KINDS)

    def as_pair(self) -> tuple[str, EventKind]:
        """Return the entry as a ``(path, kind)`` tuple."""
        return self.path, self.kind


class FlushBatch(BaseModel):
    """Ordered snapshot of the pending queue taken at flush time.

    Attributes:
        entries: Entries in first-touch order.
    """

    model_config = ConfigDict(frozen=True)

    entries: tuple[PendingEntry, ...] = Field(default_factory=tuple)

    def __len__(self) -> int:
        return len(self.entries)

    def pairs(self) -> list[tuple[str, EventKind]]:
        """Return the snapshot as ``(path, kind)`` tuples."""
        return [entry.as_pair() for entry in self.entries]


class PathEvent(BaseModel):
    """Per-path event emitted during a flush cycle.

    Attributes:
        kind: ``*``, ``change``, ``unlink`` or ``unlinkDir``.
        path: Absolute affected path.
    """

    model_config = ConfigDict(frozen=True)

    kind: EventKind
    path: str

    @field_validator("kind")
    @classmethod
    def _path_kind(cls, value: EventKind) -> EventKind:
        return _check_kind(value, PATH_KINDS)


class FlushEvent(BaseModel):
    """Bracket event opening or closing a flush cycle.

    Attributes:
        kind: ``before`` or ``after``.
        batch: Snapshot broken into per-path events between the brackets.
    """

    model_config = ConfigDict(frozen=True)

    kind: EventKind
    batch: FlushBatch

    @field_validator("kind")
    @classmethod
    def _flush_kind(cls, value: EventKind) -> EventKind:
        return _check_kind(value, FLUSH_KINDS)
