"""Ignore rules deciding which paths are never watched or reported."""

import os
from collections.abc import Iterable

from pydantic import BaseModel, ConfigDict, Field, field_validator


class IgnoreSpec(BaseModel):
    """Immutable set of ignore rules owned by a watcher.

    Attributes:
        dirs: Directory names or full directory paths to skip.
        files: File base names (``notes.txt``) or stems (``notes``) to skip.
        exts: Extensions to skip, with or without the leading dot.
    """

    model_config = ConfigDict(frozen=True)

    dirs: frozenset[str] = Field(default_factory=frozenset)
    files: frozenset[str] = Field(default_factory=frozenset)
    exts: frozenset[str] = Field(default_factory=frozenset)

    @field_validator("dirs", "files", "exts", mode="before")
    @classmethod
    def _to_frozenset(cls, value: Iterable[str] | None) -> frozenset[str]:
        if value is None:
            return frozenset()
        if isinstance(value, str):
            return frozenset({value})
        return frozenset(value)

    def is_ignored_file(self, path: str) -> bool:
        """Check a path against the extension and file name rules.

        Args:
            path: File path to check.

        Returns:
            True if the extension, base name or stem is ignored.
        """
        base = os.path.basename(path)
        stem, ext = os.path.splitext(base)
        if ext and (ext in self.exts or ext[1:] in self.exts):
            return True
        return base in self.files or stem in self.files

    def is_ignored_dir(self, path: str) -> bool:
        """Check a path against the directory rules.

        Args:
            path: Directory path to check.

        Returns:
            True if the last path segment or the full path is ignored.
        """
        name = os.path.basename(os.path.normpath(path))
        return name in self.dirs or path in self.dirs

    def is_ignored(self, path: str) -> bool:
        """Check a path of unknown type against every rule."""
        return self.is_ignored_file(path) or self.is_ignored_dir(path)
