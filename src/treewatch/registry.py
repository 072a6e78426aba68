"""Registry of active directory watches."""

from collections.abc import Callable

import structlog

from treewatch.native import RawNotification, WatchBackend, WatchHandle

logger = structlog.get_logger()


class WatchRegistry:
    """Authoritative map from absolute directory path to its watch handle.

    Presence of a path means it is currently watched. Insertion and removal
    are both idempotent, so a path never holds more than one handle.
    """

    def __init__(self, backend: WatchBackend) -> None:
        """Initialize an empty registry.

        Args:
            backend: Native primitive used to open handles.
        """
        self._backend = backend
        self._handles: dict[str, WatchHandle] = {}

    def __contains__(self, path: object) -> bool:
        return path in self._handles

    def __len__(self) -> int:
        return len(self._handles)

    @property
    def paths(self) -> list[str]:
        """Watched directory paths in installation order."""
        return list(self._handles)

    def install(
        self,
        path: str,
        on_notification: Callable[[RawNotification], None],
    ) -> bool:
        """Open a watch for a directory unless one is already registered.

        A handle reporting an error is torn down without notifying anyone.

        Args:
            path: Absolute directory path.
            on_notification: Receives the handle's raw notifications.

        Returns:
            True if a new handle was registered.
        """
        if path in self._handles:
            return False

        def on_error(error: BaseException) -> None:
            logger.debug("watch_error", path=path, error=str(error))
            if self._handles.get(path) is handle:
                self.remove(path)

        handle = self._backend.open(path, on_notification, on_error)
        self._handles[path] = handle
        logger.debug("watch_installed", path=path, active=len(self._handles))
        return True

    def remove(self, path: str) -> bool:
        """Close and forget the watch for a path.

        Args:
            path: Absolute directory path.

        Returns:
            True if a handle was registered and has been closed.
        """
        handle = self._handles.pop(path, None)
        if handle is None:
            return False
        handle.close()
        logger.debug("watch_removed", path=path, active=len(self._handles))
        return True

    def clear(self) -> None:
        """Remove every registered watch."""
        for path in list(self._handles):
            self.remove(path)
