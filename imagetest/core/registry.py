"""Process-wide registry of live harness handles."""

from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING, Protocol

from imagetest.exceptions import HarnessNotFoundError

if TYPE_CHECKING:
    from imagetest.core.timeouts import Deadline

logger = logging.getLogger(__name__)


class HarnessHandle(Protocol):
    """Protocol for live orchestration handles."""

    def setup(self, deadline: Deadline) -> None:
        """Bring the harness up, honouring the deadline."""
        ...

    def run(self, command: str, deadline: Deadline | None = None) -> str:
        """Run a command inside the harness sandbox."""
        ...


class HarnessRegistry:
    """Thread-safe map from harness identifier to its live handle.

    The registry only tracks handles created in this process; it is never
    persisted. ``set`` is last-writer-wins and is independent of inventory
    membership. A single lock guards the map; it is never held while a
    handle does work.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._handles: dict[str, HarnessHandle] = {}

    def set(self, harness_id: str, handle: HarnessHandle) -> None:
        """Register the live handle for a harness.

        Parameters
        ----------
        harness_id : str
            Harness identifier
        handle : HarnessHandle
            Live orchestration handle
        """
        with self._lock:
            replaced = harness_id in self._handles
            self._handles[harness_id] = handle

        if replaced:
            logger.debug("Replaced handle for harness %s", harness_id)

    def get(self, harness_id: str) -> HarnessHandle | None:
        """Get the live handle for a harness.

        Parameters
        ----------
        harness_id : str
            Harness identifier

        Returns
        -------
        HarnessHandle | None
            The handle, or None if none was registered
        """
        with self._lock:
            return self._handles.get(harness_id)

    def require(self, harness_id: str) -> HarnessHandle:
        """Get the live handle for a harness or fail.

        Raises
        ------
        HarnessNotFoundError
            If no handle was registered for the identifier
        """
        handle = self.get(harness_id)
        if handle is None:
            raise HarnessNotFoundError(harness_id)
        return handle

    def __contains__(self, harness_id: object) -> bool:
        with self._lock:
            return harness_id in self._handles

    def __len__(self) -> int:
        with self._lock:
            return len(self._handles)
