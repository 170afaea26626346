"""Deadlines and cooperative cancellation for bounded operations."""

from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import Future
from concurrent.futures import TimeoutError as FutureTimeoutError
from typing import Callable, TypeVar

from imagetest.exceptions import HarnessTimeoutError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class Deadline:
    """A deadline that can also be cancelled explicitly.

    Long-running operations call ``check()`` between steps and use
    ``wait()`` instead of ``time.sleep`` so that they return promptly once
    the deadline passes or the owner cancels.

    Parameters
    ----------
    budget_seconds : float
        Total time budget in seconds
    name : str
        Operation name used in log and error messages
    """

    def __init__(self, budget_seconds: float, name: str = "operation") -> None:
        self.budget_seconds = budget_seconds
        self.name = name
        self.start_time = time.monotonic()
        self.deadline = self.start_time + budget_seconds
        self._cancelled = threading.Event()

    def elapsed_seconds(self) -> float:
        """Get elapsed time since start.

        Returns
        -------
        float
            Elapsed seconds
        """
        return time.monotonic() - self.start_time

    def remaining_seconds(self) -> float:
        """Get remaining time until deadline.

        Returns
        -------
        float
            Remaining seconds (may be negative if deadline passed)
        """
        return self.deadline - time.monotonic()

    def cancel(self) -> None:
        """Cancel the operation; subsequent checks raise."""
        self._cancelled.set()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def expired(self) -> bool:
        return self.cancelled or self.remaining_seconds() <= 0

    def check(self, step: str = "") -> None:
        """Raise if the deadline has passed or the operation was cancelled.

        Parameters
        ----------
        step : str
            Step about to run, for diagnostics

        Raises
        ------
        HarnessTimeoutError
            If the deadline passed or ``cancel()`` was called
        """
        if not self.expired():
            return

        where = f" before {step}" if step else ""
        if self.cancelled:
            raise HarnessTimeoutError(f"{self.name} cancelled{where}")
        raise HarnessTimeoutError(
            f"{self.name} exceeded {self.budget_seconds:.0f}s timeout{where} "
            f"(elapsed={self.elapsed_seconds():.2f}s)"
        )

    def wait(self, seconds: float) -> None:
        """Sleep up to ``seconds``, waking early on cancellation or expiry.

        Raises
        ------
        HarnessTimeoutError
            If the deadline expires or is cancelled while waiting
        """
        timeout = max(0.0, min(seconds, self.remaining_seconds()))
        self._cancelled.wait(timeout)
        self.check()

    def checkpoint(self, description: str) -> None:
        """Log elapsed and remaining time at a checkpoint.

        Parameters
        ----------
        description : str
            Description of checkpoint for logging
        """
        logger.debug(
            "Deadline '%s' checkpoint '%s': elapsed=%.2fs, remaining=%.2fs",
            self.name,
            description,
            self.elapsed_seconds(),
            self.remaining_seconds(),
        )


def run_with_deadline(fn: Callable[[Deadline], T], deadline: Deadline) -> T:
    """Run ``fn(deadline)`` in a worker thread, bounded by the deadline.

    When the deadline passes first the deadline is cancelled, so a
    cooperative ``fn`` stops at its next check, and this call returns
    immediately with an error. Nothing ``fn`` created is cleaned up.

    The worker is a daemon thread, so a call still blocked inside ``fn``
    (for example an image pull) does not hold up interpreter exit.

    Raises
    ------
    HarnessTimeoutError
        If the deadline passes before ``fn`` returns
    """
    future: Future[T] = Future()

    def work() -> None:
        if not future.set_running_or_notify_cancel():
            return
        try:
            future.set_result(fn(deadline))
        except BaseException as e:
            future.set_exception(e)

    threading.Thread(target=work, name=f"deadline-{deadline.name}", daemon=True).start()
    try:
        return future.result(timeout=max(0.0, deadline.remaining_seconds()))
    except FutureTimeoutError:
        deadline.cancel()
        raise HarnessTimeoutError(
            f"{deadline.name} exceeded {deadline.budget_seconds:.0f}s timeout "
            f"(elapsed={deadline.elapsed_seconds():.2f}s)"
        ) from None
