"""Cooperative cancellation for matching batches."""

import threading
import time
from typing import Optional

from .exceptions import MatchCancelledError


class CancellationToken:
    """
    Signals that a batch should stop.

    Cancelled explicitly with ``cancel()`` or implicitly once the optional
    timeout has passed. Safe to share between threads.
    """

    def __init__(self, timeout: Optional[float] = None):
        """
        Args:
            timeout: Seconds until the token cancels itself (None = never)
        """
        self._event = threading.Event()
        self._deadline = time.monotonic() + timeout if timeout is not None else None

    def cancel(self) -> None:
        """Request cancellation."""
        self._event.set()

    @property
    def cancelled(self) -> bool:
        if self._event.is_set():
            return True
        if self._deadline is not None and time.monotonic() >= self._deadline:
            self._event.set()
            return True
        return False

    def raise_if_cancelled(self) -> None:
        """Raise MatchCancelledError if cancellation was requested."""
        if self.cancelled:
            raise MatchCancelledError()
