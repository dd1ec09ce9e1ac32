"""
Cooperative cancellation shared between the service loops and worker threads.
"""

import threading

from galedi.exceptions import SyncCancelledError


class CancelToken:
    """Thread-safe cancellation flag checked before every remote and store call."""

    def __init__(self) -> None:
        self._event = threading.Event()
        self.reason: str | None = None

    def cancel(self, reason: str = "shutdown") -> None:
        self.reason = reason
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self, step: str = "") -> None:
        """Raise ``SyncCancelledError`` when cancellation was requested."""
        if self._event.is_set():
            where = f" before {step}" if step else ""
            raise SyncCancelledError(f"Cancelled{where} ({self.reason})", details={"step": step})

    def wait(self, timeout: float) -> bool:
        """Sleep up to ``timeout`` seconds; returns True if cancelled meanwhile."""
        return self._event.wait(timeout)


def check_cancelled(token: CancelToken | None, step: str = "") -> None:
    """``raise_if_cancelled`` that tolerates a missing token."""
    if token is not None:
        token.raise_if_cancelled(step)
