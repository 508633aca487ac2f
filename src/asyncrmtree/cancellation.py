"""Cooperative cancellation token shared by every operation of a deletion."""

import threading

from .errors import Cancelled


class CancellationToken:
    """
    A one-shot cancellation signal.

    The token is set at most once; later calls to ``cancel()`` keep the first
    reason. Setting it never interrupts operations already dispatched, it only
    makes the next ``raise_if_cancelled()`` check fail.

    ``cancel()`` may be called from a signal handler or another thread.
    """

    def __init__(self):
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._reason = ""

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> str:
        return self._reason

    def cancel(self, reason: str = "cancelled") -> None:
        """Signal cancellation."""
        with self._lock:
            if self._event.is_set():
                return
            self._reason = reason
            self._event.set()

    def raise_if_cancelled(self) -> None:
        """Raise Cancelled if the token has been set."""
        if self._event.is_set():
            raise Cancelled(self._reason)

    def __repr__(self) -> str:
        state = f"cancelled={self._reason!r}" if self.is_cancelled else "active"
        return f"<CancellationToken {state}>"
