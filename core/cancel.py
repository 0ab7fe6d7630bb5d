"""
GIF Blur — Cancellation
Cooperative cancellation for long frame loops (extraction, batch blur,
reconstruction). Loops call ``check_cancel()`` between frames; a cancelled
operation discards its partial results.
"""

import threading


class OperationCancelled(Exception):
    """Raised when a caller cancels an in-progress operation."""
    pass


class CancellationToken:
    """Thread-safe cancel flag shared between a caller and a worker loop."""

    def __init__(self):
        self._event = threading.Event()
        self.reason = ""

    def cancel(self, reason: str = "Cancelled by user"):
        self.reason = reason
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self, where: str = ""):
        if self._event.is_set():
            msg = self.reason or "Cancelled"
            if where:
                msg = f"{msg} ({where})"
            raise OperationCancelled(msg)


def check_cancel(token: CancellationToken | None, where: str = ""):
    """No-op when ``token`` is None."""
    if token is not None:
        token.raise_if_cancelled(where)
