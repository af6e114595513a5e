"""Per-call operation context: deadline and cooperative cancellation.

Storage calls are blocking network I/O. The caller (an HTTP request, a CLI
command) creates one OperationContext and passes it to every storage call made
on its behalf. Adapters check it before each network round trip, between
listing pages and on every stream read.
"""

from __future__ import annotations

import threading
import time

from fileservice.storage.errors import OperationCancelledError


class OperationContext:
    """Deadline plus cancel flag shared by all calls made for one caller.

    Args:
        timeout: Seconds from now until the deadline. None means no deadline.
        cancel_event: Optional event the caller sets to cancel. A private event
            is created when omitted so cancel() always works.
    """

    def __init__(
        self,
        timeout: float | None = None,
        cancel_event: threading.Event | None = None,
    ) -> None:
        if timeout is not None and timeout <= 0:
            raise ValueError("timeout must be positive or None")
        self._deadline = time.monotonic() + timeout if timeout is not None else None
        self._cancel_event = cancel_event if cancel_event is not None else threading.Event()

    @property
    def deadline(self) -> float | None:
        """Monotonic deadline, or None."""
        return self._deadline

    @property
    def cancelled(self) -> bool:
        """True once cancel() was called or the deadline has passed."""
        if self._cancel_event.is_set():
            return True
        return self._deadline is not None and time.monotonic() >= self._deadline

    def cancel(self) -> None:
        self._cancel_event.set()

    def remaining(self) -> float | None:
        """Seconds left before the deadline (never negative), or None."""
        if self._deadline is None:
            return None
        return max(0.0, self._deadline - time.monotonic())

    def raise_if_cancelled(self, *, bucket: str | None = None, key: str | None = None) -> None:
        """Raise OperationCancelledError if the context is no longer live."""
        if self._cancel_event.is_set():
            raise OperationCancelledError("Operation cancelled", bucket=bucket, key=key)
        if self._deadline is not None and time.monotonic() >= self._deadline:
            raise OperationCancelledError("Operation deadline exceeded", bucket=bucket, key=key)


def check_context(
    ctx: OperationContext | None,
    *,
    bucket: str | None = None,
    key: str | None = None,
) -> None:
    """raise_if_cancelled() that tolerates a missing context."""
    if ctx is not None:
        ctx.raise_if_cancelled(bucket=bucket, key=key)
