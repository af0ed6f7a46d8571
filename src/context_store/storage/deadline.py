from __future__ import annotations

import threading
import time

from context_store.errors import OperationCancelledError


class Deadline:
    """Expiry time and/or cancellation signal supplied by a caller.

    Either part is optional; a deadline with neither never fires.
    """

    def __init__(
        self,
        *,
        expires_at: float | None = None,
        cancel_event: threading.Event | None = None,
    ) -> None:
        self._expires_at = expires_at
        self._cancel_event = cancel_event or threading.Event()

    @classmethod
    def after(cls, seconds: float, *, cancel_event: threading.Event | None = None) -> Deadline:
        return cls(expires_at=time.monotonic() + seconds, cancel_event=cancel_event)

    def cancel(self) -> None:
        self._cancel_event.set()

    @property
    def cancelled(self) -> bool:
        return self._cancel_event.is_set()

    @property
    def expired(self) -> bool:
        if self._cancel_event.is_set():
            return True
        return self._expires_at is not None and time.monotonic() >= self._expires_at

    def remaining(self) -> float | None:
        if self._expires_at is None:
            return None
        return max(0.0, self._expires_at - time.monotonic())

    def check(self) -> None:
        if self.cancelled:
            raise OperationCancelledError("Operation cancelled by caller")
        if self.expired:
            raise OperationCancelledError("Operation deadline exceeded")
