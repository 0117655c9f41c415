from __future__ import annotations

import threading
import time
from typing import Callable


class CancellationError(RuntimeError):
    """Raised when the current request is cancelled (SIGINT or deadline)."""


class CancelToken:
    """Cooperative cancellation signal shared by the decoder and the renderer.

    Nobody blocks on the token directly. Tasks check it at their own
    suspension points, and `on_cancel` lets a blocked waiter get woken up.
    """

    def __init__(self) -> None:
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._callbacks: list[Callable[[], None]] = []
        self._deadline: float | None = None
        self._timer: threading.Timer | None = None
        self.reason: str | None = None

    def cancel(self, reason: str | None = None) -> None:
        with self._lock:
            if self._event.is_set():
                return
            self.reason = reason
            self._event.set()
            callbacks = list(self._callbacks)
            self._callbacks.clear()

        for callback in callbacks:
            callback()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def error(self) -> CancellationError:
        return CancellationError(self.reason or "cancelled")

    def check(self) -> None:
        if self.cancelled:
            raise self.error()

    def on_cancel(self, callback: Callable[[], None]) -> None:
        """Run `callback` once the token is cancelled (now, if it already is)."""
        with self._lock:
            if not self._event.is_set():
                self._callbacks.append(callback)
                return
        callback()

    def set_deadline(self, seconds: float) -> None:
        """Cancel with reason "deadline exceeded" after `seconds`."""
        if self._timer is not None:
            self._timer.cancel()

        self._deadline = time.monotonic() + seconds
        self._timer = threading.Timer(seconds, self.cancel, args=("deadline exceeded",))
        self._timer.name = "cancel-deadline"
        self._timer.daemon = True
        self._timer.start()

    def remaining(self) -> float | None:
        if self._deadline is None:
            return None
        return max(0.0, self._deadline - time.monotonic())

    def close(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
