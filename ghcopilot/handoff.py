from __future__ import annotations

import threading
from typing import Generic, TypeVar

from ghcopilot.cancel import CancelToken

T = TypeVar("T")


class Handoff(Generic[T]):
    """Zero-capacity channel between one producer thread and one consumer.

    `send` does not return until the consumer has taken the item, so the
    producer can never run more than one item ahead of the consumer.

    The consumer iterates the handoff. Each step waits for whichever comes
    first: an item, closure (ends iteration) or cancellation (raises
    CancellationError). Cancellation wins over an item that is already
    waiting.
    """

    def __init__(self, cancel_token: CancelToken | None = None) -> None:
        self._cond = threading.Condition()
        self._item: T | None = None
        self._pending = False
        self._closed = False
        self._abandoned = False
        self._cancel_token = cancel_token
        if cancel_token is not None:
            cancel_token.on_cancel(self._wake)

    @property
    def closed(self) -> bool:
        return self._closed

    def send(self, item: T) -> bool:
        """Hand `item` to the consumer, blocking until it is received.

        Returns False if the consumer abandoned the handoff before taking it.
        """
        with self._cond:
            if self._closed:
                raise RuntimeError("send on closed handoff")
            if self._abandoned:
                return False

            self._item = item
            self._pending = True
            self._cond.notify_all()

            while self._pending and not self._abandoned:
                self._cond.wait()

            if self._pending:
                self._item = None
                self._pending = False
                return False
            return True

    def close(self) -> None:
        """Producer side: no more items. Must be called exactly once."""
        with self._cond:
            if self._closed:
                raise RuntimeError("handoff already closed")
            self._closed = True
            self._cond.notify_all()

    def abandon(self) -> None:
        """Consumer side: stop receiving; any blocked `send` returns False."""
        with self._cond:
            self._abandoned = True
            self._cond.notify_all()

    def _wake(self) -> None:
        with self._cond:
            self._cond.notify_all()

    def __iter__(self) -> "Handoff[T]":
        return self

    def __next__(self) -> T:
        with self._cond:
            while True:
                if self._cancel_token is not None and self._cancel_token.cancelled:
                    raise self._cancel_token.error()

                if self._pending:
                    item = self._item
                    self._item = None
                    self._pending = False
                    self._cond.notify_all()
                    return item  # type: ignore[return-value]

                if self._closed:
                    raise StopIteration

                self._cond.wait()
