"""Cancellation handle threaded through every transport operation.

A Context carries an optional monotonic deadline and a cancellation event.
Children derived with `with_timeout` inherit the earlier deadline and are
cancelled together with their parent.
"""

import threading
import time
import weakref
from typing import Self

from bkt.services.http.errors import RequestCancelled, RequestTimedOut


class Context:
    def __init__(self, deadline: float | None = None, parent: "Context | None" = None) -> None:
        self._deadline = deadline
        self._event = threading.Event()
        # Held weakly so per-request children vanish once their request is gone.
        self._children: weakref.WeakSet[Context] = weakref.WeakSet()
        self._lock = threading.Lock()
        if parent is not None:
            parent._adopt(self)

    @classmethod
    def background(cls) -> Self:
        return cls()

    @property
    def deadline(self) -> float | None:
        return self._deadline

    def with_timeout(self, seconds: float) -> "Context":
        deadline = time.monotonic() + seconds
        if self._deadline is not None:
            deadline = min(deadline, self._deadline)
        return Context(deadline=deadline, parent=self)

    def _adopt(self, child: "Context") -> None:
        with self._lock:
            self._children.add(child)
            cancelled = self._event.is_set()
        if cancelled:
            child.cancel()

    def cancel(self) -> None:
        self._event.set()
        with self._lock:
            children = list(self._children)
        for child in children:
            child.cancel()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def remaining(self) -> float | None:
        if self._deadline is None:
            return None
        return max(0.0, self._deadline - time.monotonic())

    @property
    def expired(self) -> bool:
        return self._deadline is not None and time.monotonic() >= self._deadline

    def raise_if_done(self) -> None:
        if self.cancelled:
            raise RequestCancelled()
        if self.expired:
            raise RequestTimedOut()

    def sleep(self, seconds: float) -> None:
        """Wait for `seconds`, waking early on cancellation.

        Raises RequestTimedOut without sleeping when the wait would overrun
        the deadline.
        """
        self.raise_if_done()
        if seconds <= 0:
            return
        remaining = self.remaining()
        if remaining is not None and seconds > remaining:
            raise RequestTimedOut()
        if self._event.wait(seconds):
            raise RequestCancelled()
