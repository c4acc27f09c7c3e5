"""Per-credential reader/writer lock with first-come, first-served ordering.

Mutating actions (authenticate, book, cancel) take the lock exclusively.
Queries take it shared, so several listings can run side by side but never
while a mutation is in flight.  Waiters are admitted strictly in arrival
order: a query that arrives after a queued booking waits for that booking,
which keeps actions completing in the order they were dispatched.
"""

from __future__ import annotations

import threading
from collections import deque
from collections.abc import Iterator
from contextlib import contextmanager


class CredentialLock:

    def __init__(self) -> None:
        self._cond = threading.Condition()
        self._waiting: deque[tuple[object, bool]] = deque()
        self._readers = 0
        self._writer = False

    def _admissible(self, entry: tuple[object, bool]) -> bool:
        if not self._waiting or self._waiting[0] is not entry:
            return False
        _, exclusive = entry
        if exclusive:
            return not self._writer and self._readers == 0
        return not self._writer

    def acquire(self, exclusive: bool, timeout: float | None = None) -> bool:
        """Wait for the lock.  Returns ``False`` if *timeout* elapsed first."""
        entry = (object(), exclusive)
        with self._cond:
            self._waiting.append(entry)
            admitted = self._cond.wait_for(lambda: self._admissible(entry), timeout)
            self._waiting.remove(entry)
            if admitted:
                if exclusive:
                    self._writer = True
                else:
                    self._readers += 1
            # Either way the head of the queue changed.
            self._cond.notify_all()
            return admitted

    def release(self, exclusive: bool) -> None:
        with self._cond:
            if exclusive:
                self._writer = False
            else:
                self._readers -= 1
            self._cond.notify_all()

    @property
    def busy(self) -> bool:
        with self._cond:
            return self._writer or self._readers > 0 or bool(self._waiting)

    @contextmanager
    def hold(self, exclusive: bool, timeout: float | None = None) -> Iterator[bool]:
        """Context manager form of :meth:`acquire`; yields whether it was admitted."""
        admitted = self.acquire(exclusive, timeout)
        try:
            yield admitted
        finally:
            if admitted:
                self.release(exclusive)
