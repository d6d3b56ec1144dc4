"""State storage for circuit breakers.

A breaker owns exactly one cell. Every read-modify-write goes through
``update`` so concurrent callers never apply a transition to a stale state.
"""

import threading
from collections.abc import Callable, Iterator
from contextlib import contextmanager

from breakwater.circuit_breaker.state import BreakerState


class InMemoryStateCell:
    """Mutex-guarded holder of one immutable ``BreakerState``."""

    def __init__(self, initial: BreakerState) -> None:
        """Initialize the cell with the breaker's starting state."""
        self._state = initial
        self._lock = threading.Lock()

    @contextmanager
    def _locked(self) -> Iterator[None]:
        self._lock.acquire()
        try:
            yield
        finally:
            self._lock.release()

    def get(self) -> BreakerState:
        """Return the current state."""
        with self._locked():
            return self._state

    def update(self, fn: Callable[[BreakerState], BreakerState]) -> BreakerState:
        """Atomically replace the state with ``fn(state)`` and return it.

        ``fn`` runs under the lock and must not block.
        """
        with self._locked():
            self._state = fn(self._state)
            return self._state
