from __future__ import annotations

import threading
from dataclasses import replace

import pytest

from breakwater.circuit_breaker import BreakerState, InMemoryStateCell


def _initial() -> BreakerState:
    return BreakerState.initial(max_retries=3, retry_after_ms=10)


def test_update_returns_and_stores_new_state() -> None:
    cell = InMemoryStateCell(_initial())

    updated = cell.update(lambda state: replace(state, retry_count=2))

    assert updated.retry_count == 2
    assert cell.get() is updated


def test_update_releases_lock_when_fn_raises() -> None:
    cell = InMemoryStateCell(_initial())

    def _explode(state: BreakerState) -> BreakerState:
        raise RuntimeError("boom")

    with pytest.raises(RuntimeError, match="boom"):
        cell.update(_explode)

    assert cell._lock.locked() is False
    assert cell.get().retry_count == 0


def test_concurrent_updates_are_not_lost() -> None:
    cell = InMemoryStateCell(_initial())
    start = threading.Barrier(8)

    def _worker() -> None:
        start.wait()
        for _ in range(500):
            cell.update(lambda state: replace(state, retry_count=state.retry_count + 1))

    threads = [threading.Thread(target=_worker) for _ in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert cell.get().retry_count == 8 * 500
