from dataclasses import replace
from datetime import UTC, datetime, timedelta

import pytest

from breakwater.circuit_breaker import (
    REASON_HARD_FAILURE,
    REASON_MAX_RETRIES,
    BreakerState,
    CallOutcome,
    CircuitStatus,
    next_state,
)
from breakwater.circuit_breaker.transition import resolve_retry_after

NOW = datetime(2020, 1, 1, tzinfo=UTC)


@pytest.fixture
def closed() -> BreakerState:
    return BreakerState.initial(max_retries=2, retry_after_ms=10)


def test_ok_keeps_closed_and_zero_count(closed: BreakerState) -> None:
    state = closed
    for _ in range(5):
        state = next_state(state, CallOutcome.ok("v"), now=NOW)

    assert state.status == CircuitStatus.CLOSED
    assert state.retry_count == 0


def test_ok_from_closed_resets_failure_count(closed: BreakerState) -> None:
    state = replace(closed, retry_count=2)

    state = next_state(state, CallOutcome.ok(), now=NOW)

    assert state.status == CircuitStatus.CLOSED
    assert state.retry_count == 0


def test_ok_from_open_moves_to_semi_open_and_keeps_count(
    closed: BreakerState,
) -> None:
    opened = replace(
        closed,
        status=CircuitStatus.OPEN,
        retry_count=3,
        retry_after=NOW - timedelta(seconds=1),
        reason=REASON_MAX_RETRIES,
    )

    state = next_state(opened, CallOutcome.ok(), now=NOW)

    assert state.status == CircuitStatus.SEMI_OPEN
    assert state.retry_count == 3
    assert state.retry_after is None


def test_ok_from_semi_open_closes_and_resets(closed: BreakerState) -> None:
    semi_open = replace(closed, status=CircuitStatus.SEMI_OPEN, retry_count=3)

    state = next_state(semi_open, CallOutcome.ok(), now=NOW)

    assert state.status == CircuitStatus.CLOSED
    assert state.retry_count == 0


def test_recovery_to_closed_keeps_last_open_reason(closed: BreakerState) -> None:
    semi_open = replace(
        closed,
        status=CircuitStatus.SEMI_OPEN,
        retry_count=2,
        reason=REASON_HARD_FAILURE,
    )

    state = next_state(semi_open, CallOutcome.ok(), now=NOW)

    assert state.status == CircuitStatus.CLOSED
    assert state.reason == REASON_HARD_FAILURE


def test_soft_failure_below_threshold_only_counts(closed: BreakerState) -> None:
    state = next_state(closed, CallOutcome.soft_failure(), now=NOW)

    assert state == replace(closed, retry_count=1)


def test_soft_failure_at_threshold_opens_with_default_reason(
    closed: BreakerState,
) -> None:
    state = closed
    for _ in range(3):
        state = next_state(state, CallOutcome.soft_failure(), now=NOW)

    assert state.status == CircuitStatus.OPEN
    assert state.reason == REASON_MAX_RETRIES
    assert state.retry_count == 3
    assert state.retry_after == NOW + timedelta(milliseconds=10)


def test_soft_failure_uses_explicit_reason_and_retry_after(
    closed: BreakerState,
) -> None:
    deadline = NOW + timedelta(minutes=5)
    at_threshold = replace(closed, retry_count=2)

    state = next_state(
        at_threshold,
        CallOutcome.soft_failure(retry_after=deadline, reason="rate_limited"),
        now=NOW,
    )

    assert state.reason == "rate_limited"
    assert state.retry_after == deadline


def test_soft_failure_in_semi_open_with_high_count_reopens(
    closed: BreakerState,
) -> None:
    semi_open = replace(closed, status=CircuitStatus.SEMI_OPEN, retry_count=2)

    state = next_state(semi_open, CallOutcome.soft_failure(), now=NOW)

    assert state.status == CircuitStatus.OPEN
    assert state.retry_count == 3


@pytest.mark.parametrize(
    "status", [CircuitStatus.CLOSED, CircuitStatus.SEMI_OPEN, CircuitStatus.OPEN]
)
@pytest.mark.parametrize("retry_count", [0, 1, 7])
def test_hard_failure_always_opens_and_pins_count(
    closed: BreakerState, status: CircuitStatus, retry_count: int
) -> None:
    start = replace(closed, status=status, retry_count=retry_count)

    state = next_state(start, CallOutcome.hard_failure(), now=NOW)

    assert state.status == CircuitStatus.OPEN
    assert state.reason == REASON_HARD_FAILURE
    assert state.retry_count == closed.max_retries
    assert state.retry_after == NOW + timedelta(milliseconds=10)


def test_failure_after_hard_failure_trial_reopens_immediately(
    closed: BreakerState,
) -> None:
    state = next_state(closed, CallOutcome.hard_failure(), now=NOW)
    later = NOW + timedelta(seconds=1)
    state = next_state(state, CallOutcome.ok(), now=later)
    assert state.status == CircuitStatus.SEMI_OPEN

    state = next_state(state, CallOutcome.soft_failure(), now=later)

    assert state.status == CircuitStatus.OPEN
    assert state.reason == REASON_MAX_RETRIES


def test_next_state_does_not_mutate_input(closed: BreakerState) -> None:
    next_state(closed, CallOutcome.hard_failure(), now=NOW)

    assert closed.status == CircuitStatus.CLOSED
    assert closed.retry_count == 0


@pytest.mark.parametrize(
    ("value", "expected"),
    [
        (None, NOW + timedelta(milliseconds=10)),
        (250, NOW + timedelta(milliseconds=250)),
        (1.5, NOW + timedelta(milliseconds=1.5)),
        (timedelta(seconds=3), NOW + timedelta(seconds=3)),
        (NOW + timedelta(hours=1), NOW + timedelta(hours=1)),
        (datetime(2030, 1, 1), datetime(2030, 1, 1, tzinfo=UTC)),
    ],
)
def test_resolve_retry_after_returns_absolute_deadline(
    value: object, expected: datetime
) -> None:
    assert resolve_retry_after(value, NOW, 10) == expected  # type: ignore[arg-type]
