"""Pure state transitions driven by call outcomes."""

from dataclasses import replace
from datetime import UTC, datetime, timedelta

from breakwater.circuit_breaker.outcome import CallOutcome, CallResult, RetryAfter
from breakwater.circuit_breaker.state import (
    REASON_HARD_FAILURE,
    REASON_MAX_RETRIES,
    BreakerState,
    CircuitStatus,
)


def resolve_retry_after(
    value: RetryAfter | None, now: datetime, default_ms: int
) -> datetime:
    """Normalize an operation-supplied retry-after into an absolute UTC deadline.

    Numbers are milliseconds relative to ``now``. Naive datetimes are UTC.
    """
    if value is None:
        return now + timedelta(milliseconds=default_ms)
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value
    if isinstance(value, timedelta):
        return now + value
    return now + timedelta(milliseconds=value)


def next_state(
    state: BreakerState, outcome: CallOutcome, *, now: datetime
) -> BreakerState:
    """Compute the state following ``outcome``.

    A success while ``OPEN`` only earns ``SEMI_OPEN`` and keeps the failure
    count, so one more failure re-opens the circuit right away.
    """
    was_open = state.status == CircuitStatus.OPEN

    if outcome.result == CallResult.OK:
        return replace(
            state,
            status=CircuitStatus.SEMI_OPEN if was_open else CircuitStatus.CLOSED,
            retry_after=None,
            retry_count=state.retry_count if was_open else 0,
        )

    if outcome.result == CallResult.SOFT_FAILURE:
        if state.retry_count >= state.max_retries:
            return replace(
                state,
                status=CircuitStatus.OPEN,
                reason=outcome.reason or REASON_MAX_RETRIES,
                retry_count=state.retry_count + 1,
                retry_after=resolve_retry_after(
                    outcome.retry_after, now, state.retry_after_ms
                ),
            )
        return replace(state, retry_count=state.retry_count + 1)

    if outcome.result == CallResult.HARD_FAILURE:
        # pinning the count at max_retries makes a failed trial call re-open
        return replace(
            state,
            status=CircuitStatus.OPEN,
            reason=outcome.reason or REASON_HARD_FAILURE,
            retry_count=state.max_retries,
            retry_after=resolve_retry_after(
                outcome.retry_after, now, state.retry_after_ms
            ),
        )

    raise ValueError(f"unknown call result: {outcome.result!r}")
