"""Circuit breaker state primitives."""

from dataclasses import dataclass
from datetime import UTC, datetime
from enum import StrEnum

REASON_MAX_RETRIES = "max_retries"
REASON_HARD_FAILURE = "hard_failure"


def _utcnow() -> datetime:
    return datetime.now(UTC)


class CircuitStatus(StrEnum):
    """Circuit breaker status values."""

    CLOSED = "closed"
    OPEN = "open"
    SEMI_OPEN = "semi_open"


@dataclass(frozen=True)
class BreakerState:
    """Immutable view of breaker internals.

    Attributes:
        status: Current circuit status.
        retry_count: Consecutive failures counted while not ``OPEN``.
        retry_after: Deadline after which an ``OPEN`` circuit may be tried.
            ``None`` while ``OPEN`` keeps the circuit open until reset.
        retry_after_ms: Backoff unit in milliseconds.
        max_retries: Failures tolerated before the circuit opens.
        reason: Tag explaining the last transition into ``OPEN``.
    """

    status: CircuitStatus
    retry_count: int
    retry_after: datetime | None
    retry_after_ms: int
    max_retries: int
    reason: str | None = None

    @classmethod
    def initial(cls, *, max_retries: int, retry_after_ms: int) -> "BreakerState":
        """Build the closed starting state for a new breaker."""
        return cls(
            status=CircuitStatus.CLOSED,
            retry_count=0,
            retry_after=None,
            retry_after_ms=retry_after_ms,
            max_retries=max_retries,
        )


def is_open(state: BreakerState, now: datetime | None = None) -> bool:
    """Tell whether calls must currently be rejected.

    An ``OPEN`` circuit without ``retry_after`` stays open until reset.
    """
    if state.status != CircuitStatus.OPEN:
        return False
    if state.retry_after is None:
        return True
    current = _utcnow() if now is None else now
    return current < state.retry_after
