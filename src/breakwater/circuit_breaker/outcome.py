"""Call outcomes produced by wrapped operations and responses returned to callers."""

from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import StrEnum

from breakwater.circuit_breaker.exceptions import CircuitOpenError
from breakwater.circuit_breaker.state import CircuitStatus

RetryAfter = datetime | timedelta | int | float


class CallResult(StrEnum):
    """Outcome kinds of one operation invocation."""

    OK = "ok"
    SOFT_FAILURE = "soft_failure"
    HARD_FAILURE = "hard_failure"


@dataclass(frozen=True)
class CallOutcome:
    """Tagged result of one invocation.

    Operations may return this directly to report failures without raising.

    Attributes:
        result: Outcome kind.
        value: Payload handed back to the caller on success.
        retry_after: Explicit retry deadline for failures. Absolute
            ``datetime`` values are kept, ``timedelta`` and numbers of
            milliseconds are relative to the moment the outcome is applied.
        reason: Explicit reason tag for failures.
    """

    result: CallResult
    value: object = None
    retry_after: RetryAfter | None = None
    reason: str | None = None

    def __post_init__(self) -> None:
        value = self.retry_after
        if value is None:
            return
        if isinstance(value, bool) or not isinstance(
            value, (datetime, timedelta, int, float)
        ):
            raise ValueError(
                "retry_after must be a datetime, timedelta or milliseconds, "
                f"got {type(value).__name__}"
            )

    @classmethod
    def ok(cls, value: object = None) -> "CallOutcome":
        return cls(result=CallResult.OK, value=value)

    @classmethod
    def soft_failure(
        cls, *, retry_after: RetryAfter | None = None, reason: str | None = None
    ) -> "CallOutcome":
        return cls(
            result=CallResult.SOFT_FAILURE, retry_after=retry_after, reason=reason
        )

    @classmethod
    def hard_failure(
        cls, *, retry_after: RetryAfter | None = None, reason: str | None = None
    ) -> "CallOutcome":
        return cls(
            result=CallResult.HARD_FAILURE, retry_after=retry_after, reason=reason
        )


def _as_call_result(tag: object) -> CallResult | None:
    if isinstance(tag, CallResult):
        return tag
    if isinstance(tag, str):
        try:
            return CallResult(tag)
        except ValueError:
            return None
    return None


def coerce_outcome(returned: object) -> CallOutcome:
    """Turn whatever an operation returned into a ``CallOutcome``.

    ``CallOutcome`` instances pass through. Mappings carrying a recognized
    ``"result"`` tag are read as outcomes. Anything else is an ``OK`` payload.
    """
    if isinstance(returned, CallOutcome):
        return returned
    if isinstance(returned, Mapping) and "result" in returned:
        result = _as_call_result(returned["result"])
        if result is not None:
            return CallOutcome(
                result=result,
                value=returned.get("value"),
                retry_after=returned.get("retry_after"),
                reason=returned.get("reason"),
            )
    return CallOutcome.ok(returned)


@dataclass(frozen=True)
class BreakerResponse:
    """What a protected call hands back to its caller.

    Attributes:
        status: Circuit status after the call.
        value: Operation payload when the call succeeded.
        reason: Why the circuit is open, if it is.
        retry_after: Deadline after which the circuit may be tried again.
    """

    status: CircuitStatus
    value: object = None
    reason: str | None = None
    retry_after: datetime | None = None

    @property
    def is_open(self) -> bool:
        return self.status == CircuitStatus.OPEN

    def unwrap(self) -> object:
        """Return the payload, raising ``CircuitOpenError`` if the circuit is open."""
        if self.is_open:
            raise CircuitOpenError(self.reason, retry_after=self.retry_after)
        return self.value
