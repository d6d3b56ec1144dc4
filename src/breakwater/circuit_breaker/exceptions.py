"""Circuit breaker exceptions.

Protected calls report an open circuit through ``BreakerResponse`` values.
``CircuitOpenError`` is raised only when a caller asks for the payload of a
rejected call.
"""

from datetime import datetime


class CircuitBreakerError(Exception):
    """Base exception for the circuit breaker package."""


class CircuitOpenError(CircuitBreakerError):
    """Raised when the payload of a rejected call is requested.

    Attributes:
        breaker_reason: Reason tag of the last transition into ``OPEN``.
        retry_after: Deadline after which a trial call may be made, or
            ``None`` when the circuit stays open until reset.
    """

    def __init__(self, breaker_reason: str | None, retry_after: datetime | None) -> None:
        """Initialize a circuit-open exception payload.

        Args:
            breaker_reason: Why the circuit opened.
            retry_after: Deadline of the next trial call.
        """
        self.breaker_reason = breaker_reason
        self.retry_after = retry_after
        until = "reset" if retry_after is None else retry_after.isoformat()
        super().__init__(f"circuit_open: reason={breaker_reason} retry_after={until}")
