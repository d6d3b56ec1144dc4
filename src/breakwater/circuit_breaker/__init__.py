"""Retrying circuit breaker for unreliable operations.

Key behavior notes:
  - Soft failures are retried with a linear backoff until ``max_retries`` is
    exceeded, then the circuit opens. Hard failures open it immediately.
  - While ``OPEN`` and before ``retry_after``, calls return an ``OPEN``
    response without invoking the operation.
  - The first success after the open window only moves the circuit to
    ``SEMI_OPEN`` and keeps the failure count, so one more failure re-opens
    it straight away.
  - Exceptions that are not classified as failures propagate unchanged and
    leave the breaker state untouched.
"""

from breakwater.circuit_breaker.breaker import (
    AsyncCircuitBreaker,
    CircuitBreaker,
    CircuitBreakerConfig,
    circuit_breaker,
    make_circuit_breaker,
)
from breakwater.circuit_breaker.classifier import (
    FailureClassifier,
    build_classification,
)
from breakwater.circuit_breaker.exceptions import (
    CircuitBreakerError,
    CircuitOpenError,
)
from breakwater.circuit_breaker.outcome import (
    BreakerResponse,
    CallOutcome,
    CallResult,
)
from breakwater.circuit_breaker.state import (
    REASON_HARD_FAILURE,
    REASON_MAX_RETRIES,
    BreakerState,
    CircuitStatus,
    is_open,
)
from breakwater.circuit_breaker.storage import InMemoryStateCell
from breakwater.circuit_breaker.transition import next_state

__all__ = [
    "REASON_HARD_FAILURE",
    "REASON_MAX_RETRIES",
    "AsyncCircuitBreaker",
    "BreakerResponse",
    "BreakerState",
    "CallOutcome",
    "CallResult",
    "CircuitBreaker",
    "CircuitBreakerConfig",
    "CircuitBreakerError",
    "CircuitOpenError",
    "CircuitStatus",
    "FailureClassifier",
    "InMemoryStateCell",
    "build_classification",
    "circuit_breaker",
    "is_open",
    "make_circuit_breaker",
    "next_state",
]
