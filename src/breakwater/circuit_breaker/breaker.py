"""Core circuit breaker implementation."""

import inspect
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, fields, replace
from datetime import UTC, datetime
from typing import Any

import structlog
from tenacity import RetryCallState

from breakwater.circuit_breaker.classifier import FailureClassifier
from breakwater.circuit_breaker.outcome import (
    BreakerResponse,
    CallOutcome,
    CallResult,
    coerce_outcome,
)
from breakwater.circuit_breaker.state import (
    BreakerState,
    CircuitStatus,
    is_open,
)
from breakwater.circuit_breaker.storage import InMemoryStateCell
from breakwater.circuit_breaker.transition import next_state
from breakwater.logging import StructuredLogger, log_info, log_warning
from breakwater.retry import (
    ScheduledRetry,
    build_async_scheduled_retrying,
    build_scheduled_retrying,
    linear_backoff_seconds,
)


def _utcnow() -> datetime:
    return datetime.now(UTC)


@dataclass(frozen=True, slots=True)
class _Unclassified:
    """Attempt result carrying an error that must bypass the retry loop."""

    error: BaseException


def _validate_exception_types(
    field_name: str, types: tuple[type[BaseException], ...]
) -> None:
    for exc_type in types:
        if not (isinstance(exc_type, type) and issubclass(exc_type, BaseException)):
            raise ValueError(f"{field_name} must contain exception types")


@dataclass(slots=True)
class CircuitBreakerConfig:
    """Circuit breaker configuration values.

    Attributes:
        hard_failure_exceptions: Exceptions that open the circuit at once.
        soft_failure_exceptions: Exceptions that are retried with backoff.
        exception_failure_map: Explicit ordered exception -> severity mapping.
            Replaces both exception lists when given.
        max_retries: Consecutive soft failures tolerated before opening.
        retry_after_ms: Backoff unit and default open window, in milliseconds.
    """

    hard_failure_exceptions: tuple[type[BaseException], ...] = ()
    soft_failure_exceptions: tuple[type[BaseException], ...] = (Exception,)
    exception_failure_map: Mapping[type[BaseException], CallResult | str] | None = None
    max_retries: int = 3
    retry_after_ms: int = 10

    def __post_init__(self) -> None:
        if self.max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        if self.retry_after_ms < 0:
            raise ValueError("retry_after_ms must be >= 0")
        self.hard_failure_exceptions = tuple(self.hard_failure_exceptions)
        self.soft_failure_exceptions = tuple(self.soft_failure_exceptions)
        _validate_exception_types(
            "hard_failure_exceptions", self.hard_failure_exceptions
        )
        _validate_exception_types(
            "soft_failure_exceptions", self.soft_failure_exceptions
        )
        if self.exception_failure_map is not None:
            _validate_exception_types(
                "exception_failure_map", tuple(self.exception_failure_map)
            )

    def build_classifier(self) -> FailureClassifier:
        """Build the immutable classifier described by this configuration."""
        if self.exception_failure_map is not None:
            return FailureClassifier.from_mapping(self.exception_failure_map)
        return FailureClassifier.from_types(
            self.hard_failure_exceptions, self.soft_failure_exceptions
        )


def _operation_name(operation: Callable[..., Any]) -> str:
    callable_name = getattr(operation, "__qualname__", None)
    if callable_name is None:
        callable_name = getattr(operation, "__name__", None)
    if callable_name is None:
        callable_name = operation.__class__.__qualname__
    return str(callable_name)


class _BreakerBase:
    """State handling shared by the sync and async breakers."""

    def __init__(
        self,
        operation: Callable[..., Any],
        *,
        config: CircuitBreakerConfig | None = None,
        name: str | None = None,
        clock: Callable[[], datetime] | None = None,
        logger: StructuredLogger | None = None,
    ) -> None:
        self.config = CircuitBreakerConfig() if config is None else config
        self.name = _operation_name(operation) if name is None else name
        self._operation = operation
        self._classifier = self.config.build_classifier()
        self._cell = InMemoryStateCell(
            BreakerState.initial(
                max_retries=self.config.max_retries,
                retry_after_ms=self.config.retry_after_ms,
            )
        )
        self._clock = _utcnow if clock is None else clock
        self._logger: StructuredLogger = (
            structlog.get_logger(__name__) if logger is None else logger
        )

    def inspect(self) -> BreakerState:
        """Return the current state snapshot."""
        return self._cell.get()

    def reset(self) -> BreakerState:
        """Close the circuit and clear failure bookkeeping.

        Calls already past the open check are not interrupted.
        """
        state = self._cell.update(
            lambda current: replace(
                current,
                status=CircuitStatus.CLOSED,
                retry_count=0,
                retry_after=None,
                reason=None,
            )
        )
        log_info(self._logger, "circuit_breaker.reset", breaker=self.name)
        return state

    def _reject_if_open(self) -> BreakerResponse | None:
        state = self._cell.get()
        if not is_open(state, self._clock()):
            return None
        log_info(
            self._logger,
            "circuit_breaker.rejected",
            breaker=self.name,
            reason=state.reason,
            retry_after=_isoformat(state.retry_after),
        )
        return BreakerResponse(
            status=CircuitStatus.OPEN,
            reason=state.reason,
            retry_after=state.retry_after,
        )

    def _classify(self, error: BaseException) -> CallOutcome | None:
        severity = self._classifier.classify(error)
        if severity is None:
            log_warning(
                self._logger,
                "circuit_breaker.unclassified_error",
                breaker=self.name,
                error_type=type(error).__name__,
            )
            return None
        return CallOutcome(result=severity)

    def _apply(self, outcome: CallOutcome) -> BreakerResponse | ScheduledRetry:
        now = self._clock()
        state = self._cell.update(lambda current: next_state(current, outcome, now=now))

        if state.status == CircuitStatus.OPEN:
            log_warning(
                self._logger,
                "circuit_breaker.opened",
                breaker=self.name,
                reason=state.reason,
                retry_count=state.retry_count,
                retry_after=_isoformat(state.retry_after),
            )
            return BreakerResponse(
                status=CircuitStatus.OPEN,
                reason=state.reason,
                retry_after=state.retry_after,
            )

        if outcome.result != CallResult.OK:
            return ScheduledRetry(
                delay=linear_backoff_seconds(state.retry_after_ms, state.retry_count),
                retry_count=state.retry_count,
            )

        return BreakerResponse(status=state.status, value=outcome.value)

    def _log_retry(self, retry_state: RetryCallState) -> None:
        delay = 0.0 if retry_state.next_action is None else retry_state.next_action.sleep
        log_info(
            self._logger,
            "circuit_breaker.retry_scheduled",
            breaker=self.name,
            attempt=retry_state.attempt_number,
            delay=delay,
        )


class CircuitBreaker(_BreakerBase):
    """Thread-safe circuit breaker around a blocking operation."""

    def __init__(
        self,
        operation: Callable[..., Any],
        *,
        config: CircuitBreakerConfig | None = None,
        name: str | None = None,
        clock: Callable[[], datetime] | None = None,
        sleep: Callable[[float], None] | None = None,
        logger: StructuredLogger | None = None,
    ) -> None:
        """Wrap ``operation`` with a circuit breaker.

        Args:
            operation: Unreliable callable to protect.
            config: Breaker behavior configuration. Defaults to
                ``CircuitBreakerConfig()``.
            name: Name used in log events. Defaults to the operation's
                qualified name.
            clock: Returns the current timezone-aware UTC time.
            sleep: Blocks for the given number of seconds between retries.
                Defaults to ``time.sleep``.
            logger: Structured logger. Defaults to a structlog logger.
        """
        super().__init__(
            operation, config=config, name=name, clock=clock, logger=logger
        )
        self._sleep = sleep

    def __call__(self, *args: Any, **kwargs: Any) -> BreakerResponse:
        return self.call(*args, **kwargs)

    def call(self, *args: Any, **kwargs: Any) -> BreakerResponse:
        """Invoke the operation under circuit breaker protection.

        Returns:
            An ``OPEN`` response without invoking the operation while the
            circuit is open, otherwise the response after the operation
            succeeded or the circuit opened.

        Raises:
            BaseException: The operation's own exception when it is not
                classified as a failure. Breaker state is left untouched.
        """
        rejected = self._reject_if_open()
        if rejected is not None:
            return rejected

        retrying = build_scheduled_retrying(
            sleep=self._sleep, before_sleep=self._log_retry
        )
        result = retrying(self._attempt, *args, **kwargs)
        if isinstance(result, _Unclassified):
            raise result.error
        return result

    def _attempt(
        self, *args: Any, **kwargs: Any
    ) -> BreakerResponse | ScheduledRetry | _Unclassified:
        try:
            returned = self._operation(*args, **kwargs)
        except BaseException as error:
            outcome = self._classify(error)
            if outcome is None:
                # tenacity retries TryAgain whatever its predicate says
                return _Unclassified(error)
        else:
            outcome = coerce_outcome(returned)
        return self._apply(outcome)


class AsyncCircuitBreaker(_BreakerBase):
    """Circuit breaker around a coroutine function."""

    def __init__(
        self,
        operation: Callable[..., Awaitable[Any]],
        *,
        config: CircuitBreakerConfig | None = None,
        name: str | None = None,
        clock: Callable[[], datetime] | None = None,
        sleep: Callable[[float], Awaitable[None]] | None = None,
        logger: StructuredLogger | None = None,
    ) -> None:
        """Wrap an async ``operation``; ``sleep`` defaults to ``asyncio.sleep``."""
        super().__init__(
            operation, config=config, name=name, clock=clock, logger=logger
        )
        self._sleep = sleep

    async def __call__(self, *args: Any, **kwargs: Any) -> BreakerResponse:
        return await self.call(*args, **kwargs)

    async def call(self, *args: Any, **kwargs: Any) -> BreakerResponse:
        """Await the operation under circuit breaker protection."""
        rejected = self._reject_if_open()
        if rejected is not None:
            return rejected

        retrying = build_async_scheduled_retrying(
            sleep=self._sleep, before_sleep=self._log_retry
        )
        result = await retrying(self._attempt, *args, **kwargs)
        if isinstance(result, _Unclassified):
            raise result.error
        return result

    async def _attempt(
        self, *args: Any, **kwargs: Any
    ) -> BreakerResponse | ScheduledRetry | _Unclassified:
        try:
            returned = await self._operation(*args, **kwargs)
        except BaseException as error:
            outcome = self._classify(error)
            if outcome is None:
                return _Unclassified(error)
        else:
            outcome = coerce_outcome(returned)
        return self._apply(outcome)


def _isoformat(value: datetime | None) -> str | None:
    return None if value is None else value.isoformat()


def _is_async_operation(operation: Callable[..., Any]) -> bool:
    if inspect.iscoroutinefunction(operation):
        return True
    dunder_call = getattr(operation, "__call__", None)
    return inspect.iscoroutinefunction(dunder_call)


_CONFIG_FIELDS = frozenset(field.name for field in fields(CircuitBreakerConfig))


def make_circuit_breaker(
    operation: Callable[..., Any],
    config: CircuitBreakerConfig | None = None,
    *,
    name: str | None = None,
    clock: Callable[[], datetime] | None = None,
    sleep: Callable[[float], Any] | None = None,
    logger: StructuredLogger | None = None,
    **overrides: Any,
) -> CircuitBreaker | AsyncCircuitBreaker:
    """Wrap ``operation`` in the breaker matching its calling convention.

    Keyword ``overrides`` replace fields of ``config``.
    """
    unknown = set(overrides) - _CONFIG_FIELDS
    if unknown:
        raise TypeError(f"unknown circuit breaker options: {', '.join(sorted(unknown))}")
    base = CircuitBreakerConfig() if config is None else config
    effective = replace(base, **overrides) if overrides else base

    if _is_async_operation(operation):
        return AsyncCircuitBreaker(
            operation,
            config=effective,
            name=name,
            clock=clock,
            sleep=sleep,
            logger=logger,
        )
    return CircuitBreaker(
        operation,
        config=effective,
        name=name,
        clock=clock,
        sleep=sleep,
        logger=logger,
    )


def circuit_breaker(
    operation: Callable[..., Any] | None = None, /, **options: Any
) -> Any:
    """Decorate a function with a circuit breaker.

    Usable bare (``@circuit_breaker``) or with options
    (``@circuit_breaker(max_retries=2)``); options are those of
    ``make_circuit_breaker``.
    """
    if operation is not None:
        return make_circuit_breaker(operation, **options)

    def _decorate(fn: Callable[..., Any]) -> CircuitBreaker | AsyncCircuitBreaker:
        return make_circuit_breaker(fn, **options)

    return _decorate
