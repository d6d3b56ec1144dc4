from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from tenacity import AsyncRetrying, RetryCallState, Retrying, retry_if_result, stop_never


@dataclass(frozen=True)
class ScheduledRetry:
    """Attempt result asking for another attempt after ``delay`` seconds."""

    delay: float
    retry_count: int

    def __post_init__(self) -> None:
        if self.delay < 0:
            raise ValueError("delay must be >= 0")


def linear_backoff_seconds(retry_after_ms: int, retry_count: int) -> float:
    """Return the pause before the next attempt, growing with ``retry_count``."""
    return retry_after_ms * (retry_count + 1) / 1000


def wait_scheduled_retry(retry_state: RetryCallState) -> float:
    """Tenacity wait strategy reading the delay chosen by the attempt itself."""
    outcome = retry_state.outcome
    if outcome is None or outcome.failed:
        return 0.0
    result = outcome.result()
    if isinstance(result, ScheduledRetry):
        return result.delay
    return 0.0


def _is_scheduled_retry(result: object) -> bool:
    return isinstance(result, ScheduledRetry)


def _retrying_kwargs(
    sleep: Callable[[float], Any] | None,
    before_sleep: Callable[[RetryCallState], None] | None,
) -> dict[str, Any]:
    kwargs: dict[str, Any] = {
        "retry": retry_if_result(_is_scheduled_retry),
        "wait": wait_scheduled_retry,
        "stop": stop_never,
        "reraise": True,
    }
    if sleep is not None:
        kwargs["sleep"] = sleep
    if before_sleep is not None:
        kwargs["before_sleep"] = before_sleep
    return kwargs


def build_scheduled_retrying(
    *,
    sleep: Callable[[float], None] | None = None,
    before_sleep: Callable[[RetryCallState], None] | None = None,
) -> Retrying:
    """Build a ``Retrying`` that repeats attempts returning ``ScheduledRetry``.

    Exceptions raised by an attempt are not retried, except
    ``tenacity.TryAgain``, which tenacity always retries.
    """
    return Retrying(**_retrying_kwargs(sleep, before_sleep))


def build_async_scheduled_retrying(
    *,
    sleep: Callable[[float], Awaitable[None]] | None = None,
    before_sleep: Callable[[RetryCallState], None] | None = None,
) -> AsyncRetrying:
    """Async counterpart of ``build_scheduled_retrying``."""
    return AsyncRetrying(**_retrying_kwargs(sleep, before_sleep))
