from __future__ import annotations

from collections.abc import Sequence

import structlog
from pydantic import ValidationInfo, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from breakwater.circuit_breaker import CircuitBreakerConfig
from breakwater.logging import configure_structlog, get_log_level_value

ENV_PREFIX = "BREAKWATER_"


def prefixed_settings_config(prefix: str) -> SettingsConfigDict:
    """Build standard Pydantic settings config for prefixed environments."""
    return SettingsConfigDict(env_prefix=prefix, case_sensitive=False)


class BreakerSettings(BaseSettings):
    """Breaker defaults read from ``BREAKWATER_*`` environment variables."""

    model_config = prefixed_settings_config(ENV_PREFIX)

    max_retries: int = 3
    retry_after_ms: int = 10
    log_level: str = "INFO"

    @field_validator("max_retries", "retry_after_ms")
    @classmethod
    def _validate_non_negative(cls, value: int, info: ValidationInfo) -> int:
        if value < 0:
            raise ValueError(f"{info.field_name} must be >= 0")
        return value

    @field_validator("log_level", mode="before")
    @classmethod
    def _normalize_log_level(cls, value: object) -> object:
        if not isinstance(value, str):
            return value
        normalized = value.strip().upper()
        get_log_level_value(normalized)
        return normalized

    def to_config(
        self,
        *,
        hard_failure_exceptions: Sequence[type[BaseException]] = (),
        soft_failure_exceptions: Sequence[type[BaseException]] = (Exception,),
    ) -> CircuitBreakerConfig:
        """Build a breaker config; exception lists cannot come from the environment."""
        return CircuitBreakerConfig(
            hard_failure_exceptions=tuple(hard_failure_exceptions),
            soft_failure_exceptions=tuple(soft_failure_exceptions),
            max_retries=self.max_retries,
            retry_after_ms=self.retry_after_ms,
        )

    def configure_logging(self) -> structlog.stdlib.BoundLogger:
        """Configure structlog at ``log_level``."""
        return configure_structlog(log_level=self.log_level)
