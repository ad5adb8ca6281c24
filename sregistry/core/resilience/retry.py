"""Retry logic using Tenacity.

Registration is optimistic: a writer that loses the race on a group's tip
re-reads history and re-evaluates. These helpers keep that loop declarative.

Example:
    >>> from sregistry.core.resilience.retry import RetryConfig, async_retrying
    >>>
    >>> async for attempt in async_retrying(RetryConfig(max_attempts=5)):
    ...     with attempt:
    ...         await register_once()
"""

from __future__ import annotations

import logging
from typing import Optional, Tuple, Type

from tenacity import (
    AsyncRetrying,
    RetryError,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

logger = logging.getLogger(__name__)

__all__ = [
    "RetryConfig",
    "RetryError",
    "async_retrying",
    "conflict_retry_config",
]


class RetryConfig:
    """Configuration for retry behavior."""

    def __init__(
        self,
        max_attempts: int = 3,
        min_wait: float = 0.01,
        max_wait: float = 1.0,
        multiplier: float = 2.0,
        retry_exceptions: Tuple[Type[Exception], ...] = (Exception,),
        reraise: bool = False,
        log_level: int = logging.WARNING,
    ):
        """Initialize retry configuration.

        Args:
            max_attempts: Maximum number of attempts, the first one included.
            min_wait: Minimum wait time between retries (seconds).
            max_wait: Maximum wait time between retries (seconds).
            multiplier: Multiplier for exponential backoff.
            retry_exceptions: Exception types to retry on.
            reraise: Re-raise the last exception instead of ``RetryError``.
            log_level: Log level for retry attempts.
        """
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.max_attempts = max_attempts
        self.min_wait = min_wait
        self.max_wait = max_wait
        self.multiplier = multiplier
        self.retry_exceptions = retry_exceptions
        self.reraise = reraise
        self.log_level = log_level


def async_retrying(config: RetryConfig) -> AsyncRetrying:
    """Build a tenacity ``AsyncRetrying`` controller from a config."""
    return AsyncRetrying(
        stop=stop_after_attempt(config.max_attempts),
        wait=wait_exponential(
            multiplier=config.multiplier, min=config.min_wait, max=config.max_wait
        ),
        retry=retry_if_exception_type(config.retry_exceptions),
        before_sleep=before_sleep_log(logger, config.log_level),
        reraise=config.reraise,
    )


def conflict_retry_config(
    retry_exceptions: Tuple[Type[Exception], ...],
    max_attempts: Optional[int] = None,
) -> RetryConfig:
    """Retry configuration for store write conflicts, sized from settings."""
    from sregistry.core.config import get_settings

    settings = get_settings()
    return RetryConfig(
        max_attempts=max_attempts or settings.REGISTRY_MAX_CONFLICT_RETRIES,
        min_wait=settings.REGISTRY_RETRY_MIN_WAIT_S,
        max_wait=settings.REGISTRY_RETRY_MAX_WAIT_S,
        retry_exceptions=retry_exceptions,
    )
