"""Retry logic with exponential backoff and connectivity awareness.

This module provides:
- RetryExecutor: Runs an async operation with bounded retries, classifying
  every failure and refusing to retry network errors while offline
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, Any, TypeVar

from fleetsync.core.config import RetryConfig
from fleetsync.core.types import ErrorCategory, ErrorSeverity, NetworkStatus

if TYPE_CHECKING:
    from fleetsync.client.errors import AppError, ErrorClassifier
    from fleetsync.client.network import NetworkMonitor

logger = logging.getLogger(__name__)

T = TypeVar("T")


def backoff_delay_ms(initial_delay_ms: int, attempt: int) -> int:
    """Delay before retry number ``attempt`` (1-indexed), without jitter."""
    return int(initial_delay_ms * 2 ** (attempt - 1))


class RetryExecutor:
    """Runs async operations with exponential backoff.

    Every failure goes through the ErrorClassifier. A network error is only
    retried while the NetworkMonitor reports the connection online: retrying
    while offline cannot succeed.

    Usage:
        executor = RetryExecutor(classifier, monitor)
        doc = await executor.run(
            lambda: store.get("drivers", "d1"),
            category=ErrorCategory.DATABASE,
            context={"collection": "drivers"},
        )
    """

    def __init__(
        self,
        classifier: ErrorClassifier,
        monitor: NetworkMonitor,
        config: RetryConfig | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        """Initialize the executor.

        Args:
            classifier: Shared error classifier.
            monitor: Network monitor consulted before retrying network errors.
            config: Default retry policy.
            sleep: Coroutine function used to wait (seconds), injectable for tests.
        """
        self._classifier = classifier
        self._monitor = monitor
        self._config = config or RetryConfig()
        self._sleep = sleep

    async def run(
        self,
        operation: Callable[[], Awaitable[T]],
        *,
        max_retries: int | None = None,
        initial_delay_ms: int | None = None,
        category: ErrorCategory | None = None,
        context: dict[str, Any] | None = None,
        retry_condition: Callable[[AppError], bool] | None = None,
        on_error: Callable[[AppError], None] | None = None,
    ) -> T:
        """Execute an operation with retry.

        Args:
            operation: Zero-argument coroutine function to run.
            max_retries: Maximum number of retries (not counting the first try).
            initial_delay_ms: Delay before the first retry; doubles each time.
            category: Explicit category for failures of this operation.
            context: Details attached to every classified error.
            retry_condition: Extra predicate that must allow the retry.
            on_error: Called with the classified error once retries stop.

        Returns:
            Result of the operation.

        Raises:
            The original exception of the last attempt.
        """
        if max_retries is None:
            max_retries = self._config.max_retries
        if initial_delay_ms is None:
            initial_delay_ms = self._config.initial_delay_ms

        retry_attempts = 0
        while True:
            try:
                return await operation()
            except Exception as error:
                app_error = self._classifier.classify(
                    error,
                    category=category,
                    context=context,
                    retry_attempts=retry_attempts,
                )
                status = self._monitor.state.status
                is_network_error = app_error.category == ErrorCategory.NETWORK

                should_retry = (
                    retry_attempts < max_retries
                    and app_error.retryable
                    and (not is_network_error or status == NetworkStatus.ONLINE)
                    and (retry_condition(app_error) if retry_condition else True)
                )

                if not should_retry:
                    app_error.handled = True
                    self._classifier.log(
                        error,
                        category=app_error.category,
                        context=context,
                        message=f"Operation failed after {retry_attempts} retry attempts",
                        severity=(
                            ErrorSeverity.WARNING
                            if is_network_error and status == NetworkStatus.OFFLINE
                            else ErrorSeverity.ERROR
                        ),
                        retry_attempts=retry_attempts,
                    )
                    if on_error:
                        on_error(app_error)
                    raise

                retry_attempts += 1
                delay_ms = backoff_delay_ms(initial_delay_ms, retry_attempts)
                self._classifier.log(
                    error,
                    category=app_error.category,
                    context=context,
                    message=f"Operation failed, retry attempt {retry_attempts} in {delay_ms}ms",
                    severity=ErrorSeverity.WARNING,
                    retry_attempts=retry_attempts,
                )
                await self._sleep(delay_ms / 1000)
