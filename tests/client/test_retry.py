"""Tests for the RetryExecutor."""

from __future__ import annotations

import pytest

from fleetsync.client.errors import AppError, ErrorClassifier
from fleetsync.client.network import NetworkMonitor
from fleetsync.client.retry import RetryExecutor, backoff_delay_ms
from fleetsync.core.config import MonitorConfig, RetryConfig
from fleetsync.core.types import ErrorCategory, ErrorSeverity


class SleepRecorder:
    """Records requested delays instead of sleeping."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


class FailingOperation:
    """Raises a given error for the first ``failures`` calls."""

    def __init__(self, error: Exception, failures: int) -> None:
        self.error = error
        self.failures = failures
        self.calls = 0

    async def __call__(self) -> str:
        self.calls += 1
        if self.calls <= self.failures:
            raise self.error
        return "done"


def make_monitor(online: bool) -> NetworkMonitor:
    """A monitor whose initial status follows the platform flag."""

    async def probe(url: str, timeout: float) -> bool:
        return online

    return NetworkMonitor(MonitorConfig(), probe=probe, platform_online=lambda: online)


@pytest.fixture
def sleep() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def observed(classifier: ErrorClassifier) -> list[AppError]:
    errors: list[AppError] = []
    classifier.register_observer(errors.append)
    return errors


def make_executor(
    classifier: ErrorClassifier, sleep: SleepRecorder, online: bool = True
) -> RetryExecutor:
    return RetryExecutor(classifier, make_monitor(online), RetryConfig(), sleep=sleep)


class TestBackoffDelay:
    """Tests for the backoff formula."""

    def test_doubles(self) -> None:
        assert [backoff_delay_ms(1000, n) for n in (1, 2, 3, 4)] == [1000, 2000, 4000, 8000]

    def test_custom_initial_delay(self) -> None:
        assert backoff_delay_ms(250, 3) == 1000


class TestRetryExecutor:
    """Tests for RetryExecutor.run."""

    @pytest.mark.asyncio
    async def test_success_first_try(
        self, classifier: ErrorClassifier, sleep: SleepRecorder
    ) -> None:
        """No retry and no wait when the operation succeeds."""
        operation = FailingOperation(RuntimeError("boom"), failures=0)
        result = await make_executor(classifier, sleep).run(operation)

        assert result == "done"
        assert operation.calls == 1
        assert sleep.delays == []

    @pytest.mark.asyncio
    async def test_exponential_backoff(
        self, classifier: ErrorClassifier, sleep: SleepRecorder
    ) -> None:
        """Waits 1s, 2s, 4s before attempts 2, 3 and 4."""
        operation = FailingOperation(RuntimeError("database busy"), failures=3)
        result = await make_executor(classifier, sleep).run(operation)

        assert result == "done"
        assert operation.calls == 4
        assert sleep.delays == [1.0, 2.0, 4.0]

    @pytest.mark.asyncio
    async def test_reraises_original_after_exhaustion(
        self, classifier: ErrorClassifier, sleep: SleepRecorder
    ) -> None:
        """The original exception, not an AppError, reaches the caller."""
        error = RuntimeError("database busy")
        operation = FailingOperation(error, failures=10)

        with pytest.raises(RuntimeError) as exc_info:
            await make_executor(classifier, sleep).run(operation, max_retries=2)

        assert exc_info.value is error
        assert operation.calls == 3
        assert sleep.delays == [1.0, 2.0]

    @pytest.mark.asyncio
    async def test_custom_initial_delay(
        self, classifier: ErrorClassifier, sleep: SleepRecorder
    ) -> None:
        operation = FailingOperation(RuntimeError("busy"), failures=2)
        await make_executor(classifier, sleep).run(operation, initial_delay_ms=100)
        assert sleep.delays == [0.1, 0.2]

    @pytest.mark.asyncio
    async def test_network_error_not_retried_offline(
        self,
        classifier: ErrorClassifier,
        sleep: SleepRecorder,
        observed: list[AppError],
    ) -> None:
        """A network error while offline fails immediately, logged as a warning."""
        operation = FailingOperation(ConnectionError("network unreachable"), failures=10)
        handled: list[AppError] = []

        with pytest.raises(ConnectionError):
            await make_executor(classifier, sleep, online=False).run(
                operation, max_retries=5, on_error=handled.append
            )

        assert operation.calls == 1
        assert sleep.delays == []
        assert observed[-1].severity == ErrorSeverity.WARNING
        assert observed[-1].category == ErrorCategory.NETWORK
        assert handled[0].handled is True

    @pytest.mark.asyncio
    async def test_network_error_retried_online(
        self, classifier: ErrorClassifier, sleep: SleepRecorder
    ) -> None:
        """Network errors are retried while the monitor reports online."""
        operation = FailingOperation(ConnectionError("connection reset"), failures=1)
        result = await make_executor(classifier, sleep, online=True).run(operation)

        assert result == "done"
        assert operation.calls == 2

    @pytest.mark.asyncio
    async def test_explicit_category_controls_network_rule(
        self, classifier: ErrorClassifier, sleep: SleepRecorder
    ) -> None:
        """An explicit non-network category allows retries while offline."""
        operation = FailingOperation(ConnectionError("connection reset"), failures=1)
        result = await make_executor(classifier, sleep, online=False).run(
            operation, category=ErrorCategory.DATABASE
        )
        assert result == "done"

    @pytest.mark.asyncio
    async def test_retry_condition(
        self, classifier: ErrorClassifier, sleep: SleepRecorder
    ) -> None:
        """A retry condition returning False stops retries."""
        operation = FailingOperation(RuntimeError("invalid field"), failures=10)

        with pytest.raises(RuntimeError):
            await make_executor(classifier, sleep).run(
                operation,
                retry_condition=lambda e: e.category != ErrorCategory.DATA_VALIDATION,
            )

        assert operation.calls == 1

    @pytest.mark.asyncio
    async def test_terminal_error_logged_as_error(
        self,
        classifier: ErrorClassifier,
        sleep: SleepRecorder,
        observed: list[AppError],
    ) -> None:
        """Exhausted retries are logged at error severity with context."""
        operation = FailingOperation(RuntimeError("database busy"), failures=10)

        with pytest.raises(RuntimeError):
            await make_executor(classifier, sleep).run(
                operation, max_retries=1, context={"doc": "d1"}
            )

        warnings = [e for e in observed if e.severity == ErrorSeverity.WARNING]
        assert len(warnings) == 1
        assert "retry attempt 1 in 1000ms" in warnings[0].message

        final = observed[-1]
        assert final.severity == ErrorSeverity.ERROR
        assert final.message == "Operation failed after 1 retry attempts"
        assert final.context == {"doc": "d1"}
        assert final.retry_attempts == 1

    @pytest.mark.asyncio
    async def test_zero_retries(
        self, classifier: ErrorClassifier, sleep: SleepRecorder
    ) -> None:
        operation = FailingOperation(RuntimeError("boom"), failures=1)
        with pytest.raises(RuntimeError):
            await make_executor(classifier, sleep).run(operation, max_retries=0)
        assert operation.calls == 1
