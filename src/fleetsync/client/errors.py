"""Error classification and deduplicated error logging.

This module provides:
- AppError: Structured, categorized error record
- ErrorClassifier: Turns any failure into an AppError, logs it once per
  dedup window and publishes it to registered observers

Category inference is a best-effort keyword scan of the error message.
Callers that know the failure mode should pass ``category`` explicitly, or
raise exceptions carrying a ``category`` attribute (see fleetsync.client.api).
"""

from __future__ import annotations

import json
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, TypeVar

from fleetsync.core.types import ErrorCategory, ErrorSeverity

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Identical errors logged within this window are suppressed
DEDUP_WINDOW = 60.0  # seconds

# Exceptions that always indicate a connectivity problem
NETWORK_EXCEPTIONS: tuple[type[BaseException], ...] = (
    ConnectionError,
    TimeoutError,
)

# Checked in order, first match wins
CATEGORY_KEYWORDS: tuple[tuple[ErrorCategory, tuple[str, ...]], ...] = (
    (ErrorCategory.NETWORK, ("network", "offline", "connection")),
    (ErrorCategory.AUTHORIZATION, ("permission", "access", "not allowed", "not-allowed")),
    (ErrorCategory.AUTHENTICATION, ("auth", "login", "token")),
    (ErrorCategory.DATA_VALIDATION, ("validation", "invalid")),
    (ErrorCategory.API, ("api", "endpoint")),
    (ErrorCategory.DATABASE, ("database", "query")),
    (ErrorCategory.RENDERING, ("render", "component")),
)

_LOG_LEVELS = {
    ErrorSeverity.FATAL: logging.CRITICAL,
    ErrorSeverity.ERROR: logging.ERROR,
    ErrorSeverity.WARNING: logging.WARNING,
    ErrorSeverity.INFO: logging.INFO,
}

ErrorObserver = Callable[["AppError"], None]


@dataclass
class AppError:
    """Structured error produced by ErrorClassifier.

    Attributes:
        message: Human-readable message (defaults to the exception message).
        category: Failure category.
        severity: How bad the failure is.
        original_error: The exception that was classified.
        timestamp: When the error was classified (UTC).
        context: Free-form details about where the error happened.
        retryable: Whether retrying the operation may help.
        retry_attempts: Retries already performed when the error was raised.
        code: Optional machine-readable error code.
        handled: Set once a component has dealt with the error.
    """

    message: str
    category: ErrorCategory
    severity: ErrorSeverity
    original_error: BaseException
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    context: dict[str, Any] = field(default_factory=dict)
    retryable: bool = True
    retry_attempts: int = 0
    code: str | None = None
    handled: bool = False

    @property
    def fingerprint(self) -> str:
        """Deduplication key combining category, message and context."""
        context = json.dumps(self.context, sort_keys=True, default=str)
        return f"{self.category.value}:{self.message}:{context}"


def infer_category(error: BaseException) -> ErrorCategory:
    """Guess the category of an exception.

    Connection and timeout exceptions are always network errors. Otherwise
    the lower-cased message is matched against CATEGORY_KEYWORDS.
    """
    if isinstance(error, NETWORK_EXCEPTIONS):
        return ErrorCategory.NETWORK

    message = str(error).lower()
    for category, keywords in CATEGORY_KEYWORDS:
        if any(keyword in message for keyword in keywords):
            return category
    return ErrorCategory.UNKNOWN


class ErrorClassifier:
    """Classifies failures and logs them without flooding.

    One instance is shared by all components of a client so that
    deduplication and observers apply process-wide.

    Usage:
        classifier = ErrorClassifier()
        unregister = classifier.register_observer(send_to_telemetry)

        try:
            ...
        except Exception as e:
            classifier.log(e, context={"collection": "drivers"})
    """

    def __init__(
        self,
        dedup_window: float = DEDUP_WINDOW,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize the classifier.

        Args:
            dedup_window: Seconds during which an identical error is logged once.
            clock: Monotonic clock, injectable for tests.
        """
        self._dedup_window = dedup_window
        self._clock = clock
        self._recent: dict[str, float] = {}  # fingerprint -> logged at
        self._observers: list[ErrorObserver] = []

    def classify(
        self,
        error: BaseException | str,
        *,
        category: ErrorCategory | None = None,
        severity: ErrorSeverity | None = None,
        message: str | None = None,
        context: dict[str, Any] | None = None,
        retryable: bool | None = None,
        retry_attempts: int = 0,
        code: str | None = None,
    ) -> AppError:
        """Build a structured error from an exception or a message.

        Args:
            error: The exception (or message) to classify.
            category: Explicit category; inferred when omitted.
            severity: Defaults to ERROR.
            message: Overrides the exception message.
            context: Details about where the error happened.
            retryable: Defaults to True.
            retry_attempts: Retries already performed.
            code: Optional error code.

        Returns:
            The classified error.
        """
        exc = Exception(error) if isinstance(error, str) else error

        if category is None:
            tagged = getattr(exc, "category", None)
            category = tagged if isinstance(tagged, ErrorCategory) else infer_category(exc)

        return AppError(
            message=message if message is not None else str(exc),
            category=category,
            severity=severity or ErrorSeverity.ERROR,
            original_error=exc,
            context=dict(context or {}),
            retryable=True if retryable is None else retryable,
            retry_attempts=retry_attempts,
            code=code,
        )

    def log(self, error: BaseException | str, **options: Any) -> AppError:
        """Classify an error, log it and notify observers.

        If an error with the same fingerprint was logged within the dedup
        window, logging and observers are skipped. The classified error is
        returned either way.

        Args:
            error: The exception (or message) to log.
            **options: Passed to classify().

        Returns:
            The classified error.
        """
        app_error = self.classify(error, **options)
        fingerprint = app_error.fingerprint
        now = self._clock()

        self._prune(now)
        if fingerprint in self._recent:
            return app_error
        self._recent[fingerprint] = now

        logger.log(
            _LOG_LEVELS[app_error.severity],
            "[%s] %s",
            app_error.category.value,
            app_error.message,
            extra={"app_error": app_error},
        )

        for observer in list(self._observers):
            try:
                observer(app_error)
            except Exception:
                logger.warning("Error observer %r failed", observer, exc_info=True)

        return app_error

    def register_observer(self, observer: ErrorObserver) -> Callable[[], None]:
        """Register a callback invoked for every logged (non-duplicate) error.

        Returns:
            A function that unregisters the observer.
        """
        self._observers.append(observer)

        def unregister() -> None:
            if observer in self._observers:
                self._observers.remove(observer)

        return unregister

    def safe_execute(self, func: Callable[[], T], fallback: T) -> T:
        """Run func, returning fallback (and logging a warning) if it raises."""
        try:
            return func()
        except Exception as e:
            self.log(e, message="Error in safe_execute", severity=ErrorSeverity.WARNING)
            return fallback

    def _prune(self, now: float) -> None:
        """Forget fingerprints older than the dedup window."""
        expired = [fp for fp, at in self._recent.items() if now - at >= self._dedup_window]
        for fp in expired:
            del self._recent[fp]
