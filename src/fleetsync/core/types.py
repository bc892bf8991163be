"""Shared types for fleetsync.

This module defines enums used across the client components.
"""

from __future__ import annotations

from enum import Enum


class NetworkStatus(str, Enum):
    """Connectivity status published by the NetworkMonitor."""

    ONLINE = "online"
    OFFLINE = "offline"
    CHECKING = "checking"
    LIMITED = "limited"


class ConnectionQuality(str, Enum):
    """Latency-derived quality bucket of a connection."""

    GOOD = "good"
    POOR = "poor"
    BAD = "bad"
    UNKNOWN = "unknown"


class ErrorCategory(str, Enum):
    """Category of a classified error."""

    NETWORK = "network"
    AUTHENTICATION = "authentication"
    AUTHORIZATION = "authorization"
    DATA_VALIDATION = "data_validation"
    API = "api"
    DATABASE = "database"
    RENDERING = "rendering"
    UNKNOWN = "unknown"


class ErrorSeverity(str, Enum):
    """Severity of a classified error."""

    FATAL = "fatal"  # Application cannot continue
    ERROR = "error"  # Impacts functionality
    WARNING = "warning"  # May lead to problems
    INFO = "info"  # Handled gracefully


class OperationType(str, Enum):
    """Kind of mutation stored in the offline queue."""

    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
