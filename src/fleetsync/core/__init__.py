"""Core module - Shared configuration and types."""

from fleetsync.core.config import (
    ClientConfig,
    MonitorConfig,
    QueueConfig,
    RetryConfig,
    ServerConfig,
)
from fleetsync.core.types import (
    ConnectionQuality,
    ErrorCategory,
    ErrorSeverity,
    NetworkStatus,
    OperationType,
)

__all__ = [
    # Config
    "ClientConfig",
    "MonitorConfig",
    "QueueConfig",
    "RetryConfig",
    "ServerConfig",
    # Types
    "ConnectionQuality",
    "ErrorCategory",
    "ErrorSeverity",
    "NetworkStatus",
    "OperationType",
]
