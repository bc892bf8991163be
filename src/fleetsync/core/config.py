"""Shared configuration classes for fleetsync.

This module defines the configuration dataclasses used by the client
components and the CLI.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any

DEFAULT_PRIMARY_URL = "https://firestore.googleapis.com/google.firestore.v1.Firestore/Listen/channel"
DEFAULT_GENERIC_URL = "https://www.google.com/favicon.ico"


@dataclass
class ServerConfig:
    """Configuration for connecting to the remote document store.

    Attributes:
        server_url: Base URL of the server (e.g., "https://fleet.example.com").
        token: Bearer token for the API.
        timeout: Request timeout in seconds.
        verify_ssl: Whether to verify SSL certificates (default True).
    """

    server_url: str
    token: str
    timeout: float = 30.0
    verify_ssl: bool = True

    def __post_init__(self) -> None:
        """Normalize server URL."""
        self.server_url = self.server_url.rstrip("/")

    @property
    def is_secure(self) -> bool:
        """Check if using HTTPS."""
        return self.server_url.startswith("https://")


@dataclass
class MonitorConfig:
    """Configuration for the NetworkMonitor.

    Attributes:
        primary_url: Endpoint of the primary service (the document store).
        generic_url: Endpoint used to test generic internet access.
        probe_timeout: Seconds before a single probe counts as unreachable.
        check_interval: Seconds between periodic checks.
        good_latency_ms: Round trips below this are "good".
        poor_latency_ms: Round trips below this (and not good) are "poor".
    """

    primary_url: str = DEFAULT_PRIMARY_URL
    generic_url: str = DEFAULT_GENERIC_URL
    probe_timeout: float = 5.0
    check_interval: float = 30.0
    good_latency_ms: int = 300
    poor_latency_ms: int = 1000


@dataclass
class RetryConfig:
    """Default retry policy for the RetryExecutor."""

    max_retries: int = 3
    initial_delay_ms: int = 1000


@dataclass
class QueueConfig:
    """Configuration for the OfflineQueue.

    Attributes:
        max_attempts: Failed replays after which an operation is abandoned.
    """

    max_attempts: int = 3


@dataclass
class ClientConfig:
    """All client-side settings, as stored in the CLI config file."""

    server: ServerConfig | None = None
    monitor: MonitorConfig = field(default_factory=MonitorConfig)
    retry: RetryConfig = field(default_factory=RetryConfig)
    queue: QueueConfig = field(default_factory=QueueConfig)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ClientConfig:
        """Create from a config file dictionary.

        Unknown keys are ignored so older config files keep loading.
        """
        server = None
        if data.get("server_url") and data.get("auth_token"):
            server = ServerConfig(
                server_url=data["server_url"],
                token=data["auth_token"],
                timeout=float(data.get("timeout", 30.0)),
                verify_ssl=bool(data.get("verify_ssl", True)),
            )
        return cls(
            server=server,
            monitor=_pick(MonitorConfig, data.get("monitor", {})),
            retry=_pick(RetryConfig, data.get("retry", {})),
            queue=_pick(QueueConfig, data.get("queue", {})),
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to a config file dictionary."""
        data: dict[str, Any] = {
            "monitor": asdict(self.monitor),
            "retry": asdict(self.retry),
            "queue": asdict(self.queue),
        }
        if self.server:
            data["server_url"] = self.server.server_url
            data["auth_token"] = self.server.token
            data["timeout"] = self.server.timeout
            data["verify_ssl"] = self.server.verify_ssl
        return data


def _pick(config_cls: type[Any], values: dict[str, Any]) -> Any:
    """Build a config dataclass from the keys it knows about."""
    known = config_cls.__dataclass_fields__
    return config_cls(**{k: v for k, v in values.items() if k in known})
