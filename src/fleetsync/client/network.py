"""Active network detection and connectivity state publishing.

This module provides:
- NetworkState: Immutable snapshot of connectivity status and quality
- NetworkMonitor: Probes real endpoints, classifies connectivity and
  publishes every state change to subscribers
- HTTPProbe: HEAD-request reachability probe built on httpx
- platform_reports_online: Cheap check that the host has a network route

The OS "is online" flag only tells us an interface is up. The monitor
therefore probes two endpoints concurrently: the primary service (the
document store) and a generic internet endpoint. Reaching only the latter
means the connection is "limited".
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import socket
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, replace
from datetime import datetime, timezone

import httpx

from fleetsync.core.config import MonitorConfig
from fleetsync.core.types import ConnectionQuality, NetworkStatus

logger = logging.getLogger(__name__)

Probe = Callable[[str, float], Awaitable[bool]]
StateListener = Callable[["NetworkState"], None]


@dataclass(frozen=True)
class NetworkState:
    """Snapshot of connectivity. Replaced on every check, never mutated.

    Attributes:
        status: online, offline, checking or limited.
        quality: Latency bucket of the last probe round.
        latency_ms: Duration of the last probe round.
        last_checked_at: When the last check settled (UTC).
        is_primary_reachable: Whether the primary service answered.
        is_generic_internet_reachable: Whether the generic endpoint answered.
    """

    status: NetworkStatus
    quality: ConnectionQuality = ConnectionQuality.UNKNOWN
    latency_ms: int | None = None
    last_checked_at: datetime | None = None
    is_primary_reachable: bool = False
    is_generic_internet_reachable: bool = False

    @property
    def is_reachable(self) -> bool:
        """Whether remote calls are worth attempting."""
        return self.is_generic_internet_reachable and self.status != NetworkStatus.OFFLINE


def classify_connectivity(
    primary_reachable: bool,
    generic_reachable: bool,
    latency_ms: int,
    good_latency_ms: int = 300,
    poor_latency_ms: int = 1000,
) -> tuple[NetworkStatus, ConnectionQuality]:
    """Map probe outcomes to a status and quality.

    Args:
        primary_reachable: Primary service probe result.
        generic_reachable: Generic internet probe result.
        latency_ms: Duration of the probe round.
        good_latency_ms: Upper bound (exclusive) for GOOD quality.
        poor_latency_ms: Upper bound (exclusive) for POOR quality.

    Returns:
        (status, quality) tuple.
    """
    if primary_reachable and generic_reachable:
        if latency_ms < good_latency_ms:
            quality = ConnectionQuality.GOOD
        elif latency_ms < poor_latency_ms:
            quality = ConnectionQuality.POOR
        else:
            quality = ConnectionQuality.BAD
        return NetworkStatus.ONLINE, quality
    if generic_reachable:
        return NetworkStatus.LIMITED, ConnectionQuality.POOR
    return NetworkStatus.OFFLINE, ConnectionQuality.BAD


def platform_reports_online() -> bool:
    """Check whether the host has a route to the internet.

    Connecting a UDP socket sends no packets; it only fails when the OS has
    no usable network interface or route.
    """
    try:
        with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as sock:
            sock.connect(("8.8.8.8", 53))
        return True
    except OSError:
        return False


class HTTPProbe:
    """Reachability probe issuing HEAD requests.

    Any HTTP response, whatever its status code, proves the endpoint is
    reachable. Transport errors and timeouts mean it is not.
    """

    def __init__(self, transport: httpx.AsyncBaseTransport | None = None) -> None:
        """Initialize the probe.

        Args:
            transport: Optional httpx transport, defaults to a network transport.
        """
        self._transport = transport

    async def __call__(self, url: str, timeout: float) -> bool:
        """Probe a URL.

        Args:
            url: Endpoint to probe.
            timeout: Seconds before giving up.

        Returns:
            True if the endpoint answered.
        """
        try:
            async with httpx.AsyncClient(
                transport=self._transport,
                timeout=timeout,
                headers={"Cache-Control": "no-cache"},
            ) as client:
                await client.head(url)
            return True
        except httpx.HTTPError as e:
            logger.debug(f"Probe to {url} failed: {e}")
            return False


class NetworkMonitor:
    """Maintains and publishes the process-wide NetworkState.

    Construct one instance at startup and pass it to the components that
    need it.

    Usage:
        monitor = NetworkMonitor(MonitorConfig())
        unsubscribe = monitor.subscribe(lambda state: print(state.status))
        await monitor.start()

        # Platform connectivity events
        monitor.handle_platform_event(online=False)

        await monitor.stop()
    """

    def __init__(
        self,
        config: MonitorConfig | None = None,
        probe: Probe | None = None,
        platform_online: Callable[[], bool] = platform_reports_online,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize the monitor.

        Args:
            config: Endpoints, timeouts and intervals.
            probe: Reachability probe (default: HTTPProbe).
            platform_online: Returns the platform's "is online" flag.
            clock: Monotonic clock used to measure probe latency.
        """
        self._config = config or MonitorConfig()
        self._probe = probe or HTTPProbe()
        self._platform_online = platform_online
        self._clock = clock

        self._state = NetworkState(
            status=NetworkStatus.ONLINE if platform_online() else NetworkStatus.OFFLINE,
        )
        self._listeners: list[StateListener] = []
        self._check_in_progress = False

        self._periodic_task: asyncio.Task[None] | None = None
        self._triggered: set[asyncio.Task[None]] = set()

    @property
    def state(self) -> NetworkState:
        """The current connectivity state."""
        return self._state

    @property
    def running(self) -> bool:
        """Whether periodic monitoring is active."""
        return self._periodic_task is not None and not self._periodic_task.done()

    async def check_connectivity(self, force: bool = False) -> NetworkState:
        """Probe the network and publish the resulting state.

        If a check is already running and force is False, the current state
        is returned without probing.

        Args:
            force: Run even if another check is in flight.

        Returns:
            The new (or current) state.
        """
        if self._check_in_progress and not force:
            return self._state

        self._check_in_progress = True
        try:
            self._publish(replace(self._state, status=NetworkStatus.CHECKING))

            if not self._platform_online():
                self._publish(NetworkState(
                    status=NetworkStatus.OFFLINE,
                    quality=ConnectionQuality.BAD,
                    latency_ms=self._state.latency_ms,
                    last_checked_at=datetime.now(timezone.utc),
                ))
                return self._state

            started = self._clock()
            primary, generic = await asyncio.gather(
                self._run_probe(self._config.primary_url),
                self._run_probe(self._config.generic_url),
            )
            latency_ms = int(round((self._clock() - started) * 1000))

            status, quality = classify_connectivity(
                primary,
                generic,
                latency_ms,
                self._config.good_latency_ms,
                self._config.poor_latency_ms,
            )
            self._publish(NetworkState(
                status=status,
                quality=quality,
                latency_ms=latency_ms,
                last_checked_at=datetime.now(timezone.utc),
                is_primary_reachable=primary,
                is_generic_internet_reachable=generic,
            ))
            logger.debug(
                f"Connectivity: {status.value} ({quality.value}, {latency_ms}ms, "
                f"primary={primary}, generic={generic})"
            )
            return self._state
        finally:
            self._check_in_progress = False

    async def _run_probe(self, url: str) -> bool:
        """Run one probe with its own timeout; any failure means unreachable."""
        timeout = self._config.probe_timeout
        try:
            return bool(await asyncio.wait_for(self._probe(url, timeout), timeout))
        except asyncio.TimeoutError:
            logger.debug(f"Probe to {url} timed out after {timeout}s")
            return False
        except Exception as e:
            logger.debug(f"Probe to {url} raised: {e}")
            return False

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        """Register a listener for state changes.

        The listener is called right away with the current state, then
        synchronously on every state replacement.

        Returns:
            A function that unsubscribes the listener.
        """
        self._listeners.append(listener)
        self._notify(listener, self._state)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _publish(self, state: NetworkState) -> None:
        """Replace the current state and notify listeners."""
        self._state = state
        for listener in list(self._listeners):
            self._notify(listener, state)

    def _notify(self, listener: StateListener, state: NetworkState) -> None:
        try:
            listener(state)
        except Exception:
            logger.warning("Network state listener %r failed", listener, exc_info=True)

    # === Passive triggers ===

    async def start(self) -> None:
        """Run an initial check and start periodic monitoring."""
        if self.running:
            logger.warning("NetworkMonitor already running")
            return

        await self._safe_check(force=False)
        self._periodic_task = asyncio.create_task(
            self._periodic_loop(), name="NetworkMonitor"
        )
        logger.info(
            f"Network monitoring started (every {self._config.check_interval:.0f}s)"
        )

    async def stop(self) -> None:
        """Stop periodic monitoring and cancel triggered checks."""
        tasks = list(self._triggered)
        if self._periodic_task:
            tasks.append(self._periodic_task)
            self._periodic_task = None

        for task in tasks:
            task.cancel()
        for task in tasks:
            with contextlib.suppress(asyncio.CancelledError):
                await task
        self._triggered.clear()
        logger.info("Network monitoring stopped")

    def handle_platform_event(self, online: bool) -> None:
        """React to a platform online/offline notification.

        Schedules a forced check on the running event loop.

        Args:
            online: The flag carried by the notification.
        """
        logger.info(f"Platform reports {'online' if online else 'offline'} status")
        task = asyncio.get_running_loop().create_task(self._safe_check(force=True))
        self._triggered.add(task)
        task.add_done_callback(self._triggered.discard)

    async def _periodic_loop(self) -> None:
        """Check connectivity every check_interval seconds."""
        while True:
            await asyncio.sleep(self._config.check_interval)
            await self._safe_check(force=False)

    async def _safe_check(self, force: bool) -> None:
        """Run a check from a background trigger without raising."""
        try:
            await self.check_connectivity(force=force)
        except Exception:
            logger.warning("Scheduled connectivity check failed", exc_info=True)
