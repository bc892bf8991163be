"""Tests for CLI commands - configure, status, pending, sync."""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Iterator
from pathlib import Path
from unittest.mock import patch

import pytest
from click.testing import CliRunner

from fleetsync.client.cli import cli
from fleetsync.client.queue import OfflineQueue
from fleetsync.client.storage import SQLiteKeyValueStore
from fleetsync.core.types import OperationType

PRIMARY_URL = "http://fleet.test/ping"
GENERIC_URL = "http://generic.test/favicon.ico"


@pytest.fixture
def runner() -> CliRunner:
    """Create a CLI test runner."""
    return CliRunner()


@pytest.fixture
def config_dir(tmp_path: Path) -> Iterator[Path]:
    """Point the CLI at a temporary config directory."""
    with patch("fleetsync.client.cli.config.get_config_dir", return_value=tmp_path):
        yield tmp_path


@pytest.fixture(autouse=True)
def reset_logging() -> Iterator[None]:
    """Drop the handlers the CLI attaches to the runner's stdout."""
    yield
    logger = logging.getLogger("fleetsync")
    for handler in logger.handlers[:]:
        logger.removeHandler(handler)


def write_config(config_dir: Path) -> None:
    (config_dir / "config.json").write_text(json.dumps({
        "server_url": "http://fleet.test",
        "auth_token": "token123",
        "monitor": {"primary_url": PRIMARY_URL, "generic_url": GENERIC_URL},
    }))


def enqueue(config_dir: Path, document_id: str) -> None:
    """Queue an update directly in the state database."""

    async def run() -> None:
        store = SQLiteKeyValueStore(config_dir / "state.db")
        try:
            await OfflineQueue(store).enqueue(
                OperationType.UPDATE, "drivers", document_id, {"name": "Ana"}
            )
        finally:
            store.close()

    asyncio.run(run())


class TestConfigureCommand:
    """Tests for 'fleetsync configure' command."""

    def test_saves_config(self, runner: CliRunner, config_dir: Path) -> None:
        result = runner.invoke(
            cli, ["configure", "--server", "https://fleet.example.com/", "--token", "abc"]
        )

        assert result.exit_code == 0
        assert "Configuration saved" in result.output
        saved = json.loads((config_dir / "config.json").read_text())
        assert saved["server_url"] == "https://fleet.example.com"
        assert saved["auth_token"] == "abc"
        assert saved["monitor"]["primary_url"] == "https://fleet.example.com"

    def test_custom_probe_urls(self, runner: CliRunner, config_dir: Path) -> None:
        result = runner.invoke(cli, [
            "configure",
            "--server", "https://fleet.example.com",
            "--token", "abc",
            "--primary-url", PRIMARY_URL,
            "--generic-url", GENERIC_URL,
        ])

        assert result.exit_code == 0
        monitor = json.loads((config_dir / "config.json").read_text())["monitor"]
        assert monitor == {"primary_url": PRIMARY_URL, "generic_url": GENERIC_URL}

    def test_requires_server(self, runner: CliRunner, config_dir: Path) -> None:
        result = runner.invoke(cli, ["configure", "--token", "abc"])
        assert result.exit_code != 0
        assert not (config_dir / "config.json").exists()


class TestStatusCommand:
    """Tests for 'fleetsync status' command."""

    def test_offline(self, runner: CliRunner, config_dir: Path) -> None:
        """A platform reporting offline skips the probes."""
        with patch("fleetsync.client.cli.status.platform_reports_online", return_value=False):
            result = runner.invoke(cli, ["status"])

        assert result.exit_code == 0
        assert "Status:   offline" in result.output
        assert "Quality:  bad" in result.output

    def test_online(self, runner: CliRunner, config_dir: Path, httpx_mock) -> None:  # type: ignore[no-untyped-def]
        write_config(config_dir)
        httpx_mock.add_response(method="HEAD", url=PRIMARY_URL)
        httpx_mock.add_response(method="HEAD", url=GENERIC_URL)

        with patch("fleetsync.client.cli.status.platform_reports_online", return_value=True):
            result = runner.invoke(cli, ["status"])

        assert result.exit_code == 0
        assert "Status:   online" in result.output
        assert "Primary:  reachable" in result.output


class TestPendingCommand:
    """Tests for 'fleetsync pending' command."""

    def test_empty(self, runner: CliRunner, config_dir: Path) -> None:
        result = runner.invoke(cli, ["pending"])
        assert result.exit_code == 0
        assert "No pending operations." in result.output

    def test_lists_operations(self, runner: CliRunner, config_dir: Path) -> None:
        enqueue(config_dir, "d1")

        result = runner.invoke(cli, ["pending"])

        assert result.exit_code == 0
        assert "1 pending operation(s):" in result.output
        assert "drivers/d1" in result.output


class TestSyncCommand:
    """Tests for 'fleetsync sync' command."""

    def test_requires_server(self, runner: CliRunner, config_dir: Path) -> None:
        result = runner.invoke(cli, ["sync"])
        assert result.exit_code == 1
        assert "No server configured" in result.output

    def test_offline_keeps_queue(self, runner: CliRunner, config_dir: Path) -> None:
        write_config(config_dir)
        enqueue(config_dir, "d1")

        with patch("fleetsync.client.cli.sync.platform_reports_online", return_value=False):
            result = runner.invoke(cli, ["sync"])

        assert result.exit_code == 0
        assert "Network is offline: 1 operation(s) remain queued." in result.output

    def test_replays_queue(self, runner: CliRunner, config_dir: Path, httpx_mock) -> None:  # type: ignore[no-untyped-def]
        write_config(config_dir)
        enqueue(config_dir, "d1")
        httpx_mock.add_response(method="HEAD", url=PRIMARY_URL)
        httpx_mock.add_response(method="HEAD", url=GENERIC_URL)
        httpx_mock.add_response(
            method="PUT", url="http://fleet.test/api/collections/drivers/documents/d1"
        )

        with patch("fleetsync.client.cli.sync.platform_reports_online", return_value=True):
            result = runner.invoke(cli, ["sync"])

        assert result.exit_code == 0
        assert "Synced 1 operation(s), 0 failed, 0 abandoned, 0 deferred." in result.output

        pending = runner.invoke(cli, ["pending"])
        assert "No pending operations." in pending.output

    def test_failed_replay_exits_nonzero(  # type: ignore[no-untyped-def]
        self, runner: CliRunner, config_dir: Path, httpx_mock
    ) -> None:
        write_config(config_dir)
        enqueue(config_dir, "d1")
        httpx_mock.add_response(method="HEAD", url=PRIMARY_URL)
        httpx_mock.add_response(method="HEAD", url=GENERIC_URL)
        httpx_mock.add_response(
            method="PUT",
            url="http://fleet.test/api/collections/drivers/documents/d1",
            status_code=500,
        )

        with patch("fleetsync.client.cli.sync.platform_reports_online", return_value=True):
            result = runner.invoke(cli, ["sync"])

        assert result.exit_code == 1
        assert "Synced 0 operation(s), 1 failed, 0 abandoned, 0 deferred." in result.output
