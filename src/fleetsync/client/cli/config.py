"""Configuration utilities for the fleetsync CLI.

This module provides shared configuration functions used across CLI commands.
"""

from __future__ import annotations

import json
import logging
import sys
from pathlib import Path
from typing import Any

from fleetsync.core.config import ClientConfig


def get_config_dir() -> Path:
    """Get the configuration directory for fleetsync.

    Returns:
        Path to ~/.fleetsync or equivalent.
    """
    return Path.home() / ".fleetsync"


def get_config_file() -> Path:
    """Get the path to the config file."""
    return get_config_dir() / "config.json"


def get_state_db() -> Path:
    """Get the path to the SQLite database holding the cache and queue."""
    return get_config_dir() / "state.db"


def load_config() -> dict[str, Any]:
    """Load configuration from config file."""
    config_file = get_config_file()
    if config_file.exists():
        return dict(json.loads(config_file.read_text()))
    return {}


def save_config(config: dict[str, Any]) -> None:
    """Save configuration to config file."""
    config_file = get_config_file()
    config_file.parent.mkdir(parents=True, exist_ok=True)
    config_file.write_text(json.dumps(config, indent=2))


def load_client_config() -> ClientConfig:
    """Load the config file as a ClientConfig."""
    return ClientConfig.from_dict(load_config())


def setup_logging(verbose: bool = False) -> None:
    """Configure the fleetsync logger to print to stdout.

    Args:
        verbose: Log at DEBUG instead of INFO.
    """
    log_format = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    root_logger = logging.getLogger("fleetsync")
    root_logger.setLevel(logging.DEBUG if verbose else logging.INFO)

    # Avoid duplicate handlers when invoked several times (tests)
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    stdout_handler = logging.StreamHandler(sys.stdout)
    stdout_handler.setFormatter(logging.Formatter(log_format))
    root_logger.addHandler(stdout_handler)
