"""async-process configuration from environment variables.

Environment variables:
    ASYNC_PROCESS_READ_BLOCK_SIZE: default block size for single reads
        - default 8192 bytes
        - clamped to 1 .. 16 MiB

    ASYNC_PROCESS_CLOSE_TIMEOUT: seconds aclose() and wait_close() wait for a child to exit
        on its own after its pipes are closed, before killing it
        - default 2.0
        - clamped to 0 .. 60

    ASYNC_PROCESS_EXIT_POLL_INTERVAL: seconds between status polls while
        waiting for a child to exit
        - default 0.01
        - clamped to 0.001 .. 1

    ASYNC_PROCESS_LOG_DEBUG: debug logging for the async_process namespace
        - true/1/yes/on = enabled
        - false/0/no/off = disabled (default)
"""

from __future__ import annotations

import os
from dataclasses import dataclass

__all__ = ["Config", "load_config", "get_config", "reload_config"]

DEFAULT_READ_BLOCK_SIZE = 8192
DEFAULT_CLOSE_TIMEOUT = 2.0
DEFAULT_EXIT_POLL_INTERVAL = 0.01

MAX_READ_BLOCK_SIZE = 16 * 1024 * 1024


def _parse_bool(value: str | None, default: bool = False) -> bool:
    """Parse a boolean environment variable."""
    if value is None:
        return default
    return value.lower() in ("true", "1", "yes", "on")


def _parse_int(value: str | None, default: int, low: int, high: int) -> int:
    """Parse an integer environment variable, clamped to [low, high]."""
    if not value:
        return default
    try:
        return max(low, min(int(value), high))
    except ValueError:
        return default


def _parse_float(value: str | None, default: float, low: float, high: float) -> float:
    """Parse a float environment variable, clamped to [low, high]."""
    if not value:
        return default
    try:
        return max(low, min(float(value), high))
    except ValueError:
        return default


@dataclass
class Config:
    """async-process configuration.

    Attributes:
        read_block_size: Default max bytes for a single pipe read
        close_timeout: Seconds aclose() and wait_close() wait for a voluntary exit
        exit_poll_interval: Seconds between status polls while waiting
        log_debug: Enable debug logging
    """

    read_block_size: int = DEFAULT_READ_BLOCK_SIZE
    close_timeout: float = DEFAULT_CLOSE_TIMEOUT
    exit_poll_interval: float = DEFAULT_EXIT_POLL_INTERVAL
    log_debug: bool = False


def load_config() -> Config:
    """Load configuration from environment variables."""
    return Config(
        read_block_size=_parse_int(
            os.environ.get("ASYNC_PROCESS_READ_BLOCK_SIZE"),
            DEFAULT_READ_BLOCK_SIZE,
            1,
            MAX_READ_BLOCK_SIZE,
        ),
        close_timeout=_parse_float(
            os.environ.get("ASYNC_PROCESS_CLOSE_TIMEOUT"),
            DEFAULT_CLOSE_TIMEOUT,
            0.0,
            60.0,
        ),
        exit_poll_interval=_parse_float(
            os.environ.get("ASYNC_PROCESS_EXIT_POLL_INTERVAL"),
            DEFAULT_EXIT_POLL_INTERVAL,
            0.001,
            1.0,
        ),
        log_debug=_parse_bool(os.environ.get("ASYNC_PROCESS_LOG_DEBUG"), default=False),
    )


# Global config instance (lazy)
_config: Config | None = None


def get_config() -> Config:
    """Return the global config instance."""
    global _config
    if _config is None:
        _config = load_config()
    return _config


def reload_config() -> Config:
    """Reload the global config (used by tests)."""
    global _config
    _config = load_config()
    return _config
