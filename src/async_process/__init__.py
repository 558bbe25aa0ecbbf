"""async-process - child processes with non-blocking async pipe I/O.

Environment variables:
    ASYNC_PROCESS_READ_BLOCK_SIZE: default read block size (default 8192)
    ASYNC_PROCESS_CLOSE_TIMEOUT: aclose() grace period in seconds (default 2.0)
    ASYNC_PROCESS_EXIT_POLL_INTERVAL: exit polling interval (default 0.01)
    ASYNC_PROCESS_LOG_DEBUG: debug logging (default false)

Usage:
    async with ProcessHandle("echo", "-n", "Hello") as proc:
        proc.run()
        output = await proc.drain_stdout()
"""

__version__ = "0.1.0"

from .config import Config, get_config, load_config, reload_config
from .errors import (
    AlreadyStartedError,
    ConfigurationError,
    ErrorKind,
    IOFailure,
    NotStartedError,
    ProcessError,
    SpawnFailure,
)
from .process import DrainOutput, LifecycleState, ProcessHandle
from .quoting import join_command, quote_argument

__all__ = [
    # version
    "__version__",
    # process
    "DrainOutput",
    "LifecycleState",
    "ProcessHandle",
    # errors
    "AlreadyStartedError",
    "ConfigurationError",
    "ErrorKind",
    "IOFailure",
    "NotStartedError",
    "ProcessError",
    "SpawnFailure",
    # config
    "Config",
    "get_config",
    "load_config",
    "reload_config",
    # quoting
    "join_command",
    "quote_argument",
]
