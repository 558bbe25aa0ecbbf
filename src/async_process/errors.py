"""Exceptions raised by async-process.

The set is closed: every error carries an ``ErrorKind`` tag, so callers can
either catch a concrete class or match on ``exc.kind``.

Timeouts are not errors. A read that runs out of budget returns ``None``
and a write returns the number of bytes sent so far.
"""

from __future__ import annotations

from enum import Enum

__all__ = [
    "ErrorKind",
    "ProcessError",
    "ConfigurationError",
    "AlreadyStartedError",
    "NotStartedError",
    "SpawnFailure",
    "IOFailure",
]


class ErrorKind(Enum):
    """Tag identifying which failure an exception represents."""

    CONFIGURATION = "configuration"
    ALREADY_STARTED = "already_started"
    NOT_STARTED = "not_started"
    SPAWN_FAILURE = "spawn_failure"
    IO_FAILURE = "io_failure"


class ProcessError(Exception):
    """Base class for all async-process errors."""

    kind: ErrorKind


class ConfigurationError(ProcessError):
    """Invalid configuration (no command, missing working directory)."""

    kind = ErrorKind.CONFIGURATION


class AlreadyStartedError(ProcessError):
    """Configuration attempted on a process that has already been started."""

    kind = ErrorKind.ALREADY_STARTED

    def __init__(self, message: str = "Process has already been started") -> None:
        super().__init__(message)


class NotStartedError(ProcessError):
    """I/O attempted on a process that has not been started yet."""

    kind = ErrorKind.NOT_STARTED

    def __init__(self, message: str = "Process has not been started") -> None:
        super().__init__(message)


class SpawnFailure(ProcessError):
    """The OS refused or failed to create the child process.

    Attributes:
        command: The command line that failed to start
    """

    kind = ErrorKind.SPAWN_FAILURE

    def __init__(self, command: str, reason: str | None = None) -> None:
        self.command = command
        message = f"Unable to start command: {command}"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message)


class IOFailure(ProcessError):
    """The I/O substrate reported an error condition on a pipe.

    Attributes:
        role: Pipe role the failure happened on (stdin/stdout/stderr)
    """

    kind = ErrorKind.IO_FAILURE

    def __init__(self, message: str, role: str | None = None) -> None:
        self.role = role
        super().__init__(message)
