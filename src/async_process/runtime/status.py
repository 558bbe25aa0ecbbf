"""Child process status polling with exit-code caching.

The OS status primitive used here, ``os.waitpid(pid, WNOHANG)``, reports a
child's exit status exactly once: the call that reaps the child returns
it, and every later call fails because the child no longer exists. Such a
later query is reported as ``EXIT_CODE_CONSUMED`` (-1). ``StatusMonitor``
remembers the first real exit code so it can be read back any number of
times.
"""

from __future__ import annotations

import logging
import os
import signal
from collections.abc import Callable
from dataclasses import dataclass

__all__ = [
    "EXIT_CODE_CONSUMED",
    "ProcessStatus",
    "StatusProbe",
    "StatusMonitor",
    "signal_name",
    "waitpid_probe",
]

logger = logging.getLogger(__name__)

# Exit code reported once the real one has already been handed out
EXIT_CODE_CONSUMED = -1


@dataclass(frozen=True)
class ProcessStatus:
    """Snapshot of a child process status.

    Attributes:
        running: Whether the child is still alive
        exitcode: Exit code; only meaningful when running is False
    """

    running: bool
    exitcode: int = EXIT_CODE_CONSUMED


# probe(block) -> status; block=True waits for the child to exit
StatusProbe = Callable[[bool], ProcessStatus]


def _decode_wait_status(status: int) -> int:
    if os.WIFSIGNALED(status):
        # Shell convention, keeps signal deaths clear of the -1 sentinel
        return 128 + os.WTERMSIG(status)
    return os.waitstatus_to_exitcode(status)


def waitpid_probe(pid: int) -> StatusProbe:
    """Build a status probe for a child process based on os.waitpid().

    Args:
        pid: Child process id

    Returns:
        Probe callable; pass block=True to wait until the child exits
    """

    def probe(block: bool = False) -> ProcessStatus:
        try:
            waited_pid, status = os.waitpid(pid, 0 if block else os.WNOHANG)
        except ChildProcessError:
            return ProcessStatus(running=False, exitcode=EXIT_CODE_CONSUMED)
        if waited_pid == 0:
            return ProcessStatus(running=True)
        return ProcessStatus(running=False, exitcode=_decode_wait_status(status))

    return probe


class StatusMonitor:
    """Poll a child's status, caching the first valid exit code forever.

    Example:
        monitor = StatusMonitor(waitpid_probe(pid))
        status = monitor.poll()
        if not status.running:
            print(monitor.exit_code)
    """

    def __init__(self, probe: StatusProbe) -> None:
        self._probe = probe
        self._exit_code: int | None = None
        self._exited = False

    @property
    def exit_code(self) -> int | None:
        """Cached exit code, or None if no valid one was observed yet."""
        return self._exit_code

    @property
    def exited(self) -> bool:
        """Whether any poll has observed the child as not running."""
        return self._exited

    def poll(self, block: bool = False) -> ProcessStatus:
        """Query the child's status.

        Args:
            block: Wait for the child to exit instead of returning at once

        Returns:
            Current status; once an exit code is cached, it is reported
            regardless of what the probe says
        """
        if self._exit_code is not None:
            return ProcessStatus(running=False, exitcode=self._exit_code)

        status = self._probe(block)
        if status.running:
            return status

        self._exited = True
        if status.exitcode != EXIT_CODE_CONSUMED:
            self._exit_code = status.exitcode
            logger.debug(f"Child exited with code {status.exitcode}")
            return status
        return ProcessStatus(running=False, exitcode=EXIT_CODE_CONSUMED)


def signal_name(code: int) -> str | None:
    """Name of the signal encoded in an exit code, if any (e.g. 137 -> SIGKILL)."""
    if code <= 128:
        return None
    try:
        return signal.Signals(code - 128).name
    except ValueError:
        return None
