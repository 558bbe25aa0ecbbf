"""Child process handle with non-blocking stdin/stdout/stderr.

async-process v0.1.0

This module provides:
- Command, working directory and environment configuration
- Synchronous start with all three pipes switched to non-blocking mode
- Single-block reads, drains and partial-write retries with timeout budgets
- Exit-code caching on top of a one-shot OS status query
- Scoped cleanup (with / async with) that never leaks pipes or zombies

Key design points:
- Only pipe I/O suspends; run() and status queries are synchronous
- Timeouts are budgets, not errors: reads return None, writes return a
  partial byte count
- The child is polled and reaped with os.waitpid() through StatusMonitor.
  Popen.poll()/wait()/kill() are never called, as they would reap the
  child behind the monitor's back.
"""

from __future__ import annotations

import logging
import os
import signal
import subprocess
import time
from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any

import anyio

from .config import Config, get_config
from .errors import AlreadyStartedError, ConfigurationError, NotStartedError, SpawnFailure
from .quoting import join_command
from .runtime.pipes import PipeEnd, PipeSet
from .runtime.reader import drain_all, read_block
from .runtime.status import ProcessStatus, StatusMonitor, waitpid_probe
from .runtime.writer import write_all

__all__ = [
    "DrainOutput",
    "LifecycleState",
    "ProcessHandle",
]

logger = logging.getLogger(__name__)


class LifecycleState(Enum):
    """Lifecycle of a ProcessHandle.

    - CONFIGURING: command/cwd/env may still be changed, no I/O allowed
    - STARTED: child spawned, pipes non-blocking
    - EXITED: child observed dead by a status poll
    """

    CONFIGURING = "configuring"
    STARTED = "started"
    EXITED = "exited"


@dataclass(frozen=True)
class DrainOutput:
    """Result of draining stdout and stderr together.

    Attributes:
        stdout: Bytes read from stdout, or None if nothing was read
        stderr: Bytes read from stderr, or None if nothing was read
    """

    stdout: bytes | None
    stderr: bytes | None


class ProcessHandle:
    """Child process exposing its pipes through non-blocking async I/O.

    Must be driven from an anyio-compatible event loop (asyncio or trio).
    Operations on different pipes may run concurrently; concurrent calls
    on the same pipe are not supported.

    Example:
        async with ProcessHandle("tr", "a-z", "A-Z") as proc:
            proc.run()
            async with anyio.create_task_group() as tg:

                async def feed() -> None:
                    await proc.write_stdin(b"hello")
                    proc.close_stdin()

                tg.start_soon(feed)
                output = await proc.drain_stdout()
            await proc.wait_close()
            print(output, proc.exitcode())
    """

    def __init__(self, cmd: str | None = None, *args: str, config: Config | None = None) -> None:
        """Create a handle, optionally configuring the command.

        Args:
            cmd: Command to execute (quoted like set_command())
            *args: Arguments to the command
            config: Configuration (default: global config from environment)

        Raises:
            ConfigurationError: args given without a command
        """
        self._config = config if config is not None else get_config()
        self._command: str | None = None
        self._cwd: str | None = None
        self._env: dict[str, str] = {}
        self._env_replaced = False

        self._popen: subprocess.Popen[bytes] | None = None
        self._pipes: PipeSet | None = None
        self._monitor: StatusMonitor | None = None
        self._released = False

        if cmd is None:
            if args:
                raise ConfigurationError("Args provided without a command")
            return
        self.set_command(cmd, *args)

    def __repr__(self) -> str:
        return f"ProcessHandle(command={self._command!r}, state={self.state.value}, pid={self.pid})"

    # =========================================================================
    # Configuration
    # =========================================================================

    def set_command(self, cmd: str, *args: str) -> ProcessHandle:
        """Set the command to execute.

        Pass the command and each argument separately; every element is
        shell-quoted before being joined.

        Returns:
            self, for chaining
        """
        self._assert_not_started()
        return self.set_raw_command(join_command(cmd, *args))

    def set_raw_command(self, cmd: str) -> ProcessHandle:
        """Set a raw shell command line, performing no quoting at all.

        Never pass untrusted input here.
        """
        self._assert_not_started()
        self._command = cmd
        return self

    @property
    def command(self) -> str | None:
        """The configured command line, or None if not yet set."""
        return self._command

    def set_cwd(self, cwd: str | os.PathLike[str]) -> ProcessHandle:
        """Set the working directory the command starts in.

        Raises:
            ConfigurationError: The directory does not exist
        """
        self._assert_not_started()
        path = os.fspath(cwd)
        if not os.path.isdir(path):
            raise ConfigurationError(f"No such directory for cwd: {path}")
        self._cwd = path
        return self

    @property
    def cwd(self) -> str | None:
        """Configured working directory (None = inherit the parent's)."""
        return self._cwd

    def set_env(self, key: str, value: str) -> ProcessHandle:
        """Set one environment variable for the child.

        Unless set_all_env() was used, the child inherits the parent's
        environment with these overrides applied.
        """
        self._assert_not_started()
        self._env[key] = value
        return self

    def set_all_env(self, env: Mapping[str, str]) -> ProcessHandle:
        """Replace the child's environment entirely with ``env``."""
        self._assert_not_started()
        self._env = dict(env)
        self._env_replaced = True
        return self

    def get_env(self, key: str) -> str | None:
        """Return a configured environment variable, or None if not set."""
        return self._env.get(key)

    def get_all_env(self) -> dict[str, str]:
        """Return a copy of all configured environment variables."""
        return dict(self._env)

    def _build_env(self) -> dict[str, str] | None:
        if self._env_replaced:
            return dict(self._env)
        if not self._env:
            return None
        return {**os.environ, **self._env}

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def run(self) -> None:
        """Start the process.

        Synchronous: spawning never suspends. On return the child is
        running and all three pipes are non-blocking.

        Raises:
            AlreadyStartedError: run() was already called
            ConfigurationError: No command configured
            SpawnFailure: The OS could not create the process
        """
        self._assert_not_started()
        if not self._command:
            raise ConfigurationError(
                "Use ProcessHandle.set_command() to set the command to run"
            )

        kwargs = self._build_subprocess_kwargs()
        try:
            popen = subprocess.Popen(
                self._command,
                shell=True,
                stdin=subprocess.PIPE,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                bufsize=0,
                **kwargs,
            )
        except (OSError, ValueError) as e:
            raise SpawnFailure(self._command, str(e)) from e

        if popen.stdin is None or popen.stdout is None or popen.stderr is None:
            popen.kill()
            popen.wait()
            raise SpawnFailure(self._command, "pipes were not created")
        pipes = PipeSet(
            stdin=PipeEnd("stdin", popen.stdin),
            stdout=PipeEnd("stdout", popen.stdout),
            stderr=PipeEnd("stderr", popen.stderr),
        )
        try:
            for pipe in pipes:
                pipe.set_nonblocking()
        except OSError as e:
            pipes.close_all()
            popen.kill()
            popen.wait()
            raise SpawnFailure(self._command, f"cannot make pipes non-blocking: {e}") from e

        self._popen = popen
        self._pipes = pipes
        self._monitor = StatusMonitor(waitpid_probe(popen.pid))

        logger.debug(
            f"Started subprocess pid={popen.pid} "
            f"cmd={self._command!r} cwd={self._cwd or os.getcwd()}"
        )

    def _build_subprocess_kwargs(self) -> dict[str, Any]:
        """Build kwargs for subprocess.Popen from the configuration."""
        kwargs: dict[str, Any] = {"close_fds": True}
        if self._cwd is not None:
            kwargs["cwd"] = self._cwd
        env = self._build_env()
        if env is not None:
            kwargs["env"] = env
        return kwargs

    @property
    def state(self) -> LifecycleState:
        """Current lifecycle state, as last observed (does not poll)."""
        if self._monitor is None:
            return LifecycleState.CONFIGURING
        if self._monitor.exited:
            return LifecycleState.EXITED
        return LifecycleState.STARTED

    @property
    def pid(self) -> int | None:
        """Child process id, or None before run()."""
        return self._popen.pid if self._popen is not None else None

    def is_started(self) -> bool:
        """Whether run() succeeded. Once True, configuration is frozen."""
        return self._popen is not None

    def is_running(self) -> bool:
        """Whether the child is (still) running. False before run()."""
        if self._popen is None:
            return False
        return self._poll().running

    def exitcode(self) -> int | None:
        """Exit code of the finished child.

        A child killed by a signal reports ``128 + signal number`` (137 for
        SIGKILL), as a shell does. That is not a status the child chose;
        use ``runtime.status.signal_name()`` to tell the two apart.

        Returns:
            The exit code, or None while not started, still running, or if
            it could not be observed
        """
        if self._monitor is None or self.is_running():
            return None
        return self._monitor.exit_code

    def _poll(self, block: bool = False) -> ProcessStatus:
        popen, monitor = self._require_child()
        status = monitor.poll(block)
        if not status.running and popen.returncode is None:
            # The child was reaped here; keep Popen from waiting on it again
            popen.returncode = status.exitcode
            logger.debug(f"Subprocess exited pid={popen.pid} returncode={status.exitcode}")
        return status

    # =========================================================================
    # Pipe I/O
    # =========================================================================

    def eof_stdout(self) -> bool:
        """Whether stdout has reached end-of-stream (no more data will come)."""
        return self._require_pipes().stdout.eof

    def eof_stderr(self) -> bool:
        """Whether stderr has reached end-of-stream (no more data will come)."""
        return self._require_pipes().stderr.eof

    async def read_stdout(self, length: int | None = None, timeout: float = 0.0) -> bytes | None:
        """Read a single block from stdout.

        Args:
            length: Max bytes to read (default: configured block size)
            timeout: Max wait time in seconds; 0 waits indefinitely

        Returns:
            Data read, or None on EOF/timeout
        """
        pipes = self._require_pipes()
        return await read_block(pipes.stdout, length or self._config.read_block_size, timeout)

    async def read_stderr(self, length: int | None = None, timeout: float = 0.0) -> bytes | None:
        """Read a single block from stderr.

        Args:
            length: Max bytes to read (default: configured block size)
            timeout: Max wait time in seconds; 0 waits indefinitely

        Returns:
            Data read, or None on EOF/timeout
        """
        pipes = self._require_pipes()
        return await read_block(pipes.stderr, length or self._config.read_block_size, timeout)

    async def drain_stdout(self, timeout: float = 0.0) -> bytes | None:
        """Read all remaining stdout data; None if nothing was read."""
        pipes = self._require_pipes()
        return await drain_all(pipes.stdout, timeout, self._config.read_block_size)

    async def drain_stderr(self, timeout: float = 0.0) -> bytes | None:
        """Read all remaining stderr data; None if nothing was read."""
        pipes = self._require_pipes()
        return await drain_all(pipes.stderr, timeout, self._config.read_block_size)

    async def drain(self, timeout: float = 0.0) -> DrainOutput | None:
        """Drain stdout and stderr concurrently.

        Args:
            timeout: Max wait time in seconds, applied to each pipe

        Returns:
            Both outputs, or None when neither pipe produced any data
        """
        pipes = self._require_pipes()
        results: dict[str, bytes | None] = {}

        async def drain_one(pipe: PipeEnd) -> None:
            results[pipe.role] = await drain_all(pipe, timeout, self._config.read_block_size)

        try:
            async with anyio.create_task_group() as tg:
                tg.start_soon(drain_one, pipes.stdout)
                tg.start_soon(drain_one, pipes.stderr)
        except ExceptionGroup as eg:
            # Report a single failing drain as itself, not wrapped
            if len(eg.exceptions) == 1:
                raise eg.exceptions[0]
            raise

        if results["stdout"] is None and results["stderr"] is None:
            return None
        return DrainOutput(stdout=results["stdout"], stderr=results["stderr"])

    async def wait_close(self, timeout: float = 0.0) -> bool:
        """Read and discard all remaining output, then report whether the child ended.

        A child closes its pipes just before it can be reaped, so once both
        outputs are at EOF the status is polled until the child is seen
        exiting or the budget runs out. With a zero budget the drain waits
        indefinitely but the exit poll is bounded by ``config.close_timeout``,
        so a child that closes its outputs and keeps running does not block
        the call.

        Args:
            timeout: Max wait time in seconds; 0 waits indefinitely

        Returns:
            True if the child has stopped running
        """
        start = time.monotonic()
        await self.drain(timeout)
        pipes = self._require_pipes()

        if timeout:
            deadline = start + timeout
        else:
            deadline = time.monotonic() + self._config.close_timeout
        while self.is_running():
            if not (pipes.stdout.eof and pipes.stderr.eof):
                return False
            if time.monotonic() >= deadline:
                return False
            await anyio.sleep(self._config.exit_poll_interval)
        return True

    async def write_stdin(self, data: bytes | str, timeout: float = 0.0) -> int:
        """Send data to the child's stdin.

        Stops early, without raising, when the child exits, closes its
        stdin, or the budget runs out.

        Args:
            data: Data to send (str is encoded as UTF-8)
            timeout: Max wait time in seconds; 0 waits indefinitely

        Returns:
            Number of bytes actually written
        """
        pipes = self._require_pipes()
        if isinstance(data, str):
            data = data.encode("utf-8")
        return await write_all(pipes.stdin, data, timeout, self.is_running)

    def close_stdin(self) -> None:
        """Signal that no more data will be sent to the child's stdin.

        Raises:
            OSError: EBADF if stdin was already closed
        """
        self._require_pipes().stdin.close()

    # =========================================================================
    # Cleanup
    # =========================================================================

    def close(self) -> None:
        """Release the pipes and the child immediately.

        A child still running after its pipes are closed is killed and
        reaped. Safe to call more than once, and before run().
        """
        if self._pipes is None or self._released:
            return
        self._released = True
        self._pipes.close_all()
        if self._poll().running:
            self._kill()
            self._poll(block=True)

    async def aclose(self) -> None:
        """Release the pipes, give the child time to exit, then kill it.

        Waits up to ``config.close_timeout`` seconds for the child to exit
        on its own after its pipes are closed. Shielded from cancellation.
        """
        if self._pipes is None or self._released:
            return
        self._released = True
        with anyio.CancelScope(shield=True):
            self._pipes.close_all()
            if await self._wait_exit(self._config.close_timeout):
                return
            self._kill()
            await self._wait_exit(None)

    async def _wait_exit(self, timeout: float | None) -> bool:
        """Poll until the child exits; False if ``timeout`` elapsed first."""
        deadline = None if timeout is None else time.monotonic() + timeout
        while self._poll().running:
            if deadline is not None and time.monotonic() >= deadline:
                return False
            await anyio.sleep(self._config.exit_poll_interval)
        return True

    def _kill(self) -> None:
        """Send SIGKILL to the child without reaping it."""
        pid = self._require_child()[0].pid
        logger.warning(f"Killing subprocess still running at cleanup pid={pid}")
        try:
            os.kill(pid, signal.SIGKILL)
        except ProcessLookupError:
            logger.debug(f"Subprocess already exited pid={pid}")

    def __enter__(self) -> ProcessHandle:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    async def __aenter__(self) -> ProcessHandle:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    # =========================================================================
    # Internal helpers
    # =========================================================================

    def _assert_not_started(self) -> None:
        if self.is_started():
            raise AlreadyStartedError()

    def _require_pipes(self) -> PipeSet:
        if self._pipes is None:
            raise NotStartedError()
        return self._pipes

    def _require_child(self) -> tuple[subprocess.Popen[bytes], StatusMonitor]:
        if self._popen is None or self._monitor is None:
            raise NotStartedError()
        return self._popen, self._monitor
