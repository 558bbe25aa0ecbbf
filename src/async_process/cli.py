"""Command-line entry point.

Runs a command through ProcessHandle, forwarding this process's stdin to
the child (unless it is a TTY) and the child's stdout/stderr to ours, then
exits with the child's exit code.

Usage:
    async-process [--cwd DIR] [--env KEY=VALUE]... [--clear-env]
                  [--timeout SECONDS] [--raw] [--verbose] -- COMMAND [ARG...]
"""

from __future__ import annotations

import argparse
import logging
import sys
from collections.abc import Awaitable, Callable
from typing import BinaryIO

import anyio

from . import __version__
from .config import Config, get_config
from .errors import ProcessError
from .process import ProcessHandle
from .runtime.status import signal_name

__all__ = ["main", "build_parser"]

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def _parse_env_pair(value: str) -> tuple[str, str]:
    """Parse a KEY=VALUE command-line option."""
    key, sep, val = value.partition("=")
    if not sep or not key:
        raise argparse.ArgumentTypeError(f"expected KEY=VALUE, got {value!r}")
    return key, val


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser."""
    parser = argparse.ArgumentParser(
        prog="async-process",
        description="Run a command with non-blocking pipe I/O.",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--cwd", help="working directory for the command")
    parser.add_argument(
        "--env",
        action="append",
        type=_parse_env_pair,
        default=[],
        metavar="KEY=VALUE",
        help="set an environment variable (repeatable)",
    )
    parser.add_argument(
        "--clear-env",
        action="store_true",
        help="start from an empty environment instead of inheriting ours",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=0.0,
        help="I/O budget in seconds for each phase (0 = wait indefinitely)",
    )
    parser.add_argument(
        "--raw",
        action="store_true",
        help="join COMMAND and ARGs without shell quoting",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="debug logging")
    parser.add_argument("command", nargs=argparse.REMAINDER, help="command and arguments")
    return parser


def configure_logging(config: Config, verbose: bool = False) -> None:
    """Send logs to stderr; third-party loggers stay at WARNING."""
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    logging.basicConfig(level=logging.WARNING, handlers=[handler])
    log_level = logging.DEBUG if (verbose or config.log_debug) else logging.INFO
    logging.getLogger("async_process").setLevel(log_level)


def _build_process(args: argparse.Namespace, config: Config) -> ProcessHandle:
    proc = ProcessHandle(config=config)
    if args.raw:
        proc.set_raw_command(" ".join(args.command))
    else:
        proc.set_command(*args.command)
    if args.cwd:
        proc.set_cwd(args.cwd)
    env = dict(args.env)
    if args.clear_env:
        proc.set_all_env(env)
    else:
        for key, value in env.items():
            proc.set_env(key, value)
    return proc


async def _relay(
    read: Callable[..., Awaitable[bytes | None]], stream: BinaryIO, timeout: float
) -> None:
    """Copy blocks from a child pipe to ``stream`` as they arrive."""
    while True:
        chunk = await read(timeout=timeout)
        if chunk is None:
            return
        stream.write(chunk)
        stream.flush()


async def run_command(args: argparse.Namespace, config: Config, stdin_data: bytes | None) -> int:
    """Run the configured command and relay its I/O.

    Output is written block by block while the command runs.

    Returns:
        The child's exit code, or 1 if it could not be determined
    """
    proc = _build_process(args, config)

    async with proc:
        proc.run()

        async def feed_stdin() -> None:
            if stdin_data:
                written = await proc.write_stdin(stdin_data, args.timeout)
                if written < len(stdin_data):
                    logger.warning(f"Only {written} of {len(stdin_data)} stdin bytes were delivered")
            proc.close_stdin()

        async with anyio.create_task_group() as tg:
            tg.start_soon(feed_stdin)
            tg.start_soon(_relay, proc.read_stdout, sys.stdout.buffer, args.timeout)
            tg.start_soon(_relay, proc.read_stderr, sys.stderr.buffer, args.timeout)

        await proc.wait_close(args.timeout)
        code = proc.exitcode()

    if code is None:
        logger.warning("Exit code of the command is unknown (still running at timeout?)")
        return 1
    name = signal_name(code)
    if name is not None:
        logger.info(f"Command terminated by {name}")
    return code


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.command and args.command[0] == "--":
        args.command = args.command[1:]
    if not args.command:
        parser.error("a command is required")

    config = get_config()
    configure_logging(config, args.verbose)

    stdin_data = None if sys.stdin is None or sys.stdin.isatty() else sys.stdin.buffer.read()

    try:
        return anyio.run(run_command, args, config, stdin_data)
    except ProcessError as e:
        logger.error(str(e))
        return 1


if __name__ == "__main__":
    sys.exit(main())
