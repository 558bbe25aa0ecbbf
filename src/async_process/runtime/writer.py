"""Partial-write retry loop for the child's stdin pipe."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable

from ..errors import IOFailure
from .pipes import PipeEnd
from .readiness import Direction, WaitSignal, wait_ready

__all__ = ["write_all"]

logger = logging.getLogger(__name__)


async def write_all(
    pipe: PipeEnd,
    data: bytes,
    timeout: float = 0.0,
    is_running: Callable[[], bool] | None = None,
) -> int:
    """Write a buffer to a pipe, retrying partial writes.

    The loop ends when every byte is sent, the pipe is closed (or the
    child closed its read end), the child stops running, an error occurs,
    or the budget runs out. Only the error case raises; all others return
    the number of bytes written so far and drop the rest.

    Args:
        pipe: Pipe to write to
        data: Bytes to send
        timeout: Max wait time in seconds; 0 waits indefinitely
        is_running: Liveness check consulted before every attempt

    Returns:
        Number of bytes actually written

    Raises:
        IOFailure: The pipe reported an error
    """
    remaining = timeout
    total = 0
    pending = memoryview(data)
    while True:
        if is_running is not None and not is_running():
            if pending:
                logger.debug(f"Child stopped, dropping {len(pending)} unsent bytes")
            return total
        if pipe.closed:
            return total

        start = time.monotonic() if timeout else 0.0
        try:
            written = pipe.write_nowait(pending)
        except BrokenPipeError:
            logger.debug(f"{pipe.role} closed by child after {total} bytes")
            return total
        except OSError as e:
            raise IOFailure(f"Failed writing to process {pipe.role}: {e}", role=pipe.role) from e
        if written is not None:
            total += written
            if written == len(pending):
                return total
            pending = pending[written:]

        signal = await wait_ready(pipe, Direction.WRITE, remaining)
        if signal is WaitSignal.CLOSED:
            return total
        if signal is WaitSignal.ERROR:
            raise IOFailure(f"Failed writing to process {pipe.role}", role=pipe.role)

        # Ready or timed out: retry the unsent suffix, or give up once the budget is spent
        if timeout:
            elapsed = time.monotonic() - start
            if elapsed >= remaining:
                return total
            remaining -= elapsed
