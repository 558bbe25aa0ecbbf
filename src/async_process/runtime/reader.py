"""Single-block and drain readers for the child's output pipes.

Both readers return ``None`` for "no data". End-of-stream, an exhausted
timeout budget and a pipe closed while waiting all produce that same
result; ``PipeEnd.eof`` tells end-of-stream apart.
"""

from __future__ import annotations

import logging
import time

from ..config import DEFAULT_READ_BLOCK_SIZE
from ..errors import IOFailure
from .pipes import PipeEnd
from .readiness import Direction, WaitSignal, wait_ready

__all__ = ["read_block", "drain_all"]

logger = logging.getLogger(__name__)


async def read_block(
    pipe: PipeEnd,
    max_length: int = DEFAULT_READ_BLOCK_SIZE,
    timeout: float = 0.0,
) -> bytes | None:
    """Read a single block from a pipe.

    Retries through readiness suspension until data arrives, the pipe
    reaches end-of-stream or is closed, an error occurs, or the budget
    runs out.

    Args:
        pipe: Pipe to read from
        max_length: Max bytes to read
        timeout: Max wait time in seconds; 0 waits indefinitely

    Returns:
        Non-empty bytes, or None on EOF/timeout/close

    Raises:
        IOFailure: The pipe reported an error
    """
    remaining = timeout
    while True:
        if pipe.closed:
            return None

        start = time.monotonic() if timeout else 0.0
        try:
            data = pipe.read_nowait(max_length)
        except OSError as e:
            raise IOFailure(f"Failed reading from process {pipe.role}: {e}", role=pipe.role) from e
        if data:
            return data
        if pipe.eof:
            return None

        signal = await wait_ready(pipe, Direction.READ, remaining)
        if signal is WaitSignal.CLOSED:
            return None
        if signal is WaitSignal.ERROR:
            raise IOFailure(f"Failed reading from process {pipe.role}", role=pipe.role)

        # Ready or timed out: retry the read, or give up once the budget is spent
        if timeout:
            elapsed = time.monotonic() - start
            if elapsed >= remaining:
                return None
            remaining -= elapsed


async def drain_all(
    pipe: PipeEnd,
    timeout: float = 0.0,
    block_size: int = DEFAULT_READ_BLOCK_SIZE,
) -> bytes | None:
    """Read from a pipe until end-of-stream or timeout.

    Args:
        pipe: Pipe to drain
        timeout: Max total wait time in seconds; 0 waits indefinitely
        block_size: Max bytes per underlying read

    Returns:
        Everything read, or None if nothing was read (pipe already at EOF,
        closed, or timed out before any data arrived)

    Raises:
        IOFailure: The pipe reported an error
    """
    chunks: list[bytes] = []
    remaining = timeout
    while not pipe.eof:
        start = time.monotonic() if timeout else 0.0
        data = await read_block(pipe, block_size, remaining)
        if data is None:
            break
        chunks.append(data)

        if timeout:
            elapsed = time.monotonic() - start
            if elapsed >= remaining:
                break
            remaining -= elapsed

    if not chunks:
        return None
    return b"".join(chunks)
