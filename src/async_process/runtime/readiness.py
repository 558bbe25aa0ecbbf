"""Readiness suspension for non-blocking pipes.

``wait_ready`` is the only place where the read/write loops give control
back to the scheduler. It parks the calling task until the pipe becomes
readable or writable, is closed, reports an error, or the budget elapses.
Any anyio backend (asyncio, trio) can drive it.
"""

from __future__ import annotations

import logging
from enum import Enum

import anyio

from .pipes import PipeEnd

__all__ = ["Direction", "WaitSignal", "wait_ready"]

logger = logging.getLogger(__name__)


class Direction(Enum):
    """Readiness direction to wait for."""

    READ = "read"
    WRITE = "write"


class WaitSignal(Enum):
    """Why wait_ready() resumed.

    - READY: the pipe is ready in the requested direction
    - CLOSED: the pipe was closed before or while waiting
    - ERROR: the I/O substrate reported an error for the pipe
    - TIMEOUT: the finite budget elapsed
    """

    READY = "ready"
    CLOSED = "closed"
    ERROR = "error"
    TIMEOUT = "timeout"


async def wait_ready(
    pipe: PipeEnd,
    direction: Direction,
    timeout: float | None = 0.0,
) -> WaitSignal:
    """Suspend until the pipe is ready, closed, errored or timed out.

    Args:
        pipe: Pipe to wait on
        direction: READ or WRITE
        timeout: Budget in seconds; 0/None waits indefinitely

    Returns:
        The signal that ended the wait

    Raises:
        anyio.BusyResourceError: Another task is already waiting on this
            pipe in the same direction
    """
    if pipe.closed:
        return WaitSignal.CLOSED

    wait = anyio.wait_readable if direction is Direction.READ else anyio.wait_writable

    pipe.waiters += 1
    try:
        with anyio.move_on_after(timeout if timeout else None) as scope:
            await wait(pipe.fd)
    except anyio.ClosedResourceError:
        return WaitSignal.CLOSED
    except (OSError, ValueError) as e:
        logger.debug(f"Readiness wait failed on {pipe.role} fd={pipe.fd}: {e}")
        return WaitSignal.ERROR
    finally:
        pipe.waiters -= 1

    if pipe.closed:
        return WaitSignal.CLOSED
    if scope.cancelled_caught:
        return WaitSignal.TIMEOUT
    return WaitSignal.READY
