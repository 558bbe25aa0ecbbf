"""Non-blocking pipe ends connecting the parent to its child process.

A ``PipeEnd`` wraps one of the file objects created by ``subprocess.Popen``
and exposes single non-blocking read/write attempts plus the EOF and
closed flags the read/write loops rely on. ``PipeSet`` groups the three
ends by role.
"""

from __future__ import annotations

import errno
import logging
import os
from collections.abc import Iterator
from dataclasses import dataclass
from typing import BinaryIO

import anyio

__all__ = ["PipeEnd", "PipeSet"]

logger = logging.getLogger(__name__)


class PipeEnd:
    """Parent-side end of a pipe to the child process.

    Attributes:
        role: "stdin", "stdout" or "stderr"
    """

    def __init__(self, role: str, file: BinaryIO) -> None:
        self.role = role
        self._file = file
        self._fd = file.fileno()
        self._eof = False
        self._closed = False
        # Number of tasks parked in wait_ready() on this pipe
        self.waiters = 0

    def __repr__(self) -> str:
        return f"PipeEnd(role={self.role!r}, fd={self._fd}, eof={self._eof}, closed={self._closed})"

    @property
    def fd(self) -> int:
        return self._fd

    @property
    def eof(self) -> bool:
        """True once a read has observed end-of-stream."""
        return self._eof

    @property
    def closed(self) -> bool:
        return self._closed

    def set_nonblocking(self) -> None:
        os.set_blocking(self._fd, False)

    def read_nowait(self, max_length: int) -> bytes | None:
        """Attempt one non-blocking read.

        Returns:
            The bytes read, b"" at end-of-stream, or None if nothing is
            available yet

        Raises:
            OSError: Any read error other than "would block"
        """
        try:
            data = os.read(self._fd, max_length)
        except BlockingIOError:
            return None
        if not data:
            self._eof = True
        return data

    def write_nowait(self, data: bytes | memoryview) -> int | None:
        """Attempt one non-blocking write.

        Returns:
            Number of bytes accepted by the OS, or None if the pipe is full

        Raises:
            BrokenPipeError: The child closed its read end
            OSError: Any other write error
        """
        try:
            return os.write(self._fd, data)
        except BlockingIOError:
            return None

    def close(self) -> None:
        """Close this end of the pipe.

        Raises:
            OSError: EBADF if the pipe was already closed
        """
        if self._closed:
            raise OSError(errno.EBADF, os.strerror(errno.EBADF), self.role)
        self._closed = True
        if self.waiters:
            # Wake parked waiters with ClosedResourceError before the fd goes away
            anyio.notify_closing(self._fd)
        self._file.close()
        logger.debug(f"Closed {self.role} pipe fd={self._fd}")


@dataclass(frozen=True)
class PipeSet:
    """The three pipes of a child process, by role."""

    stdin: PipeEnd
    stdout: PipeEnd
    stderr: PipeEnd

    def __iter__(self) -> Iterator[PipeEnd]:
        return iter((self.stdin, self.stdout, self.stderr))

    def close_all(self) -> None:
        """Close every pipe that is still open."""
        for pipe in self:
            if not pipe.closed:
                pipe.close()
