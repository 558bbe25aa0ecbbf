"""Pipe-level tests for readiness waits, readers and the writer.

These run against a plain os.pipe() pair, without a child process.
"""

from __future__ import annotations

import errno
import os
import time
from unittest import mock

import anyio
import pytest

from async_process.errors import ErrorKind, IOFailure
from async_process.runtime import reader as reader_module
from async_process.runtime import writer as writer_module
from async_process.runtime.pipes import PipeEnd
from async_process.runtime.readiness import Direction, WaitSignal, wait_ready
from async_process.runtime.reader import drain_all, read_block
from async_process.runtime.writer import write_all

PIPE_BUFFER_FILLER = b"x" * (4 * 1024 * 1024)


async def _error_signal(*args, **kwargs) -> WaitSignal:
    return WaitSignal.ERROR


def _fill(pipe: PipeEnd) -> int:
    """Write into a pipe until the OS refuses more."""
    total = 0
    while True:
        written = pipe.write_nowait(PIPE_BUFFER_FILLER)
        if written is None:
            return total
        total += written


# =============================================================================
# PipeEnd Tests
# =============================================================================


class TestPipeEnd:
    """Test the non-blocking pipe wrapper."""

    def test_read_nowait_empty(self, pipe_pair):
        """Test that an empty pipe reports would-block as None."""
        reader, _ = pipe_pair
        assert reader.read_nowait(10) is None
        assert not reader.eof

    def test_read_nowait_eof(self, pipe_pair):
        """Test that EOF sets the eof flag."""
        reader, writer = pipe_pair
        writer.close()
        assert reader.read_nowait(10) == b""
        assert reader.eof

    def test_write_nowait_full(self, pipe_pair):
        """Test that a full pipe reports would-block as None."""
        _, writer = pipe_pair
        assert _fill(writer) > 0
        assert writer.write_nowait(b"more") is None

    def test_double_close(self, pipe_pair):
        """Test that closing twice raises EBADF."""
        reader, _ = pipe_pair
        reader.close()
        with pytest.raises(OSError) as exc_info:
            reader.close()
        assert exc_info.value.errno == errno.EBADF


# =============================================================================
# Readiness Tests
# =============================================================================


class TestWaitReady:
    """Test readiness suspension."""

    @pytest.mark.asyncio
    async def test_ready_when_data_available(self, pipe_pair):
        """Test immediate readiness."""
        reader, writer = pipe_pair
        writer.write_nowait(b"data")
        assert await wait_ready(reader, Direction.READ, 1.0) is WaitSignal.READY

    @pytest.mark.asyncio
    async def test_writable(self, pipe_pair):
        """Test write readiness of an empty pipe."""
        _, writer = pipe_pair
        assert await wait_ready(writer, Direction.WRITE, 1.0) is WaitSignal.READY

    @pytest.mark.asyncio
    async def test_timeout(self, pipe_pair):
        """Test that a finite budget elapses."""
        reader, _ = pipe_pair
        start = time.monotonic()
        assert await wait_ready(reader, Direction.READ, 0.1) is WaitSignal.TIMEOUT
        assert time.monotonic() - start >= 0.09

    @pytest.mark.asyncio
    async def test_closed_before_wait(self, pipe_pair):
        """Test that waiting on a closed pipe reports CLOSED."""
        reader, _ = pipe_pair
        reader.close()
        assert await wait_ready(reader, Direction.READ, 1.0) is WaitSignal.CLOSED

    @pytest.mark.asyncio
    @pytest.mark.timeout(10)
    async def test_closed_while_waiting(self, pipe_pair):
        """Test that closing a pipe wakes a parked waiter."""
        reader, _ = pipe_pair
        signals: list[WaitSignal] = []

        async def waiter() -> None:
            signals.append(await wait_ready(reader, Direction.READ))

        async with anyio.create_task_group() as tg:
            tg.start_soon(waiter)
            await anyio.sleep(0.05)
            reader.close()

        assert signals == [WaitSignal.CLOSED]
        assert reader.waiters == 0

    @pytest.mark.asyncio
    @pytest.mark.timeout(10)
    async def test_zero_budget_waits(self, pipe_pair):
        """Test that a zero budget waits until the pipe is ready."""
        reader, writer = pipe_pair
        signals: list[WaitSignal] = []

        async def waiter() -> None:
            signals.append(await wait_ready(reader, Direction.READ, 0.0))

        async with anyio.create_task_group() as tg:
            tg.start_soon(waiter)
            await anyio.sleep(0.2)
            assert signals == []
            writer.write_nowait(b"go")

        assert signals == [WaitSignal.READY]


# =============================================================================
# read_block Tests
# =============================================================================


class TestReadBlock:
    """Test single-block reads."""

    @pytest.mark.asyncio
    async def test_available_data(self, pipe_pair):
        """Test that available data is returned without waiting."""
        reader, writer = pipe_pair
        writer.write_nowait(b"abc")
        assert await read_block(reader) == b"abc"

    @pytest.mark.asyncio
    async def test_max_length(self, pipe_pair):
        """Test that at most max_length bytes are returned."""
        reader, writer = pipe_pair
        writer.write_nowait(b"abcdef")
        assert await read_block(reader, 4) == b"abcd"
        assert await read_block(reader, 4) == b"ef"

    @pytest.mark.asyncio
    @pytest.mark.timeout(10)
    async def test_waits_for_data(self, pipe_pair):
        """Test that a read suspends until data arrives."""
        reader, writer = pipe_pair
        results: list[bytes | None] = []

        async def read() -> None:
            results.append(await read_block(reader))

        async with anyio.create_task_group() as tg:
            tg.start_soon(read)
            await anyio.sleep(0.05)
            writer.write_nowait(b"late")

        assert results == [b"late"]

    @pytest.mark.asyncio
    async def test_eof(self, pipe_pair):
        """Test that EOF returns None."""
        reader, writer = pipe_pair
        writer.close()
        assert await read_block(reader) is None
        assert reader.eof

    @pytest.mark.asyncio
    async def test_timeout(self, pipe_pair):
        """Test that an exhausted budget returns None, not an error."""
        reader, _ = pipe_pair
        start = time.monotonic()
        assert await read_block(reader, timeout=0.1) is None
        assert time.monotonic() - start >= 0.09
        assert not reader.eof

    @pytest.mark.asyncio
    async def test_closed_pipe(self, pipe_pair):
        """Test that reading a closed pipe returns None."""
        reader, _ = pipe_pair
        reader.close()
        assert await read_block(reader) is None

    @pytest.mark.asyncio
    @pytest.mark.timeout(10)
    async def test_closed_while_waiting(self, pipe_pair):
        """Test that closing the pipe mid-wait returns None."""
        reader, _ = pipe_pair
        results: list[bytes | None] = [b"sentinel"]

        async def read() -> None:
            results[0] = await read_block(reader)

        async with anyio.create_task_group() as tg:
            tg.start_soon(read)
            await anyio.sleep(0.05)
            reader.close()

        assert results == [None]

    @pytest.mark.asyncio
    async def test_wait_error(self, pipe_pair):
        """Test that a readiness error raises IOFailure."""
        reader, _ = pipe_pair
        with mock.patch.object(reader_module, "wait_ready", _error_signal):
            with pytest.raises(IOFailure) as exc_info:
                await read_block(reader)
        assert exc_info.value.kind is ErrorKind.IO_FAILURE
        assert exc_info.value.role == "stdout"

    @pytest.mark.asyncio
    async def test_read_error(self, pipe_pair):
        """Test that an OS read error raises IOFailure."""
        reader, _ = pipe_pair
        with mock.patch.object(reader, "read_nowait", side_effect=OSError(errno.EIO, "I/O error")):
            with pytest.raises(IOFailure) as exc_info:
                await read_block(reader)
        assert isinstance(exc_info.value.__cause__, OSError)


# =============================================================================
# drain_all Tests
# =============================================================================


class TestDrainAll:
    """Test multi-block drains."""

    @pytest.mark.asyncio
    async def test_until_eof(self, pipe_pair):
        """Test that all blocks up to EOF are accumulated."""
        reader, writer = pipe_pair
        writer.write_nowait(b"a" * 100)
        writer.write_nowait(b"b" * 100)
        writer.close()

        assert await drain_all(reader, block_size=30) == b"a" * 100 + b"b" * 100
        assert reader.eof

    @pytest.mark.asyncio
    async def test_already_at_eof(self, pipe_pair):
        """Test that a drained pipe drains to None."""
        reader, writer = pipe_pair
        writer.write_nowait(b"once")
        writer.close()

        assert await drain_all(reader) == b"once"
        assert await drain_all(reader) is None

    @pytest.mark.asyncio
    async def test_empty_eof(self, pipe_pair):
        """Test that EOF without any data drains to None."""
        reader, writer = pipe_pair
        writer.close()
        assert await drain_all(reader) is None

    @pytest.mark.asyncio
    async def test_timeout_returns_partial(self, pipe_pair):
        """Test that a timeout returns what was read so far."""
        reader, writer = pipe_pair
        writer.write_nowait(b"partial")
        assert await drain_all(reader, timeout=0.1) == b"partial"
        assert not reader.eof

    @pytest.mark.asyncio
    async def test_timeout_without_data(self, pipe_pair):
        """Test that a timeout before any data returns None."""
        reader, _ = pipe_pair
        assert await drain_all(reader, timeout=0.1) is None

    @pytest.mark.asyncio
    @pytest.mark.timeout(10)
    async def test_concurrent_writer(self, pipe_pair):
        """Test draining while another task writes and then closes."""
        reader, writer = pipe_pair

        async def produce() -> None:
            for i in range(5):
                writer.write_nowait(f"chunk{i};".encode())
                await anyio.sleep(0.01)
            writer.close()

        async with anyio.create_task_group() as tg:
            tg.start_soon(produce)
            output = await drain_all(reader)

        assert output == b"chunk0;chunk1;chunk2;chunk3;chunk4;"

    @pytest.mark.asyncio
    @pytest.mark.timeout(10)
    async def test_budget_shrinks_across_blocks(self, pipe_pair):
        """Test that a steady trickle of data cannot extend the budget."""
        reader, writer = pipe_pair
        outputs: list[bytes | None] = []

        async def trickle() -> None:
            while not outputs:
                writer.write_nowait(b".")
                await anyio.sleep(0.02)

        async with anyio.create_task_group() as tg:
            tg.start_soon(trickle)
            start = time.monotonic()
            outputs.append(await drain_all(reader, timeout=0.3))
            elapsed = time.monotonic() - start

        assert outputs[0]
        assert set(outputs[0]) == {ord(".")}
        assert elapsed < 0.6
        assert not reader.eof


# =============================================================================
# write_all Tests
# =============================================================================


class TestWriteAll:
    """Test partial-write retries."""

    @pytest.mark.asyncio
    async def test_small_write(self, pipe_pair):
        """Test a write that fits the pipe buffer."""
        reader, writer = pipe_pair
        assert await write_all(writer, b"hello") == 5
        assert reader.read_nowait(100) == b"hello"

    @pytest.mark.asyncio
    async def test_empty_write(self, pipe_pair):
        """Test that an empty write succeeds with 0."""
        _, writer = pipe_pair
        assert await write_all(writer, b"") == 0

    @pytest.mark.asyncio
    @pytest.mark.timeout(30)
    async def test_partial_writes_reassemble(self, pipe_pair):
        """Test a write larger than the pipe buffer with a concurrent reader."""
        reader, writer = pipe_pair
        data = os.urandom(1024 * 1024)
        written: list[int] = []

        async def produce() -> None:
            written.append(await write_all(writer, data))
            writer.close()

        async with anyio.create_task_group() as tg:
            tg.start_soon(produce)
            output = await drain_all(reader)

        assert written == [len(data)]
        assert output == data

    @pytest.mark.asyncio
    async def test_timeout_returns_partial(self, pipe_pair):
        """Test that a full pipe stops the write at the budget."""
        _, writer = pipe_pair
        written = await write_all(writer, PIPE_BUFFER_FILLER, timeout=0.1)
        assert 0 < written < len(PIPE_BUFFER_FILLER)

    @pytest.mark.asyncio
    async def test_not_running(self, pipe_pair):
        """Test that nothing is written once the child has stopped."""
        reader, writer = pipe_pair
        assert await write_all(writer, b"dropped", is_running=lambda: False) == 0
        assert reader.read_nowait(100) is None

    @pytest.mark.asyncio
    async def test_broken_pipe(self, pipe_pair):
        """Test that a vanished reader ends the write without error."""
        reader, writer = pipe_pair
        reader.close()
        assert await write_all(writer, b"nobody listens") == 0

    @pytest.mark.asyncio
    async def test_closed_pipe(self, pipe_pair):
        """Test that writing to a closed pipe writes nothing."""
        _, writer = pipe_pair
        writer.close()
        assert await write_all(writer, b"data") == 0

    @pytest.mark.asyncio
    @pytest.mark.timeout(10)
    async def test_closed_while_waiting(self, pipe_pair):
        """Test that closing the pipe mid-wait returns the partial count."""
        _, writer = pipe_pair
        results: list[int] = []

        async def produce() -> None:
            results.append(await write_all(writer, PIPE_BUFFER_FILLER))

        async with anyio.create_task_group() as tg:
            tg.start_soon(produce)
            await anyio.sleep(0.05)
            writer.close()

        assert len(results) == 1
        assert 0 < results[0] < len(PIPE_BUFFER_FILLER)

    @pytest.mark.asyncio
    async def test_wait_error(self, pipe_pair):
        """Test that a readiness error raises IOFailure."""
        _, writer = pipe_pair
        _fill(writer)
        with mock.patch.object(writer_module, "wait_ready", _error_signal):
            with pytest.raises(IOFailure) as exc_info:
                await write_all(writer, b"more")
        assert exc_info.value.role == "stdin"
