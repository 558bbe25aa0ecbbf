"""Pytest configuration and fixtures."""

from __future__ import annotations

import os
import sys
from collections.abc import Iterator
from pathlib import Path

import pytest

# Project root
PROJECT_ROOT = Path(__file__).parent.parent

# Add src to the Python path
SRC_DIR = PROJECT_ROOT / "src"
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

from async_process.config import Config  # noqa: E402
from async_process.runtime.pipes import PipeEnd  # noqa: E402


@pytest.fixture
def temp_workspace(tmp_path: Path) -> Path:
    """Temporary working directory for child processes."""
    workspace = tmp_path / "workspace"
    workspace.mkdir()
    return workspace


@pytest.fixture
def config() -> Config:
    """Config with short cleanup timeouts for testing."""
    return Config(read_block_size=8192, close_timeout=0.5, exit_poll_interval=0.01)


@pytest.fixture
def pipe_pair() -> Iterator[tuple[PipeEnd, PipeEnd]]:
    """A raw OS pipe as (read end, write end), both non-blocking."""
    read_fd, write_fd = os.pipe()
    reader = PipeEnd("stdout", open(read_fd, "rb", buffering=0))
    writer = PipeEnd("stdin", open(write_fd, "wb", buffering=0))
    reader.set_nonblocking()
    writer.set_nonblocking()
    yield reader, writer
    for pipe in (reader, writer):
        if not pipe.closed:
            pipe.close()
