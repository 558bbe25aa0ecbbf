"""Runtime module for non-blocking pipe I/O and child status polling.

This module provides the building blocks ProcessHandle is assembled from:
readiness suspension, single-block reads, drains, partial-write retries
and exit-code caching.
"""

from __future__ import annotations

from .pipes import PipeEnd, PipeSet
from .readiness import Direction, WaitSignal, wait_ready
from .reader import drain_all, read_block
from .status import EXIT_CODE_CONSUMED, ProcessStatus, StatusMonitor, waitpid_probe
from .writer import write_all

__all__ = [
    "EXIT_CODE_CONSUMED",
    "Direction",
    "PipeEnd",
    "PipeSet",
    "ProcessStatus",
    "StatusMonitor",
    "WaitSignal",
    "drain_all",
    "read_block",
    "wait_ready",
    "waitpid_probe",
    "write_all",
]
