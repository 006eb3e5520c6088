"""Runtime module for subprocess management and stream draining.

This module provides isolated process execution, detached starts and
attached runs that drain stdout/stderr concurrently.
"""

from __future__ import annotations

from .process_runner import (
    STDERR_PREFIX,
    STDOUT_PREFIX,
    LineSink,
    ProcessRunner,
    ProcessSpec,
    ProcessStartError,
    RunResult,
    decode_line,
)

__all__ = [
    "LineSink",
    "ProcessRunner",
    "ProcessSpec",
    "ProcessStartError",
    "RunResult",
    "STDERR_PREFIX",
    "STDOUT_PREFIX",
    "decode_line",
]
