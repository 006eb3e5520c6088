"""Process runner for detached and attached launches.

winela runtime module v0.1.0

This module provides:
- Detached start: the child gets its own session/process group and null
  stdio, and the caller never waits for it
- Attached run: stdout and stderr are drained by two concurrent tasks,
  every line is handed to a sink with an "OUT:" / "ERR:" marker
- Cancel-safe cleanup using asyncio.shield

Key design points:
- POSIX: start_new_session=True to create new process group
- Windows: CREATE_NEW_PROCESS_GROUP for signal isolation
- An attached run completes when both drains hit end-of-stream, not when
  the process exits; a child still running at that point is reaped in the
  background
- Cancellation terminates the process group, not just the main process
"""

from __future__ import annotations

import asyncio
import logging
import os
import signal
import subprocess
import sys
import threading
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import anyio

__all__ = [
    "LineSink",
    "ProcessRunner",
    "ProcessStartError",
    "ProcessSpec",
    "RunResult",
    "STDERR_PREFIX",
    "STDOUT_PREFIX",
    "decode_line",
]

logger = logging.getLogger(__name__)

# Platform detection
IS_WINDOWS = sys.platform == "win32"

# Default timeouts
DEFAULT_TERM_TIMEOUT = 2.0  # seconds to wait after SIGTERM
DEFAULT_KILL_TIMEOUT = 1.0  # seconds to wait after SIGKILL

# How long an attached run waits for the exit status once both streams closed
DEFAULT_EXIT_GRACE = 0.5

# Longest line a drain accepts before reporting a stream read error
DEFAULT_LINE_LIMIT = 1024 * 1024

STDOUT_PREFIX = "OUT:"
STDERR_PREFIX = "ERR:"

# Receives every emitted line, already prefixed
LineSink = Callable[[str], None]


def decode_line(raw: bytes) -> str:
    """Decode one line read from a child stream.

    Drops a single trailing newline and then a single trailing carriage
    return, so CRLF output from Windows programs reads cleanly.
    """
    text = raw.decode("utf-8", errors="replace")
    if text.endswith("\n"):
        text = text[:-1]
    if text.endswith("\r"):
        text = text[:-1]
    return text


class ProcessStartError(Exception):
    """The child process could not be started.

    Not an OSError subclass: OSErrors raised later, while the child runs
    (for example by a line sink), propagate unchanged.
    """

    def __init__(self, program: str, cause: OSError):
        self.program = program
        self.cause = cause
        super().__init__(f"cannot start {program}: {cause}")


@dataclass(frozen=True)
class ProcessSpec:
    """Specification for a subprocess to run.

    Attributes:
        argv: Command line arguments (first element is the executable)
        cwd: Working directory for the process (None = inherit parent)
    """

    argv: list[str]
    cwd: Path | None = None


@dataclass
class RunResult:
    """Outcome of an attached run.

    Attributes:
        pid: Process id of the child
        returncode: Exit code, None if the run was cancelled or the child
            was still running when its streams closed
        stream_errors: One message per read error seen while draining
    """

    pid: int
    returncode: int | None
    stream_errors: list[str] = field(default_factory=list)


@dataclass
class ProcessRunner:
    """Cross-platform process runner with isolation and reliable termination.

    Example:
        runner = ProcessRunner()
        spec = ProcessSpec(argv=["wine", "/games/foo.exe"])

        # fire and forget
        pid = runner.spawn_detached(spec)

        # or stream both channels until they close
        result = await runner.run_attached(spec, print)
    """

    term_timeout: float = DEFAULT_TERM_TIMEOUT
    kill_timeout: float = DEFAULT_KILL_TIMEOUT
    line_limit: int = DEFAULT_LINE_LIMIT
    exit_grace: float = DEFAULT_EXIT_GRACE

    # Children still owned by this runner, by pid
    _detached: dict[int, subprocess.Popen[bytes]] = field(
        default_factory=dict, init=False, repr=False
    )
    _reapers: set[asyncio.Task[int]] = field(
        default_factory=set, init=False, repr=False
    )

    @property
    def detached_pids(self) -> list[int]:
        """Pids of detached children that have not been reaped yet."""
        return list(self._detached)

    def spawn_detached(self, spec: ProcessSpec) -> int:
        """Start the process and return its pid without waiting.

        Standard streams are bound to the null device, so nothing is
        captured and the child never blocks on a pipe we stopped reading.

        Raises:
            ProcessStartError: If the process could not be started
        """
        kwargs = self._build_subprocess_kwargs(spec)
        # subprocess.Popen rather than asyncio: an asyncio transport kills a
        # still running child when the event loop closes.
        try:
            process = subprocess.Popen(
                spec.argv,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
                cwd=spec.cwd,
                **kwargs,
            )
        except OSError as e:
            raise ProcessStartError(spec.argv[0], e) from e

        # Intentionally kept: a daemon thread waits on the handle so the child
        # is reaped when it exits while the caller moves on.
        self._detached[process.pid] = process
        threading.Thread(
            target=self._reap_detached,
            args=(process,),
            name=f"winela-reap-{process.pid}",
            daemon=True,
        ).start()

        logger.debug(
            f"Spawned detached subprocess pid={process.pid} "
            f"argv={spec.argv[0]} cwd={spec.cwd}"
        )
        return process.pid

    def _reap_detached(self, process: subprocess.Popen[bytes]) -> None:
        returncode = process.wait()
        self._detached.pop(process.pid, None)
        logger.debug(
            f"Detached subprocess exited pid={process.pid} "
            f"returncode={returncode}"
        )

    async def run_attached(
        self,
        spec: ProcessSpec,
        on_line: LineSink,
        *,
        cancel_scope: anyio.CancelScope | None = None,
    ) -> RunResult:
        """Run subprocess and stream both output channels to on_line.

        This method:
        1. Starts the subprocess in an isolated process group/session
        2. Drains stdout and stderr in two concurrent tasks
        3. Waits for both drains to reach end-of-stream
        4. Picks up the exit code if the child exits within exit_grace,
           otherwise leaves the child running and reaps it in the background
        5. Terminates the child only if cancelled or if draining failed

        Args:
            spec: Process specification
            on_line: Sink for prefixed lines
            cancel_scope: Optional anyio.CancelScope for cancellation

        Returns:
            RunResult with pid, exit code and any stream read errors

        Raises:
            ProcessStartError: If the process could not be started
        """
        process: asyncio.subprocess.Process | None = None
        drain_tasks: list[asyncio.Task[None]] = []
        stream_errors: list[str] = []
        completed = False

        # Build platform-specific kwargs
        kwargs = self._build_subprocess_kwargs(spec)

        try:
            # stdin=DEVNULL: the child must not read the caller's terminal
            try:
                process = await asyncio.create_subprocess_exec(
                    *spec.argv,
                    stdin=asyncio.subprocess.DEVNULL,
                    stdout=asyncio.subprocess.PIPE,
                    stderr=asyncio.subprocess.PIPE,
                    cwd=spec.cwd,
                    limit=self.line_limit,
                    **kwargs,
                )
            except OSError as e:
                raise ProcessStartError(spec.argv[0], e) from e

            logger.debug(
                f"Started subprocess pid={process.pid} "
                f"argv={spec.argv[0]} cwd={spec.cwd}"
            )

            drain_tasks = [
                asyncio.create_task(
                    self._drain(
                        process.stdout, STDOUT_PREFIX, on_line,
                        stream_errors, cancel_scope,
                    )
                ),
                asyncio.create_task(
                    self._drain(
                        process.stderr, STDERR_PREFIX, on_line,
                        stream_errors, cancel_scope,
                    )
                ),
            ]

            # Join: a stall in either drain stalls the whole call
            if cancel_scope is None:
                await asyncio.gather(*drain_tasks)
            else:
                # cancel() interrupts reads blocked on a silent stream
                with cancel_scope:
                    await asyncio.gather(*drain_tasks)

            if cancel_scope and cancel_scope.cancel_called:
                logger.debug(f"Attached run cancelled pid={process.pid}")
                return RunResult(process.pid, None, stream_errors)

            # Both streams are closed; the child itself is left alone from here
            completed = True
            returncode = await self._collect_exit(process)

            logger.debug(
                f"Subprocess streams closed pid={process.pid} "
                f"returncode={returncode}"
            )
            return RunResult(process.pid, returncode, stream_errors)

        finally:
            # Ensure cleanup with shield to prevent cancel interruption
            await self._safe_cleanup(process, drain_tasks, terminate=not completed)

    async def _collect_exit(self, process: asyncio.subprocess.Process) -> int | None:
        """Return the exit code if the child exits within exit_grace.

        A child that closed its streams but keeps running is not waited for:
        its wait task stays in _reapers and reaps it whenever it exits, as
        long as the event loop runs.
        """
        waiter = asyncio.create_task(process.wait())
        self._reapers.add(waiter)
        waiter.add_done_callback(self._reapers.discard)

        done, _ = await asyncio.wait({waiter}, timeout=self.exit_grace)
        if waiter in done:
            return waiter.result()

        logger.debug(f"Subprocess still running after its streams closed pid={process.pid}")
        return None

    def _build_subprocess_kwargs(self, spec: ProcessSpec) -> dict[str, Any]:
        """Build platform-specific subprocess kwargs.

        Args:
            spec: Process specification

        Returns:
            Dict of kwargs shared by subprocess.Popen and
            asyncio.create_subprocess_exec
        """
        kwargs: dict[str, Any] = {}

        # Platform-specific isolation
        if IS_WINDOWS:
            # Windows: CREATE_NEW_PROCESS_GROUP
            kwargs["creationflags"] = subprocess.CREATE_NEW_PROCESS_GROUP
        else:
            # POSIX: start_new_session (equivalent to setsid)
            kwargs["start_new_session"] = True

        return kwargs

    async def _drain(
        self,
        stream: asyncio.StreamReader | None,
        prefix: str,
        on_line: LineSink,
        stream_errors: list[str],
        cancel_scope: anyio.CancelScope | None = None,
    ) -> None:
        """Read one stream line by line until end-of-stream.

        A line longer than line_limit is reported once and skipped. Any other
        read failure is reported and ends this drain; it is never mistaken
        for a clean end-of-stream.

        Args:
            stream: The child's stdout or stderr reader
            prefix: Marker put in front of every line
            on_line: Sink for prefixed lines
            stream_errors: Shared list collecting read error messages
            cancel_scope: Optional anyio.CancelScope for cancellation
        """
        if stream is None:
            return

        # True while discarding the rest of a line that went over line_limit
        overrun = False

        while True:
            if cancel_scope and cancel_scope.cancel_called:
                break

            eof = False
            try:
                raw = await stream.readuntil(b"\n")
            except asyncio.IncompleteReadError as e:
                # Last line without a newline, or b"" at end-of-stream
                raw = e.partial
                eof = True
            except asyncio.LimitOverrunError as e:
                if not overrun:
                    self._record_stream_error(
                        prefix,
                        f"line longer than {self.line_limit} bytes skipped",
                        stream_errors,
                    )
                    overrun = True
                # Drop what is buffered; the line may continue in later chunks
                await stream.readexactly(e.consumed)
                continue
            except OSError as e:
                self._record_stream_error(prefix, e, stream_errors)
                break

            if overrun:
                # Tail of the skipped line
                overrun = False
            elif raw:
                on_line(f"{prefix} {decode_line(raw)}")

            if eof:
                break

    def _record_stream_error(
        self, prefix: str, error: Exception | str, stream_errors: list[str]
    ) -> None:
        channel = "stdout" if prefix == STDOUT_PREFIX else "stderr"
        message = f"{channel}: {error}"
        stream_errors.append(message)
        logger.warning(f"stream read error on {message}")

    async def _safe_cleanup(
        self,
        process: asyncio.subprocess.Process | None,
        drain_tasks: list[asyncio.Task[None]],
        terminate: bool = True,
    ) -> None:
        """Safely cleanup subprocess and tasks, shielded from cancellation.

        Args:
            process: The subprocess to terminate
            drain_tasks: The stream draining tasks
            terminate: False once both streams closed normally
        """
        try:
            # Shield entire cleanup from cancellation
            await asyncio.shield(self._do_cleanup(process, drain_tasks, terminate))
        except asyncio.CancelledError:
            # If shield itself is cancelled, still try cleanup
            await self._do_cleanup(process, drain_tasks, terminate)
            raise

    async def _do_cleanup(
        self,
        process: asyncio.subprocess.Process | None,
        drain_tasks: list[asyncio.Task[None]],
        terminate: bool = True,
    ) -> None:
        """Cancel leftover drains and, if asked, stop the child."""
        # Cancel drains still running
        for task in drain_tasks:
            if not task.done():
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass

        # Terminate subprocess if still running
        if terminate and process is not None and process.returncode is None:
            await self._terminate_process(process)

    async def _terminate_process(
        self,
        process: asyncio.subprocess.Process,
    ) -> None:
        """Terminate subprocess gracefully, then forcefully if needed.

        Termination strategy:
        1. Send SIGTERM (or CTRL_BREAK_EVENT on Windows)
        2. Wait up to term_timeout for graceful exit
        3. If still running, send SIGKILL (or kill() on Windows)
        4. Wait up to kill_timeout for forced exit

        Args:
            process: The subprocess to terminate
        """
        pid = process.pid
        logger.debug(f"Terminating subprocess pid={pid}")

        try:
            # Step 1: Graceful termination
            if IS_WINDOWS:
                await self._windows_terminate(process)
            else:
                await self._posix_signal(process, signal.SIGTERM)

            # Step 2: Wait for graceful exit
            try:
                await asyncio.wait_for(process.wait(), timeout=self.term_timeout)
                logger.debug(
                    f"Subprocess terminated gracefully pid={pid} "
                    f"returncode={process.returncode}"
                )
                return
            except asyncio.TimeoutError:
                pass

            # Step 3: Force kill
            logger.debug(f"Force killing subprocess pid={pid}")
            if IS_WINDOWS:
                process.kill()
            else:
                await self._posix_signal(process, signal.SIGKILL)

            # Step 4: Wait for forced exit
            try:
                await asyncio.wait_for(process.wait(), timeout=self.kill_timeout)
                logger.debug(
                    f"Subprocess killed pid={pid} "
                    f"returncode={process.returncode}"
                )
            except asyncio.TimeoutError:
                logger.warning(f"Subprocess did not exit after kill pid={pid}")

        except ProcessLookupError:
            # Process already exited
            logger.debug(f"Subprocess already exited pid={pid}")
        except OSError as e:
            logger.warning(f"Error terminating subprocess pid={pid}: {e}")

    async def _posix_signal(
        self,
        process: asyncio.subprocess.Process,
        sig: signal.Signals,
    ) -> None:
        """Send a signal to the process group on POSIX systems.

        Args:
            process: The subprocess
            sig: SIGTERM or SIGKILL
        """
        try:
            # Process group ID equals pid due to start_new_session
            pgid = os.getpgid(process.pid)
            os.killpg(pgid, sig)
            logger.debug(f"Sent {sig.name} to process group pgid={pgid}")
        except ProcessLookupError:
            pass
        except OSError as e:
            # Fallback to signalling just the process
            logger.debug(f"killpg failed, falling back to send_signal: {e}")
            process.send_signal(sig)

    async def _windows_terminate(
        self,
        process: asyncio.subprocess.Process,
    ) -> None:
        """Send CTRL_BREAK_EVENT on Windows.

        Args:
            process: The subprocess
        """
        try:
            # Works because we used CREATE_NEW_PROCESS_GROUP
            os.kill(process.pid, signal.CTRL_BREAK_EVENT)
            logger.debug(f"Sent CTRL_BREAK_EVENT to pid={process.pid}")
        except (ProcessLookupError, OSError) as e:
            logger.debug(f"CTRL_BREAK_EVENT failed, falling back: {e}")
            process.terminate()
