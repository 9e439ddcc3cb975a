"""Process runner with deadline enforcement and reliable termination.

p4bridge runtime module v0.1.0

This module provides:
- Cross-platform subprocess isolation (new session/process group)
- Independent stdout/stderr accumulation (no cross-stream interleaving)
- An optional deadline that kills the process group and reports a timeout
- A blocking variant with the same contract for straight-line callers
- Cancel-safe cleanup using asyncio.shield

Key design points:
- One ProcessRunner call owns one process, its buffers and its timer
- An Invocation state machine decides exactly one outcome:
  CREATED -> RUNNING -> COMPLETED | TIMED_OUT, or CREATED -> SPAWN_FAILED
- The deadline timer is cancelled on every exit path
"""

from __future__ import annotations

import asyncio
import logging
import os
import signal
import subprocess
import sys
from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any

import anyio

from ..errors import P4TimeoutError, ProcessError, SpawnError

__all__ = [
    "InvocationState",
    "Invocation",
    "ProcessOutput",
    "ProcessRunner",
    "ProcessSpec",
]

logger = logging.getLogger(__name__)

# Platform detection
IS_WINDOWS = sys.platform == "win32"

# Default timeouts
DEFAULT_TERM_TIMEOUT = 2.0  # seconds to wait after SIGTERM
DEFAULT_KILL_TIMEOUT = 1.0  # seconds to wait after SIGKILL

READ_CHUNK_SIZE = 4096


class InvocationState(str, Enum):
    """Lifecycle of one process invocation."""

    CREATED = "created"
    RUNNING = "running"
    COMPLETED = "completed"
    TIMED_OUT = "timed_out"
    SPAWN_FAILED = "spawn_failed"

    @property
    def is_terminal(self) -> bool:
        return self in (
            InvocationState.COMPLETED,
            InvocationState.TIMED_OUT,
            InvocationState.SPAWN_FAILED,
        )


@dataclass
class Invocation:
    """Per-call outcome guard and deadline timer.

    ``settle()`` moves the invocation into a terminal state at most once, so a
    deadline firing after natural exit (or the reverse) cannot produce a
    second outcome.

    Attributes:
        state: Current lifecycle state
        timer: Pending deadline callback, if any
    """

    state: InvocationState = InvocationState.CREATED
    timer: asyncio.TimerHandle | None = None

    def start(self) -> None:
        if self.state is not InvocationState.CREATED:
            raise RuntimeError(f"cannot start invocation in state {self.state.value}")
        self.state = InvocationState.RUNNING

    def settle(self, outcome: InvocationState) -> bool:
        """Set the terminal outcome if none has been set yet.

        Returns:
            True if this call decided the outcome, False if another one won
        """
        if not outcome.is_terminal:
            raise ValueError(f"{outcome.value} is not a terminal state")
        if self.state.is_terminal:
            return False
        self.state = outcome
        return True

    def cancel_timer(self) -> None:
        if self.timer is not None:
            self.timer.cancel()
            self.timer = None


@dataclass(frozen=True)
class ProcessSpec:
    """Specification for a subprocess to run.

    Attributes:
        argv: Command line arguments (first element is the executable)
        cwd: Working directory for the process
        env: Environment variables (None = inherit parent)
        stdin_bytes: Optional bytes to write to stdin
        timeout: Deadline in seconds (None or 0 = no deadline)
    """

    argv: list[str]
    cwd: Path
    env: Mapping[str, str] | None = None
    stdin_bytes: bytes | None = None
    timeout: float | None = None

    @property
    def has_deadline(self) -> bool:
        return self.timeout is not None and self.timeout > 0


@dataclass(frozen=True)
class ProcessOutput:
    """Everything a completed process produced.

    Attributes:
        stdout: Accumulated stdout bytes, in arrival order
        stderr: Accumulated stderr bytes, in arrival order
        returncode: Exit status reported by the OS
    """

    stdout: bytes = b""
    stderr: bytes = b""
    returncode: int | None = None


@dataclass
class ProcessRunner:
    """Cross-platform process runner with deadlines and reliable termination.

    Example:
        runner = ProcessRunner()
        spec = ProcessSpec(
            argv=["p4", "-G", "info"],
            cwd=Path("/workspace"),
            timeout=5.0,
        )

        output = await runner.run(spec)
        records = decode(output.stdout)
    """

    term_timeout: float = DEFAULT_TERM_TIMEOUT
    kill_timeout: float = DEFAULT_KILL_TIMEOUT
    chunk_size: int = READ_CHUNK_SIZE

    async def run(self, spec: ProcessSpec) -> ProcessOutput:
        """Run the process to completion and collect its output.

        This method:
        1. Starts the subprocess in an isolated process group/session
        2. Arms the deadline timer, if configured
        3. Writes stdin_bytes (if any) and closes stdin
        4. Drains stdout and stderr concurrently into separate buffers
        5. Waits for exit and settles the outcome
        6. Ensures cleanup even if cancelled

        Args:
            spec: Process specification

        Returns:
            Collected stdout, stderr and exit status

        Raises:
            SpawnError: The executable could not be started
            P4TimeoutError: The deadline expired first; output is discarded
            ProcessError: A pipe reported an OS error while running
        """
        invocation = Invocation()
        kwargs = self._build_subprocess_kwargs(spec)

        try:
            process = await asyncio.create_subprocess_exec(
                *spec.argv,
                stdin=asyncio.subprocess.PIPE if spec.stdin_bytes is not None else asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=spec.cwd,
                **kwargs,
            )
        except OSError as e:
            invocation.settle(InvocationState.SPAWN_FAILED)
            logger.warning(f"Failed to start {spec.argv[0] if spec.argv else '<empty argv>'}: {e}")
            raise SpawnError(str(e)) from e

        invocation.start()
        logger.debug(
            f"Started subprocess pid={process.pid} "
            f"argv={spec.argv[0]} cwd={spec.cwd} timeout={spec.timeout}"
        )

        if spec.has_deadline:
            loop = asyncio.get_running_loop()
            invocation.timer = loop.call_later(
                spec.timeout, self._on_deadline, process, invocation, spec.timeout
            )

        stdout_chunks: list[bytes] = []
        stderr_chunks: list[bytes] = []
        channel_errors: list[OSError] = []

        try:
            async with anyio.create_task_group() as tg:
                if spec.stdin_bytes is not None:
                    tg.start_soon(self._write_stdin, process, spec.stdin_bytes, channel_errors)
                tg.start_soon(self._drain, process.stdout, stdout_chunks, channel_errors)
                tg.start_soon(self._drain, process.stderr, stderr_chunks, channel_errors)

            await process.wait()
            completed = invocation.settle(InvocationState.COMPLETED)
            invocation.cancel_timer()
        finally:
            invocation.cancel_timer()
            await self._safe_cleanup(process)

        if not completed:
            stdout_chunks.clear()
            stderr_chunks.clear()
            raise P4TimeoutError(spec.timeout)  # type: ignore[arg-type]

        if channel_errors:
            error = channel_errors[0]
            logger.warning(f"Channel error on pid={process.pid}: {type(error).__name__}: {error}")
            raise ProcessError(f"{spec.argv[0]}: {type(error).__name__}: {error}") from error

        logger.debug(
            f"Subprocess completed pid={process.pid} "
            f"returncode={process.returncode}"
        )
        return ProcessOutput(
            stdout=b"".join(stdout_chunks),
            stderr=b"".join(stderr_chunks),
            returncode=process.returncode,
        )

    def run_sync(self, spec: ProcessSpec) -> ProcessOutput:
        """Blocking variant of :meth:`run` with the same contract.

        The calling thread blocks until the process exits or the deadline
        expires; on expiry the process group is killed and reaped.
        """
        invocation = Invocation()
        kwargs = self._build_subprocess_kwargs(spec)

        try:
            process = subprocess.Popen(
                spec.argv,
                stdin=subprocess.PIPE if spec.stdin_bytes is not None else subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                cwd=spec.cwd,
                **kwargs,
            )
        except OSError as e:
            invocation.settle(InvocationState.SPAWN_FAILED)
            logger.warning(f"Failed to start {spec.argv[0] if spec.argv else '<empty argv>'}: {e}")
            raise SpawnError(str(e)) from e

        invocation.start()
        logger.debug(
            f"Started subprocess pid={process.pid} (sync) "
            f"argv={spec.argv[0]} cwd={spec.cwd} timeout={spec.timeout}"
        )

        try:
            stdout, stderr = process.communicate(
                spec.stdin_bytes,
                timeout=spec.timeout if spec.has_deadline else None,
            )
        except subprocess.TimeoutExpired:
            invocation.settle(InvocationState.TIMED_OUT)
            logger.warning(f"Deadline {spec.timeout}s reached, killing pid={process.pid}")
            self._kill_now(process)
            # Reap the pipes; whatever they hold is discarded
            process.communicate()
            raise P4TimeoutError(spec.timeout) from None  # type: ignore[arg-type]
        except OSError as e:
            logger.warning(f"Channel error on pid={process.pid}: {type(e).__name__}: {e}")
            raise ProcessError(f"{spec.argv[0]}: {type(e).__name__}: {e}") from e
        finally:
            if process.poll() is None:
                self._kill_now(process)
                process.wait()

        invocation.settle(InvocationState.COMPLETED)
        logger.debug(
            f"Subprocess completed pid={process.pid} "
            f"returncode={process.returncode}"
        )
        return ProcessOutput(stdout=stdout, stderr=stderr, returncode=process.returncode)

    def _build_subprocess_kwargs(self, spec: ProcessSpec) -> dict[str, Any]:
        """Build platform-specific subprocess kwargs.

        Args:
            spec: Process specification

        Returns:
            Dict of kwargs shared by asyncio.create_subprocess_exec and Popen
        """
        kwargs: dict[str, Any] = {}

        # Environment
        if spec.env is not None:
            kwargs["env"] = dict(spec.env)

        # Platform-specific isolation
        if IS_WINDOWS:
            kwargs["creationflags"] = subprocess.CREATE_NEW_PROCESS_GROUP
        else:
            kwargs["start_new_session"] = True

        return kwargs

    def _on_deadline(
        self,
        process: asyncio.subprocess.Process,
        invocation: Invocation,
        timeout: float,
    ) -> None:
        """Timer callback: claim the TIMED_OUT outcome and kill the process."""
        invocation.timer = None
        if not invocation.settle(InvocationState.TIMED_OUT):
            return
        logger.warning(f"Deadline {timeout}s reached, killing pid={process.pid}")
        self._kill_now(process)

    async def _write_stdin(
        self,
        process: asyncio.subprocess.Process,
        data: bytes,
        errors: list[OSError],
    ) -> None:
        """Write the whole payload and close stdin so the child sees EOF.

        A child that exits without reading all of its input is not an error;
        its exit status and stdout decide the outcome, as with
        ``Popen.communicate``.
        """
        if process.stdin is None:
            return
        try:
            process.stdin.write(data)
            await process.stdin.drain()
            process.stdin.close()
            await process.stdin.wait_closed()
        except (BrokenPipeError, ConnectionResetError) as e:
            logger.debug(f"Child stopped reading stdin pid={process.pid}: {type(e).__name__}")
            process.stdin.close()
        except OSError as e:
            errors.append(e)
            process.stdin.close()

    async def _drain(
        self,
        stream: asyncio.StreamReader | None,
        chunks: list[bytes],
        errors: list[OSError],
    ) -> None:
        """Read a stream to EOF, appending chunks in arrival order."""
        if stream is None:
            return
        try:
            while True:
                chunk = await stream.read(self.chunk_size)
                if not chunk:
                    break
                chunks.append(chunk)
        except OSError as e:
            errors.append(e)

    async def _safe_cleanup(self, process: asyncio.subprocess.Process) -> None:
        """Safely terminate the subprocess, shielded from cancellation.

        Args:
            process: The subprocess to terminate
        """
        try:
            await asyncio.shield(self._do_cleanup(process))
        except asyncio.CancelledError:
            # If shield itself is cancelled, still try cleanup
            await self._do_cleanup(process)
            raise

    async def _do_cleanup(self, process: asyncio.subprocess.Process) -> None:
        if process.returncode is None:
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
            if IS_WINDOWS:
                self._windows_terminate(process)
            else:
                self._posix_signal(process, signal.SIGTERM)

            try:
                await asyncio.wait_for(process.wait(), timeout=self.term_timeout)
                logger.debug(
                    f"Subprocess terminated gracefully pid={pid} "
                    f"returncode={process.returncode}"
                )
                return
            except asyncio.TimeoutError:
                pass

            logger.debug(f"Force killing subprocess pid={pid}")
            self._kill_now(process)

            try:
                await asyncio.wait_for(process.wait(), timeout=self.kill_timeout)
                logger.debug(
                    f"Subprocess killed pid={pid} "
                    f"returncode={process.returncode}"
                )
            except asyncio.TimeoutError:
                logger.warning(f"Subprocess did not exit after kill pid={pid}")

        except ProcessLookupError:
            logger.debug(f"Subprocess already exited pid={pid}")

    def _kill_now(self, process: asyncio.subprocess.Process | subprocess.Popen) -> None:
        """Forcefully kill the process (group) without waiting."""
        if IS_WINDOWS:
            try:
                process.kill()
                logger.debug(f"Called kill() on pid={process.pid}")
            except ProcessLookupError:
                pass
        else:
            self._posix_signal(process, signal.SIGKILL)

    def _posix_signal(
        self,
        process: asyncio.subprocess.Process | subprocess.Popen,
        sig: signal.Signals,
    ) -> None:
        """Send a signal to the process group on POSIX systems.

        Args:
            process: The subprocess
            sig: Signal to deliver
        """
        try:
            # Process group ID equals pid due to start_new_session
            pgid = os.getpgid(process.pid)
            os.killpg(pgid, sig)
            logger.debug(f"Sent {sig.name} to process group pgid={pgid}")
        except ProcessLookupError:
            pass
        except OSError as e:
            logger.debug(f"killpg failed, falling back to send_signal: {e}")
            try:
                process.send_signal(sig)
            except ProcessLookupError:
                pass

    def _windows_terminate(self, process: asyncio.subprocess.Process) -> None:
        """Send CTRL_BREAK_EVENT on Windows.

        Args:
            process: The subprocess
        """
        try:
            # Works because the process was started with CREATE_NEW_PROCESS_GROUP
            os.kill(process.pid, signal.CTRL_BREAK_EVENT)
            logger.debug(f"Sent CTRL_BREAK_EVENT to pid={process.pid}")
        except (ProcessLookupError, OSError) as e:
            logger.debug(f"CTRL_BREAK_EVENT failed, falling back: {e}")
            process.terminate()
