"""Request/response framing over a child process's standard streams.

Outbound data is encoded with the marshal codec (or passed through raw),
written to stdin, and the accumulated stdout is decoded back into records
once the process has exited. stderr is kept as a separate side channel.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from pathlib import Path

from ..marshal import MarshalInput, Record, decode, encode
from .process_runner import ProcessOutput, ProcessRunner, ProcessSpec

__all__ = [
    "ProtocolResult",
    "RawOutput",
    "build_spec",
    "run_protocol",
    "run_protocol_sync",
    "run_raw",
    "run_raw_sync",
]

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProtocolResult:
    """Decoded output of one tagged-mode invocation.

    Attributes:
        records: Prompt record followed by the decoded mappings
        stderr: Decoded stderr text (never fatal by itself)
        returncode: Exit status of the process
    """

    records: list[Record] = field(default_factory=list)
    stderr: str = ""
    returncode: int | None = None


@dataclass(frozen=True)
class RawOutput:
    """Literal text output of one raw-mode invocation."""

    text: str = ""
    error: str = ""
    returncode: int | None = None


def build_spec(
    argv: Sequence[str],
    input: MarshalInput | None = None,
    *,
    cwd: Path | str | None = None,
    env: Mapping[str, str] | None = None,
    timeout: float | None = None,
    encoding: str = "utf-8",
    raw: bool = False,
) -> ProcessSpec:
    """Build a ProcessSpec, encoding the optional input.

    Args:
        argv: Full argument vector, executable first
        input: Mapping to marshal, or str/bytes written as-is
        cwd: Working directory (default: current directory)
        env: Child environment (None = inherit)
        timeout: Deadline in seconds (None/0 = none)
        encoding: Text encoding for str input
        raw: Never marshal the input, only write str/bytes
    """
    stdin_bytes: bytes | None = None
    if input is not None:
        if raw and not isinstance(input, (str, bytes, bytearray)):
            raise TypeError(f"raw input must be str or bytes, got {type(input).__name__}")
        stdin_bytes = encode(input, encoding=encoding)

    return ProcessSpec(
        argv=list(argv),
        cwd=Path(cwd) if cwd is not None else Path.cwd(),
        env=env,
        stdin_bytes=stdin_bytes,
        timeout=timeout or None,
    )


def _decode_output(output: ProcessOutput, encoding: str) -> ProtocolResult:
    if output.returncode:
        logger.warning(f"Process exited with code {output.returncode}")
    return ProtocolResult(
        records=decode(output.stdout, encoding=encoding),
        stderr=output.stderr.decode(encoding, errors="replace"),
        returncode=output.returncode,
    )


def _raw_output(output: ProcessOutput, encoding: str) -> RawOutput:
    return RawOutput(
        text=output.stdout.decode(encoding, errors="replace"),
        error=output.stderr.decode(encoding, errors="replace"),
        returncode=output.returncode,
    )


async def run_protocol(
    argv: Sequence[str],
    input: MarshalInput | None = None,
    *,
    cwd: Path | str | None = None,
    env: Mapping[str, str] | None = None,
    timeout: float | None = None,
    encoding: str = "utf-8",
    runner: ProcessRunner | None = None,
) -> ProtocolResult:
    """Run one tagged-mode invocation and decode its stdout.

    Raises:
        SpawnError, ProcessError, P4TimeoutError: From the runner
        MalformedStreamError: stdout was not a valid marshal stream
    """
    spec = build_spec(argv, input, cwd=cwd, env=env, timeout=timeout, encoding=encoding)
    output = await (runner or ProcessRunner()).run(spec)
    return _decode_output(output, encoding)


def run_protocol_sync(
    argv: Sequence[str],
    input: MarshalInput | None = None,
    *,
    cwd: Path | str | None = None,
    env: Mapping[str, str] | None = None,
    timeout: float | None = None,
    encoding: str = "utf-8",
    runner: ProcessRunner | None = None,
) -> ProtocolResult:
    """Blocking variant of :func:`run_protocol`."""
    spec = build_spec(argv, input, cwd=cwd, env=env, timeout=timeout, encoding=encoding)
    output = (runner or ProcessRunner()).run_sync(spec)
    return _decode_output(output, encoding)


async def run_raw(
    argv: Sequence[str],
    input: str | bytes | None = None,
    *,
    cwd: Path | str | None = None,
    env: Mapping[str, str] | None = None,
    timeout: float | None = None,
    encoding: str = "utf-8",
    runner: ProcessRunner | None = None,
) -> RawOutput:
    """Run one invocation without marshalling; return literal stdout/stderr."""
    spec = build_spec(argv, input, cwd=cwd, env=env, timeout=timeout, encoding=encoding, raw=True)
    output = await (runner or ProcessRunner()).run(spec)
    return _raw_output(output, encoding)


def run_raw_sync(
    argv: Sequence[str],
    input: str | bytes | None = None,
    *,
    cwd: Path | str | None = None,
    env: Mapping[str, str] | None = None,
    timeout: float | None = None,
    encoding: str = "utf-8",
    runner: ProcessRunner | None = None,
) -> RawOutput:
    """Blocking variant of :func:`run_raw`."""
    spec = build_spec(argv, input, cwd=cwd, env=env, timeout=timeout, encoding=encoding, raw=True)
    output = (runner or ProcessRunner()).run_sync(spec)
    return _raw_output(output, encoding)
