"""Runtime module for subprocess management and protocol framing.

This module provides isolated process execution with deadline enforcement
and the request/response framing used to talk to ``p4 -G``.
"""

from __future__ import annotations

from .process_runner import (
    Invocation,
    InvocationState,
    ProcessOutput,
    ProcessRunner,
    ProcessSpec,
)
from .protocol import (
    ProtocolResult,
    RawOutput,
    build_spec,
    run_protocol,
    run_protocol_sync,
    run_raw,
    run_raw_sync,
)
from .quirks import apply_command_quirks, parse_set_output

__all__ = [
    "Invocation",
    "InvocationState",
    "ProcessOutput",
    "ProcessRunner",
    "ProcessSpec",
    "ProtocolResult",
    "RawOutput",
    "build_spec",
    "run_protocol",
    "run_protocol_sync",
    "run_raw",
    "run_raw_sync",
    "apply_command_quirks",
    "parse_set_output",
]
