"""Exception types raised by p4bridge.

p4bridge errors v0.1.0
"""

from __future__ import annotations

__all__ = [
    "P4BridgeError",
    "MalformedStreamError",
    "ProcessError",
    "SpawnError",
    "P4TimeoutError",
    "CommandSyntaxError",
]


class P4BridgeError(Exception):
    """Base class for all p4bridge errors."""
    pass


class MalformedStreamError(P4BridgeError):
    """A marshal stream could not be decoded.

    Attributes:
        offset: Byte offset at which decoding stopped
        raw: Bytes consumed before the failure, for diagnostics
    """

    def __init__(self, message: str, offset: int = 0, raw: bytes = b"") -> None:
        self.offset = offset
        self.raw = raw
        super().__init__(f"{message} (offset {offset})")


class ProcessError(P4BridgeError):
    """The external process failed at the OS level."""

    def __init__(self, message: str = "P4 execution error") -> None:
        self.message = message
        super().__init__(message)


class SpawnError(ProcessError):
    """The external executable could not be started."""
    pass


class P4TimeoutError(P4BridgeError):
    """The configured deadline expired before the process exited.

    Attributes:
        timeout: Configured deadline in seconds
    """

    def __init__(self, timeout: float) -> None:
        self.timeout = timeout
        super().__init__(f"Timeout {self.timeout_ms}ms reached.")

    @property
    def timeout_ms(self) -> int:
        return int(round(self.timeout * 1000))


class CommandSyntaxError(P4BridgeError, ValueError):
    """A command string could not be split into arguments."""
    pass
