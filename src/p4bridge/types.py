"""Shared enums for p4 message classification.

Values match the severity and generic codes the p4 server reports in the
``severity`` and ``generic`` entries of error mappings.
"""

from __future__ import annotations

from enum import IntEnum

__all__ = [
    "Severity",
    "Generic",
    "TEXT_CODES",
]

# Message codes whose ``data`` entries are concatenated into file content
TEXT_CODES = frozenset({"text", "binary"})


class Severity(IntEnum):
    """Error severity levels."""

    E_EMPTY = 0  # nothing yet
    E_INFO = 1  # something good happened
    E_WARN = 2  # something not good happened
    E_FAILED = 3  # user did something wrong
    E_FATAL = 4  # system broken, nothing can continue


class Generic(IntEnum):
    """Generic error codes."""

    EV_NONE = 0x00

    # The fault of the user
    EV_USAGE = 0x01
    EV_UNKNOWN = 0x02
    EV_CONTEXT = 0x03
    EV_ILLEGAL = 0x04
    EV_NOTYET = 0x05
    EV_PROTECT = 0x06

    # No fault at all
    EV_EMPTY = 0x11

    # Not the fault of the user
    EV_FAULT = 0x21
    EV_CLIENT = 0x22
    EV_ADMIN = 0x23
    EV_CONFIG = 0x24
    EV_UPGRADE = 0x25
    EV_COMM = 0x26
    EV_TOOBIG = 0x27
