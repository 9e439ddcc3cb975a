"""p4bridge - drive the p4 command line in tagged (-G) mode.

Environment variables:
    P4API_TIMEOUT: Deadline per command in milliseconds (0/unset = none)
    P4BRIDGE_BIN_PATH: Prefix for the p4 executable
    P4BRIDGE_DEBUG: Log formatted results (default false)

Usage:
    from p4bridge import P4

    result = await P4().cmd("info")
"""

__version__ = "0.1.0"

from .client import P4, P4Options
from .errors import (
    CommandSyntaxError,
    MalformedStreamError,
    P4BridgeError,
    P4TimeoutError,
    ProcessError,
    SpawnError,
)
from .formatter import P4Result, RawResult, format_result
from .marshal import MappingRecord, PromptRecord, Record, decode, encode
from .types import Generic, Severity

__all__ = [
    "__version__",
    # Client
    "P4",
    "P4Options",
    # Results
    "P4Result",
    "RawResult",
    "format_result",
    # Codec
    "decode",
    "encode",
    "Record",
    "PromptRecord",
    "MappingRecord",
    # Errors
    "P4BridgeError",
    "MalformedStreamError",
    "ProcessError",
    "SpawnError",
    "P4TimeoutError",
    "CommandSyntaxError",
    # Enums
    "Severity",
    "Generic",
]
