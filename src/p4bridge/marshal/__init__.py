"""Marshal codec for ``p4 -G`` streams.

Usage:
    from p4bridge.marshal import decode, encode

    records = decode(stdout_bytes)
    payload = encode({"Change": "new", "Description": "fix"})
"""

from __future__ import annotations

from .codec import MarshalInput, decode, encode
from .records import MappingRecord, PromptRecord, Record, Value

__all__ = [
    "decode",
    "encode",
    "MarshalInput",
    "Record",
    "PromptRecord",
    "MappingRecord",
    "Value",
]
