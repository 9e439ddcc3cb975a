"""Codec for the tagged marshal stream spoken by ``p4 -G``.

Wire format:

    {              open a mapping
    s <u32> bytes  string; a key when no key is pending, else its value
    i <u32>        integer value for the pending key
    0              close the current mapping

Lengths and integers are unsigned 32-bit little-endian. Any bytes before the
first ``{`` are free-form preamble text.

Decoding is all-or-nothing: a malformed buffer raises
:class:`~p4bridge.errors.MalformedStreamError` and no partial records are
returned.
"""

from __future__ import annotations

import struct
from collections.abc import Iterable, Mapping
from typing import Any, Union

from ..errors import MalformedStreamError
from .records import MappingRecord, PromptRecord, Record, Value

__all__ = [
    "decode",
    "encode",
    "MarshalInput",
    "TAG_MAPPING",
    "TAG_STRING",
    "TAG_INT",
    "TAG_END",
]

TAG_MAPPING = ord("{")
TAG_STRING = ord("s")
TAG_INT = ord("i")
TAG_END = ord("0")

_U32 = struct.Struct("<I")

# Errors handler shared by both directions so arbitrary payload bytes survive
_ERRORS = "surrogateescape"

MarshalInput = Union[str, bytes, Mapping[str, Any], Iterable[tuple[str, Any]]]


def _read_u32(buf: bytes, pos: int) -> tuple[int, int]:
    end = pos + _U32.size
    if end > len(buf):
        raise MalformedStreamError(
            f"truncated 32-bit field: need {_U32.size} bytes, have {len(buf) - pos}",
            offset=pos,
            raw=buf[:pos],
        )
    return _U32.unpack_from(buf, pos)[0], end


def decode(buffer: bytes | bytearray | memoryview, *, encoding: str = "utf-8") -> list[Record]:
    """Decode a ``p4 -G`` output buffer.

    Args:
        buffer: Raw stdout bytes
        encoding: Text encoding of preamble and string payloads

    Returns:
        ``[PromptRecord, MappingRecord, ...]``; the prompt record is always
        present, possibly with empty text

    Raises:
        MalformedStreamError: Unknown tag, truncated field, integer without a
            key, or a mapping left open at end of buffer
    """
    buf = bytes(buffer)
    size = len(buf)

    start = buf.find(b"{")
    if start < 0:
        start = size
    records: list[Record] = [
        PromptRecord(text=buf[:start].decode(encoding, _ERRORS))
    ]

    pos = start
    current: dict[str, Value] | None = None
    key: str | None = None

    while pos < size:
        tag = buf[pos]
        tag_pos = pos
        pos += 1

        if tag == TAG_MAPPING:
            if current is not None:
                raise MalformedStreamError(
                    "nested mapping is not supported", offset=tag_pos, raw=buf[:tag_pos]
                )
            current = {}
            key = None

        elif tag == TAG_STRING:
            if current is None:
                raise MalformedStreamError(
                    "string outside of a mapping", offset=tag_pos, raw=buf[:tag_pos]
                )
            length, pos = _read_u32(buf, pos)
            end = pos + length
            if end > size:
                raise MalformedStreamError(
                    f"string length {length} exceeds remaining {size - pos} bytes",
                    offset=pos,
                    raw=buf[:pos],
                )
            text = buf[pos:end].decode(encoding, _ERRORS)
            pos = end
            if key is None:
                key = text
            else:
                current[key] = text
                key = None

        elif tag == TAG_INT:
            if current is None or key is None:
                raise MalformedStreamError(
                    "integer without a pending key", offset=tag_pos, raw=buf[:tag_pos]
                )
            value, pos = _read_u32(buf, pos)
            current[key] = value
            key = None

        elif tag == TAG_END:
            if current is None:
                raise MalformedStreamError(
                    "end marker without an open mapping", offset=tag_pos, raw=buf[:tag_pos]
                )
            if key is not None:
                raise MalformedStreamError(
                    f"key {key!r} has no value", offset=tag_pos, raw=buf[:tag_pos]
                )
            records.append(MappingRecord(entries=tuple(current.items())))
            current = None

        else:
            raise MalformedStreamError(
                f"unexpected tag byte {tag:#04x}", offset=tag_pos, raw=buf[:tag_pos]
            )

    if current is not None:
        raise MalformedStreamError("unterminated mapping", offset=pos, raw=buf)

    return records


def _pack_string(text: str | bytes | bytearray, encoding: str) -> bytes:
    data = bytes(text) if isinstance(text, (bytes, bytearray)) else text.encode(encoding, _ERRORS)
    return b"s" + _U32.pack(len(data)) + data


def encode(value: MarshalInput, *, encoding: str = "utf-8") -> bytes:
    """Encode one flat mapping for ``p4 -G`` stdin.

    ``str`` and ``bytes`` are passed through untouched (pre-formatted input).
    Every other value is treated as ``(key, value)`` pairs; ``bytes`` values
    are written verbatim, anything else as its string form.

    Args:
        value: Mapping, iterable of pairs, or raw text/bytes
        encoding: Text encoding for keys and values

    Returns:
        Bytes ready to write to the process stdin
    """
    if isinstance(value, (bytes, bytearray)):
        return bytes(value)
    if isinstance(value, str):
        return value.encode(encoding, _ERRORS)

    items = value.items() if isinstance(value, Mapping) else value
    parts = [b"{"]
    for key, item in items:
        parts.append(_pack_string(str(key), encoding))
        parts.append(_pack_string(item if isinstance(item, (bytes, bytearray)) else str(item), encoding))
    parts.append(b"0")
    return b"".join(parts)
