"""Command-specific fixes applied after decoding.

``p4 -G set`` ignores the tagged mode and prints plain ``NAME=value`` lines,
so its whole output lands in the prompt record. For that one command the
lines are turned into a mapping record. Nothing else is special-cased.
"""

from __future__ import annotations

import re

from ..marshal import MappingRecord, PromptRecord, Record

__all__ = [
    "SET_COMMAND",
    "parse_set_output",
    "apply_command_quirks",
]

SET_COMMAND = "set"

# "P4PORT=1666 (set)" -> ("P4PORT", "1666 (set)")
_SET_LINE = re.compile(r"^(P4[A-Za-z0-9_]*)=(.*?)\r?$", re.MULTILINE)


def parse_set_output(text: str) -> MappingRecord:
    """Build one mapping from ``p4 set`` lines, in output order."""
    values: dict[str, str] = {}
    for match in _SET_LINE.finditer(text):
        values[match.group(1)] = match.group(2)
    return MappingRecord.from_pairs(values)


def apply_command_quirks(command: str, records: list[Record]) -> list[Record]:
    """Return records with any command-specific mapping appended.

    Args:
        command: The command string exactly as the caller passed it
        records: Decoded records, prompt first
    """
    if command != SET_COMMAND:
        return records

    prompt = next((r for r in records if isinstance(r, PromptRecord)), None)
    if prompt is None:
        return records
    return [*records, parse_set_output(prompt.text)]
