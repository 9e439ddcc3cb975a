"""Result formatting for decoded p4 output.

Records are grouped by their ``code`` entry:

    {
        "prompt": "...",                 # preamble text
        "data": "...",                   # concatenated text/binary content
        "stat": [{...}, {...}],          # one list per message code
        "info": [{...}],
        "error": [{...}],
    }

Mappings without a ``code`` entry are treated as ``stat``. Non-empty stderr is
appended to ``error`` and never replaces the decoded data.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from .marshal import MappingRecord, PromptRecord, Record, Value
from .types import TEXT_CODES, Generic, Severity

__all__ = [
    "P4Result",
    "RawResult",
    "format_result",
    "stderr_error_entry",
]

DEFAULT_CODE = "stat"


@dataclass
class P4Result:
    """Formatted result of a tagged-mode command.

    Attributes:
        prompt: Free text that preceded the tagged data
        data: Concatenated ``data`` of text/binary records, if any
        buckets: Mappings grouped by message code, in arrival order
        returncode: Exit status of the process
    """

    prompt: str = ""
    data: str | None = None
    buckets: dict[str, list[dict[str, Value]]] = field(default_factory=dict)
    returncode: int | None = None

    @property
    def stat(self) -> list[dict[str, Value]]:
        return self.buckets.get("stat", [])

    @property
    def info(self) -> list[dict[str, Value]]:
        return self.buckets.get("info", [])

    @property
    def error(self) -> list[dict[str, Value]]:
        return self.buckets.get("error", [])

    @property
    def has_errors(self) -> bool:
        return bool(self.buckets.get("error"))

    def to_dict(self) -> dict[str, Any]:
        """Convert to the plain dict shape."""
        result: dict[str, Any] = {"prompt": self.prompt}
        if self.data is not None:
            result["data"] = self.data
        for code, entries in self.buckets.items():
            result[code] = entries
        return result


@dataclass
class RawResult:
    """Literal output of a raw-mode command."""

    text: str = ""
    error: str = ""
    returncode: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {"text": self.text, "error": self.error}


def stderr_error_entry(stderr: str) -> dict[str, Value]:
    """Wrap stderr text as an error mapping."""
    return {
        "code": "error",
        "data": stderr,
        "severity": int(Severity.E_FAILED),
        "generic": int(Generic.EV_ILLEGAL),
    }


def format_result(
    records: list[Record],
    stderr: str = "",
    returncode: int | None = None,
) -> P4Result:
    """Group decoded records by message code.

    Args:
        records: Decoded records (prompt first)
        stderr: Captured stderr text
        returncode: Exit status of the process

    Returns:
        The formatted result
    """
    result = P4Result(returncode=returncode)

    for record in records:
        if isinstance(record, PromptRecord):
            result.prompt = record.text
            continue
        if not isinstance(record, MappingRecord):
            continue

        code = record.code or DEFAULT_CODE
        if code in TEXT_CODES:
            result.data = (result.data or "") + str(record.get("data", ""))
        else:
            result.buckets.setdefault(code, []).append(record.to_dict())

    if stderr:
        result.buckets.setdefault("error", []).append(stderr_error_entry(stderr))

    return result
