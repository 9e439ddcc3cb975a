"""Command string tokenization."""

from __future__ import annotations

import shlex

from ..errors import CommandSyntaxError

__all__ = ["split_command"]


def split_command(command: str) -> list[str]:
    """Split a command string into arguments using POSIX shell rules.

    ``'change -o "my change"'`` becomes ``["change", "-o", "my change"]``.

    Raises:
        CommandSyntaxError: Unbalanced quotes or a dangling escape
    """
    try:
        return shlex.split(command, posix=True)
    except ValueError as e:
        raise CommandSyntaxError(f"cannot split command {command!r}: {e}") from e
