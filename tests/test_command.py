"""Command string tokenization tests."""

from __future__ import annotations

import pytest

from p4bridge.errors import CommandSyntaxError, P4BridgeError
from p4bridge.utils import split_command


class TestSplitCommand:
    """Test shell-style splitting."""

    @pytest.mark.parametrize(
        "command,expected",
        [
            ("info", ["info"]),
            ("files //depot/...", ["files", "//depot/..."]),
            ("  sync   -f  ", ["sync", "-f"]),
            ('change -o "my change"', ["change", "-o", "my change"]),
            ("describe -s 'a b' c", ["describe", "-s", "a b", "c"]),
            (r"files //depot/a\ b.txt", ["files", "//depot/a b.txt"]),
            ("", []),
        ],
    )
    def test_split(self, command: str, expected: list[str]):
        assert split_command(command) == expected

    @pytest.mark.parametrize("command", ['files "unterminated', "files 'open", "files trailing\\"])
    def test_unbalanced(self, command: str):
        with pytest.raises(CommandSyntaxError):
            split_command(command)

    def test_error_hierarchy(self):
        """CommandSyntaxError is both a library error and a ValueError."""
        with pytest.raises(P4BridgeError):
            split_command('"')
        with pytest.raises(ValueError):
            split_command('"')
