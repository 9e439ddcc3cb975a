"""Utility module.

Provides general helper functions.
"""

from .command import split_command

__all__ = [
    "split_command",
]
