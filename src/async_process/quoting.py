"""POSIX shell quoting for command lines.

Commands are executed through ``/bin/sh``, so every argument passed to
``ProcessHandle.set_command()`` goes through ``quote_argument`` first.
"""

from __future__ import annotations

import shlex

__all__ = ["quote_argument", "join_command"]


def quote_argument(arg: str) -> str:
    """Quote a single argument so the shell passes it through verbatim.

    Args:
        arg: Raw argument

    Returns:
        Single-quoted argument (always quoted, even when not strictly needed)
    """
    quoted = shlex.quote(arg)
    # shlex.quote leaves "safe" strings bare, which never contain a quote
    if not quoted.startswith("'"):
        return f"'{arg}'"
    return quoted


def join_command(cmd: str, *args: str) -> str:
    """Build a shell command line from a command and its arguments."""
    return " ".join(quote_argument(part) for part in (cmd, *args))
