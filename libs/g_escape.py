#!/usr/bin/env python3
"""
GEscape - Shell Quoting for Two Nested Shells

Paths reach two shells: the local shell that launches the bridge program, and
the remote shell the bridge forwards its command text to. Each shell gets its
own quoting, and a remote token that travels through the local shell is
quoted for the remote shell first and for the local shell second.

 Author: Gino Bogo
License: MIT
Version: 1.0
"""

# Characters the remote shell still expands inside double quotes.
_REMOTE_SPECIALS = ("\\", '"', "`", "$")


def escape_for_local_shell(raw: str) -> str:
    """Return `raw` as a single-quoted token for the local POSIX shell.

    Every embedded single quote becomes '\\'' (close, escaped quote, reopen).

    Args:
        raw: Arbitrary string, may be empty

    Returns:
        Shell-safe token
    """
    return "'" + raw.replace("'", "'\\''") + "'"


def escape_for_remote_shell(raw: str) -> str:
    """Return `raw` as a double-quoted token for the remote shell.

    Args:
        raw: Arbitrary string, may be empty

    Returns:
        Shell-safe token
    """
    escaped = raw
    for char in _REMOTE_SPECIALS:
        escaped = escaped.replace(char, "\\" + char)
    return f'"{escaped}"'


def escape_for_remote_via_local(raw: str) -> str:
    """Quote `raw` for the remote shell, then quote that token for the local shell.

    The order matters: quoting for the local shell last neutralizes single
    quotes that survive the remote quoting step.

    Args:
        raw: Arbitrary string, may be empty

    Returns:
        Token safe to place on a local command line that forwards it to the
        remote shell
    """
    return escape_for_local_shell(escape_for_remote_shell(raw))
