#!/usr/bin/env python3
"""
GErrors - Error Taxonomy

Typed failures raised by the GCommander backends, bridge and transfer engine.
Listing-level anomalies never surface as exceptions; everything that mutates
state or reads content does.

 Author: Gino Bogo
License: MIT
Version: 1.0
"""

from __future__ import annotations

from typing import Optional


class GCommanderError(Exception):
    """Base class for all GCommander errors."""

    def __init__(self, message: str, path: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.path = path

    def __str__(self) -> str:
        if self.path:
            return f"{self.message} ({self.path})"
        return self.message


class AccessError(GCommanderError):
    """Directory cannot be enumerated, or the target is missing."""


class ReadError(GCommanderError):
    """File content could not be read as text."""


class BinaryContentError(ReadError):
    """File is classified as binary and is not opened in the editor."""


class WriteError(GCommanderError):
    """File content could not be written."""


class DeleteError(GCommanderError):
    """Backend refused to delete the target."""


class RenameError(GCommanderError):
    """Backend refused to rename the target."""


class CopyError(GCommanderError):
    """Same-backend copy failed."""


class NavigationError(GCommanderError):
    """Pane cannot navigate to the requested entry."""


class NoDeviceBound(GCommanderError):
    """A remote operation was requested without a device serial."""

    def __init__(self, message: str = "No device is bound to the remote backend"):
        super().__init__(message)


class UnsupportedCrossDevice(GCommanderError):
    """Remote to remote transfer between two different devices."""

    def __init__(self, source_serial: str, dest_serial: str):
        super().__init__(
            f"Cannot transfer between different devices: {source_serial} -> {dest_serial}"
        )
        self.source_serial = source_serial
        self.dest_serial = dest_serial


class BridgeError(GCommanderError):
    """A remote shell bridge command failed or timed out."""

    def __init__(
        self,
        message: str,
        command: str = "",
        stdout: str = "",
        stderr: str = "",
        exit_status: Optional[int] = None,
    ):
        super().__init__(message)
        self.command = command
        self.stdout = stdout
        self.stderr = stderr
        self.exit_status = exit_status

    def __str__(self) -> str:
        detail = self.stderr.strip() or self.stdout.strip()
        if detail:
            return f"{self.message}: {detail}"
        return self.message


class TransferError(GCommanderError):
    """A step of a multi-step transfer plan failed."""

    def __init__(
        self,
        step: str,
        cause: Optional[BaseException] = None,
        path: Optional[str] = None,
    ):
        message = f"Transfer failed at step '{step}'"
        if cause is not None:
            message += f": {cause}"
        super().__init__(message, path)
        self.step = step
        self.cause = cause
