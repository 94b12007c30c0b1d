#!/usr/bin/env python3
"""
GBackends - Local and Remote Backend Gateways

Uniform primitive operations (list, size, read, write, delete, rename, copy)
against the local disk or a remote device reached through a shell bridge.
Failures surface as the typed errors of `libs.g_errors`; directory size is
best effort and reports 0 instead of failing.

 Author: Gino Bogo
License: MIT
Version: 1.0
"""

from __future__ import annotations

import os
import secrets
import shutil
import stat
import tarfile
import tempfile
import time
from enum import Enum
from typing import List, Optional

from libs.g_bridge import RemoteBridge
from libs.g_errors import (
    AccessError,
    BridgeError,
    CopyError,
    DeleteError,
    NoDeviceBound,
    ReadError,
    RenameError,
    WriteError,
)
from libs.g_escape import escape_for_remote_shell
from libs.g_listing import FileEntry, ListingParser
from libs.g_log import log
from libs.g_pane import join_path, normalize_path, parent_path


# ============================================================================
# HELPERS
# ============================================================================


class BackendKind(Enum):
    LOCAL = "local"
    REMOTE = "remote"


def make_temp_name(prefix: str, suffix: str = "") -> str:
    """Return a temp file name unique across concurrent operations.

    Args:
        prefix: Purpose of the file, e.g. "copy" or "read"
        suffix: Extension to keep, e.g. ".tar"

    Returns:
        Name made of a millisecond timestamp and a random suffix
    """
    return f"gcommander_{prefix}_{int(time.time() * 1000)}_{secrets.token_hex(4)}{suffix}"


def remove_quietly(path: str, logger_func=log):
    """Remove a local file, logging instead of raising on failure."""
    try:
        os.remove(path)
    except FileNotFoundError:
        pass
    except OSError as e:
        logger_func(f"Warning: could not remove temp file {path}: {e}")


# ============================================================================
# BACKEND INTERFACE
# ============================================================================


class Backend:
    """Primitive operations of one storage backend."""

    kind: BackendKind
    serial: Optional[str] = None

    def __init__(self, logger_func=log, parser: Optional[ListingParser] = None):
        self.log = logger_func
        self.parser = parser or ListingParser()

    def describe(self) -> str:
        return self.kind.value

    def list(self, path: str) -> List[FileEntry]:
        raise NotImplementedError

    def stat_directory_size(self, path: str) -> int:
        raise NotImplementedError

    def read_file(self, path: str) -> str:
        raise NotImplementedError

    def write_file(self, path: str, content: str):
        raise NotImplementedError

    def delete(self, path: str, is_directory: bool):
        raise NotImplementedError

    def rename(self, old_path: str, new_path: str):
        raise NotImplementedError

    def copy_same_backend(self, source_path: str, dest_path: str):
        raise NotImplementedError


# ============================================================================
# LOCAL BACKEND
# ============================================================================


class LocalBackend(Backend):
    """Backend for the local filesystem."""

    kind = BackendKind.LOCAL

    def _stat_record(self, dir_path: str, name: str):
        """Stat one directory entry, following links; None if unreadable."""
        try:
            stat_info = os.stat(os.path.join(dir_path, name))
        except OSError:
            return None
        return (
            name,
            stat.S_ISDIR(stat_info.st_mode),
            stat_info.st_size,
            stat_info.st_mtime,
        )

    def list(self, path: str) -> List[FileEntry]:
        try:
            with os.scandir(path) as it:
                names = [dirent.name for dirent in it]
        except OSError as e:
            raise AccessError(f"Cannot list directory: {e.strerror or e}", path) from e
        return self.parser.parse_local(self._stat_record(path, name) for name in names)

    def stat_directory_size(self, path: str) -> int:
        if not os.path.isdir(path):
            return 0

        total = 0
        for root, dirs, files in os.walk(path, followlinks=False):
            for filename in files:
                try:
                    total += os.lstat(os.path.join(root, filename)).st_size
                except OSError:
                    continue
        return total

    def read_file(self, path: str) -> str:
        try:
            with open(path, "r", encoding="utf-8", newline="") as f:
                return f.read()
        except UnicodeDecodeError as e:
            raise ReadError("File is not valid UTF-8 text", path) from e
        except OSError as e:
            raise ReadError(f"Cannot read file: {e.strerror or e}", path) from e

    def write_file(self, path: str, content: str):
        try:
            with open(path, "w", encoding="utf-8", newline="") as f:
                f.write(content)
        except OSError as e:
            raise WriteError(f"Cannot write file: {e.strerror or e}", path) from e

    def delete(self, path: str, is_directory: bool):
        self.log(f"Deleting local item: {path}")
        try:
            if is_directory and not os.path.islink(path):
                shutil.rmtree(path)
            else:
                os.remove(path)
        except OSError as e:
            raise DeleteError(f"Cannot delete: {e.strerror or e}", path) from e

    def rename(self, old_path: str, new_path: str):
        self.log(f"Renaming {old_path} to {new_path} (local)")
        try:
            os.rename(old_path, new_path)
        except OSError as e:
            raise RenameError(f"Cannot rename: {e.strerror or e}", old_path) from e

    def copy_same_backend(self, source_path: str, dest_path: str):
        self.log(f"Copying {source_path} to {dest_path} (local)")
        try:
            if os.path.isdir(source_path):
                shutil.copytree(source_path, dest_path, dirs_exist_ok=True)
            else:
                shutil.copy2(source_path, dest_path)
        except OSError as e:
            raise CopyError(f"Cannot copy: {e}", source_path) from e

    def pack_directory(self, source_dir: str, archive_path: str, arcname: str):
        """Archive a directory with symbolic links replaced by their targets.

        Args:
            source_dir: Directory to archive
            archive_path: Local path of the tar file to create
            arcname: Name of the archive's top-level entry
        """
        self.log(f"Packing {source_dir} into {archive_path}")
        with tarfile.open(archive_path, "w", dereference=True) as tar:
            tar.add(source_dir, arcname=arcname)


# ============================================================================
# REMOTE BACKEND
# ============================================================================


class RemoteBackend(Backend):
    """Backend for a remote device's filesystem, bound to one serial."""

    kind = BackendKind.REMOTE

    def __init__(
        self,
        bridge: RemoteBridge,
        serial: Optional[str],
        logger_func=log,
        parser: Optional[ListingParser] = None,
        temp_dir: Optional[str] = None,
    ):
        """Initialize the RemoteBackend.

        Args:
            bridge: Remote shell bridge
            serial: Bound device serial; None leaves the backend unusable
            logger_func: A function to call for logging messages.
            parser: Listing parser, defaults to ListingParser
            temp_dir: Local directory for read/write staging files
        """
        super().__init__(logger_func, parser)
        self.bridge = bridge
        self.serial = serial
        self.temp_dir = temp_dir or tempfile.gettempdir()

    def describe(self) -> str:
        return f"remote:{self.serial}"

    def _require_serial(self) -> str:
        if not self.serial:
            raise NoDeviceBound()
        return self.serial

    def same_device(self, other: Backend) -> bool:
        return other.kind is BackendKind.REMOTE and other.serial == self.serial

    def _temp_path(self, prefix: str) -> str:
        return os.path.join(self.temp_dir, make_temp_name(prefix))

    def list(self, path: str) -> List[FileEntry]:
        serial = self._require_serial()
        # The trailing separator lists a symlinked directory's contents.
        listing_path = normalize_path(path).rstrip("/") + "/"
        try:
            result = self.bridge.run_remote_program(serial, "ls -l", listing_path)
        except BridgeError as e:
            raise AccessError(f"Cannot list directory: {e}", path) from e

        entries = self.parser.parse_remote(result.stdout)
        if not result.ok:
            if not result.stdout.strip():
                reason = result.stderr.strip() or f"exit status {result.exit_status}"
                raise AccessError(f"Cannot list directory: {reason}", path)
            self.log(
                f"Listing of {path} exited with status {result.exit_status}; "
                "showing partial results"
            )
        return entries

    def stat_directory_size(self, path: str) -> int:
        serial = self._require_serial()
        try:
            result = self.bridge.run_remote_program(serial, "du -sk", path)
        except BridgeError as e:
            self.log(f"Error computing size of {path}: {e}")
            return 0

        lines = result.stdout.strip().splitlines()
        if not lines:
            return 0
        try:
            return int(lines[-1].split()[0]) * 1024
        except (ValueError, IndexError):
            self.log(f"Warning: Could not parse du output: '{lines[-1]}'")
            return 0

    def read_file(self, path: str) -> str:
        serial = self._require_serial()
        # Pull to a temp file rather than cat through the shell channel.
        temp_path = self._temp_path("read")
        try:
            self.bridge.pull_file(serial, path, temp_path)
            with open(temp_path, "r", encoding="utf-8", newline="") as f:
                return f.read()
        except UnicodeDecodeError as e:
            raise ReadError("File is not valid UTF-8 text", path) from e
        except (BridgeError, OSError) as e:
            raise ReadError(f"Cannot read file: {e}", path) from e
        finally:
            remove_quietly(temp_path, self.log)

    def write_file(self, path: str, content: str):
        serial = self._require_serial()
        temp_path = self._temp_path("edit")
        try:
            with open(temp_path, "w", encoding="utf-8", newline="") as f:
                f.write(content)
            self.bridge.push_file(serial, temp_path, path)
        except (BridgeError, OSError) as e:
            raise WriteError(f"Cannot write file: {e}", path) from e
        finally:
            remove_quietly(temp_path, self.log)

    def _run_or_raise(self, error_class, action: str, program: str, *paths: str):
        serial = self._require_serial()
        try:
            result = self.bridge.run_remote_program(serial, program, *paths)
        except BridgeError as e:
            raise error_class(f"Cannot {action}: {e}", paths[0]) from e
        if not result.ok:
            reason = result.stderr.strip() or result.stdout.strip()
            raise error_class(
                f"Cannot {action}: {reason or f'exit status {result.exit_status}'}",
                paths[0],
            )
        return result

    def delete(self, path: str, is_directory: bool):
        self.log(f"Deleting remote item: {path} on {self.serial}")
        program = "rm -rf" if is_directory else "rm -f"
        self._run_or_raise(DeleteError, "delete", program, path)

    def rename(self, old_path: str, new_path: str):
        self.log(f"Renaming {old_path} to {new_path} on {self.serial}")
        self._run_or_raise(RenameError, "rename", "mv", old_path, new_path)

    def copy_same_backend(self, source_path: str, dest_path: str):
        self.log(f"Copying {source_path} to {dest_path} on {self.serial}")
        self._run_or_raise(CopyError, "copy", "cp -r", source_path, dest_path)

    # -- transfer primitives ------------------------------------------------

    def staging_path(self, name: str) -> str:
        """Return a path for `name` inside the device's staging directory."""
        return join_path(self.bridge.staging_dir, name)

    def push(self, local_path: str, remote_path: str):
        self.bridge.push_file(self._require_serial(), local_path, remote_path)

    def pull(self, remote_path: str, local_path: str):
        self.bridge.pull_file(self._require_serial(), remote_path, local_path)

    def unpack_archive(self, archive_path: str, dest_path: str):
        """Extract a tar archive into the parent directory of `dest_path`.

        Args:
            archive_path: Remote path of the tar file
            dest_path: Remote path the archive's top-level entry lands at

        Raises:
            BridgeError: If the remote extraction fails
        """
        serial = self._require_serial()
        target_dir = escape_for_remote_shell(parent_path(dest_path))
        command = (
            f"mkdir -p {target_dir} && cd {target_dir} && "
            f"tar -xf {escape_for_remote_shell(archive_path)}"
        )
        result = self.bridge.run_remote_shell(serial, command)
        if not result.ok:
            raise BridgeError(
                "Remote extraction failed",
                command=command,
                stdout=result.stdout,
                stderr=result.stderr,
                exit_status=result.exit_status,
            )
