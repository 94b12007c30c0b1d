#!/usr/bin/env python3
"""
GCommander - Dual-Pane File Manager Core

Presents the local disk and a remote device filesystem (Android over adb, or
SSH hosts) as two independently navigable panes, and copies, deletes,
renames, views, edits and sizes files on either side.

 Author: Gino Bogo
License: MIT
Version: 1.0
"""

from __future__ import annotations

# Standard library imports.
import atexit
import json
import os
import subprocess
import sys
import tempfile
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from typing import Dict, List, Optional

from libs.g_backends import (
    Backend,
    BackendKind,
    LocalBackend,
    RemoteBackend,
    make_temp_name,
)
from libs.g_bridge import AdbBridge, Device, DeviceTracker, RemoteBridge, SshBridge
from libs.g_errors import (
    BinaryContentError,
    BridgeError,
    GCommanderError,
    NavigationError,
    NoDeviceBound,
    ReadError,
    RenameError,
    WriteError,
)
from libs.g_listing import FileEntry, format_size, is_binary_name
from libs.g_log import log
from libs.g_pane import Pane, is_valid_leaf, join_path, normalize_path, sibling_path
from libs.g_transfer import TransferEndpoint, TransferOrchestrator


# ============================================================================
# CONSTANTS
# ============================================================================

CONFIG_FILE = "g_commander.json"
HISTORY_LENGTH = 10
PANE_IDS = ("left", "right")
LOCAL_TARGET = "local"
DEFAULT_OPTIONS = {
    "local_root": "~",
    "remote_root": "/sdcard",
    "temp_dir": "",
    "command_timeout": 120,
}
DEFAULT_ADB = {"path": "adb", "staging_dir": "/data/local/tmp"}
DEFAULT_SSH = {"staging_dir": "/tmp", "pool_size": 2}


@dataclass
class EditingFile:
    """The file currently open in the viewer/editor."""

    pane_id: str
    backend: Backend
    path: str
    name: str
    read_only: bool = True


# ============================================================================
# SESSION CLASS
# ============================================================================


class GCommander:
    """Session object owning both panes, the bridge and the editor state."""

    # ==========================================================================
    # INITIALIZATION METHODS
    # ==========================================================================

    def __init__(
        self,
        config_file: Optional[str] = CONFIG_FILE,
        bridge: Optional[RemoteBridge] = None,
        logger_func=log,
    ):
        """Initialize the GCommander session.

        Args:
            config_file: JSON config path; None disables load and save
            bridge: Remote shell bridge; built from config when omitted
            logger_func: A function to call for logging messages.
        """
        self.config_file = config_file
        self.log = logger_func

        # Configuration.
        self.options = dict(DEFAULT_OPTIONS)
        self.adb_options = dict(DEFAULT_ADB)
        self.ssh_options = dict(DEFAULT_SSH)
        self.bridge_kind = "adb"
        self.ssh_hosts: List[dict] = []
        self.pane_config: Dict[str, dict] = {}
        self.pane_history: Dict[str, List[str]] = {pane_id: [] for pane_id in PANE_IDS}
        self._load_config()

        # Backends.
        self.bridge = bridge or self._create_bridge()
        self.local_backend = LocalBackend(self.log)
        self.orchestrator = TransferOrchestrator(self.log, self.temp_dir)

        # Panes: left starts local, right waits for a device.
        self.panes: Dict[str, Pane] = {
            "left": Pane("left", self.local_backend, self.local_root),
            "right": Pane("right", self.remote_backend(None), self.remote_root),
        }
        self._restore_panes()
        self.active_pane_id = "left"

        # Data Storage.
        self.devices: List[Device] = []
        self.editing: Optional[EditingFile] = None
        self.temp_files_to_clean: List[str] = []
        self.tracker: Optional[DeviceTracker] = None

        self._lock = threading.Lock()
        self._executor = ThreadPoolExecutor(max_workers=4)

        # Ensure temporary files are cleaned up on exit.
        atexit.register(self._cleanup_temp_files)

    @property
    def local_root(self) -> str:
        return normalize_path(os.path.expanduser(self.options["local_root"]))

    @property
    def remote_root(self) -> str:
        return normalize_path(self.options["remote_root"])

    @property
    def temp_dir(self) -> str:
        return self.options.get("temp_dir") or tempfile.gettempdir()

    def _create_bridge(self) -> RemoteBridge:
        """Build the remote shell bridge selected in the config."""
        timeout = int(self.options["command_timeout"])
        if self.bridge_kind == "ssh":
            return SshBridge(
                self.ssh_hosts,
                self.log,
                staging_dir=self.ssh_options["staging_dir"],
                timeout=timeout,
                pool_size=int(self.ssh_options["pool_size"]),
            )
        return AdbBridge(
            self.log,
            adb_path=self.adb_options["path"],
            staging_dir=self.adb_options["staging_dir"],
            timeout=timeout,
        )

    def _restore_panes(self):
        """Restore pane kinds and paths saved in the config."""
        for pane_id, saved in self.pane_config.items():
            pane = self.panes.get(pane_id)
            if pane is None or not isinstance(saved, dict):
                continue
            if saved.get("kind") == BackendKind.REMOTE.value:
                pane.switch_backend(self.remote_backend(None), saved.get("path") or self.remote_root)
            else:
                pane.switch_backend(self.local_backend, saved.get("path") or self.local_root)

    # ==========================================================================
    # CONFIGURATION METHODS
    # ==========================================================================

    def _load_config(self):
        """Load configuration from file."""
        if not self.config_file or not os.path.exists(self.config_file):
            return

        try:
            with open(self.config_file, "r") as f:
                config = json.load(f)

            if "OPTIONS" in config:
                self.options.update(config["OPTIONS"])
            if "ADB" in config:
                self.adb_options.update(config["ADB"])
            if "SSH" in config:
                self.ssh_options.update(config["SSH"])
            if "BRIDGE" in config:
                self.bridge_kind = config["BRIDGE"].get("kind", "adb")
            if "SSH_HOSTS" in config:
                self.ssh_hosts = [h for h in config["SSH_HOSTS"] if "host" in h]
            if "PANES" in config:
                self.pane_config = config["PANES"]
            if "PANE_HISTORY" in config:
                for pane_id in PANE_IDS:
                    self.pane_history[pane_id] = list(
                        config["PANE_HISTORY"].get(pane_id, [])
                    )[:HISTORY_LENGTH]

        except json.JSONDecodeError:
            self.log(f"Warning: Could not parse {self.config_file}. Using defaults.")

    def _save_config(self):
        """Save configuration to file."""
        if not self.config_file:
            return

        panes = {}
        for pane_id, pane in self.panes.items():
            panes[pane_id] = {
                "kind": pane.kind.value,
                "serial": pane.serial,
                "path": pane.path,
            }

        config = {
            "OPTIONS": self.options,
            "ADB": self.adb_options,
            "SSH": self.ssh_options,
            "BRIDGE": {"kind": self.bridge_kind},
            "SSH_HOSTS": self.ssh_hosts,
            "PANES": panes,
            "PANE_HISTORY": self.pane_history,
        }

        with open(self.config_file, "w") as f:
            json.dump(config, f, indent=4)

    def _update_pane_history(self, pane: Pane):
        """Move the pane's current path to the front of its history."""
        history = self.pane_history.setdefault(pane.pane_id, [])
        if pane.path in history:
            history.remove(pane.path)
        history.insert(0, pane.path)
        del history[HISTORY_LENGTH:]

    # ==========================================================================
    # PANE METHODS
    # ==========================================================================

    def pane(self, pane_id: Optional[str] = None) -> Pane:
        """Return the pane `pane_id`, or the active pane."""
        return self.panes[pane_id or self.active_pane_id]

    def other_pane(self, pane_id: Optional[str] = None) -> Pane:
        current = pane_id or self.active_pane_id
        return self.panes["right" if current == "left" else "left"]

    def set_active(self, pane_id: str):
        if pane_id not in self.panes:
            raise NavigationError(f"Unknown pane '{pane_id}'")
        self.active_pane_id = pane_id

    def remote_backend(self, serial: Optional[str]) -> RemoteBackend:
        return RemoteBackend(self.bridge, serial, self.log, temp_dir=self.temp_dir)

    def _begin_listing(self, pane: Pane):
        """Start a listing request; returns (generation, backend, path)."""
        with self._lock:
            pane.generation += 1
            return pane.generation, pane.backend, pane.path

    def _finish_listing(self, pane: Pane, request, entries: List[FileEntry]) -> bool:
        """Apply a listing unless the pane moved on since `request` started."""
        generation, backend, path = request
        with self._lock:
            if (
                pane.generation != generation
                or pane.backend is not backend
                or pane.path != path
            ):
                self.log(f"Discarding stale listing of {path}")
                return False
            pane.apply_listing(entries)
            self._update_pane_history(pane)
        return True

    def list_pane(self, pane_id: Optional[str] = None) -> List[FileEntry]:
        """List the pane's current directory and store the result.

        The result is not stored if the pane was navigated, switched or
        reloaded again while the listing ran.

        Args:
            pane_id: Pane identifier, defaults to the active pane

        Returns:
            Fresh list of FileEntry

        Raises:
            AccessError: If the directory cannot be listed
            NoDeviceBound: If the pane is remote and has no device
        """
        pane = self.pane(pane_id)
        request = self._begin_listing(pane)
        _, backend, path = request
        entries = backend.list(path)
        self._finish_listing(pane, request, entries)
        return entries

    def reload_pane_async(self, pane_id: Optional[str] = None) -> Future:
        """List the pane in a worker thread.

        A newer reload, a navigation or a backend switch of the same pane
        supersedes this one: the stale result is discarded and the future
        resolves to None.

        Returns:
            Future resolving to the entries, or None if superseded
        """
        pane = self.pane(pane_id)
        request = self._begin_listing(pane)
        _, backend, path = request

        def _impl() -> Optional[List[FileEntry]]:
            entries = backend.list(path)
            if not self._finish_listing(pane, request, entries):
                return None
            return entries

        return self._executor.submit(_impl)

    def select(self, name: str, pane_id: Optional[str] = None):
        return self.pane(pane_id).select(name)

    def navigate_into(self, name: Optional[str] = None, pane_id: Optional[str] = None) -> str:
        return self.pane(pane_id).navigate_into(name)

    def navigate_up(self, pane_id: Optional[str] = None) -> str:
        return self.pane(pane_id).navigate_up()

    def switch_backend(self, target: str, pane_id: Optional[str] = None):
        """Bind a pane to the local disk or to a Ready device.

        Args:
            target: "local" or a device serial
            pane_id: Pane identifier, defaults to the active pane

        Raises:
            NoDeviceBound: If the serial is not a Ready device
        """
        pane = self.pane(pane_id)
        if target == LOCAL_TARGET:
            pane.switch_backend(self.local_backend, self.local_root)
            return

        device = next((d for d in self.devices if d.serial == target), None)
        if device is None or not device.is_ready:
            raise NoDeviceBound(f"Device {target} is not ready")
        pane.switch_backend(self.remote_backend(target), self.remote_root)

    # ==========================================================================
    # DEVICE METHODS
    # ==========================================================================

    def refresh_devices(self) -> List[str]:
        """Re-list devices and fix up pane bindings.

        Remote panes whose device is gone fall back to the local root; a
        remote pane without a device binds to the first Ready device.

        Returns:
            Identifiers of panes whose binding changed
        """
        devices = self.bridge.list_devices()
        ready = [d.serial for d in devices if d.is_ready]
        changed = []

        with self._lock:
            self.devices = devices
            for pane_id, pane in self.panes.items():
                if pane.kind is not BackendKind.REMOTE:
                    continue
                if pane.serial and pane.serial not in ready:
                    self.log(f"Device {pane.serial} gone, switching {pane_id} to local")
                    pane.switch_backend(self.local_backend, self.local_root)
                    changed.append(pane_id)
                elif not pane.serial and ready:
                    preferred = self.pane_config.get(pane_id, {}).get("serial")
                    serial = preferred if preferred in ready else ready[0]
                    self.log(f"Binding {pane_id} to device {serial}")
                    pane.rebind_backend(self.remote_backend(serial))
                    changed.append(pane_id)
        return changed

    def on_device_list_changed(self) -> List[Future]:
        """Handle a device connect/disconnect notification.

        Returns:
            Futures of the pane reloads that were scheduled
        """
        self.log("Device list changed, refreshing...")
        changed = self.refresh_devices()
        futures = []
        for pane_id, pane in self.panes.items():
            if pane_id in changed or (pane.kind is BackendKind.REMOTE and pane.serial):
                futures.append(self.reload_pane_async(pane_id))
        return futures

    def start_device_tracking(self):
        """Watch adb for device changes; SSH hosts are polled on demand."""
        if not isinstance(self.bridge, AdbBridge) or self.tracker is not None:
            return
        self.tracker = DeviceTracker(
            self.on_device_list_changed, self.log, self.bridge.adb_path
        )
        self.tracker.start()

    # ==========================================================================
    # FILE OPERATIONS
    # ==========================================================================

    def _require_selection(self, pane: Pane, what: str = "file"):
        if pane.selection.is_empty:
            raise NavigationError(f"No {what} selected", pane.path)
        return pane.selection

    def transfer_selection(self, pane_id: Optional[str] = None) -> str:
        """Copy the selected entry of a pane into the other pane's directory.

        Returns:
            Destination path

        Raises:
            TransferError: If any transfer step fails
            UnsupportedCrossDevice: Remote to remote across devices
        """
        source_pane = self.pane(pane_id)
        dest_pane = self.other_pane(source_pane.pane_id)
        selection = self._require_selection(source_pane)
        dest_path = join_path(dest_pane.path, selection.entry.name)

        self.orchestrator.transfer(
            TransferEndpoint(
                source_pane.backend, selection.path, selection.entry.is_directory
            ),
            TransferEndpoint(dest_pane.backend, dest_path),
        )
        self.list_pane(dest_pane.pane_id)
        return dest_path

    def delete_selection(self, pane_id: Optional[str] = None):
        pane = self.pane(pane_id)
        selection = self._require_selection(pane)
        pane.backend.delete(selection.path, selection.entry.is_directory)
        pane.clear_selection()
        self.list_pane(pane.pane_id)

    def rename_selection(self, new_name: str, pane_id: Optional[str] = None) -> str:
        """Rename the selected entry within its directory.

        Args:
            new_name: New leaf name
            pane_id: Pane identifier, defaults to the active pane

        Returns:
            The new absolute path
        """
        pane = self.pane(pane_id)
        selection = self._require_selection(pane)
        new_name = new_name.strip()
        if new_name == selection.entry.name:
            return selection.path
        if not is_valid_leaf(new_name):
            raise RenameError(f"Invalid name '{new_name}'", selection.path)

        new_path = sibling_path(selection.path, new_name)
        pane.backend.rename(selection.path, new_path)
        self.list_pane(pane.pane_id)
        return new_path

    def compute_directory_size(self, pane_id: Optional[str] = None) -> int:
        pane = self.pane(pane_id)
        selection = self._require_selection(pane, "directory")
        if not selection.entry.is_directory:
            raise NavigationError(f"'{selection.entry.name}' is not a directory")
        size = pane.backend.stat_directory_size(selection.path)
        self.log(f"Size of {selection.path}: {format_size(size)}")
        return size

    def read_for_view(self, pane_id: Optional[str] = None, edit: bool = False) -> str:
        """Read the selected file for the viewer or editor.

        Args:
            pane_id: Pane identifier, defaults to the active pane
            edit: Open for editing instead of read-only viewing

        Returns:
            File content

        Raises:
            BinaryContentError: For files on the binary extension list
            ReadError: If the content cannot be read as text
        """
        pane = self.pane(pane_id)
        selection = self._require_selection(pane)
        entry = selection.entry
        if entry.is_directory:
            raise ReadError("Cannot view a directory", selection.path)
        if is_binary_name(entry.name):
            raise BinaryContentError("Not a text file", selection.path)

        content = pane.backend.read_file(selection.path)
        self.editing = EditingFile(
            pane.pane_id, pane.backend, selection.path, entry.name, read_only=not edit
        )
        return content

    def write_from_edit(self, content: str):
        """Save editor content back to the file it was read from."""
        editing = self.editing
        if editing is None or editing.read_only:
            raise WriteError("No file is open for editing")

        editing.backend.write_file(editing.path, content)
        self.editing = None
        pane = self.panes[editing.pane_id]
        if pane.backend is editing.backend:
            self.list_pane(pane.pane_id)

    def close_editor(self):
        self.editing = None

    def open_external(self, pane_id: Optional[str] = None) -> str:
        """Open the selected file with the system's default application.

        Remote files are pulled to a temp file first.

        Returns:
            Local path that was opened
        """
        pane = self.pane(pane_id)
        selection = self._require_selection(pane)

        local_path = selection.path
        if pane.kind is BackendKind.REMOTE:
            extension = os.path.splitext(selection.entry.name)[1]
            local_path = os.path.join(self.temp_dir, make_temp_name("view", extension))
            try:
                pane.backend.pull(selection.path, local_path)
            except BridgeError as e:
                raise ReadError(f"Cannot fetch file: {e}", selection.path) from e
            self.temp_files_to_clean.append(local_path)

        self._open_path(local_path)
        return local_path

    def _open_path(self, local_path: str):
        """Launch the platform's default viewer for a local path."""
        self.log(f"Opening file: {local_path}")
        if sys.platform == "win32":
            os.startfile(local_path)
        elif sys.platform == "darwin":  # macOS
            subprocess.Popen(["open", local_path])
        else:  # Linux and other Unix-like systems.
            process = subprocess.Popen(
                ["xdg-open", local_path],
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
            )
            stdout, stderr = process.communicate()
            if process.returncode != 0:
                error_message = stderr.decode().strip()
                self.log(f"xdg-open error: {error_message}")
                raise ReadError(f"Could not open file: {error_message}", local_path)

    # ==========================================================================
    # SHUTDOWN
    # ==========================================================================

    def _cleanup_temp_files(self):
        """Clean up temporary files created during the session."""
        while self.temp_files_to_clean:
            temp_file_path = self.temp_files_to_clean.pop()
            try:
                os.remove(temp_file_path)
                self.log(f"Cleaned up temporary file: {temp_file_path}")
            except OSError as e:
                self.log(f"Error cleaning up temporary file {temp_file_path}: {e}")

    def close(self):
        """Save config and release every resource held by the session."""
        self._save_config()
        if self.tracker is not None:
            self.tracker.stop()
        self._cleanup_temp_files()
        self.bridge.close()
        self._executor.shutdown(wait=False)


# ============================================================================
# COMMAND LINE
# ============================================================================

USAGE = """usage: gcommander devices
       gcommander ls LOCATION
       gcommander du LOCATION
       gcommander cp SOURCE DEST

LOCATION is a local path or SERIAL:PATH on a device."""


def _parse_location(app: GCommander, location: str):
    """Split a location argument into (backend, path)."""
    if ":" in location and not location.startswith("/"):
        serial, _, path = location.rpartition(":")
        return app.remote_backend(serial), normalize_path(path)
    return app.local_backend, os.path.abspath(location)


def _run_command(app: GCommander, args: List[str]) -> int:
    command = args[0]

    if command == "devices" and len(args) == 1:
        for device in app.bridge.list_devices():
            print(device.label)
        return 0

    if command == "ls" and len(args) == 2:
        backend, path = _parse_location(app, args[1])
        for entry in backend.list(path):
            size = "<DIR>" if entry.is_directory else format_size(entry.size)
            print(f"{size:>10}  {entry.name}")
        return 0

    if command == "du" and len(args) == 2:
        backend, path = _parse_location(app, args[1])
        print(format_size(backend.stat_directory_size(path)))
        return 0

    if command == "cp" and len(args) == 3:
        source_backend, source_path = _parse_location(app, args[1])
        dest_backend, dest_path = _parse_location(app, args[2])
        app.orchestrator.transfer(
            TransferEndpoint(source_backend, source_path),
            TransferEndpoint(dest_backend, dest_path),
        )
        return 0

    print(USAGE)
    return 2


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the command line."""
    args = list(sys.argv[1:] if argv is None else argv)
    if not args:
        print(USAGE)
        return 2

    app = GCommander(config_file=None)
    try:
        return _run_command(app, args)
    except GCommanderError as e:
        print(f"Error: {e}")
        return 1
    finally:
        app.close()


if __name__ == "__main__":
    sys.exit(main())
