#!/usr/bin/env python3
"""
GBridge - Remote Shell Bridges

Line-oriented command execution and whole-file push/pull against a remote
device. `AdbBridge` drives Android devices through the `adb` program;
`SshBridge` exposes SSH hosts as devices through a pooled Paramiko
connection manager and SCP.

 Author: Gino Bogo
License: MIT
Version: 1.0
"""

from __future__ import annotations

import os
import socket
import subprocess
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from enum import Enum
from queue import Empty, Queue
from typing import Callable, Dict, Iterator, List, NamedTuple, Optional

# Third-party imports.
import paramiko
from scp import SCPClient, SCPException

from libs.g_errors import BridgeError, NoDeviceBound
from libs.g_escape import (
    escape_for_local_shell,
    escape_for_remote_shell,
    escape_for_remote_via_local,
)
from libs.g_log import log


# ============================================================================
# CONSTANTS
# ============================================================================

DEFAULT_TIMEOUT = 120
ADB_STAGING_DIR = "/data/local/tmp"
SSH_STAGING_DIR = "/tmp"
ADB_DEVICES_HEADER = "List of devices attached"


# ============================================================================
# DATA MODEL
# ============================================================================


class AuthState(Enum):
    READY = "ready"
    UNAUTHORIZED = "unauthorized"
    OFFLINE = "offline"


@dataclass(frozen=True)
class Device:
    """A remote device reported by a bridge."""

    serial: str
    auth_state: AuthState
    state: str = ""

    @property
    def is_ready(self) -> bool:
        return self.auth_state is AuthState.READY

    @property
    def label(self) -> str:
        return f"{self.serial} ({self.state or self.auth_state.value})"


class ShellResult(NamedTuple):
    stdout: str
    stderr: str
    exit_status: int

    @property
    def ok(self) -> bool:
        return self.exit_status == 0


def parse_device_list(output: str) -> List[Device]:
    """Parse `adb devices` output.

    Args:
        output: Raw stdout of `adb devices`

    Returns:
        List of Device
    """
    states = {
        "device": AuthState.READY,
        "unauthorized": AuthState.UNAUTHORIZED,
    }
    devices = []
    for line in output.splitlines():
        line = line.strip()
        # Skip the header and daemon start-up chatter.
        if not line or line.startswith("*") or line.startswith(ADB_DEVICES_HEADER):
            continue
        parts = line.split()
        if len(parts) < 2:
            continue
        serial, state = parts[0], parts[1]
        devices.append(Device(serial, states.get(state, AuthState.OFFLINE), state))
    return devices


# ============================================================================
# BRIDGE INTERFACE
# ============================================================================


class RemoteBridge:
    """Remote shell bridge interface shared by the adb and SSH bridges."""

    staging_dir = SSH_STAGING_DIR

    def __init__(self, logger_func=log, timeout: int = DEFAULT_TIMEOUT):
        """Initialize the bridge.

        Args:
            logger_func: A function to call for logging messages.
            timeout: Overall timeout in seconds for one bridge call.
        """
        self.log = logger_func
        self.timeout = timeout

    def _require_serial(self, serial: Optional[str]):
        if not serial:
            raise NoDeviceBound()

    def list_devices(self) -> List[Device]:
        raise NotImplementedError

    def run_remote_shell(self, serial: str, command_text: str) -> ShellResult:
        """Run `command_text` in the remote shell and return its output."""
        raise NotImplementedError

    def run_remote_program(self, serial: str, program: str, *paths: str) -> ShellResult:
        """Run a fixed program with path operands quoted for the remote shell.

        Args:
            serial: Device serial
            program: Trusted program text, e.g. "rm -rf"
            *paths: Path operands, quoted by this method

        Returns:
            ShellResult of the remote command
        """
        operands = " ".join(escape_for_remote_shell(path) for path in paths)
        return self.run_remote_shell(serial, f"{program} {operands}".strip())

    def push_file(self, serial: str, local_path: str, remote_path: str):
        raise NotImplementedError

    def pull_file(self, serial: str, remote_path: str, local_path: str):
        raise NotImplementedError

    def close(self):
        """Release bridge resources."""


# ============================================================================
# ADB BRIDGE
# ============================================================================


class AdbBridge(RemoteBridge):
    """Bridge that runs `adb` command lines through the local shell."""

    def __init__(
        self,
        logger_func=log,
        adb_path: str = "adb",
        staging_dir: str = ADB_STAGING_DIR,
        timeout: int = DEFAULT_TIMEOUT,
    ):
        """Initialize the AdbBridge.

        Args:
            logger_func: A function to call for logging messages.
            adb_path: adb executable name or path
            staging_dir: Device-writable directory for temporary files
            timeout: Overall timeout in seconds for one adb call
        """
        super().__init__(logger_func, timeout)
        self.adb_path = adb_path
        self.staging_dir = staging_dir

    def _adb(self, serial: Optional[str] = None) -> str:
        """Return the local command line prefix for adb."""
        prefix = escape_for_local_shell(self.adb_path)
        if serial:
            prefix += f" -s {escape_for_local_shell(serial)}"
        return prefix

    def _run_line(self, line: str) -> ShellResult:
        """Run a local shell command line.

        Args:
            line: Complete command line

        Returns:
            ShellResult with decoded output

        Raises:
            BridgeError: If the command times out or cannot be started
        """
        self.log(f"Running: {line}")
        try:
            result = subprocess.run(
                line,
                shell=True,
                capture_output=True,
                text=True,
                encoding="utf-8",
                errors="replace",
                timeout=self.timeout,
            )
        except subprocess.TimeoutExpired as e:
            raise BridgeError(
                f"Command timed out after {self.timeout}s", command=line
            ) from e
        except OSError as e:
            raise BridgeError(f"Could not run adb: {e}", command=line) from e
        return ShellResult(result.stdout, result.stderr, result.returncode)

    def _run_checked(self, line: str, action: str) -> ShellResult:
        result = self._run_line(line)
        if not result.ok:
            raise BridgeError(
                f"{action} failed",
                command=line,
                stdout=result.stdout,
                stderr=result.stderr,
                exit_status=result.exit_status,
            )
        return result

    def list_devices(self) -> List[Device]:
        """List devices known to the adb server; empty if adb fails."""
        try:
            result = self._run_line(f"{self._adb()} devices")
        except BridgeError as e:
            self.log(f"Error listing devices: {e}")
            return []
        if not result.ok:
            self.log(f"Error listing devices: {result.stderr.strip()}")
            return []
        return parse_device_list(result.stdout)

    def run_remote_shell(self, serial: str, command_text: str) -> ShellResult:
        self._require_serial(serial)
        line = f"{self._adb(serial)} shell {escape_for_local_shell(command_text)}"
        return self._run_line(line)

    def run_remote_program(self, serial: str, program: str, *paths: str) -> ShellResult:
        self._require_serial(serial)
        operands = " ".join(escape_for_remote_via_local(path) for path in paths)
        return self._run_line(f"{self._adb(serial)} shell {program} {operands}".strip())

    def push_file(self, serial: str, local_path: str, remote_path: str):
        self._require_serial(serial)
        # adb's sync protocol takes the remote path verbatim, no remote shell.
        self._run_checked(
            f"{self._adb(serial)} push {escape_for_local_shell(local_path)} "
            f"{escape_for_local_shell(remote_path)}",
            "Push",
        )

    def pull_file(self, serial: str, remote_path: str, local_path: str):
        self._require_serial(serial)
        self._run_checked(
            f"{self._adb(serial)} pull {escape_for_local_shell(remote_path)} "
            f"{escape_for_local_shell(local_path)}",
            "Pull",
        )


class DeviceTracker:
    """Watches `adb track-devices` and reports device connect/disconnect."""

    def __init__(
        self, on_change: Callable[[], None], logger_func=log, adb_path: str = "adb"
    ):
        """Initialize the DeviceTracker.

        Args:
            on_change: Called from the watcher thread on every change.
            logger_func: A function to call for logging messages.
            adb_path: adb executable name or path
        """
        self.on_change = on_change
        self.log = logger_func
        self.adb_path = adb_path
        self._process: Optional[subprocess.Popen] = None
        self._thread: Optional[threading.Thread] = None
        self._lock = threading.Lock()

    @property
    def running(self) -> bool:
        with self._lock:
            return self._process is not None

    def start(self):
        """Start tracking; does nothing if already running."""
        with self._lock:
            if self._process is not None:
                return
            self.log("Starting ADB device tracking...")
            try:
                self._process = subprocess.Popen(
                    [self.adb_path, "track-devices"],
                    stdout=subprocess.PIPE,
                    stderr=subprocess.DEVNULL,
                )
            except OSError as e:
                self.log(f"Could not start ADB device tracking: {e}")
                return
            self._thread = threading.Thread(
                target=self._watch, args=(self._process,), daemon=True
            )
            self._thread.start()

    def _watch(self, process: subprocess.Popen):
        # track-devices prints a length-prefixed block on every state change.
        fd = process.stdout.fileno()
        while True:
            try:
                chunk = os.read(fd, 4096)
            except OSError:
                break
            if not chunk:
                break
            self.log("ADB Tracker: Device list changed")
            try:
                self.on_change()
            except Exception as e:
                self.log(f"Device change handler failed: {e}")

        code = process.wait()
        self.log(f"ADB Tracker exited with code {code}")
        with self._lock:
            if self._process is process:
                self._process = None

    def stop(self):
        """Stop tracking."""
        with self._lock:
            process = self._process
        if process is not None:
            process.terminate()


# ============================================================================
# SSH BRIDGE
# ============================================================================


class ConnectionManager:
    """Manages SSH connections with pooling."""

    def __init__(self, logger_func, pool_size=2, timeout=DEFAULT_TIMEOUT):
        """Initialize the ConnectionManager.

        Args:
            logger_func: A function to call for logging messages.
            pool_size: Number of idle connections kept per server.
            timeout: TCP connect timeout in seconds.
        """
        self._pools: Dict[str, Queue] = {}
        self._lock = threading.Lock()
        self.log = logger_func
        self.pool_size = pool_size
        self.timeout = timeout

    def _get_server_key(self, host, user, port):
        return f"{user}@{host}:{port}"

    def _create_connection(self, host, user, password, port):
        """Create a new SSH connection.

        Returns:
            paramiko.SSHClient instance
        """
        self.log(f"Creating new SSH connection for {user}@{host}:{port}")
        client = paramiko.SSHClient()
        client.set_missing_host_key_policy(paramiko.AutoAddPolicy())
        client.connect(
            host,
            username=user,
            password=password,
            port=port,
            timeout=self.timeout,
        )
        return client

    @staticmethod
    def _is_alive(conn) -> bool:
        transport = conn.get_transport() if conn else None
        return bool(transport and transport.is_active())

    @contextmanager
    def get_connection(self, host, user, password, port) -> Iterator[paramiko.SSHClient]:
        """Get a connection from the pool as a context manager.

        Yields:
            An active paramiko.SSHClient instance
        """
        server_key = self._get_server_key(host, user, port)
        with self._lock:
            pool = self._pools.setdefault(server_key, Queue())

        conn = None
        try:
            conn = pool.get_nowait()
        except Empty:
            pass
        if conn is None or not self._is_alive(conn):
            if conn is not None:
                self.log(f"Connection for {server_key} is dead, creating new one")
                conn.close()
            conn = self._create_connection(host, user, password, port)

        try:
            yield conn
        finally:
            if self._is_alive(conn) and pool.qsize() < self.pool_size:
                pool.put(conn)
            else:
                conn.close()

    def close_all(self):
        """Close all managed SSH connections."""
        with self._lock:
            for server_key, pool in self._pools.items():
                self.log(f"Closing SSH pool {server_key}")
                while not pool.empty():
                    try:
                        pool.get_nowait().close()
                    except Empty:
                        break
            self._pools.clear()


class SshBridge(RemoteBridge):
    """Bridge that treats configured SSH hosts as remote devices."""

    def __init__(
        self,
        hosts: List[dict],
        logger_func=log,
        staging_dir: str = SSH_STAGING_DIR,
        timeout: int = DEFAULT_TIMEOUT,
        pool_size: int = 2,
        connection_manager: Optional[ConnectionManager] = None,
    ):
        """Initialize the SshBridge.

        Args:
            hosts: List of dicts {'host', 'port', 'username', 'password'}
            logger_func: A function to call for logging messages.
            staging_dir: Remote directory for temporary files
            timeout: Timeout in seconds for one remote call
            pool_size: Idle connections kept per host
            connection_manager: Shared ConnectionManager, created if omitted
        """
        super().__init__(logger_func, timeout)
        self.staging_dir = staging_dir
        self.connection_manager = connection_manager or ConnectionManager(
            logger_func, pool_size=pool_size, timeout=timeout
        )
        self.hosts: Dict[str, dict] = {}
        for host in hosts:
            port = int(host.get("port") or 22)
            serial = f"{host.get('username', '')}@{host['host']}:{port}"
            self.hosts[serial] = dict(host, port=port)

    @contextmanager
    def _connection(self, serial: str) -> Iterator[paramiko.SSHClient]:
        self._require_serial(serial)
        host = self.hosts.get(serial)
        if host is None:
            raise BridgeError(f"Unknown SSH host {serial}")
        with self.connection_manager.get_connection(
            host["host"], host.get("username"), host.get("password"), host["port"]
        ) as client:
            yield client

    def list_devices(self) -> List[Device]:
        devices = []
        for serial in self.hosts:
            try:
                with self._connection(serial):
                    devices.append(Device(serial, AuthState.READY, "connected"))
            except paramiko.AuthenticationException as e:
                self.log(f"SSH authentication failed for {serial}: {e}")
                devices.append(Device(serial, AuthState.UNAUTHORIZED, "unauthorized"))
            except (paramiko.SSHException, OSError) as e:
                self.log(f"SSH host {serial} is offline: {e}")
                devices.append(Device(serial, AuthState.OFFLINE, "offline"))
        return devices

    def run_remote_shell(self, serial: str, command_text: str) -> ShellResult:
        self.log(f"Running on {serial}: {command_text}")
        try:
            with self._connection(serial) as client:
                stdin, stdout, stderr = client.exec_command(
                    command_text, timeout=self.timeout
                )
                out = stdout.read().decode("utf-8", errors="replace")
                err = stderr.read().decode("utf-8", errors="replace")
                status = stdout.channel.recv_exit_status()
        except (paramiko.SSHException, socket.timeout, OSError) as e:
            raise BridgeError(f"SSH command failed: {e}", command=command_text) from e
        return ShellResult(out, err, status)

    def push_file(self, serial: str, local_path: str, remote_path: str):
        self.log(f"Uploading {local_path} to {serial}:{remote_path}")
        try:
            with self._connection(serial) as client:
                with SCPClient(client.get_transport(), socket_timeout=self.timeout) as scp:
                    scp.put(local_path, remote_path, recursive=os.path.isdir(local_path))
        except (SCPException, paramiko.SSHException, socket.timeout, OSError) as e:
            raise BridgeError(f"Push failed: {e}", command=f"scp {local_path}") from e

    def pull_file(self, serial: str, remote_path: str, local_path: str):
        self.log(f"Downloading {serial}:{remote_path} to {local_path}")
        try:
            with self._connection(serial) as client:
                with SCPClient(client.get_transport(), socket_timeout=self.timeout) as scp:
                    scp.get(remote_path, local_path, recursive=True)
        except (SCPException, paramiko.SSHException, socket.timeout, OSError) as e:
            raise BridgeError(f"Pull failed: {e}", command=f"scp {remote_path}") from e

    def close(self):
        self.connection_manager.close_all()
