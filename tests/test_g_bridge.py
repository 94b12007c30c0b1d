from contextlib import contextmanager

import paramiko
import pytest
from termcolor import cprint

from libs.g_bridge import (
    AdbBridge,
    AuthState,
    ShellResult,
    SshBridge,
    parse_device_list,
)
from libs.g_errors import BridgeError, NoDeviceBound

ADB_DEVICES_OUTPUT = """* daemon not running; starting now at tcp:5037
* daemon started successfully
List of devices attached
emulator-5554\tdevice
R58M123ABC\tunauthorized
192.168.1.20:5555\toffline
XYZ\trecovery

"""


class RecordingAdbBridge(AdbBridge):
    """AdbBridge that records command lines instead of running them."""

    def __init__(self, logger, result=None):
        super().__init__(logger)
        self.lines = []
        self.result = result or ShellResult("", "", 0)

    def _run_line(self, line):
        self.lines.append(line)
        return self.result


class TestDeviceList:
    """Test suite for `adb devices` parsing."""

    def test_states_are_mapped(self):
        """Test mapping of adb states to authorization states."""
        cprint(f"\n--- {self.test_states_are_mapped.__doc__}", "yellow")
        devices = parse_device_list(ADB_DEVICES_OUTPUT)
        assert [d.serial for d in devices] == [
            "emulator-5554",
            "R58M123ABC",
            "192.168.1.20:5555",
            "XYZ",
        ]
        assert [d.auth_state for d in devices] == [
            AuthState.READY,
            AuthState.UNAUTHORIZED,
            AuthState.OFFLINE,
            AuthState.OFFLINE,
        ]
        assert devices[0].is_ready
        assert devices[3].label == "XYZ (recovery)"

    def test_empty_output(self):
        """Test that no devices yields an empty list."""
        cprint(f"\n--- {self.test_empty_output.__doc__}", "yellow")
        assert parse_device_list("List of devices attached\n\n") == []


class TestAdbBridge:
    """Test suite for adb command line construction."""

    def test_shell_command_is_locally_quoted(self, logger):
        """Test that compound commands are quoted once for the local shell."""
        cprint(f"\n--- {self.test_shell_command_is_locally_quoted.__doc__}", "yellow")
        bridge = RecordingAdbBridge(logger)
        bridge.run_remote_shell("emulator-5554", 'cd "/sdcard" && ls')
        assert bridge.lines == [
            "'adb' -s 'emulator-5554' shell 'cd \"/sdcard\" && ls'"
        ]

    def test_program_operands_are_double_quoted(self, logger):
        """Test that each path operand is quoted for both shells."""
        cprint(f"\n--- {self.test_program_operands_are_double_quoted.__doc__}", "yellow")
        bridge = RecordingAdbBridge(logger)
        bridge.run_remote_program("S1", "mv", "/sdcard/it's.txt", "/sdcard/b.txt")
        assert bridge.lines == [
            "'adb' -s 'S1' shell mv '\"/sdcard/it'\\''s.txt\"' '\"/sdcard/b.txt\"'"
        ]

    def test_push_and_pull(self, logger):
        """Test that push and pull quote paths for the local shell only."""
        cprint(f"\n--- {self.test_push_and_pull.__doc__}", "yellow")
        bridge = RecordingAdbBridge(logger)
        bridge.push_file("S1", "/tmp/a b.tar", "/data/local/tmp/a b.tar")
        bridge.pull_file("S1", "/sdcard/x.txt", "/tmp/x.txt")
        assert bridge.lines == [
            "'adb' -s 'S1' push '/tmp/a b.tar' '/data/local/tmp/a b.tar'",
            "'adb' -s 'S1' pull '/sdcard/x.txt' '/tmp/x.txt'",
        ]

    def test_failed_push_raises(self, logger):
        """Test that a non-zero push exit raises BridgeError."""
        cprint(f"\n--- {self.test_failed_push_raises.__doc__}", "yellow")
        bridge = RecordingAdbBridge(logger, ShellResult("", "no space left", 1))
        with pytest.raises(BridgeError) as excinfo:
            bridge.push_file("S1", "/tmp/a", "/sdcard/a")
        assert excinfo.value.exit_status == 1
        assert "no space left" in str(excinfo.value)

    def test_missing_serial(self, logger):
        """Test that every device call requires a serial."""
        cprint(f"\n--- {self.test_missing_serial.__doc__}", "yellow")
        bridge = RecordingAdbBridge(logger)
        with pytest.raises(NoDeviceBound):
            bridge.run_remote_shell(None, "ls")
        with pytest.raises(NoDeviceBound):
            bridge.pull_file("", "/a", "/b")
        assert bridge.lines == []

    def test_list_devices_failure(self, logger):
        """Test that a failing adb binary yields no devices."""
        cprint(f"\n--- {self.test_list_devices_failure.__doc__}", "yellow")
        bridge = RecordingAdbBridge(logger, ShellResult("", "adb: not found", 127))
        assert bridge.list_devices() == []

    def test_timeout(self, logger):
        """Test that a command exceeding the timeout raises BridgeError."""
        cprint(f"\n--- {self.test_timeout.__doc__}", "yellow")
        bridge = AdbBridge(logger, adb_path="sleep", timeout=0.2)
        with pytest.raises(BridgeError) as excinfo:
            bridge._run_line("sleep 2")
        assert "timed out" in str(excinfo.value)


class FakeChannel:
    def __init__(self, status):
        self.status = status

    def recv_exit_status(self):
        return self.status


class FakeStream:
    def __init__(self, data, status=0):
        self.data = data
        self.channel = FakeChannel(status)

    def read(self):
        return self.data


class FakeClient:
    def __init__(self):
        self.commands = []

    def exec_command(self, command, timeout=None):
        self.commands.append(command)
        return None, FakeStream(b"out\n", 3), FakeStream(b"err\n")


class FakeConnectionManager:
    """Connection manager double handing out one fake client."""

    def __init__(self, error=None):
        self.client = FakeClient()
        self.error = error
        self.closed = False

    @contextmanager
    def get_connection(self, host, user, password, port):
        if self.error is not None:
            raise self.error
        yield self.client

    def close_all(self):
        self.closed = True


class TestSshBridge:
    """Test suite for the SSH bridge."""

    HOSTS = [{"host": "10.0.0.5", "username": "pi", "password": "secret"}]

    def test_hosts_are_devices(self, logger):
        """Test that configured hosts are reported as Ready devices."""
        cprint(f"\n--- {self.test_hosts_are_devices.__doc__}", "yellow")
        bridge = SshBridge(self.HOSTS, logger, connection_manager=FakeConnectionManager())
        devices = bridge.list_devices()
        assert [d.serial for d in devices] == ["pi@10.0.0.5:22"]
        assert devices[0].is_ready

    def test_authentication_failure(self, logger):
        """Test that rejected credentials map to Unauthorized."""
        cprint(f"\n--- {self.test_authentication_failure.__doc__}", "yellow")
        manager = FakeConnectionManager(paramiko.AuthenticationException("denied"))
        bridge = SshBridge(self.HOSTS, logger, connection_manager=manager)
        assert bridge.list_devices()[0].auth_state is AuthState.UNAUTHORIZED

    def test_unreachable_host(self, logger):
        """Test that unreachable hosts map to Offline."""
        cprint(f"\n--- {self.test_unreachable_host.__doc__}", "yellow")
        manager = FakeConnectionManager(OSError("No route to host"))
        bridge = SshBridge(self.HOSTS, logger, connection_manager=manager)
        assert bridge.list_devices()[0].auth_state is AuthState.OFFLINE

    def test_run_remote_program(self, logger):
        """Test command text, output decoding and exit status."""
        cprint(f"\n--- {self.test_run_remote_program.__doc__}", "yellow")
        manager = FakeConnectionManager()
        bridge = SshBridge(self.HOSTS, logger, connection_manager=manager)
        result = bridge.run_remote_program("pi@10.0.0.5:22", "rm -rf", "/home/pi/old dir")
        assert manager.client.commands == ['rm -rf "/home/pi/old dir"']
        assert result == ShellResult("out\n", "err\n", 3)
        bridge.close()
        assert manager.closed

    def test_unknown_host(self, logger):
        """Test that an unconfigured serial raises BridgeError."""
        cprint(f"\n--- {self.test_unknown_host.__doc__}", "yellow")
        bridge = SshBridge(self.HOSTS, logger, connection_manager=FakeConnectionManager())
        with pytest.raises(BridgeError):
            bridge.run_remote_shell("nobody@nowhere:22", "ls")
