import os
import shutil
import subprocess
import sys
import tempfile
from pathlib import Path

import pytest

# Add project root to Python path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from libs.g_bridge import AuthState, Device, RemoteBridge, ShellResult


class ScriptedBridge(RemoteBridge):
    """Bridge double returning canned results and recording every call."""

    def __init__(self, logger_func):
        super().__init__(logger_func)
        self.staging_dir = "/data/local/tmp"
        self.devices = [Device("SERIAL1", AuthState.READY, "device")]
        self.results = []
        self.default_result = ShellResult("", "", 0)
        self.commands = []
        self.pushes = []
        self.pulls = []
        self.pull_content = b""

    def list_devices(self):
        return list(self.devices)

    def run_remote_shell(self, serial, command_text):
        self._require_serial(serial)
        self.commands.append((serial, command_text))
        if self.results:
            return self.results.pop(0)
        return self.default_result

    def push_file(self, serial, local_path, remote_path):
        self._require_serial(serial)
        self.pushes.append((serial, local_path, remote_path))

    def pull_file(self, serial, remote_path, local_path):
        self._require_serial(serial)
        self.pulls.append((serial, remote_path, local_path))
        Path(local_path).write_bytes(self.pull_content)


class LoopbackBridge(RemoteBridge):
    """Bridge double whose "device" is the local machine.

    Commands run through a real `sh -c`; push and pull are local copies.
    """

    def __init__(self, logger_func, staging_dir):
        super().__init__(logger_func)
        self.staging_dir = staging_dir
        self.commands = []

    def list_devices(self):
        return [Device("LOOP", AuthState.READY, "device")]

    def run_remote_shell(self, serial, command_text):
        self._require_serial(serial)
        self.commands.append((serial, command_text))
        completed = subprocess.run(
            ["sh", "-c", command_text], capture_output=True, text=True
        )
        return ShellResult(completed.stdout, completed.stderr, completed.returncode)

    def push_file(self, serial, local_path, remote_path):
        self._require_serial(serial)
        shutil.copy2(local_path, remote_path)

    def pull_file(self, serial, remote_path, local_path):
        self._require_serial(serial)
        if os.path.isdir(remote_path):
            shutil.copytree(remote_path, local_path, dirs_exist_ok=True)
        else:
            shutil.copy2(remote_path, local_path)


@pytest.fixture
def log_messages():
    """Collect log messages instead of printing them."""
    return []


@pytest.fixture
def logger(log_messages):
    return log_messages.append


@pytest.fixture
def work_dir():
    """Temporary directory removed after the test."""
    path = Path(tempfile.mkdtemp())
    yield path
    shutil.rmtree(path, ignore_errors=True)


@pytest.fixture
def scripted_bridge(logger):
    return ScriptedBridge(logger)


@pytest.fixture
def loopback_bridge(logger, work_dir):
    staging_dir = work_dir / "staging"
    staging_dir.mkdir()
    return LoopbackBridge(logger, str(staging_dir))
