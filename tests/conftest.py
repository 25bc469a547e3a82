"""
Pytest configuration and shared fixtures for arch-provisioner tests.

No test touches a real disk: every external tool goes through
``subprocess.run``, which the ``fake_run`` fixture replaces with a recorder.
"""

import os
import subprocess
from pathlib import Path
from typing import Callable, List, Optional
from unittest.mock import Mock

import pytest
from loguru import logger

from arch_provisioner.config.settings import ProvisionSettings


# ==============================================================================
# Command Fakes
# ==============================================================================


class CommandRecorder:
    """Stand-in for subprocess.run that records every command.

    Commands succeed unless they start with a prefix registered through
    ``fail()`` or ``raise_for()``. ``hook`` is called with every command
    before the result is returned, so tests can emulate side effects such
    as fallocate growing a file.
    """

    def __init__(self) -> None:
        self.calls: List[List[str]] = []
        self.kwargs: List[dict] = []
        self.hook: Optional[Callable[[List[str]], None]] = None
        self._failures: list = []
        self._errors: list = []

    def fail(self, *prefix: str, returncode: int = 1, stderr: str = "error") -> None:
        self._failures.append((tuple(prefix), returncode, stderr))

    def raise_for(self, *prefix: str, error: BaseException) -> None:
        self._errors.append((tuple(prefix), error))

    def commands(self, name: str) -> List[List[str]]:
        return [call for call in self.calls if call and call[0] == name]

    def index_of(self, command: List[str]) -> int:
        return self.calls.index(command)

    def __call__(self, command, *args, **kwargs) -> subprocess.CompletedProcess:
        command = list(command)
        self.calls.append(command)
        self.kwargs.append(kwargs)
        for prefix, error in self._errors:
            if tuple(command[: len(prefix)]) == prefix:
                raise error
        if self.hook is not None:
            self.hook(command)
        for prefix, returncode, stderr in self._failures:
            if tuple(command[: len(prefix)]) == prefix:
                return subprocess.CompletedProcess(command, returncode, "", stderr)
        return subprocess.CompletedProcess(command, 0, "", "")


@pytest.fixture
def fake_run(mocker) -> CommandRecorder:
    """Replace subprocess.run everywhere with a CommandRecorder."""
    recorder = CommandRecorder()
    mocker.patch("subprocess.run", side_effect=recorder)
    return recorder


@pytest.fixture
def resource_probes(mocker) -> dict:
    """Report every tracked mount and swap file as present by default."""
    return {
        "mounted": mocker.patch(
            "arch_provisioner.storage.mount_stack.is_mounted", return_value=True
        ),
        "swap": mocker.patch(
            "arch_provisioner.storage.mount_stack.is_swap_active", return_value=True
        ),
    }


@pytest.fixture
def no_settle_tools(mocker) -> Mock:
    """Pretend sync/partprobe/udevadm are not installed."""
    return mocker.patch("arch_provisioner.storage.block.shutil.which", return_value=None)


@pytest.fixture
def grow_allocations():
    """Hook that makes fallocate/dd produce a file of the requested size."""

    def hook(command: List[str]) -> None:
        if command[0] == "fallocate":
            os.truncate(command[3], int(command[2]))
        elif command[0] == "dd":
            args = dict(arg.split("=", 1) for arg in command[1:] if "=" in arg)
            os.truncate(args["of"], int(args["count"]))

    return hook


# ==============================================================================
# Settings Fixtures
# ==============================================================================


@pytest.fixture
def provision_settings(tmp_path) -> ProvisionSettings:
    """Small single-root settings assembled under a temporary mount root."""
    return ProvisionSettings.from_mapping(
        {
            "target_disk": "/dev/nvme0n1",
            "layout": "single-root",
            "swap_size_gib": 1,
            "mount_root": str(tmp_path / "mnt"),
            "hostname": "testhost",
            "username": "tester",
            "services": ["NetworkManager.service", "sshd.service"],
        }
    )


@pytest.fixture
def temp_settings_file(tmp_path) -> Path:
    """Path for a settings JSON file inside tmp_path."""
    return tmp_path / "config" / "settings.json"


# ==============================================================================
# Logging Fixtures
# ==============================================================================


@pytest.fixture
def log_records() -> List[dict]:
    """Collect loguru records emitted during the test."""
    records: List[dict] = []
    handler_id = logger.add(lambda message: records.append(message.record), level="TRACE")
    yield records
    logger.remove(handler_id)
