"""Block device queries and the shared command runner.

Every external tool invoked by the provisioner goes through ``run_command``
so commands and their output land in the debug log, and so tests can patch a
single seam per module.

Queries:
    - partition_node(): Partition device path for a disk and index
    - get_device_size(): Disk capacity in bytes from sysfs
    - is_mounted(): Whether a path is an active mountpoint (/proc/mounts)
    - is_swap_active(): Whether a path is an active swap area (/proc/swaps)
"""

from __future__ import annotations

import os
import subprocess
from pathlib import Path
from typing import Optional, Sequence

from arch_provisioner.logging import LoggerFactory
from arch_provisioner.storage.exceptions import DeviceNotFoundError


log = LoggerFactory.for_system()

SECTOR_SIZE = 512


def run_command(
    command: Sequence[str],
    check: bool = True,
    log_output: bool = True,
    log_command: bool = True,
    input_text: Optional[str] = None,
) -> subprocess.CompletedProcess:
    if log_command:
        log.debug(f"Running command: {' '.join(command)}")
    try:
        result = subprocess.run(
            list(command),
            check=check,
            text=True,
            capture_output=True,
            input=input_text,
        )
    except subprocess.CalledProcessError as error:
        log.debug(f"Command failed: {' '.join(command)}")
        if error.stdout:
            log.debug(f"stdout: {error.stdout.strip()}")
        if error.stderr:
            log.debug(f"stderr: {error.stderr.strip()}")
        raise
    if result.stdout and (log_output or result.returncode != 0):
        log.debug(f"stdout: {result.stdout.strip()}")
    if result.stderr and (log_output or result.returncode != 0):
        log.debug(f"stderr: {result.stderr.strip()}")
    if log_command:
        log.debug(f"Command completed with return code {result.returncode}")
    return result


def command_error(result: subprocess.CompletedProcess) -> str:
    """Best available failure message from a finished command."""
    stderr = (result.stderr or "").strip()
    stdout = (result.stdout or "").strip()
    return stderr or stdout or f"exit code {result.returncode}"


def human_size(size_bytes):
    if size_bytes is None:
        return "0B"
    size = float(size_bytes)
    for unit in ["B", "KiB", "MiB", "GiB", "TiB"]:
        if size < 1024.0:
            return f"{size:.1f}{unit}"
        size /= 1024.0
    return f"{size:.1f}PiB"


def get_device_name(device: str) -> str:
    return Path(device).name


def partition_node(device: str, index: int) -> str:
    """Return the node of partition ``index`` (1-based) on ``device``.

    Disks whose name ends in a digit (nvme0n1, mmcblk0) take a "p" separator.
    """
    partition_suffix = "p" if device[-1].isdigit() else ""
    return f"{device}{partition_suffix}{index}"


def get_device_size(device: str) -> int:
    """Capacity of ``device`` in bytes, read from sysfs.

    Raises:
        DeviceNotFoundError: If the kernel does not know the device
    """
    path = Path("/sys/class/block") / get_device_name(device) / "size"
    try:
        sectors = int(path.read_text().strip())
    except (OSError, ValueError) as error:
        raise DeviceNotFoundError(device) from error
    # Linux always reports sizes in 512-byte sectors here
    return sectors * SECTOR_SIZE


def is_block_device(path: str) -> bool:
    return Path(path).is_block_device()


def is_mounted(path: str) -> bool:
    """Check if a path is currently an active mountpoint."""
    target = os.path.normpath(path)
    try:
        with open("/proc/mounts", "r", encoding="utf-8") as mounts_file:
            for line in mounts_file:
                parts = line.split()
                if len(parts) > 1 and parts[1] == target:
                    return True
    except FileNotFoundError:
        return os.path.ismount(target)
    return False


def is_swap_active(path: str) -> bool:
    """Check if a file or device is listed as an active swap area."""
    target = os.path.normpath(path)
    try:
        with open("/proc/swaps", "r", encoding="utf-8") as swaps_file:
            for line in swaps_file.readlines()[1:]:  # skip header
                parts = line.split()
                if parts and parts[0] == target:
                    return True
    except FileNotFoundError:
        return False
    return False


def is_root_user() -> bool:
    return os.geteuid() == 0
