"""Partition table, filesystem and subvolume creation.

This module wraps the destructive block-device tools the provisioner runs
before anything is mounted.

Operations:
    - wipe_table(): Delete the existing partition table (failure is a warning)
    - write_table(): Write the planned GPT in one sfdisk invocation
    - wait_for_partition_nodes(): Poll until the kernel exposes the new nodes
    - format_filesystem(): Create FAT32 or Btrfs on a partition
    - create_subvolumes(): Create Btrfs subvolumes on a scratch mount

Implementation Details:
    - sfdisk receives the whole table on stdin, so a table is either written
      completely or not at all
    - partprobe/udevadm failures are suppressed; the node poll decides
    - Formatting failures are fatal, nothing is mounted before every
      partition is formatted
"""

from __future__ import annotations

import contextlib
import shutil
import subprocess
import time
from typing import Sequence

from arch_provisioner.domain.models import FilesystemKind, MountEntry, PartitionSpec
from arch_provisioner.logging import LoggerFactory
from arch_provisioner.storage import devices
from arch_provisioner.storage.devices import command_error, partition_node, run_command
from arch_provisioner.storage.exceptions import (
    DeviceNodesNotReady,
    FormatFailed,
    PartitionWriteFailed,
    ReleaseWarning,
)
from arch_provisioner.storage.layouts import SCRATCH_MOUNT_OPTIONS
from arch_provisioner.storage.mount_stack import MountStack
from arch_provisioner.storage.planner import render_sfdisk_script
from arch_provisioner.storage.release import TABLE_ABSENT_MARKERS, release_idempotent


log = LoggerFactory.for_block()
poll_log = log.bind(tags=["block", "poll"])

NODE_POLL_ATTEMPTS = 10
NODE_POLL_INTERVAL = 0.5


def wipe_table(device: str) -> bool:
    """Delete every partition on ``device``.

    An empty disk makes sfdisk fail, so any failure here is only a warning.

    Returns:
        True if a table was deleted, False if there was nothing to delete or
        the deletion failed
    """
    log.info(f"Deleting existing partition table on {device}")
    try:
        return release_idempotent(
            ["sfdisk", "--delete", device],
            resource=f"partition table on {device}",
            absent_markers=TABLE_ABSENT_MARKERS,
        )
    except (ReleaseWarning, OSError) as error:
        log.warning(f"sfdisk --delete failed on {device} (disk might be empty, proceeding): {error}")
        return False


def write_table(device: str, specs: Sequence[PartitionSpec]) -> None:
    """Write a GPT holding ``specs`` to ``device``.

    Raises:
        PartitionWriteFailed: If sfdisk fails; no partial-table recovery is attempted
    """
    script = render_sfdisk_script(list(specs))
    log.info(f"Writing GPT with {len(specs)} partitions to {device}")
    log.debug(f"sfdisk script:\n{script}")
    try:
        result = run_command(
            ["sfdisk", "--label", "gpt", device], check=False, input_text=script
        )
    except OSError as error:
        raise PartitionWriteFailed(device, str(error)) from error
    if result.returncode != 0:
        raise PartitionWriteFailed(device, command_error(result))


def _settle(device: str) -> None:
    for cmd in (
        ["sync"],
        ["partprobe", device],
        ["udevadm", "settle", "--timeout=10"],
    ):
        if shutil.which(cmd[0]):
            with contextlib.suppress(subprocess.CalledProcessError, OSError):
                run_command(cmd, log_command=False)


def wait_for_partition_nodes(
    device: str,
    expected_count: int,
    attempts: int = NODE_POLL_ATTEMPTS,
    interval: float = NODE_POLL_INTERVAL,
) -> list[str]:
    """Wait until partitions 1..expected_count of ``device`` exist as block devices.

    Returns:
        Partition nodes in table order

    Raises:
        DeviceNodesNotReady: If the nodes are still missing after ``attempts`` polls
    """
    nodes = [partition_node(device, index) for index in range(1, expected_count + 1)]
    log.info("Partitioning complete. Waiting for kernel to recognize changes...")
    _settle(device)

    missing = nodes
    for attempt in range(1, attempts + 1):
        missing = [node for node in nodes if not devices.is_block_device(node)]
        if not missing:
            log.debug(f"Partition nodes ready after {attempt} attempt(s): {', '.join(nodes)}")
            return nodes
        poll_log.trace(f"Attempt {attempt}/{attempts}: waiting for {', '.join(missing)}")
        if attempt < attempts:
            time.sleep(interval)

    raise DeviceNodesNotReady(device, missing, attempts)


def _format_command(node: str, kind: FilesystemKind, label: str) -> list[str]:
    if kind == FilesystemKind.VFAT:
        return ["mkfs.fat", "-F32", "-n", label, node]
    if kind == FilesystemKind.BTRFS:
        return ["mkfs.btrfs", "-f", "-L", label, node]
    raise FormatFailed(node, str(kind), "unsupported filesystem")


def format_filesystem(node: str, kind: FilesystemKind, label: str) -> None:
    """Create a ``kind`` filesystem labelled ``label`` on ``node``.

    Raises:
        FormatFailed: If the mkfs tool fails
    """
    command = _format_command(node, kind, label)
    log.info(f"Formatting {node} as {kind.value} ({label})")
    try:
        result = run_command(command, check=False)
    except OSError as error:
        raise FormatFailed(node, kind.value, str(error)) from error
    if result.returncode != 0:
        log.error(f"Command: {' '.join(command)}")
        raise FormatFailed(node, kind.value, command_error(result))


def create_subvolumes(node: str, subvolumes: Sequence[str], scratch_mount: str) -> list[str]:
    """Create Btrfs ``subvolumes`` on ``node``.

    The raw volume is mounted at ``scratch_mount`` on a private mount stack
    that is unwound before returning, whatever happens.

    Returns:
        Subvolumes that were created; failures are logged as warnings since a
        subvolume may already exist
    """
    created = []
    with MountStack(name=f"scratch {node}") as scratch:
        scratch.acquire(MountEntry(scratch_mount, node, SCRATCH_MOUNT_OPTIONS))
        log.info(f"Creating Btrfs subvolumes on {node}: {' '.join(subvolumes)}")
        for subvolume in subvolumes:
            path = f"{scratch_mount.rstrip('/')}/{subvolume}"
            result = run_command(["btrfs", "subvolume", "create", path], check=False)
            if result.returncode != 0:
                log.warning(
                    f"Subvolume {subvolume} creation failed on {node} (may already exist): "
                    f"{command_error(result)}"
                )
                continue
            created.append(subvolume)
    return created
