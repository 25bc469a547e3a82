"""Swap file provisioning on a Btrfs subvolume.

A swap file on a copy-on-write filesystem must have copy-on-write disabled
before any data is written to it, and must be fully allocated before mkswap.

Steps:
    1. Truncate the file to zero bytes
    2. chattr +C (disable copy-on-write while the file is still empty)
    3. fallocate the full size, falling back to a dd zero-fill
    4. Verify the size is exactly what was requested
    5. chmod 0600, mkswap -L <label>
    6. swapon through the mount stack, as a SWAP_ACTIVATION entry
"""

from __future__ import annotations

import os
import subprocess

from arch_provisioner.domain.models import MountEntry, SwapFile
from arch_provisioner.logging import LoggerFactory
from arch_provisioner.storage.devices import command_error, human_size, run_command
from arch_provisioner.storage.exceptions import SwapSetupFailed, SwapSizeMismatch
from arch_provisioner.storage.mount_stack import MountStack


log = LoggerFactory.for_swap()

DEFAULT_SWAP_FILENAME = "swapfile"
SWAP_FILE_MODE = 0o600


class SwapProvisioner:
    """Creates swap files on mounts owned by a mount stack."""

    def __init__(self, stack: MountStack) -> None:
        self.stack = stack

    def create_and_activate(
        self,
        owner: MountEntry,
        size_bytes: int,
        label: str,
        filename: str = DEFAULT_SWAP_FILENAME,
    ) -> SwapFile:
        """Create a ``size_bytes`` swap file inside ``owner`` and activate it.

        Raises:
            SwapSetupFailed: If the owner is not mounted by this stack or a
                preparation step fails
            SwapSizeMismatch: If neither allocation path produced the exact size
            AcquisitionFailed: If swapon fails
        """
        if size_bytes <= 0:
            raise SwapSetupFailed(owner.target, "sizing", f"invalid size {size_bytes}")
        if self.stack.find(owner.target) != owner:
            raise SwapSetupFailed(owner.target, "ownership", "owner is not on the mount stack")

        path = os.path.join(owner.target, filename)
        log.info(f"Setting up {human_size(size_bytes)} swapfile at {path}")

        self._reset_file(path)
        self._run(["chattr", "+C", path], path, "chattr")
        self._allocate(path, size_bytes)

        actual = os.stat(path).st_size
        if actual != size_bytes:
            raise SwapSizeMismatch(path, size_bytes, actual)

        os.chmod(path, SWAP_FILE_MODE)
        self._run(["mkswap", "-L", label, path], path, "mkswap")

        self.stack.acquire(MountEntry.swap(path, owner=owner.target))
        log.info("Swapfile setup complete.")
        return SwapFile(path=path, size_bytes=size_bytes, label=label, owner=owner.target)

    def _reset_file(self, path: str) -> None:
        try:
            with open(path, "wb"):
                pass
        except OSError as error:
            raise SwapSetupFailed(path, "truncate", str(error)) from error

    def _allocate(self, path: str, size_bytes: int) -> None:
        try:
            result = run_command(["fallocate", "-l", str(size_bytes), path], check=False)
            if result.returncode == 0:
                return
            reason = command_error(result)
        except OSError as error:
            reason = str(error)
        log.warning(f"fallocate failed for swap ({reason}), using dd as fallback...")

        # dd starts from an empty file, never from a partial fallocate
        self._reset_file(path)
        self._run(
            [
                "dd",
                "if=/dev/zero",
                f"of={path}",
                "bs=1M",
                f"count={size_bytes}",
                "iflag=count_bytes",
                "status=none",
            ],
            path,
            "zero-fill",
        )

    def _run(self, command: list[str], path: str, step: str) -> None:
        try:
            result = run_command(command, check=False)
        except (OSError, subprocess.SubprocessError) as error:
            raise SwapSetupFailed(path, step, str(error)) from error
        if result.returncode != 0:
            raise SwapSetupFailed(path, step, command_error(result))
