"""Tests for domain/models.py."""

import pytest

from arch_provisioner.domain.models import (
    EFI_SYSTEM_GUID,
    GIB,
    LINUX_FILESYSTEM_GUID,
    FilesystemKind,
    MountEntry,
    MountKind,
    PartitionRole,
    PartitionSpec,
    Phase,
)


class TestPartitionSpec:
    def test_sfdisk_line_fixed_size(self):
        spec = PartitionSpec("ARCH_EFI", GIB, FilesystemKind.VFAT, PartitionRole.EFI, "ARCH_EFI")

        assert spec.sfdisk_line() == f'size=1024MiB,type={EFI_SYSTEM_GUID},name="ARCH_EFI"'
        assert not spec.is_remainder

    def test_sfdisk_line_remainder(self):
        spec = PartitionSpec("ARCH_ROOT", None, FilesystemKind.BTRFS, PartitionRole.ROOT, "ARCH_ROOT")

        assert spec.sfdisk_line() == f'type={LINUX_FILESYSTEM_GUID},name="ARCH_ROOT"'
        assert spec.is_remainder

    def test_frozen(self):
        spec = PartitionSpec("X", GIB, FilesystemKind.BTRFS, PartitionRole.HOME, "X")

        with pytest.raises(AttributeError):
            spec.size_bytes = 0


class TestMountEntry:
    def test_contains(self):
        entry = MountEntry("/mnt", "/dev/sda2")

        assert entry.contains("/mnt")
        assert entry.contains("/mnt/var/log")
        assert not entry.contains("/mntx")
        assert not entry.contains("/")

    def test_swap_entry(self):
        entry = MountEntry.swap("/mnt/swap/swapfile", owner="/mnt/swap")

        assert entry.is_swap
        assert entry.kind == MountKind.SWAP_ACTIVATION
        assert entry.owner == "/mnt/swap"
        assert entry.describe() == "swap /mnt/swap/swapfile"

    def test_block_mount_describe(self):
        assert MountEntry("/mnt", "/dev/sda2").describe() == "/dev/sda2 on /mnt"


class TestPhase:
    def test_terminal_phases(self):
        assert Phase.DONE.is_terminal
        assert Phase.TERMINATED.is_terminal
        assert not Phase.UNWINDING.is_terminal
        assert not Phase.MOUNT.is_terminal
