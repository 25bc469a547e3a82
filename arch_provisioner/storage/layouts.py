"""Fixed subvolume and mount-tree plans for each layout variant.

The mount plan is returned in dependency order: the root subvolume first,
nested subvolumes after it, and the EFI partition (mounted below /boot)
last. The mount stack relies on this order for its LIFO unwind.
"""

from __future__ import annotations

import posixpath

from arch_provisioner.domain.models import (
    LayoutVariant,
    MountEntry,
    PartitionRole,
    SubvolumeMount,
)


BTRFS_MOUNT_OPTIONS = "rw,noatime,ssd,compress=zstd:3,discard=async,space_cache=v2"
SCRATCH_MOUNT_OPTIONS = "defaults,discard=async"

EFI_MOUNT_OPTIONS = {
    LayoutVariant.SINGLE_ROOT: (
        "rw,noatime,fmask=0133,dmask=0022,iocharset=iso8859-1,errors=remount-ro"
    ),
    LayoutVariant.SPLIT_ROOT_HOME: "rw,noatime,fmask=0077,dmask=0077",
}

EFI_RELATIVE_TARGET = "boot/efi"
SWAP_SUBVOLUME = "@swap"

SUBVOLUME_MOUNTS = {
    LayoutVariant.SINGLE_ROOT: (
        SubvolumeMount("@", "", PartitionRole.ROOT),
        SubvolumeMount("@home", "home", PartitionRole.ROOT),
        SubvolumeMount("@log", "var/log", PartitionRole.ROOT),
        SubvolumeMount("@pkg", "var/cache/pacman/pkg", PartitionRole.ROOT),
        SubvolumeMount("@tmp", "tmp", PartitionRole.ROOT),
        SubvolumeMount(SWAP_SUBVOLUME, "swap", PartitionRole.ROOT),
    ),
    LayoutVariant.SPLIT_ROOT_HOME: (
        SubvolumeMount("@", "", PartitionRole.ROOT),
        SubvolumeMount("@log", "var/log", PartitionRole.ROOT),
        SubvolumeMount("@pkg", "var/cache/pacman/pkg", PartitionRole.ROOT),
        SubvolumeMount("@tmp", "tmp", PartitionRole.ROOT),
        SubvolumeMount(SWAP_SUBVOLUME, "swap", PartitionRole.ROOT),
        SubvolumeMount("@home", "home", PartitionRole.HOME),
    ),
}


def subvolumes_for(variant: LayoutVariant, role: PartitionRole) -> list[str]:
    """Subvolumes to create on the partition with ``role``."""
    return [item.subvolume for item in SUBVOLUME_MOUNTS[variant] if item.role == role]


def target_path(mount_root: str, relative_target: str) -> str:
    if not relative_target:
        return posixpath.normpath(mount_root)
    return posixpath.join(posixpath.normpath(mount_root), relative_target)


def swap_mount_target(variant: LayoutVariant, mount_root: str) -> str:
    for item in SUBVOLUME_MOUNTS[variant]:
        if item.subvolume == SWAP_SUBVOLUME:
            return target_path(mount_root, item.relative_target)
    raise KeyError(f"{variant.value} has no swap subvolume")


def build_mount_plan(
    variant: LayoutVariant,
    nodes: dict[PartitionRole, str],
    mount_root: str = "/mnt",
) -> list[MountEntry]:
    """Mount entries for the final system layout, in push order.

    Args:
        variant: Layout variant
        nodes: Partition device node per role
        mount_root: Where the new root is assembled
    """
    plan = []
    for item in SUBVOLUME_MOUNTS[variant]:
        plan.append(
            MountEntry(
                target=target_path(mount_root, item.relative_target),
                source=nodes[item.role],
                options=f"{BTRFS_MOUNT_OPTIONS},subvol={item.subvolume}",
            )
        )
    plan.append(
        MountEntry(
            target=target_path(mount_root, EFI_RELATIVE_TARGET),
            source=nodes[PartitionRole.EFI],
            options=EFI_MOUNT_OPTIONS[variant],
        )
    )
    return plan
