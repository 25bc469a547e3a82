"""Partition planning for the supported layout variants.

Pure functions: no device is touched here. A plan that cannot fit on the
device fails with InvalidLayout before any destructive command runs.

Layouts:
    single-root:      EFI (fixed) + ROOT (remainder, or fixed if root_size given)
    split-root-home:  EFI (fixed) + ROOT (fixed, required) + HOME (remainder)
"""

from __future__ import annotations

from typing import Optional, Union

from arch_provisioner.domain.models import (
    GIB,
    MIB,
    FilesystemKind,
    LayoutVariant,
    PartitionRole,
    PartitionSpec,
)
from arch_provisioner.logging import LoggerFactory
from arch_provisioner.storage.exceptions import InvalidLayout


log = LoggerFactory.for_planner()

DEFAULT_EFI_SIZE = 1 * GIB
# 1MiB alignment at the start plus the backup GPT at the end
GPT_OVERHEAD = 2 * MIB
MIN_REMAINDER_SIZE = 1 * GIB

PARTITION_NAMES = {
    LayoutVariant.SINGLE_ROOT: {
        PartitionRole.EFI: "ARCH_EFI",
        PartitionRole.ROOT: "ARCH_ROOT",
    },
    LayoutVariant.SPLIT_ROOT_HOME: {
        PartitionRole.EFI: "ARCH_EFI_PART",
        PartitionRole.ROOT: "ARCH_ROOT_PART",
        PartitionRole.HOME: "ARCH_HOME_PART",
    },
}

FILESYSTEM_LABELS = {
    PartitionRole.EFI: "ARCH_EFI",
    PartitionRole.ROOT: "ARCH_ROOT",
    PartitionRole.HOME: "ARCH_HOME",
}


def resolve_variant(variant: Union[str, LayoutVariant]) -> LayoutVariant:
    if isinstance(variant, LayoutVariant):
        return variant
    try:
        return LayoutVariant(variant)
    except ValueError:
        known = ", ".join(item.value for item in LayoutVariant)
        raise InvalidLayout(f"Unknown layout '{variant}' (expected one of: {known})") from None


def _check_size(role: PartitionRole, size: int) -> None:
    if size <= 0:
        raise InvalidLayout(f"{role.value} partition size must be positive, got {size}")
    if size % MIB:
        raise InvalidLayout(f"{role.value} partition size must be whole MiB, got {size} bytes")


def _spec(
    variant: LayoutVariant,
    role: PartitionRole,
    size: Optional[int],
    filesystem: FilesystemKind,
) -> PartitionSpec:
    return PartitionSpec(
        name=PARTITION_NAMES[variant][role],
        size_bytes=size,
        filesystem=filesystem,
        role=role,
        label=FILESYSTEM_LABELS[role],
    )


def plan_partitions(
    device: str,
    variant: Union[str, LayoutVariant],
    capacity_bytes: int,
    efi_size: int = DEFAULT_EFI_SIZE,
    root_size: Optional[int] = None,
) -> list[PartitionSpec]:
    """Plan the GPT entries for ``device``.

    Args:
        device: Target disk (only used for messages)
        variant: Layout variant name or enum
        capacity_bytes: Disk capacity in bytes
        efi_size: EFI system partition size in bytes
        root_size: Fixed root size in bytes; None lets root take the remainder

    Returns:
        Ordered partition specs; a remainder-consuming spec is always last

    Raises:
        InvalidLayout: If the layout is unknown or does not fit the device
    """
    layout = resolve_variant(variant)
    available = capacity_bytes - GPT_OVERHEAD
    if available <= 0:
        raise InvalidLayout(f"{device} is too small to hold a GPT ({capacity_bytes} bytes)")

    _check_size(PartitionRole.EFI, efi_size)
    specs = [_spec(layout, PartitionRole.EFI, efi_size, FilesystemKind.VFAT)]

    if layout == LayoutVariant.SPLIT_ROOT_HOME:
        if root_size is None:
            raise InvalidLayout("split-root-home needs a fixed root size")
        _check_size(PartitionRole.ROOT, root_size)
        specs.append(_spec(layout, PartitionRole.ROOT, root_size, FilesystemKind.BTRFS))
        specs.append(_spec(layout, PartitionRole.HOME, None, FilesystemKind.BTRFS))
    else:
        if root_size is not None:
            _check_size(PartitionRole.ROOT, root_size)
        specs.append(_spec(layout, PartitionRole.ROOT, root_size, FilesystemKind.BTRFS))

    fixed_total = sum(spec.size_bytes for spec in specs if spec.size_bytes is not None)
    if fixed_total > available:
        raise InvalidLayout(
            f"Fixed partitions need {fixed_total} bytes but {device} "
            f"only has {available} bytes available"
        )
    if specs[-1].is_remainder and available - fixed_total < MIN_REMAINDER_SIZE:
        raise InvalidLayout(
            f"Only {available - fixed_total} bytes left on {device} for "
            f"{specs[-1].role.value}, need at least {MIN_REMAINDER_SIZE}"
        )

    log.debug(
        f"Planned {len(specs)} partitions on {device} ({layout.value}): "
        + ", ".join(spec.sfdisk_line() for spec in specs)
    )
    return specs


def render_sfdisk_script(specs: list[PartitionSpec]) -> str:
    """sfdisk input creating every planned partition in one invocation."""
    return "".join(f"{spec.sfdisk_line()}\n" for spec in specs)
