"""Domain model for disk provisioning.

Type-safe objects passed between the planner, the block device driver,
the mount stack and the orchestrator.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import PurePosixPath


MIB = 1024**2
GIB = 1024**3


# ==============================================================================
# Partition Domain
# ==============================================================================


class PartitionRole(Enum):
    """Purpose of a partition in the provisioned system."""

    EFI = "efi"
    ROOT = "root"
    HOME = "home"


class FilesystemKind(Enum):
    """Filesystem created on a partition."""

    VFAT = "vfat"  # FAT32 EFI system partition
    BTRFS = "btrfs"  # Copy-on-write volume holding subvolumes


class LayoutVariant(Enum):
    """Supported partition/subvolume plans."""

    SINGLE_ROOT = "single-root"
    SPLIT_ROOT_HOME = "split-root-home"


EFI_SYSTEM_GUID = "C12A7328-F81F-11D2-BA4B-00A0C93EC93B"
LINUX_FILESYSTEM_GUID = "0FC63DAF-8483-4772-8E79-3D69D8477DE4"


@dataclass(frozen=True)
class PartitionSpec:
    """One GPT entry produced by the planner.

    A ``size_bytes`` of None means the partition consumes the remaining
    capacity; such a spec is always last in a plan.
    """

    name: str  # GPT partition name, e.g. "ARCH_EFI"
    size_bytes: int | None
    filesystem: FilesystemKind
    role: PartitionRole
    label: str  # Filesystem label, e.g. "ARCH_ROOT"

    @property
    def is_remainder(self) -> bool:
        return self.size_bytes is None

    @property
    def type_guid(self) -> str:
        if self.role == PartitionRole.EFI:
            return EFI_SYSTEM_GUID
        return LINUX_FILESYSTEM_GUID

    def sfdisk_line(self) -> str:
        """Render the spec as one line of an sfdisk script."""
        fields = []
        if self.size_bytes is not None:
            fields.append(f"size={self.size_bytes // MIB}MiB")
        fields.append(f"type={self.type_guid}")
        fields.append(f'name="{self.name}"')
        return ",".join(fields)


# ==============================================================================
# Mount Stack Domain
# ==============================================================================


class MountKind(Enum):
    """Kind of resource tracked by the mount stack."""

    BLOCK_MOUNT = "mount"
    SWAP_ACTIVATION = "swap"


class EntryState(Enum):
    """Lifecycle of a mount stack entry."""

    PLANNED = "planned"
    ACQUIRED = "acquired"
    RELEASED = "released"


@dataclass(frozen=True)
class MountEntry:
    """A mount point or swap activation.

    For SWAP_ACTIVATION entries ``target`` is the swap file and ``owner`` is
    the target of the mount that holds it.
    """

    target: str
    source: str
    options: str = ""
    kind: MountKind = MountKind.BLOCK_MOUNT
    owner: str | None = None

    @property
    def is_swap(self) -> bool:
        return self.kind == MountKind.SWAP_ACTIVATION

    def contains(self, path: str) -> bool:
        """True if ``path`` is this entry's target or lies beneath it."""
        base = PurePosixPath(self.target)
        candidate = PurePosixPath(path)
        return candidate == base or base in candidate.parents

    def describe(self) -> str:
        if self.is_swap:
            return f"swap {self.target}"
        return f"{self.source} on {self.target}"

    @classmethod
    def swap(cls, path: str, owner: str) -> MountEntry:
        return cls(
            target=path,
            source=path,
            kind=MountKind.SWAP_ACTIVATION,
            owner=owner,
        )


@dataclass(frozen=True)
class SwapFile:
    """A swap file living on a mount owned by the mount stack."""

    path: str
    size_bytes: int
    label: str
    owner: str


@dataclass(frozen=True)
class SubvolumeMount:
    """Where a Btrfs subvolume is mounted, relative to the mount root."""

    subvolume: str  # e.g. "@log"
    relative_target: str  # e.g. "var/log"; "" for the root itself
    role: PartitionRole  # Which partition carries the subvolume


# ==============================================================================
# Orchestrator Domain
# ==============================================================================


class Phase(Enum):
    """Phases of one provisioning run.

    PLAN through DONE form a single forward path; any failure moves to
    UNWINDING and then TERMINATED.
    """

    PLAN = "plan"
    TABLE = "table"
    FORMAT = "format"
    MOUNT = "mount"
    SWAP = "swap"
    INSTALL = "install"
    CONFIGURE = "configure"
    ACCOUNTS = "accounts"
    DONE = "done"
    UNWINDING = "unwinding"
    TERMINATED = "terminated"

    @property
    def is_terminal(self) -> bool:
        return self in (Phase.DONE, Phase.TERMINATED)


FORWARD_PHASES = (
    Phase.PLAN,
    Phase.TABLE,
    Phase.FORMAT,
    Phase.MOUNT,
    Phase.SWAP,
    Phase.INSTALL,
    Phase.CONFIGURE,
    Phase.ACCOUNTS,
    Phase.DONE,
)
