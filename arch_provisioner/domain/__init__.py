"""Domain models for disk provisioning."""

from __future__ import annotations

from .models import (
    FORWARD_PHASES,
    GIB,
    MIB,
    EntryState,
    FilesystemKind,
    LayoutVariant,
    MountEntry,
    MountKind,
    PartitionRole,
    PartitionSpec,
    Phase,
    SubvolumeMount,
    SwapFile,
)


__all__ = [
    "FORWARD_PHASES",
    "GIB",
    "MIB",
    "EntryState",
    "FilesystemKind",
    "LayoutVariant",
    "MountEntry",
    "MountKind",
    "PartitionRole",
    "PartitionSpec",
    "Phase",
    "SubvolumeMount",
    "SwapFile",
]
