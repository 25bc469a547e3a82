"""Settings storage for provisioning runs."""

from __future__ import annotations

import dataclasses
import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping, Optional

from arch_provisioner.domain.models import GIB


SETTINGS_PATH = Path(
    os.environ.get(
        "ARCH_PROVISIONER_SETTINGS_PATH",
        Path.home() / ".config" / "arch-provisioner" / "settings.json",
    )
)

DEFAULT_CORE_PACKAGES = [
    "base", "base-devel", "linux", "linux-headers", "linux-firmware", "sof-firmware",
    "intel-ucode", "nvidia", "nvidia-utils",
    "efibootmgr", "btrfs-progs", "grub", "grub-btrfs", "reflector",
    "networkmanager", "pipewire", "pipewire-alsa", "pipewire-pulse", "wireplumber",
    "openssh", "man-db", "man-pages", "git", "rsync", "bluez", "bluez-utils", "nano", "fd",
    "timeshift", "wireless-regdb", "lm_sensors", "smartmontools",
]  # fmt: skip

DEFAULT_EXTRA_PACKAGES = [
    "gnome-shell", "gnome-session", "nautilus", "gnome-control-center",
    "gnome-terminal", "gnome-tweaks", "xdg-desktop-portal-gnome", "gdm",
]  # fmt: skip

DEFAULT_SERVICES = [
    "NetworkManager.service",
    "sshd.service",
    "bluetooth.service",
    "reflector.timer",
    "fstrim.timer",
    "smartd.service",
    "systemd-timesyncd.service",
    "gdm.service",
]

# Default values - use these constants instead of hardcoding values elsewhere
DEFAULT_SWAP_SIZE_GIB = 16
DEFAULT_EFI_SIZE_GIB = 1

DEFAULT_SETTINGS: dict[str, Any] = {
    "target_disk": "/dev/nvme0n1",
    "layout": "single-root",
    "efi_size_gib": DEFAULT_EFI_SIZE_GIB,
    "root_size_gib": None,
    "swap_size_gib": DEFAULT_SWAP_SIZE_GIB,
    "swap_label": "ARCH_SWAP",
    "mount_root": "/mnt",
    "hostname": None,
    "username": None,
    "default_hostname": "archclean",
    "default_username": "builder",
    "time_zone": "Asia/Jakarta",
    "console_keymap": "us",
    "system_locale": "en_US.UTF-8",
    "mirror_country": "Indonesia",
    "bootloader_id": "ARCH",
    "kernel_params": "nvidia-drm.modeset=1 nvme_core.default_ps_max_latency_us=0",
    "initramfs_modules": [],
    "core_packages": DEFAULT_CORE_PACKAGES,
    "extra_packages": DEFAULT_EXTRA_PACKAGES,
    "services": DEFAULT_SERVICES,
    "run_sensors_detect": True,
    "node_poll_attempts": 10,
    "node_poll_interval": 0.5,
}


@dataclass
class ProvisionSettings:
    """Everything one provisioning run needs to know up front."""

    target_disk: str = DEFAULT_SETTINGS["target_disk"]
    layout: str = DEFAULT_SETTINGS["layout"]
    efi_size_gib: int = DEFAULT_EFI_SIZE_GIB
    root_size_gib: Optional[int] = None
    swap_size_gib: int = DEFAULT_SWAP_SIZE_GIB
    swap_label: str = DEFAULT_SETTINGS["swap_label"]
    mount_root: str = DEFAULT_SETTINGS["mount_root"]
    hostname: Optional[str] = None
    username: Optional[str] = None
    default_hostname: str = DEFAULT_SETTINGS["default_hostname"]
    default_username: str = DEFAULT_SETTINGS["default_username"]
    time_zone: str = DEFAULT_SETTINGS["time_zone"]
    console_keymap: str = DEFAULT_SETTINGS["console_keymap"]
    system_locale: str = DEFAULT_SETTINGS["system_locale"]
    mirror_country: str = DEFAULT_SETTINGS["mirror_country"]
    bootloader_id: str = DEFAULT_SETTINGS["bootloader_id"]
    kernel_params: str = DEFAULT_SETTINGS["kernel_params"]
    initramfs_modules: list[str] = field(default_factory=list)
    core_packages: list[str] = field(default_factory=lambda: list(DEFAULT_CORE_PACKAGES))
    extra_packages: list[str] = field(default_factory=lambda: list(DEFAULT_EXTRA_PACKAGES))
    services: list[str] = field(default_factory=lambda: list(DEFAULT_SERVICES))
    run_sensors_detect: bool = True
    node_poll_attempts: int = 10
    node_poll_interval: float = 0.5

    @classmethod
    def from_mapping(cls, values: Mapping[str, Any]) -> ProvisionSettings:
        """Build settings from a mapping, ignoring unknown keys."""
        known = {item.name for item in dataclasses.fields(cls)}
        merged = {**DEFAULT_SETTINGS, **values}
        return cls(
            **{
                key: list(value) if isinstance(value, list) else value
                for key, value in merged.items()
                if key in known
            }
        )

    def with_overrides(self, **overrides: Any) -> ProvisionSettings:
        """Copy with every non-None override applied."""
        changes = {key: value for key, value in overrides.items() if value is not None}
        return dataclasses.replace(self, **changes)

    @property
    def efi_size_bytes(self) -> int:
        return int(self.efi_size_gib * GIB)

    @property
    def root_size_bytes(self) -> Optional[int]:
        if self.root_size_gib is None:
            return None
        return int(self.root_size_gib * GIB)

    @property
    def swap_size_bytes(self) -> int:
        return int(self.swap_size_gib * GIB)

    @property
    def packages(self) -> list[str]:
        return [*self.core_packages, *self.extra_packages]


def load_settings(path: Optional[Path] = None) -> ProvisionSettings:
    """Load settings from ``path`` (or SETTINGS_PATH) on top of the defaults.

    A missing, unreadable or malformed file yields the defaults.
    """
    settings_path = path or SETTINGS_PATH
    if not settings_path.exists():
        return ProvisionSettings.from_mapping({})
    try:
        data = json.loads(settings_path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError):
        return ProvisionSettings.from_mapping({})
    if not isinstance(data, dict):
        return ProvisionSettings.from_mapping({})
    return ProvisionSettings.from_mapping(data)


def save_settings(settings: ProvisionSettings, path: Optional[Path] = None) -> None:
    settings_path = path or SETTINGS_PATH
    settings_path.parent.mkdir(parents=True, exist_ok=True)
    settings_path.write_text(
        json.dumps(dataclasses.asdict(settings), indent=2, sort_keys=True),
        encoding="utf-8",
    )
