"""Live-environment preparation and base system installation."""

from __future__ import annotations

import subprocess
from pathlib import Path
from typing import Sequence

from arch_provisioner.logging import LoggerFactory
from arch_provisioner.storage.devices import command_error, run_command
from arch_provisioner.storage.exceptions import InstallFailed


log = LoggerFactory.for_system()

MIRRORLIST_PATH = "/etc/pacman.d/mirrorlist"


def _run_optional(command: list[str], warning: str) -> bool:
    try:
        result = run_command(command, check=False)
    except OSError as error:
        log.warning(f"{warning}: {error}")
        return False
    if result.returncode != 0:
        log.warning(f"{warning}: {command_error(result)}")
        return False
    return True


def prepare_live_environment(keymap: str) -> None:
    """Enable NTP and load the console keymap on the live system."""
    log.info("Setting up live environment (NTP, keymap)...")
    _run_optional(["timedatectl", "set-ntp", "true"], "Enabling NTP failed")
    _run_optional(["loadkeys", keymap], f"Loading keymap {keymap} failed")


def refresh_mirrors(country: str) -> bool:
    log.info(f"Optimizing mirrorlist (Country: {country})...")
    return _run_optional(
        [
            "reflector",
            "--country", country,
            "--protocol", "https",
            "--age", "12",
            "--sort", "rate",
            "--threads", "0",
            "--latest", "20",
            "--save", MIRRORLIST_PATH,
        ],
        "Reflector failed. Pacstrap might use existing mirrors or fail",
    )  # fmt: skip


def install_packages(root: str, packages: Sequence[str]) -> None:
    """pacstrap ``packages`` into ``root``.

    Raises:
        InstallFailed: If pacstrap fails
    """
    log.info(f"Installing base system via pacstrap ({len(packages)} packages)...")
    command = ["pacstrap", root, *packages]
    log.debug(f"Running command: {' '.join(command)}")
    try:
        # Not captured: pacstrap progress goes straight to the terminal
        completed = subprocess.run(command, check=False)
    except OSError as error:
        raise InstallFailed(f"pacstrap could not start: {error}") from error
    if completed.returncode != 0:
        raise InstallFailed(f"pacstrap failed with code {completed.returncode}")


def generate_fstab(root: str) -> Path:
    """Append a UUID-based fstab for everything mounted under ``root``.

    Raises:
        InstallFailed: If genfstab fails
    """
    log.info("Generating fstab...")
    result = run_command(["genfstab", "-U", "-p", root], check=False, log_output=False)
    if result.returncode != 0:
        raise InstallFailed(f"genfstab failed: {command_error(result)}")
    fstab = Path(root) / "etc" / "fstab"
    fstab.parent.mkdir(parents=True, exist_ok=True)
    with fstab.open("a", encoding="utf-8") as handle:
        handle.write(result.stdout)
    log.debug(f"Content of generated {fstab}:\n{result.stdout}")
    return fstab


def install_base_system(root: str, packages: Sequence[str], mirror_country: str) -> None:
    """INSTALL phase: mirrors, packages, fstab."""
    refresh_mirrors(mirror_country)
    install_packages(root, packages)
    generate_fstab(root)
