"""Run configuration commands inside the provisioned root.

Every command is logged before it runs so the operations log alone shows
which step failed. The sequence halts on the first non-zero exit.
"""

from __future__ import annotations

import subprocess
from typing import Sequence

from arch_provisioner.logging import LoggerFactory
from arch_provisioner.storage.devices import command_error, run_command
from arch_provisioner.storage.exceptions import ConfigurationStepFailed


log = LoggerFactory.for_chroot()

CHROOT_TOOL = "arch-chroot"
CHROOT_SHELL = "/bin/bash"


class RemoteExecutor:
    """Change-rooted command runner for one mounted root."""

    def __init__(self, chroot_tool: str = CHROOT_TOOL, shell: str = CHROOT_SHELL) -> None:
        self.chroot_tool = chroot_tool
        self.shell = shell

    def command_for(self, root: str, command: str) -> list[str]:
        return [self.chroot_tool, root, self.shell, "-c", command]

    def run_sequence(self, root: str, commands: Sequence[str]) -> int:
        """Run ``commands`` in order inside ``root``.

        Returns:
            Number of commands executed

        Raises:
            ConfigurationStepFailed: On the first command that fails; later
                commands are not run
        """
        for index, command in enumerate(commands):
            log.info(f"CHROOTCMD: {command}")
            try:
                result = run_command(self.command_for(root, command), check=False)
            except OSError as error:
                log.error(f"Chroot command #{index} could not start: {error}")
                raise ConfigurationStepFailed(index, command) from error
            if result.returncode != 0:
                log.error(
                    f"Chroot command #{index} failed ({result.returncode}): "
                    f"{command_error(result)}"
                )
                raise ConfigurationStepFailed(index, command, result.returncode)
        return len(commands)

    def run_interactive(self, root: str, argv: Sequence[str]) -> None:
        """Run ``argv`` inside ``root`` attached to the terminal (e.g. passwd).

        Raises:
            ConfigurationStepFailed: If the command exits non-zero
        """
        command = " ".join(argv)
        log.info(f"CHROOTCMD (interactive): {command}")
        try:
            completed = subprocess.run([self.chroot_tool, root, *argv], check=False)
        except OSError as error:
            raise ConfigurationStepFailed(0, command) from error
        if completed.returncode != 0:
            raise ConfigurationStepFailed(0, command, completed.returncode)
