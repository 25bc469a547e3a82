"""Account creation inside the provisioned root."""

from __future__ import annotations

from arch_provisioner.chroot.executor import RemoteExecutor
from arch_provisioner.logging import LoggerFactory
from arch_provisioner.storage.exceptions import ConfigurationStepFailed
from arch_provisioner.system import templates


log = LoggerFactory.for_system()


def create_accounts(
    executor: RemoteExecutor,
    root: str,
    username: str,
    run_sensors_detect: bool = False,
) -> None:
    """ACCOUNTS phase: root password, wheel user, sudoers, optional sensors.

    Raises:
        ConfigurationStepFailed: If a password prompt or user command fails
    """
    log.warning("You will now be prompted to set the ROOT password:")
    executor.run_interactive(root, ["passwd", "root"])

    log.info(f"Creating user '{username}'...")
    executor.run_sequence(root, templates.user_commands(username))
    log.warning(f"You will now be prompted to set the password for user '{username}':")
    executor.run_interactive(root, ["passwd", username])
    executor.run_sequence(root, templates.sudoers_commands())

    if run_sensors_detect:
        log.warning("Running sensors-detect in chroot, accepting defaults.")
        try:
            executor.run_sequence(root, [templates.SENSORS_DETECT_COMMAND])
        except ConfigurationStepFailed as error:
            log.warning(f"sensors-detect had issues or timed out, configure it later: {error}")
