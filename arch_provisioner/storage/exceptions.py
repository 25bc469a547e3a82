"""Custom exceptions for provisioning operations.

This module defines a hierarchy of exceptions so the orchestrator can tell
planning failures (nothing touched yet) from fatal acquisition failures
(unwind required) and from non-fatal release warnings (logged during unwind).

Exception Hierarchy:
    ProvisionError (base)
        ├── PlanningError
        │   ├── InvalidLayout
        │   └── UserAborted
        ├── DeviceError
        │   ├── DeviceNotFoundError
        │   ├── PartitionWriteFailed
        │   ├── DeviceNodesNotReady
        │   └── FormatFailed
        ├── MountError
        │   ├── AcquisitionFailed
        │   └── ReleaseWarning
        ├── SwapError
        │   ├── SwapSetupFailed
        │   └── SwapSizeMismatch
        ├── InstallFailed
        └── ConfigurationStepFailed
    ProvisionInterrupted (BaseException, raised from signal handlers)

Usage:
    from arch_provisioner.storage.exceptions import InvalidLayout

    if fixed_total > available:
        raise InvalidLayout(f"{fixed_total} bytes do not fit")
"""


class ProvisionError(Exception):
    """Base exception for all provisioning operations."""



class PlanningError(ProvisionError):
    """Raised before any destructive action; nothing needs unwinding."""



class InvalidLayout(PlanningError):
    """Requested partition layout cannot be satisfied by the device."""



class UserAborted(PlanningError):
    """Operator declined the destructive confirmation."""

    def __init__(self, step: str):
        self.step = step
        super().__init__(f"User aborted ({step})")


class DeviceError(ProvisionError):
    """Base exception for block-device errors."""



class DeviceNotFoundError(DeviceError):
    """Device was not found or does not exist."""

    def __init__(self, device_name: str):
        self.device_name = device_name
        super().__init__(f"Device not found: {device_name}")


class PartitionWriteFailed(DeviceError):
    """Partition table could not be written."""

    def __init__(self, device_name: str, reason: str = ""):
        self.device_name = device_name
        self.reason = reason
        msg = f"Failed to write partition table on {device_name}"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)


class DeviceNodesNotReady(DeviceError):
    """Kernel did not expose the partition nodes in time."""

    def __init__(self, device_name: str, missing: list[str], attempts: int):
        self.device_name = device_name
        self.missing = missing
        self.attempts = attempts
        super().__init__(
            f"Partition nodes for {device_name} not ready after {attempts} "
            f"attempts: {', '.join(missing)}"
        )


class FormatFailed(DeviceError):
    """Filesystem creation failed."""

    def __init__(self, node: str, filesystem: str, reason: str = ""):
        self.node = node
        self.filesystem = filesystem
        self.reason = reason
        msg = f"Failed to format {node} as {filesystem}"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)


class MountError(ProvisionError):
    """Base exception for mount-stack errors."""



class AcquisitionFailed(MountError):
    """A mount or swap activation could not be acquired."""

    def __init__(self, target: str, reason: str):
        self.target = target
        self.reason = reason
        super().__init__(f"Failed to acquire {target}: {reason}")


class ReleaseWarning(MountError):
    """A release attempt failed; logged during unwind, never fatal."""

    def __init__(self, resource: str, reason: str):
        self.resource = resource
        self.reason = reason
        super().__init__(f"Failed to release {resource}: {reason}")


class SwapError(ProvisionError):
    """Base exception for swap file provisioning."""



class SwapSetupFailed(SwapError):
    """A swap preparation step failed."""

    def __init__(self, path: str, step: str, reason: str = ""):
        self.path = path
        self.step = step
        self.reason = reason
        msg = f"Swap setup failed for {path} during {step}"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)


class SwapSizeMismatch(SwapError):
    """Backing file does not have the requested size before mkswap."""

    def __init__(self, path: str, expected: int, actual: int):
        self.path = path
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Swap file {path} is {actual} bytes, expected exactly {expected}"
        )


class InstallFailed(ProvisionError):
    """Base system installation failed."""



class ConfigurationStepFailed(ProvisionError):
    """A command run inside the provisioned root returned non-zero."""

    def __init__(self, index: int, command: str, returncode: int | None = None):
        self.index = index
        self.command = command
        self.returncode = returncode
        super().__init__(f"Chroot command #{index} failed: [{command}]")


class ProvisionInterrupted(BaseException):
    """Process received a termination signal while provisioning."""

    def __init__(self, signum: int):
        self.signum = signum
        super().__init__(f"Interrupted by signal {signum}")
