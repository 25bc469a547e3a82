"""Tests for storage exception classes."""

import pytest

from arch_provisioner.storage.exceptions import (
    AcquisitionFailed,
    ConfigurationStepFailed,
    DeviceError,
    DeviceNodesNotReady,
    DeviceNotFoundError,
    FormatFailed,
    InstallFailed,
    InvalidLayout,
    MountError,
    PartitionWriteFailed,
    PlanningError,
    ProvisionError,
    ProvisionInterrupted,
    ReleaseWarning,
    SwapError,
    SwapSetupFailed,
    SwapSizeMismatch,
    UserAborted,
)


class TestExceptionHierarchy:
    """Test exception inheritance hierarchy."""

    @pytest.mark.parametrize(
        "error_class,parent",
        [
            (PlanningError, ProvisionError),
            (InvalidLayout, PlanningError),
            (UserAborted, PlanningError),
            (DeviceNotFoundError, DeviceError),
            (PartitionWriteFailed, DeviceError),
            (DeviceNodesNotReady, DeviceError),
            (FormatFailed, DeviceError),
            (AcquisitionFailed, MountError),
            (ReleaseWarning, MountError),
            (SwapSetupFailed, SwapError),
            (SwapSizeMismatch, SwapError),
            (InstallFailed, ProvisionError),
            (ConfigurationStepFailed, ProvisionError),
        ],
    )
    def test_inheritance(self, error_class, parent):
        assert issubclass(error_class, parent)
        assert issubclass(error_class, ProvisionError)

    def test_interrupt_is_not_an_exception(self):
        """ProvisionInterrupted must bypass `except Exception` handlers."""
        assert issubclass(ProvisionInterrupted, BaseException)
        assert not issubclass(ProvisionInterrupted, Exception)


class TestExceptionMessages:
    def test_user_aborted(self):
        error = UserAborted("Confirmation 1/2 failed")

        assert error.step == "Confirmation 1/2 failed"
        assert str(error) == "User aborted (Confirmation 1/2 failed)"

    def test_partition_write_failed_with_and_without_reason(self):
        assert str(PartitionWriteFailed("/dev/sda")) == "Failed to write partition table on /dev/sda"
        assert str(PartitionWriteFailed("/dev/sda", "busy")).endswith(": busy")

    def test_device_nodes_not_ready(self):
        error = DeviceNodesNotReady("/dev/sda", ["/dev/sda2"], 10)

        assert str(error) == "Partition nodes for /dev/sda not ready after 10 attempts: /dev/sda2"

    def test_format_failed(self):
        error = FormatFailed("/dev/sda1", "vfat", "no such device")

        assert str(error) == "Failed to format /dev/sda1 as vfat: no such device"

    def test_acquisition_and_release(self):
        assert str(AcquisitionFailed("/mnt", "busy")) == "Failed to acquire /mnt: busy"
        assert str(ReleaseWarning("swap /mnt/swap/swapfile", "busy")) == (
            "Failed to release swap /mnt/swap/swapfile: busy"
        )

    def test_swap_errors(self):
        assert str(SwapSetupFailed("/mnt/swap/swapfile", "mkswap")) == (
            "Swap setup failed for /mnt/swap/swapfile during mkswap"
        )
        error = SwapSizeMismatch("/mnt/swap/swapfile", 100, 50)
        assert (error.expected, error.actual) == (100, 50)

    def test_configuration_step_failed(self):
        error = ConfigurationStepFailed(3, "locale-gen", 1)

        assert str(error) == "Chroot command #3 failed: [locale-gen]"
        assert error.returncode == 1

    def test_provision_interrupted(self):
        error = ProvisionInterrupted(15)

        assert error.signum == 15
        assert str(error) == "Interrupted by signal 15"
