"""Tests for system/accounts.py - account creation in the new root."""

from unittest.mock import Mock, call

import pytest

from arch_provisioner.storage.exceptions import ConfigurationStepFailed
from arch_provisioner.system import templates
from arch_provisioner.system.accounts import create_accounts


@pytest.fixture
def executor():
    return Mock()


class TestCreateAccounts:
    def test_order_of_steps(self, executor):
        create_accounts(executor, "/mnt", "builder")

        assert executor.method_calls == [
            call.run_interactive("/mnt", ["passwd", "root"]),
            call.run_sequence("/mnt", ["useradd -m -G wheel builder"]),
            call.run_interactive("/mnt", ["passwd", "builder"]),
            call.run_sequence("/mnt", templates.sudoers_commands()),
        ]

    def test_sensors_detect_optional(self, executor):
        create_accounts(executor, "/mnt", "builder", run_sensors_detect=True)

        assert executor.method_calls[-1] == call.run_sequence(
            "/mnt", [templates.SENSORS_DETECT_COMMAND]
        )

    def test_sensors_detect_failure_is_warning(self, executor, log_records):
        def run_sequence(root, commands):
            if commands == [templates.SENSORS_DETECT_COMMAND]:
                raise ConfigurationStepFailed(0, commands[0], 1)
            return len(commands)

        executor.run_sequence.side_effect = run_sequence

        create_accounts(executor, "/mnt", "builder", run_sensors_detect=True)

        assert any("sensors-detect" in r["message"] for r in log_records if r["level"].name == "WARNING")

    def test_password_failure_propagates(self, executor):
        executor.run_interactive.side_effect = ConfigurationStepFailed(0, "passwd root", 1)

        with pytest.raises(ConfigurationStepFailed):
            create_accounts(executor, "/mnt", "builder")

        executor.run_sequence.assert_not_called()
