"""Tests for config/settings.py - persisted provisioning settings."""

import json

from arch_provisioner.config import settings as settings_module
from arch_provisioner.config.settings import (
    DEFAULT_CORE_PACKAGES,
    DEFAULT_SETTINGS,
    ProvisionSettings,
    load_settings,
    save_settings,
)
from arch_provisioner.domain.models import GIB


class TestLoadSettings:
    def test_missing_file_gives_defaults(self, temp_settings_file):
        settings = load_settings(temp_settings_file)

        assert settings.target_disk == DEFAULT_SETTINGS["target_disk"]
        assert settings.layout == "single-root"
        assert settings.swap_size_gib == 16

    def test_file_overrides_defaults(self, temp_settings_file):
        temp_settings_file.parent.mkdir(parents=True)
        temp_settings_file.write_text(json.dumps({"target_disk": "/dev/sdb", "swap_size_gib": 8}))

        settings = load_settings(temp_settings_file)

        assert settings.target_disk == "/dev/sdb"
        assert settings.swap_size_gib == 8
        assert settings.mount_root == "/mnt"

    def test_malformed_json_gives_defaults(self, temp_settings_file):
        temp_settings_file.parent.mkdir(parents=True)
        temp_settings_file.write_text("{not json")

        assert load_settings(temp_settings_file) == ProvisionSettings.from_mapping({})

    def test_non_object_gives_defaults(self, temp_settings_file):
        temp_settings_file.parent.mkdir(parents=True)
        temp_settings_file.write_text("[1, 2, 3]")

        assert load_settings(temp_settings_file) == ProvisionSettings.from_mapping({})

    def test_unknown_keys_ignored(self, temp_settings_file):
        temp_settings_file.parent.mkdir(parents=True)
        temp_settings_file.write_text(json.dumps({"screensaver": True, "hostname": "box"}))

        assert load_settings(temp_settings_file).hostname == "box"

    def test_default_path_used(self, mocker, tmp_path):
        mocker.patch.object(settings_module, "SETTINGS_PATH", tmp_path / "settings.json")
        (tmp_path / "settings.json").write_text(json.dumps({"layout": "split-root-home"}))

        assert load_settings().layout == "split-root-home"


class TestSaveSettings:
    def test_save_then_load(self, temp_settings_file):
        original = ProvisionSettings.from_mapping({"hostname": "box", "root_size_gib": 100})

        save_settings(original, temp_settings_file)

        assert load_settings(temp_settings_file) == original


class TestProvisionSettings:
    def test_with_overrides_skips_none(self):
        settings = ProvisionSettings().with_overrides(target_disk="/dev/sdc", layout=None)

        assert settings.target_disk == "/dev/sdc"
        assert settings.layout == "single-root"

    def test_lists_not_shared_between_instances(self):
        first = ProvisionSettings.from_mapping({})
        first.core_packages.append("vim")

        assert "vim" not in ProvisionSettings.from_mapping({}).core_packages
        assert "vim" not in DEFAULT_CORE_PACKAGES

    def test_sizes_in_bytes(self):
        settings = ProvisionSettings(efi_size_gib=1, root_size_gib=100, swap_size_gib=16)

        assert settings.efi_size_bytes == GIB
        assert settings.root_size_bytes == 100 * GIB
        assert settings.swap_size_bytes == 16 * GIB
        assert ProvisionSettings().root_size_bytes is None

    def test_packages_core_then_extra(self):
        settings = ProvisionSettings(core_packages=["base"], extra_packages=["gdm"])

        assert settings.packages == ["base", "gdm"]
