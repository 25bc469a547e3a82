"""Command templates for configuring the provisioned root.

Every function here returns plain shell strings. They are run, in order,
by the RemoteExecutor inside the new root; nothing in this module touches
the system itself.
"""

from __future__ import annotations

import shlex

from arch_provisioner.config.settings import ProvisionSettings


SUDOERS_DROP_IN = "/etc/sudoers.d/10_wheel_sudo"


def initramfs_module_commands(modules: list[str]) -> list[str]:
    """Merge ``modules`` into MODULES=() of mkinitcpio.conf and rebuild."""
    if not modules:
        return []
    wanted = " ".join(modules)
    merge = (
        "line=$(grep '^MODULES=' /etc/mkinitcpio.conf || echo 'MODULES=()'); "
        "current=''; "
        'if [[ "${line}" =~ ^MODULES=\\((.*)\\)$ ]]; then current="${BASH_REMATCH[1]}"; '
        'elif [[ "${line}" =~ ^MODULES=\\"(.*)\\"$ ]]; then current="${BASH_REMATCH[1]}"; fi; '
        f'merged=$(echo ${{current}} {wanted} | xargs -n1 | sort -u | xargs); '
        "if grep -q '^MODULES=' /etc/mkinitcpio.conf; then "
        'sed -i "s|^MODULES=.*|MODULES=(${merged})|" /etc/mkinitcpio.conf; '
        'else echo "MODULES=(${merged})" >> /etc/mkinitcpio.conf; fi'
    )
    return [merge, "mkinitcpio -P"]


def hosts_file(hostname: str) -> str:
    return (
        "127.0.0.1 localhost\n"
        "::1       localhost\n"
        f"127.0.1.1 {hostname}.localdomain {hostname}\n"
    )


def grub_cmdline_command(kernel_params: str) -> str:
    """Append ``kernel_params`` to GRUB_CMDLINE_LINUX_DEFAULT."""
    return (
        "current=$(grep '^GRUB_CMDLINE_LINUX_DEFAULT=' /etc/default/grub | cut -d '\"' -f2); "
        f'updated=$(echo "${{current}} {kernel_params}" | xargs -r); '
        'sed -i "s|^GRUB_CMDLINE_LINUX_DEFAULT=.*|GRUB_CMDLINE_LINUX_DEFAULT=\\"${updated}\\"|" '
        "/etc/default/grub"
    )


def build_configuration_commands(settings: ProvisionSettings, hostname: str) -> list[str]:
    """Ordered configuration steps for the CONFIGURE phase."""
    locale = settings.system_locale
    commands = initramfs_module_commands(settings.initramfs_modules)
    commands += [
        f"ln -sf /usr/share/zoneinfo/{settings.time_zone} /etc/localtime",
        "hwclock --systohc --utc",
        f"echo {shlex.quote(hostname)} > /etc/hostname",
        f"printf '%s' {shlex.quote(hosts_file(hostname))} > /etc/hosts",
        f"echo {shlex.quote('LANG=' + locale)} > /etc/locale.conf",
        f"echo {shlex.quote('KEYMAP=' + settings.console_keymap)} > /etc/vconsole.conf",
        f"sed -i '/^#{locale}/s/^#//' /etc/locale.gen && locale-gen",
        (
            "grub-install --target=x86_64-efi --efi-directory=/boot/efi "
            f"--bootloader-id={settings.bootloader_id} --recheck"
        ),
    ]
    if settings.kernel_params:
        commands.append(grub_cmdline_command(settings.kernel_params))
    commands.append("grub-mkconfig -o /boot/grub/grub.cfg")
    commands += [f"systemctl enable {service}" for service in settings.services]
    return commands


def user_commands(username: str) -> list[str]:
    return [f"useradd -m -G wheel {shlex.quote(username)}"]


def sudoers_commands() -> list[str]:
    return [
        f"echo '%wheel ALL=(ALL:ALL) ALL' > {SUDOERS_DROP_IN} "
        f"&& chmod 0440 {SUDOERS_DROP_IN}"
    ]


SENSORS_DETECT_COMMAND = "timeout 30s yes '' | sensors-detect --auto"
