import argparse
import sys
from pathlib import Path

from arch_provisioner.config import settings as settings_store
from arch_provisioner.logging import LoggerFactory, setup_logging
from arch_provisioner.provision import EXIT_FAILURE, Provisioner
from arch_provisioner.ui import prompts


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="arch-provisioner",
        description="Partition, format, install and configure an Arch Linux disk",
    )
    parser.add_argument("--disk", help="Target block device (e.g. /dev/nvme0n1)")
    parser.add_argument(
        "--layout",
        choices=["single-root", "split-root-home"],
        help="Partition layout variant",
    )
    parser.add_argument("--root-size-gib", type=int, help="Root partition size (split layout)")
    parser.add_argument("--swap-size-gib", type=int, help="Swap file size in GiB")
    parser.add_argument("--hostname", help="Hostname for the new system")
    parser.add_argument("--user", help="Regular user to create")
    parser.add_argument("--mount-root", help="Where the new root is assembled (default /mnt)")
    parser.add_argument("--settings", type=Path, help="Path to a settings JSON file")
    parser.add_argument(
        "--save-settings",
        action="store_true",
        help="Write the effective settings back to the settings file before provisioning",
    )
    parser.add_argument("-d", "--debug", action="store_true", help="Enable verbose debug output")
    parser.add_argument("--trace", action="store_true", help="Enable TRACE level logging")
    return parser


def main(argv=None):
    args = build_parser().parse_args(argv)
    setup_logging(debug=args.debug, trace=args.trace)
    log = LoggerFactory.for_provision()

    settings = settings_store.load_settings(args.settings).with_overrides(
        target_disk=args.disk,
        layout=args.layout,
        root_size_gib=args.root_size_gib,
        swap_size_gib=args.swap_size_gib,
        mount_root=args.mount_root,
        hostname=args.hostname,
        username=args.user,
    )

    try:
        if not settings.hostname:
            settings = settings.with_overrides(
                hostname=prompts.prompt_input("hostname", settings.default_hostname)
            )
        if not settings.username:
            settings = settings.with_overrides(
                username=prompts.prompt_input("username", settings.default_username)
            )
    except (EOFError, KeyboardInterrupt) as error:
        log.error(f"Aborted before provisioning: {type(error).__name__}")
        sys.exit(EXIT_FAILURE)

    if args.save_settings:
        settings_store.save_settings(settings, args.settings)
        log.info(f"Settings saved to {args.settings or settings_store.SETTINGS_PATH}")

    log.info(f"Target disk: {settings.target_disk}, layout: {settings.layout}")
    sys.exit(Provisioner(settings).run())


if __name__ == "__main__":
    main()
