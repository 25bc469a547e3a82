"""Provisioning orchestrator.

Sequences one run over a single forward path of phases:

    PLAN -> TABLE -> FORMAT -> MOUNT -> SWAP -> INSTALL -> CONFIGURE -> ACCOUNTS -> DONE

No phase is retried. Any failure, from any phase, moves the run to
UNWINDING and then TERMINATED. Whatever the outcome, the mount stack is
unwound exactly once; the unwind handler registered at start (atexit plus
SIGINT/SIGTERM) looks at the stack contents, never at the current phase.
"""

from __future__ import annotations

import atexit
import signal
from contextlib import contextmanager
from typing import Callable, Optional

from arch_provisioner.chroot.executor import RemoteExecutor
from arch_provisioner.config.settings import ProvisionSettings
from arch_provisioner.domain.models import LayoutVariant, PartitionRole, PartitionSpec, Phase, SwapFile
from arch_provisioner.logging import EventLogger, LoggerFactory, new_run_id, operation_context
from arch_provisioner.storage import block, devices
from arch_provisioner.storage.exceptions import (
    PlanningError,
    ProvisionError,
    ProvisionInterrupted,
    SwapSetupFailed,
)
from arch_provisioner.storage.layouts import build_mount_plan, subvolumes_for, swap_mount_target
from arch_provisioner.storage.mount_stack import MountStack, UnwindReport
from arch_provisioner.storage.planner import plan_partitions, resolve_variant
from arch_provisioner.storage.swap import SwapProvisioner
from arch_provisioner.system import accounts, install, templates
from arch_provisioner.ui import prompts


EXIT_SUCCESS = 0
EXIT_FAILURE = 1

HANDLED_SIGNALS = (signal.SIGINT, signal.SIGTERM)


class Provisioner:
    """One provisioning run and the resources it owns.

    External collaborators (confirmation, package installation, accounts)
    are injectable so the resource lifecycle can be driven without a
    terminal or a package mirror.
    """

    def __init__(
        self,
        settings: ProvisionSettings,
        *,
        stack: Optional[MountStack] = None,
        executor: Optional[RemoteExecutor] = None,
        capacity_bytes: Optional[int] = None,
        confirm: Callable[[str], None] = prompts.confirm_destructive,
        install_system: Optional[Callable[[str], None]] = None,
        create_accounts: Optional[Callable[[RemoteExecutor, str], None]] = None,
        handle_signals: bool = True,
        job_id: Optional[str] = None,
    ) -> None:
        self.settings = settings
        self.job_id = job_id or new_run_id()
        self.log = LoggerFactory.for_provision(self.job_id)
        self.stack = stack if stack is not None else MountStack()
        self.executor = executor or RemoteExecutor()
        self.swap = SwapProvisioner(self.stack)
        self.capacity_bytes = capacity_bytes
        self.confirm = confirm
        self.install_system = install_system or self._install_system
        self.create_accounts = create_accounts or self._create_accounts
        self.handle_signals = handle_signals

        self.phase = Phase.PLAN
        self.phase_history: list[Phase] = [Phase.PLAN]
        self.variant: Optional[LayoutVariant] = None
        self.specs: list[PartitionSpec] = []
        self.nodes: dict[PartitionRole, str] = {}
        self.swap_file: Optional[SwapFile] = None
        self.unwind_report: Optional[UnwindReport] = None

        self._handlers_installed = False
        self._previous_handlers: dict[int, object] = {}
        self._deferred_signal: Optional[int] = None

    @property
    def mount_root(self) -> str:
        return self.settings.mount_root

    @property
    def hostname(self) -> str:
        return self.settings.hostname or self.settings.default_hostname

    @property
    def username(self) -> str:
        return self.settings.username or self.settings.default_username

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    def run(self) -> int:
        """Provision the target disk; returns the process exit code."""
        self.install_unwind_handler()
        try:
            return self._execute()
        finally:
            self.restore_signal_handlers()

    def _execute(self) -> int:
        try:
            self._run_phases()
        except (ProvisionError, ProvisionInterrupted, KeyboardInterrupt) as error:
            self.log.error(f"FATAL: {type(error).__name__}: {error}")
            self._terminate()
            return EXIT_FAILURE
        except Exception:
            self.log.exception("FATAL: unexpected error during provisioning")
            self._terminate()
            return EXIT_FAILURE

        self.log.info("Unmounting filesystems. Type 'reboot' after exit.")
        self.unwind()
        self.log.success("Provisioning completed successfully.")
        return EXIT_SUCCESS

    def _run_phases(self) -> None:
        with self._phase(Phase.PLAN):
            self.plan()
        with self._phase(Phase.TABLE):
            self.write_table()
        with self._phase(Phase.FORMAT):
            self.format()
        with self._phase(Phase.MOUNT):
            self.mount()
        with self._phase(Phase.SWAP):
            self.activate_swap()
        with self._phase(Phase.INSTALL):
            self.install_system(self.mount_root)
        with self._phase(Phase.CONFIGURE):
            self.configure()
        with self._phase(Phase.ACCOUNTS):
            self.create_accounts(self.executor, self.mount_root)
        self._transition(Phase.DONE)

    # ------------------------------------------------------------------
    # Phases
    # ------------------------------------------------------------------

    def plan(self) -> list[PartitionSpec]:
        settings = self.settings
        if self.capacity_bytes is None:
            if not devices.is_root_user():
                raise PlanningError("Script must be run as root.")
            self.capacity_bytes = devices.get_device_size(settings.target_disk)

        self.variant = resolve_variant(settings.layout)
        self.specs = plan_partitions(
            settings.target_disk,
            self.variant,
            self.capacity_bytes,
            efi_size=settings.efi_size_bytes,
            root_size=settings.root_size_bytes,
        )
        self.log.info(
            f"Planned {self.variant.value} layout on {settings.target_disk} "
            f"({devices.human_size(self.capacity_bytes)})"
        )
        self.log.warning(
            f"THIS WILL AUTOMATICALLY PARTITION AND FORMAT '{settings.target_disk}'."
        )
        self.confirm(settings.target_disk)
        install.prepare_live_environment(settings.console_keymap)
        return self.specs

    def write_table(self) -> None:
        disk = self.settings.target_disk
        block.wipe_table(disk)
        block.write_table(disk, self.specs)
        nodes = block.wait_for_partition_nodes(
            disk,
            len(self.specs),
            attempts=self.settings.node_poll_attempts,
            interval=self.settings.node_poll_interval,
        )
        self.nodes = {spec.role: node for spec, node in zip(self.specs, nodes)}

    def format(self) -> None:
        for spec in self.specs:
            block.format_filesystem(self.nodes[spec.role], spec.filesystem, spec.label)
        for spec in self.specs:
            subvolumes = subvolumes_for(self.variant, spec.role)
            if subvolumes:
                block.create_subvolumes(self.nodes[spec.role], subvolumes, self.mount_root)

    def mount(self) -> None:
        for entry in build_mount_plan(self.variant, self.nodes, self.mount_root):
            self.stack.acquire(entry)

    def activate_swap(self) -> SwapFile:
        target = swap_mount_target(self.variant, self.mount_root)
        owner = self.stack.find(target)
        if owner is None:
            raise SwapSetupFailed(target, "ownership", "swap subvolume is not mounted")
        self.swap_file = self.swap.create_and_activate(
            owner, self.settings.swap_size_bytes, self.settings.swap_label
        )
        return self.swap_file

    def configure(self) -> None:
        commands = templates.build_configuration_commands(self.settings, self.hostname)
        self.executor.run_sequence(self.mount_root, commands)

    def _install_system(self, root: str) -> None:
        install.install_base_system(root, self.settings.packages, self.settings.mirror_country)

    def _create_accounts(self, executor: RemoteExecutor, root: str) -> None:
        accounts.create_accounts(
            executor, root, self.username, run_sensors_detect=self.settings.run_sensors_detect
        )

    # ------------------------------------------------------------------
    # Phase bookkeeping
    # ------------------------------------------------------------------

    def _transition(self, phase: Phase) -> None:
        previous = self.phase
        self.phase = phase
        self.phase_history.append(phase)
        EventLogger.log_phase_transition(self.log, previous.value, phase.value)

    @contextmanager
    def _phase(self, phase: Phase):
        if phase != self.phase:
            self._transition(phase)
        with operation_context(phase.value, job_id=self.job_id) as log:
            yield log
            self._raise_deferred_signal()

    def _terminate(self) -> None:
        self._transition(Phase.UNWINDING)
        self.unwind()
        self._transition(Phase.TERMINATED)

    # ------------------------------------------------------------------
    # Unwind handler
    # ------------------------------------------------------------------

    def unwind(self) -> UnwindReport:
        """Release everything on the stack; safe to call any number of times."""
        report = self.stack.unwind_all()
        if self.unwind_report is None:
            self.unwind_report = report
        return report

    def install_unwind_handler(self) -> None:
        if self._handlers_installed:
            return
        atexit.register(self.unwind)
        if self.handle_signals:
            for signum in HANDLED_SIGNALS:
                self._previous_handlers[signum] = signal.signal(signum, self._on_signal)
        self._handlers_installed = True

    def restore_signal_handlers(self) -> None:
        for signum, handler in self._previous_handlers.items():
            signal.signal(signum, handler)
        self._previous_handlers.clear()

    def _on_signal(self, signum, frame) -> None:
        if MountStack.any_unwinding():
            self.log.warning(f"Signal {signum} received while unwinding, finishing unwind")
            if self._deferred_signal is None:
                self._deferred_signal = signum
            return
        raise ProvisionInterrupted(signum)

    def _raise_deferred_signal(self) -> None:
        signum, self._deferred_signal = self._deferred_signal, None
        if signum is not None:
            raise ProvisionInterrupted(signum)
