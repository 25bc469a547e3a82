"""LIFO ledger of mounts and swap activations for one provisioning run.

The mount stack is the single owner of every kernel mount and swap
activation the provisioner creates. Push order is dependency order, and
unwinding walks the stack in exact reverse, so teardown order is a property
of the data structure rather than of hand-written cleanup code.

Lifecycle of an entry:
    PLANNED -> ACQUIRED   acquire() succeeded and the entry was pushed
    ACQUIRED -> RELEASED  unwind_all() released it (or found it already gone)

Guarantees:
    - A failed acquire() pushes nothing, so unwind never touches it.
    - A block mount that would shadow an earlier mount is rejected.
    - A swap activation is only accepted while its owning mount is on the
      stack, so swap is always deactivated before its owner is unmounted.
    - unwind_all() releases every entry exactly once, never raises for a
      failed release, and is a no-op when called again (including re-entrant
      calls from a signal handler).
    - An interrupt raised during unwind_all() does not cut it short: every
      remaining entry is still released before the interrupt propagates.

Example:
    >>> stack = MountStack()
    >>> stack.acquire(MountEntry("/mnt", "/dev/nvme0n1p2", "subvol=@"))
    >>> stack.acquire(MountEntry("/mnt/home", "/dev/nvme0n1p2", "subvol=@home"))
    >>> stack.unwind_all()  # umount /mnt/home, then /mnt
"""

from __future__ import annotations

import subprocess
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from arch_provisioner.domain.models import EntryState, MountEntry
from arch_provisioner.logging import EventLogger, LoggerFactory
from arch_provisioner.storage.devices import (
    command_error,
    is_mounted,
    is_swap_active,
    run_command,
)
from arch_provisioner.storage.exceptions import AcquisitionFailed, ReleaseWarning
from arch_provisioner.storage.release import (
    SWAPOFF_ABSENT_MARKERS,
    UMOUNT_ABSENT_MARKERS,
    release_idempotent,
)


log = LoggerFactory.for_mount()


@dataclass
class _Record:
    entry: MountEntry
    state: EntryState = EntryState.PLANNED


@dataclass
class UnwindReport:
    """Outcome of one unwind pass, in release order."""

    released: list[MountEntry] = field(default_factory=list)
    failed: list[MountEntry] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failed


class MountStack:
    """Ordered, append-only set of acquired mounts and swap activations."""

    _active_unwinds = 0

    def __init__(self, name: str = "provision") -> None:
        self.name = name
        self._stack: list[_Record] = []
        self._history: list[_Record] = []
        self._lock = threading.Lock()
        self._unwinding = False
        self._unwound = False

    def __len__(self) -> int:
        return len(self._stack)

    def __enter__(self) -> MountStack:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.unwind_all()

    @property
    def entries(self) -> list[MountEntry]:
        """Currently acquired entries in push order."""
        return [record.entry for record in self._stack]

    @property
    def is_unwinding(self) -> bool:
        return self._unwinding

    @property
    def is_unwound(self) -> bool:
        return self._unwound

    @classmethod
    def any_unwinding(cls) -> bool:
        """True while any stack in this process is unwinding."""
        return cls._active_unwinds > 0

    def state_of(self, entry: MountEntry) -> EntryState:
        for record in reversed(self._history):
            if record.entry == entry:
                return record.state
        return EntryState.PLANNED

    def find(self, target: str) -> Optional[MountEntry]:
        for record in reversed(self._stack):
            if record.entry.target == target:
                return record.entry
        return None

    # ------------------------------------------------------------------
    # Acquisition
    # ------------------------------------------------------------------

    def acquire(self, entry: MountEntry) -> MountEntry:
        """Mount or activate ``entry`` and push it on the stack.

        Raises:
            AcquisitionFailed: If the entry is out of order, the stack has been
                unwound, or the underlying mount/swapon failed. Nothing is
                pushed in that case.
        """
        if self._unwound or self._unwinding:
            raise AcquisitionFailed(entry.target, f"{self.name} stack already unwound")
        self._check_order(entry)

        record = _Record(entry)
        try:
            if entry.is_swap:
                self._activate_swap(entry)
            else:
                self._mount(entry)
        except (OSError, subprocess.SubprocessError) as error:
            raise AcquisitionFailed(entry.target, str(error)) from error

        record.state = EntryState.ACQUIRED
        self._stack.append(record)
        self._history.append(record)
        EventLogger.log_resource_acquired(
            log, entry.kind.value, entry.target, depth=len(self._stack)
        )
        return entry

    def _check_order(self, entry: MountEntry) -> None:
        if entry.is_swap:
            owner = self._deepest_mount_containing(entry.target)
            if owner is None or owner.target != entry.owner:
                raise AcquisitionFailed(
                    entry.target,
                    f"owning mount {entry.owner} is not the innermost acquired mount",
                )
            return

        for record in self._stack:
            if record.entry.is_swap:
                continue
            if entry.contains(record.entry.target):
                raise AcquisitionFailed(
                    entry.target,
                    f"would shadow {record.entry.target} which is already mounted",
                )

    def _deepest_mount_containing(self, path: str) -> Optional[MountEntry]:
        for record in reversed(self._stack):
            if not record.entry.is_swap and record.entry.contains(path):
                return record.entry
        return None

    def _mount(self, entry: MountEntry) -> None:
        Path(entry.target).mkdir(parents=True, exist_ok=True)
        command = ["mount"]
        if entry.options:
            command.extend(["-o", entry.options])
        command.extend([entry.source, entry.target])
        result = run_command(command, check=False)
        if result.returncode != 0:
            raise AcquisitionFailed(entry.target, command_error(result))

    def _activate_swap(self, entry: MountEntry) -> None:
        result = run_command(["swapon", entry.target], check=False)
        if result.returncode != 0:
            raise AcquisitionFailed(entry.target, command_error(result))

    # ------------------------------------------------------------------
    # Unwind
    # ------------------------------------------------------------------

    def unwind_all(self) -> UnwindReport:
        """Release every acquired entry in reverse push order.

        Each release is attempted exactly once and failures are logged as
        warnings. Calling this again after it finished, or while it is
        running, does nothing.
        """
        if not self._lock.acquire(blocking=False):
            log.debug(f"{self.name} unwind already in progress")
            return UnwindReport()
        try:
            if self._unwound:
                log.debug(f"{self.name} stack already unwound")
                return UnwindReport()
            self._unwinding = True
            MountStack._active_unwinds += 1
            try:
                return self._unwind()
            finally:
                MountStack._active_unwinds -= 1
        finally:
            self._unwound = True
            self._unwinding = False
            self._lock.release()

    def _unwind(self) -> UnwindReport:
        """Release loop.

        An interrupt (KeyboardInterrupt or a signal raised as an exception)
        arriving mid-release does not stop the loop: the remaining entries
        are still released and the first interrupt is re-raised afterwards.
        """
        report = UnwindReport()
        if not self._stack:
            log.debug(f"{self.name} stack is empty, nothing to unwind")
            return report

        log.info(f"Unwinding {len(self._stack)} resources from {self.name} stack")
        interrupted: Optional[BaseException] = None
        try:
            self._flush()
        except BaseException as error:
            log.warning(f"{type(error).__name__} during sync, continuing unwind")
            interrupted = error

        while self._stack:
            record = self._stack[-1]
            try:
                self._release_record(record, report)
            except BaseException as error:
                log.warning(
                    f"{type(error).__name__} while releasing {record.entry.describe()}, "
                    "continuing unwind"
                )
                report.failed.append(record.entry)
                if interrupted is None:
                    interrupted = error
            finally:
                self._stack.pop()

        if report.failed:
            log.warning(
                f"{len(report.failed)} resources could not be released: "
                + ", ".join(entry.target for entry in report.failed)
            )
        if interrupted is not None:
            raise interrupted
        return report

    def _release_record(self, record: _Record, report: UnwindReport) -> None:
        entry = record.entry
        try:
            was_present = self._release(entry)
        except ReleaseWarning as warning:
            log.warning(str(warning))
            report.failed.append(entry)
            return
        except Exception as error:
            log.warning(str(ReleaseWarning(entry.describe(), str(error))))
            report.failed.append(entry)
            return
        record.state = EntryState.RELEASED
        report.released.append(entry)
        EventLogger.log_resource_released(log, entry.kind.value, entry.target, was_present)

    def _flush(self) -> None:
        try:
            run_command(["sync"], check=False, log_output=False)
        except OSError as error:
            log.warning(f"sync failed before unwind: {error}")

    def _release(self, entry: MountEntry) -> bool:
        if entry.is_swap:
            return release_idempotent(
                ["swapoff", entry.target],
                resource=entry.describe(),
                absent_markers=SWAPOFF_ABSENT_MARKERS,
                is_present=lambda: is_swap_active(entry.target),
            )
        try:
            return release_idempotent(
                ["umount", entry.target],
                resource=entry.describe(),
                absent_markers=UMOUNT_ABSENT_MARKERS,
                is_present=lambda: is_mounted(entry.target),
            )
        except ReleaseWarning as warning:
            log.warning(f"{warning}; attempting lazy unmount")
            return release_idempotent(
                ["umount", "-l", entry.target],
                resource=entry.describe(),
                absent_markers=UMOUNT_ABSENT_MARKERS,
            )
