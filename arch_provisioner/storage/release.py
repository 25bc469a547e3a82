"""Best-effort idempotent release of kernel resources.

Unmounting, deactivating swap and deleting a partition table all share one
contract: a resource that is already gone counts as released. The
``release_idempotent`` primitive implements that contract once.
"""

from __future__ import annotations

from typing import Callable, Iterable, Optional, Sequence

from arch_provisioner.logging import LoggerFactory
from arch_provisioner.storage.devices import command_error, run_command
from arch_provisioner.storage.exceptions import ReleaseWarning


log = LoggerFactory.for_mount()

# Messages umount/swapoff/sfdisk print when there is nothing to release
UMOUNT_ABSENT_MARKERS = ("not mounted", "no mount point specified", "no such file")
SWAPOFF_ABSENT_MARKERS = ("invalid argument", "no such file", "not found")
TABLE_ABSENT_MARKERS = (
    "does not contain a recognized partition table",
    "no partitions",
)


def release_idempotent(
    command: Sequence[str],
    *,
    resource: str,
    absent_markers: Iterable[str] = (),
    is_present: Optional[Callable[[], bool]] = None,
) -> bool:
    """Run a teardown command, treating an already-absent resource as released.

    Args:
        command: Teardown command (e.g. ["umount", "/mnt/home"])
        resource: Human-readable resource name for logs and warnings
        absent_markers: Lowercase fragments of tool output meaning "nothing there"
        is_present: Optional probe; when it returns False the command is skipped

    Returns:
        True if the command released the resource, False if it was already absent

    Raises:
        ReleaseWarning: If the command failed for any other reason
    """
    if is_present is not None and not is_present():
        log.debug(f"{resource} already released, skipping {command[0]}")
        return False

    result = run_command(command, check=False)
    if result.returncode == 0:
        return True

    message = command_error(result)
    lowered = message.lower()
    if any(marker in lowered for marker in absent_markers):
        log.debug(f"{resource} already absent: {message}")
        return False
    raise ReleaseWarning(resource, message)
