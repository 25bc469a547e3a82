"""Terminal prompts for the operator.

The destructive confirmation is two-phase: a lowercase ``yes`` followed by
an uppercase ``YES``. Anything else aborts before the disk is touched.
"""

from __future__ import annotations

from typing import Callable, Optional

from arch_provisioner.logging import LoggerFactory
from arch_provisioner.storage.exceptions import UserAborted


log = LoggerFactory.for_system()

InputFunc = Callable[[str], str]


def confirm_destructive(device: str, ask: InputFunc = input) -> None:
    """Require two typed confirmations before erasing ``device``.

    Raises:
        UserAborted: If either confirmation is not given exactly
    """
    log.warning(f"TARGET DISK FOR ALL OPERATIONS: {device}")
    first = ask(
        f"CONFIRM 1/2: All data on {device} will be ERASED. Proceed? "
        "(Type 'yes' to confirm): "
    )
    if first.strip().lower() != "yes":
        raise UserAborted("Confirmation 1/2 failed")
    second = ask(
        "CONFIRM 2/2: This is your FINAL chance. Are you ABSOLUTELY SURE? "
        "(Type 'YES' in uppercase): "
    )
    if second.strip() != "YES":
        raise UserAborted("Confirmation 2/2 failed - uppercase YES not entered")


def prompt_input(message: str, default: Optional[str] = None, ask: InputFunc = input) -> str:
    """Ask until a non-empty value (or the default) is given."""
    while True:
        if default:
            value = ask(f"INPUT: Enter {message} [default: {default}]: ").strip() or default
        else:
            value = ask(f"INPUT: Enter {message}: ").strip()
        if value:
            log.info(f"{message} set to: {value}")
            return value
        log.warning(f"{message} cannot be empty. Please try again.")
