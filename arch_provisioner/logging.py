from __future__ import annotations

import os
import sys
import time
import uuid
from contextlib import contextmanager
from pathlib import Path
from typing import TYPE_CHECKING, Iterable

if TYPE_CHECKING:
    from loguru import Logger

from loguru import logger

DEFAULT_LOG_DIR = Path(
    os.environ.get(
        "ARCH_PROVISIONER_LOG_DIR",
        Path.home() / ".local" / "state" / "arch-provisioner" / "logs",
    )
)

# TRACE already exists in loguru at level 5, below DEBUG


def _should_log_settle(record) -> bool:
    """Filter device-node polling chatter - only show in TRACE mode."""
    tags = record["extra"].get("tags", [])

    if "poll" in tags:
        return record["level"].no <= logger.level("TRACE").no or (
            record["level"].no >= logger.level("WARNING").no
        )

    return True


def setup_logging(
    *,
    debug: bool = False,
    trace: bool = False,
    log_dir: Path | None = None,
) -> Logger:
    """
    Setup multi-tier logging with separate sinks for different log levels.

    Logging Tiers:
    - CRITICAL/ERROR: Fatal provisioning failures
    - WARNING: Recoverable problems (release warnings, skipped helpers)
    - SUCCESS/INFO: Phase transitions, every chroot command
    - DEBUG: Command execution and output
    - TRACE: Device-node polling

    Log Files:
    - operations.log: INFO+ events (7 day retention)
    - debug.log: DEBUG+ events when --debug is enabled (3 day retention)
    - structured.jsonl: Structured JSON logs for analysis (7 day retention)

    Args:
        debug: Enable DEBUG level logging
        trace: Enable TRACE level logging (very verbose)
        log_dir: Custom log directory (defaults to ~/.local/state/arch-provisioner/logs)
    """
    logger.remove()
    logger.configure(extra={"job_id": "-", "tags": [], "source": "APP"})

    if trace:
        console_level = "TRACE"
    elif debug:
        console_level = "DEBUG"
    else:
        console_level = "INFO"

    # SINK 1: Console (stderr)
    logger.add(
        sys.stderr,
        level=console_level,
        backtrace=False,
        diagnose=False,
        filter=_should_log_settle,
        colorize=True,
        format=(
            "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | "
            "<level>{level: <8}</level> | "
            "<cyan>{extra[source]: <10}</cyan> | "
            "{message}"
        ),
    )

    log_dir = log_dir or DEFAULT_LOG_DIR
    log_dir.mkdir(parents=True, exist_ok=True)

    # SINK 2: Operations Log - every phase and chroot step (INFO+)
    logger.add(
        log_dir / "operations.log",
        level="INFO",
        rotation="5 MB",
        retention="7 days",
        compression="zip",
        backtrace=False,
        diagnose=False,
        format=(
            "{time:YYYY-MM-DD HH:mm:ss.SSS} | "
            "{level: <8} | "
            "{extra[source]: <10} | "
            "{extra[job_id]: <18} | "
            "{message}"
        ),
    )

    # SINK 3: Debug Log (DEBUG+ when debug=True)
    if debug or trace:
        logger.add(
            log_dir / "debug.log",
            level="TRACE" if trace else "DEBUG",
            rotation="10 MB",
            retention="3 days",
            compression="zip",
            backtrace=True,
            diagnose=True,
            format=(
                "{time:YYYY-MM-DD HH:mm:ss.SSS} | "
                "{level: <8} | "
                "{extra[source]: <10} | "
                "{extra[job_id]: <18} | "
                "{extra[tags]} | "
                "{message}"
            ),
        )

    # SINK 4: Structured JSON Log (INFO+)
    logger.add(
        log_dir / "structured.jsonl",
        level="INFO",
        rotation="10 MB",
        retention="7 days",
        compression="zip",
        serialize=True,
        format="{message}",
    )

    return logger


def get_logger(
    *,
    job_id: str | None = None,
    tags: Iterable[str] | None = None,
    source: str | None = None,
) -> Logger:
    """
    Get a logger with bound context.

    Args:
        job_id: Run identifier
        tags: Tags for filtering (e.g., ["mount", "storage"])
        source: Source component (e.g., "mount", "chroot")
    """
    extras: dict[str, object] = {}
    if job_id is not None:
        extras["job_id"] = job_id
    if tags is not None:
        extras["tags"] = list(tags)
    if source is not None:
        extras["source"] = source
    return logger.bind(**extras)


def new_run_id() -> str:
    return f"provision-{uuid.uuid4().hex[:8]}"


@contextmanager
def operation_context(operation: str, **details):
    """
    Context manager for tracking a provisioning phase with automatic timing.

    Logs phase start, completion, and failure with duration tracking.

    Args:
        operation: Phase name (e.g., "mount", "swap")
        **details: Phase-specific details to log

    Example:
        with operation_context("table", device="/dev/nvme0n1") as log:
            log.debug("Writing GPT")
    """
    job_id = details.pop("job_id", None) or f"{operation}-{uuid.uuid4().hex[:8]}"

    with logger.contextualize(job_id=job_id, operation=operation, **details):
        start_time = time.time()
        log = logger.bind(source=operation, job_id=job_id, tags=[operation])

        log.info(f"{operation.capitalize()} started")

        try:
            yield log
            duration = time.time() - start_time
            log.success(
                f"{operation.capitalize()} completed",
                duration_seconds=round(duration, 2),
            )
        except BaseException as e:
            duration = time.time() - start_time
            log.error(
                f"{operation.capitalize()} failed",
                error=str(e),
                error_type=type(e).__name__,
                duration_seconds=round(duration, 2),
            )
            raise


class LoggerFactory:
    """
    Factory for creating component loggers with automatic context.

    Each factory method returns a logger pre-configured with the source and
    tags of one provisioning component.
    """

    @staticmethod
    def for_planner() -> Logger:
        """Logger for partition planning."""
        return logger.bind(source="planner", tags=["plan", "storage"])

    @staticmethod
    def for_block() -> Logger:
        """Logger for partition tables, formatting and subvolumes."""
        return logger.bind(source="block", tags=["block", "storage"])

    @staticmethod
    def for_mount() -> Logger:
        """Logger for mount stack acquisitions and unwinds."""
        return logger.bind(source="mount", tags=["mount", "storage"])

    @staticmethod
    def for_swap() -> Logger:
        """Logger for swap file provisioning."""
        return logger.bind(source="swap", tags=["swap", "storage"])

    @staticmethod
    def for_chroot() -> Logger:
        """Logger for commands run inside the provisioned root."""
        return logger.bind(source="chroot", tags=["chroot"])

    @staticmethod
    def for_provision(job_id: str | None = None) -> Logger:
        """Logger for the orchestrator of one provisioning run."""
        if job_id is None:
            job_id = new_run_id()
        return logger.bind(job_id=job_id, source="provision", tags=["provision"])

    @staticmethod
    def for_system() -> Logger:
        """Logger for host operations (preflight, packages, accounts)."""
        return logger.bind(source="system", tags=["system"])


class EventLogger:
    """
    Structured event logger using standardized schemas.

    Provides methods for logging resource-lifecycle events with
    consistent structure and fields.
    """

    @staticmethod
    def log_phase_transition(log: Logger, previous: str, current: str, **extra) -> None:
        """Log an orchestrator phase change."""
        log.info(
            f"Phase {previous} -> {current}",
            event_type="phase_transition",
            previous_phase=previous,
            phase=current,
            **extra,
        )

    @staticmethod
    def log_resource_acquired(log: Logger, kind: str, target: str, depth: int, **extra) -> None:
        """Log a mount or swap activation pushed on the stack."""
        log.info(
            f"Acquired {kind} {target}",
            event_type="resource_acquired",
            kind=kind,
            target=target,
            depth=depth,
            **extra,
        )

    @staticmethod
    def log_resource_released(
        log: Logger, kind: str, target: str, was_present: bool, **extra
    ) -> None:
        """Log a mount or swap activation released during unwind."""
        log.info(
            f"Released {kind} {target}"
            + ("" if was_present else " (already absent)"),
            event_type="resource_released",
            kind=kind,
            target=target,
            was_present=was_present,
            **extra,
        )
