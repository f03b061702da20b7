from __future__ import annotations

import os
import sys
import time
import uuid
from contextlib import contextmanager
from pathlib import Path
from typing import TYPE_CHECKING, Iterable, Sequence

if TYPE_CHECKING:
    from loguru import Logger

from loguru import logger

DEFAULT_LOG_DIR_ENV = "CCISP_LOG_DIR"


def _resolve_log_dir(log_dir: Path | None) -> Path | None:
    if log_dir is not None:
        return Path(log_dir)
    env_dir = os.environ.get(DEFAULT_LOG_DIR_ENV)
    return Path(env_dir) if env_dir else None


def setup_logging(
    *,
    debug: bool = False,
    trace: bool = False,
    log_dir: Path | None = None,
) -> Logger:
    """
    Setup logging for a provisioning run.

    The provisioner runs as a oneshot unit at first boot, so the console sink
    (stderr) is what ends up in the journal. File sinks are optional and only
    added when a log directory is given (or CCISP_LOG_DIR is set).

    Logging Tiers:
    - CRITICAL/ERROR: Fatal provisioning failures
    - SUCCESS/INFO: Pipeline steps, redirected directories
    - DEBUG: Every collaborator command and its exit status
    - TRACE: Raw collaborator output

    Log Files (when a log directory is configured):
    - provisioner.log: INFO+ events (7 day retention)
    - structured.jsonl: Structured JSON logs for analysis (7 day retention)

    Args:
        debug: Enable DEBUG level logging
        trace: Enable TRACE level logging (very verbose)
        log_dir: Directory for file sinks
    """
    logger.remove()
    logger.configure(extra={"job_id": "-", "tags": [], "source": "ccisp"})

    if trace:
        console_level = "TRACE"
    elif debug:
        console_level = "DEBUG"
    else:
        console_level = "INFO"

    # SINK 1: Console (stderr), captured by the journal at boot
    logger.add(
        sys.stderr,
        level=console_level,
        backtrace=False,
        diagnose=False,
        colorize=None,
        format=(
            "<green>{time:HH:mm:ss}</green> | "
            "<level>{level: <8}</level> | "
            "<cyan>{extra[source]: <10}</cyan> | "
            "{message}"
        ),
    )

    resolved_dir = _resolve_log_dir(log_dir)
    if resolved_dir is None:
        return logger

    resolved_dir.mkdir(parents=True, exist_ok=True)

    # SINK 2: Operations log (INFO+)
    logger.add(
        resolved_dir / "provisioner.log",
        level="INFO",
        rotation="5 MB",
        retention="7 days",
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

    # SINK 3: Structured JSON log (INFO+, DEBUG+ when debugging)
    logger.add(
        resolved_dir / "structured.jsonl",
        level="DEBUG" if (debug or trace) else "INFO",
        rotation="10 MB",
        retention="7 days",
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
        job_id: Job identifier for tracking a provisioning run
        tags: Tags for filtering (e.g., ["lvm", "storage"])
        source: Source component (e.g., "platform", "mount")

    Returns:
        Logger with bound context
    """
    extras: dict[str, object] = {}
    if job_id is not None:
        extras["job_id"] = job_id
    if tags is not None:
        extras["tags"] = list(tags)
    if source is not None:
        extras["source"] = source
    return logger.bind(**extras)


@contextmanager
def operation_context(
    operation: str,
    *,
    benign: tuple[type[BaseException], ...] = (),
    **details,
):
    """
    Context manager for tracking an operation with automatic timing.

    Logs operation start, completion, and failure with duration tracking.
    Exceptions listed in ``benign`` are logged at INFO as an early stop
    instead of a failure. Every exception is re-raised.

    Example:
        with operation_context("provision", mountpoint="/var/mnt/instance-storage") as log:
            log.debug("Detecting platform")
    """
    job_id = f"{operation}-{uuid.uuid4().hex[:8]}"

    with logger.contextualize(job_id=job_id, operation=operation, **details):
        start_time = time.time()
        log = logger.bind(source=operation, job_id=job_id, tags=[operation])
        log.info(f"{operation.capitalize()} started", **details)

        try:
            yield log
        except benign as e:
            duration = time.time() - start_time
            log.bind(duration_seconds=round(duration, 2)).info(
                f"{operation.capitalize()} stopped early: {e}"
            )
            raise
        except Exception as e:
            duration = time.time() - start_time
            log.error(
                f"{operation.capitalize()} failed",
                error=str(e),
                error_type=type(e).__name__,
                duration_seconds=round(duration, 2),
            )
            raise
        duration = time.time() - start_time
        log.success(
            f"{operation.capitalize()} completed", duration_seconds=round(duration, 2)
        )


class LoggerFactory:
    """
    Factory for creating component loggers with automatic context.

    Each factory method returns a logger pre-configured with the source and
    tags of one pipeline component.
    """

    @staticmethod
    def for_platform() -> Logger:
        """Logger for boot parameter parsing and platform dispatch."""
        return logger.bind(source="platform", tags=["platform"])

    @staticmethod
    def for_devices() -> Logger:
        """Logger for block device enumeration and signature wiping."""
        return logger.bind(source="devices", tags=["devices", "storage"])

    @staticmethod
    def for_volume() -> Logger:
        """Logger for LVM volume assembly."""
        return logger.bind(source="lvm", tags=["lvm", "storage"])

    @staticmethod
    def for_format() -> Logger:
        """Logger for filesystem creation."""
        return logger.bind(source="format", tags=["format", "storage"])

    @staticmethod
    def for_mount() -> Logger:
        """Logger for mount unit generation and activation."""
        return logger.bind(source="mount", tags=["mount", "systemd"])

    @staticmethod
    def for_selinux() -> Logger:
        """Logger for security context propagation."""
        return logger.bind(source="selinux", tags=["selinux"])

    @staticmethod
    def for_migrate() -> Logger:
        """Logger for directory redirection."""
        return logger.bind(source="migrate", tags=["migrate", "storage"])

    @staticmethod
    def for_system() -> Logger:
        """Logger for process-level events (startup, config, exit)."""
        return logger.bind(source="system", tags=["system"])


class EventLogger:
    """
    Structured event logger using standardized schemas.

    Provides methods for logging common provisioning events with consistent
    structure and fields.
    """

    @staticmethod
    def log_command(
        log: Logger, command: Sequence[str], returncode: int, **extra
    ) -> None:
        """Log a completed collaborator command."""
        log.bind(
            event_type="command",
            command=list(command),
            returncode=returncode,
            **extra,
        ).debug(f"Command completed with return code {returncode}: {' '.join(command)}")

    @staticmethod
    def log_unit_written(log: Logger, name: str, what: str, where: str, **extra) -> None:
        """Log a mount unit written to the unit directory."""
        log.bind(
            event_type="unit_written",
            unit=name,
            what=what,
            where=where,
            **extra,
        ).info(f"Wrote mount unit {name}")

    @staticmethod
    def log_directory_redirected(log: Logger, original: str, target: str, **extra) -> None:
        """Log a directory redirected onto instance storage."""
        log.bind(
            event_type="directory_redirected",
            original=original,
            target=target,
            **extra,
        ).info(f"Set up {original} to use instance storage")
