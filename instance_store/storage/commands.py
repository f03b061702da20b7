"""Command execution port for host collaborators.

Provisioning steps never call subprocess directly. They go through a
``CommandRunner`` so tests can substitute a recording fake for lsblk, lvm,
mkfs.xfs, systemctl, wipefs and chcon.

Commands block until the collaborator exits. There is no timeout: the
provisioner runs once at first boot and either completes or aborts.
"""

from __future__ import annotations

import subprocess
from dataclasses import dataclass
from typing import Protocol, Sequence

from instance_store.logging import EventLogger, LoggerFactory
from instance_store.storage.exceptions import ExternalCommandFailure


log = LoggerFactory.for_system()


@dataclass(frozen=True)
class CommandResult:
    """Result of running a collaborator command."""

    command: tuple[str, ...]
    returncode: int
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.returncode == 0


class CommandRunner(Protocol):
    """Protocol for command execution. Implementations may run commands or fake them."""

    def __call__(self, command: Sequence[str]) -> CommandResult:
        ...


def subprocess_runner(command: Sequence[str]) -> CommandResult:
    """Default implementation: run the command via subprocess."""
    argv = [str(part) for part in command]
    try:
        result = subprocess.run(argv, check=False, text=True, capture_output=True)
    except OSError as error:
        raise ExternalCommandFailure(argv, None, str(error)) from error
    return CommandResult(
        command=tuple(argv),
        returncode=result.returncode,
        stdout=result.stdout or "",
        stderr=result.stderr or "",
    )


def run_command(
    runner: CommandRunner,
    command: Sequence[str],
    *,
    check: bool = True,
    log_output: bool = False,
) -> CommandResult:
    """Run ``command`` through ``runner``, raising on non-zero exit when ``check``.

    Raises:
        ExternalCommandFailure: if the command exits non-zero and check is set
    """
    argv = [str(part) for part in command]
    log.debug(f"Running command: {' '.join(argv)}")
    result = runner(argv)
    EventLogger.log_command(log, argv, result.returncode)
    if result.stdout and (log_output or not result.ok):
        log.trace(f"stdout: {result.stdout.strip()}")
    if result.stderr and not result.ok:
        log.debug(f"stderr: {result.stderr.strip()}")
    if check and not result.ok:
        raise ExternalCommandFailure(argv, result.returncode, result.stderr.strip())
    return result
