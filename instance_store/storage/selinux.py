"""SELinux context propagation with chcon --reference."""

from __future__ import annotations

import os

from instance_store.logging import LoggerFactory
from instance_store.storage.commands import CommandRunner, run_command


log = LoggerFactory.for_selinux()


def copy_context(runner: CommandRunner, src: os.PathLike | str, dest: os.PathLike | str) -> None:
    """Label ``dest`` with the security context of ``src``."""
    log.debug(f"Copying security context from {src} to {dest}")
    run_command(runner, ["chcon", f"--reference={os.fspath(src)}", os.fspath(dest)])
