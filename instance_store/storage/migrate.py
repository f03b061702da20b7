"""Redirect configured directories onto instance storage with bind mounts.

For each configured directory (normally under /var) a same-named directory is
created under the instance storage mountpoint, the original is replaced by an
empty directory, and a bind mount unit maps the new directory over it. Bind
mounts are used instead of symlinks because some container runtimes refuse a
symlinked /var/lib/containers.

WARNING: migration is destructive. Only the original directory's SELinux
label is carried over; its contents are deleted, not copied. Software using
these directories must be prepared to start with them empty. Re-running
against an already migrated directory fails because the target exists.

Bind units are only activated once every directory has been processed. A
failure partway through leaves earlier directories emptied with no bind
mount active yet; nothing is rolled back.
"""

from __future__ import annotations

import shutil
from pathlib import Path
from typing import Sequence

from instance_store.domain.models import DirectoryEntry, MountUnit
from instance_store.logging import EventLogger, LoggerFactory
from instance_store.storage.commands import CommandRunner
from instance_store.storage.exceptions import ConfigInvalid, IOFailure
from instance_store.storage.mount import MountUnitManager
from instance_store.storage.selinux import copy_context


log = LoggerFactory.for_migrate()


def _remove_all(path: Path) -> None:
    """Remove ``path`` and everything below it; a missing path is fine."""
    if path.is_dir() and not path.is_symlink():
        shutil.rmtree(path)
    elif path.exists() or path.is_symlink():
        path.unlink()


class DirectoryMigrator:
    """Moves directories onto the instance storage mountpoint."""

    def __init__(
        self,
        runner: CommandRunner,
        units: MountUnitManager,
        mountpoint: Path,
    ):
        self.runner = runner
        self.units = units
        self.mountpoint = Path(mountpoint)

    def entry_for(self, directory: str) -> DirectoryEntry:
        try:
            return DirectoryEntry.for_mountpoint(directory, str(self.mountpoint))
        except ValueError as error:
            raise ConfigInvalid(directory, str(error)) from error

    def migrate_one(self, directory: str) -> str:
        """Redirect one directory and return its pending bind unit name."""
        entry = self.entry_for(directory)
        original = Path(entry.original)
        target = Path(entry.target)

        try:
            target.mkdir()
        except OSError as error:
            raise IOFailure(target, "creating target directory") from error

        if original.exists():
            copy_context(self.runner, original, target)

        try:
            _remove_all(original)
        except OSError as error:
            raise IOFailure(original, "removing original directory") from error
        try:
            original.mkdir()
        except OSError as error:
            raise IOFailure(original, "recreating directory") from error

        name = self.units.write(MountUnit.bind(what=str(target), where=str(original)))
        EventLogger.log_directory_redirected(log, str(original), str(target))
        return name

    def migrate(self, directories: Sequence[str]) -> list[str]:
        """Redirect every directory in order, then activate all bind units."""
        pending = [self.migrate_one(directory) for directory in directories]
        self.units.activate(pending)
        return pending
