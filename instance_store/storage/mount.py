"""Persistent mounts via systemd mount units.

Mounts are declared as units in the unit directory (normally
/etc/systemd/system) rather than performed directly, so they are re-applied
on every later boot by systemd itself.

Unit Naming:
    systemd requires a mount unit's name to be the escaped form of its
    ``Where=`` path (``systemd-escape --path``), e.g.
    ``/var/mnt/instance-storage`` -> ``var-mnt-instance\\x2dstorage.mount``.

Activation:
    After writing units the manager must be told to reload before any unit is
    enabled; enabling uses ``enable --now`` so a unit that fails to start is a
    fatal error, not just a configuration problem. Units are never
    deduplicated or removed.
"""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Iterable

from instance_store.domain.models import MountUnit
from instance_store.logging import EventLogger, LoggerFactory
from instance_store.storage.commands import CommandRunner, run_command
from instance_store.storage.exceptions import IOFailure


UNIT_FILE_MODE = 0o644
LOCAL_FS_TARGET = "local-fs.target"

_VALID_UNIT_CHARS = re.compile(r"[A-Za-z0-9:_.]")

log = LoggerFactory.for_mount()


def escape_path(path: str) -> str:
    """Escape a filesystem path into a systemd unit name prefix.

    Mirrors ``systemd-escape --path``: redundant slashes are dropped, the
    root directory becomes ``-``, remaining slashes become ``-`` and any
    byte outside ``[A-Za-z0-9:_.]`` (or a leading ``.``) becomes ``\\xNN``.
    """
    parts = [part for part in path.split("/") if part]
    if not parts:
        return "-"
    normalized = "/".join(parts)
    escaped = []
    for index, char in enumerate(normalized):
        if char == "/":
            escaped.append("-")
        elif _VALID_UNIT_CHARS.fullmatch(char) and not (index == 0 and char == "."):
            escaped.append(char)
        else:
            escaped.extend(f"\\x{byte:02x}" for byte in char.encode("utf-8"))
    return "".join(escaped)


def unit_name(where: str) -> str:
    return f"{escape_path(where)}.mount"


def render_mount_unit(unit: MountUnit) -> str:
    """Render the unit file text for ``unit``."""
    lines = ["[Unit]", f"Before={LOCAL_FS_TARGET}"]
    # systemd already adds RequiresMountsFor= on What= for bind mounts.
    if not unit.is_bind:
        lines.append(f"RequiresMountsFor={unit.what}")
    lines += [
        "",
        "[Mount]",
        f"What={unit.what}",
        f"Where={unit.where}",
        f"Type={unit.type}",
    ]
    if unit.options:
        lines.append(f"Options={unit.options}")
    lines += ["", "[Install]", f"WantedBy={LOCAL_FS_TARGET}", ""]
    return "\n".join(lines)


class MountUnitManager:
    """Writes mount units and drives systemctl to activate them."""

    def __init__(self, runner: CommandRunner, unit_dir: Path):
        self.runner = runner
        self.unit_dir = Path(unit_dir)

    def write(self, unit: MountUnit) -> str:
        """Persist ``unit`` and return its unit name.

        Raises:
            IOFailure: if the unit file cannot be written
        """
        name = unit_name(unit.where)
        unit_path = self.unit_dir / name
        try:
            unit_path.write_text(render_mount_unit(unit), encoding="utf-8")
            os.chmod(unit_path, UNIT_FILE_MODE)
        except OSError as error:
            raise IOFailure(unit_path, "writing mount unit") from error
        EventLogger.log_unit_written(log, name, unit.what, unit.where)
        return name

    def reload(self) -> None:
        log.debug("Reloading systemd unit files")
        run_command(self.runner, ["systemctl", "daemon-reload"])

    def enable_now(self, name: str) -> None:
        log.info(f"Enabling and starting {name}")
        run_command(self.runner, ["systemctl", "enable", "--now", name])

    def activate(self, names: Iterable[str]) -> None:
        """Reload once, then enable and start each unit in order."""
        names = list(names)
        if not names:
            return
        self.reload()
        for name in names:
            self.enable_now(name)
