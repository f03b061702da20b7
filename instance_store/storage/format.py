"""Filesystem creation on the assembled instance storage device.

The device is always formatted as XFS with a fixed label, so the root mount
unit can refer to it as /dev/disk/by-label/<label> whichever device (raw
NVMe, Azure resource disk or striped LV) ended up underneath.

This is destructive and not idempotent: formatting a device that already
holds data destroys it without confirmation.
"""

from __future__ import annotations

from instance_store.domain.models import AssembledVolume
from instance_store.logging import LoggerFactory
from instance_store.storage.commands import CommandRunner, run_command
from instance_store.storage.devices import wipe_signatures
from instance_store.storage.exceptions import ConfigInvalid, IOFailure


SUPPORTED_FILESYSTEMS = ("xfs",)

log = LoggerFactory.for_format()


def _validate_device_path(device_path: str) -> bool:
    """Validate that device path starts with /dev/."""
    return device_path.startswith("/dev/")


def mkfs_command(device_path: str, fs_type: str, label: str) -> list[str]:
    if fs_type not in SUPPORTED_FILESYSTEMS:
        raise ValueError(f"Unsupported filesystem type: {fs_type}")
    return [f"mkfs.{fs_type}", "-L", label, device_path]


def format_volume(
    runner: CommandRunner,
    volume: AssembledVolume,
    *,
    label: str,
    fs_type: str = "xfs",
) -> None:
    """Create the filesystem on ``volume``.

    Raises:
        IOFailure: if the device path is not under /dev
        ConfigInvalid: if the filesystem type is not supported
        ExternalCommandFailure: if wipefs or mkfs exits non-zero
    """
    device_path = volume.device_path
    if not _validate_device_path(device_path):
        raise IOFailure(device_path, "formatting non-device path")
    try:
        command = mkfs_command(device_path, fs_type, label)
    except ValueError as error:
        raise ConfigInvalid("fs_type", str(error)) from error
    if volume.foreign_signature:
        wipe_signatures(runner, device_path)
    log.info(f"Formatting {device_path} as {fs_type} (label: {label})")
    run_command(runner, command)
