"""Volume assembly: turn the selected devices into one usable block device.

A single device is used directly. Several devices are combined into one LVM
volume group with a single logical volume striped across every physical
volume (no redundancy; instance storage is disposable anyway).

Failures are fatal and not cleaned up: physical volumes initialised before a
failing vgcreate/lvcreate stay initialised.
"""

from __future__ import annotations

from typing import Sequence

from instance_store.domain.models import AssembledVolume, DeviceSelection
from instance_store.logging import LoggerFactory
from instance_store.storage.commands import CommandRunner, run_command
from instance_store.storage.devices import wipe_signatures
from instance_store.storage.exceptions import NoDevicesFound


log = LoggerFactory.for_volume()


def escape(name: str) -> str:
    """Escape a VG/LV name the way device-mapper names its nodes."""
    return name.replace("-", "--")


def mapper_path(vgname: str, lvname: str) -> str:
    return f"/dev/mapper/{escape(vgname)}-{escape(lvname)}"


def pvcreate(runner: CommandRunner, device: str) -> None:
    run_command(runner, ["lvm", "pvcreate", device])


def new_striped_lv(
    runner: CommandRunner,
    lvname: str,
    vgname: str,
    devices: Sequence[str],
) -> str:
    """Create a VG over ``devices`` and one LV striped across all of them.

    Returns:
        The device-mapper path of the new logical volume
    """
    for device in devices:
        pvcreate(runner, device)
    run_command(runner, ["lvm", "vgcreate", vgname, *devices])
    run_command(
        runner,
        [
            "lvm",
            "lvcreate",
            "--type",
            "striped",
            "--extents",
            "100%FREE",
            vgname,
            "--name",
            lvname,
        ],
    )
    path = mapper_path(vgname, lvname)
    log.info(f"Created striped logical volume {path} across {len(devices)} devices")
    return path


def assemble_volume(
    runner: CommandRunner,
    selection: DeviceSelection,
    *,
    vgname: str,
    lvname: str,
) -> AssembledVolume:
    """Reduce the selected devices to one block device.

    Raises:
        NoDevicesFound: if the selection is empty (benign)
    """
    devices = list(selection.paths)
    if not devices:
        # Not finding any devices isn't an error; instance types without
        # local storage are expected.
        raise NoDevicesFound()
    if len(devices) == 1:
        device = devices[0]
        log.info(f"Using single instance-local device {device}")
        return AssembledVolume(
            device_path=device,
            striped=False,
            foreign_signature=device in selection.signed,
        )
    for device in devices:
        if device in selection.signed:
            wipe_signatures(runner, device)
    path = new_striped_lv(runner, lvname, vgname, devices)
    return AssembledVolume(device_path=path, striped=True)
