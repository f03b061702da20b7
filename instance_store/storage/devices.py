"""Block device enumeration using lsblk.

Device Detection:
    Uses lsblk with JSON output to enumerate block devices as a shallow tree
    (disk -> partitions). Only the columns the platform selectors match on are
    requested:
    - NAME: kernel device name (device path is /dev/<name>)
    - SERIAL: used by the QEMU test fixture
    - MODEL: used by the AWS and Azure selectors
    - LABEL, FSTYPE: used to recognise Azure's pre-formatted resource disk

    Enumeration is read fresh on every call and never cached: the provisioner
    runs once, and the Azure selector wipes devices between listing and use.

Failure Handling:
    A non-zero lsblk exit raises ExternalCommandFailure; output that is not the
    expected ``{"blockdevices": [...]}`` document raises ParseFailure. Nothing
    is retried.
"""

from __future__ import annotations

import json

from instance_store.domain.models import BlockDevice
from instance_store.logging import LoggerFactory
from instance_store.storage.commands import CommandRunner, run_command
from instance_store.storage.exceptions import ParseFailure


LSBLK_COLUMNS = ("NAME", "SERIAL", "MODEL", "LABEL", "FSTYPE")

log = LoggerFactory.for_devices()


def lsblk_command() -> list[str]:
    return ["lsblk", "-J", "-o", ",".join(LSBLK_COLUMNS)]


def parse_block_devices(output: str) -> list[BlockDevice]:
    """Parse ``lsblk -J`` output into BlockDevice trees.

    Raises:
        ParseFailure: if the output does not match the lsblk JSON schema
    """
    try:
        data = json.loads(output)
    except json.JSONDecodeError as error:
        raise ParseFailure("lsblk output", f"invalid JSON ({error.msg})") from error
    if not isinstance(data, dict):
        raise ParseFailure("lsblk output", "expected a JSON object")
    raw_devices = data.get("blockdevices")
    if not isinstance(raw_devices, list):
        raise ParseFailure("lsblk output", "missing 'blockdevices' list")
    try:
        return [BlockDevice.from_lsblk_dict(device) for device in raw_devices]
    except (KeyError, ValueError) as error:
        raise ParseFailure("lsblk output", f"malformed device entry ({error})") from error


def list_block_devices(runner: CommandRunner) -> list[BlockDevice]:
    """Return the top-level block devices on the host."""
    result = run_command(runner, lsblk_command(), log_output=True)
    devices = parse_block_devices(result.stdout)
    if devices:
        log.debug(
            f"lsblk found {len(devices)} devices: "
            f"{', '.join(device.name for device in devices)}"
        )
    else:
        log.debug("lsblk found no block devices")
    return devices


def wipe_signatures(runner: CommandRunner, device_path: str) -> None:
    """Erase all filesystem, RAID and partition-table signatures on a device."""
    log.info(f"Wiping existing signatures on {device_path}")
    run_command(runner, ["wipefs", "-a", device_path])
