"""Platform detection and instance-local device selection.

The platform comes from the ``ignition.platform.id`` kernel argument that
CoreOS sets on every boot. Each supported platform has its own selection
rule over the lsblk device tree:

    aws:    NVMe instance store devices, identified by model string
    azure:  the resource disk, a "Virtual Disk" pre-formatted by the platform
            with a single NTFS partition labelled "Temporary Storage"
    qemu:   test devices whose serial starts with "CoreOSQEMUInstance"
            (see ci/test-qemu.sh)

Any other platform stops the run without error.
"""

from __future__ import annotations

from pathlib import Path
from typing import Callable, Optional

from instance_store.domain.models import BlockDevice, DeviceSelection, Platform, PlatformKind
from instance_store.logging import LoggerFactory
from instance_store.storage.commands import CommandRunner
from instance_store.storage.devices import list_block_devices, wipe_signatures
from instance_store.storage.exceptions import PlatformUndetected, PlatformUnsupported


AWS_INSTANCE_MODEL = "Amazon EC2 NVMe Instance Storage"
AZURE_MODEL = "Virtual Disk"
AZURE_TEMP_LABEL = "Temporary Storage"
AZURE_TEMP_FSTYPE = "ntfs"
QEMU_SERIAL_PREFIX = "CoreOSQEMUInstance"

log = LoggerFactory.for_platform()


# ==============================================================================
# Platform detection
# ==============================================================================


def find_flag_value(flagname: str, cmdline: str) -> Optional[str]:
    """Return the trimmed value of the first non-empty ``flagname=value`` token."""
    for token in cmdline.split():
        key, sep, value = token.partition("=")
        if not sep or key != flagname:
            continue
        bare_value = value.strip()
        if bare_value:
            return bare_value
    return None


def detect_platform(cmdline_path: Path, flagname: str) -> Platform:
    """Read the boot parameters and return the detected platform.

    Raises:
        PlatformUndetected: if the file cannot be read or lacks the flag
    """
    try:
        content = Path(cmdline_path).read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as error:
        raise PlatformUndetected(cmdline_path, "cannot read boot parameters") from error
    platform_id = find_flag_value(flagname, content)
    if platform_id is None:
        raise PlatformUndetected(cmdline_path, f"couldn't find flag '{flagname}'")
    platform = Platform.from_id(platform_id)
    log.info(f"Detected platform: {platform}")
    return platform


# ==============================================================================
# Device selection
# ==============================================================================


def _trimmed(value: Optional[str]) -> Optional[str]:
    return value.strip() if value is not None else None


def is_aws_instance_store(device: BlockDevice) -> bool:
    return _trimmed(device.model) == AWS_INSTANCE_MODEL


def is_azure_resource_disk(device: BlockDevice) -> bool:
    """Match the Azure resource disk: one NTFS child labelled Temporary Storage."""
    if _trimmed(device.model) != AZURE_MODEL:
        return False
    if len(device.children) != 1:
        return False
    child = device.children[0]
    return (
        _trimmed(child.label) == AZURE_TEMP_LABEL
        and _trimmed(child.fstype) == AZURE_TEMP_FSTYPE
    )


def is_qemu_instance_disk(device: BlockDevice) -> bool:
    serial = _trimmed(device.serial)
    return serial is not None and serial.startswith(QEMU_SERIAL_PREFIX)


def _select_matching(
    runner: CommandRunner, predicate: Callable[[BlockDevice], bool]
) -> DeviceSelection:
    matched = [device for device in list_block_devices(runner) if predicate(device)]
    return DeviceSelection(
        paths=tuple(device.path for device in matched),
        signed=frozenset(device.path for device in matched if device.has_signature),
    )


def select_aws(runner: CommandRunner) -> DeviceSelection:
    return _select_matching(runner, is_aws_instance_store)


def select_azure(runner: CommandRunner) -> DeviceSelection:
    """Select the Azure resource disk, wiping the platform's NTFS signature.

    The wipe happens here, as each device is matched, so it is visible on the
    host even if a later step fails.
    """
    paths = []
    for device in list_block_devices(runner):
        if not is_azure_resource_disk(device):
            continue
        wipe_signatures(runner, device.path)
        paths.append(device.path)
    return DeviceSelection(paths=tuple(paths))


def select_qemu(runner: CommandRunner) -> DeviceSelection:
    return _select_matching(runner, is_qemu_instance_disk)


SELECTORS: dict[PlatformKind, Callable[[CommandRunner], DeviceSelection]] = {
    PlatformKind.AWS: select_aws,
    PlatformKind.AZURE: select_azure,
    PlatformKind.QEMU: select_qemu,
}


def select_devices(platform: Platform, runner: CommandRunner) -> DeviceSelection:
    """Find all instance-local devices for ``platform``.

    Raises:
        PlatformUnsupported: for platforms without a selector (benign)
    """
    selector = SELECTORS.get(platform.kind)
    if selector is None:
        raise PlatformUnsupported(platform.raw)
    selection = selector(runner)
    log.info(
        f"Found {len(selection)} instance-local device(s) on {platform}"
        + (f": {', '.join(selection.paths)}" if selection.paths else "")
    )
    return selection
