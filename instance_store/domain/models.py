"""Domain model for instance storage provisioning.

Type-safe objects for the values that flow through the pipeline, replacing
raw lsblk dicts and loose strings once they leave the collaborator boundary.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import PurePosixPath
from typing import Any, Optional


# ==============================================================================
# Platform Domain
# ==============================================================================


class PlatformKind(str, Enum):
    """Closed set of platforms the provisioner knows how to select devices on."""

    AWS = "aws"
    AZURE = "azure"
    QEMU = "qemu"
    OTHER = "other"


@dataclass(frozen=True)
class Platform:
    """Platform detected from the boot parameters."""

    kind: PlatformKind
    raw: str

    @classmethod
    def from_id(cls, platform_id: str) -> Platform:
        """Map an ``ignition.platform.id`` value onto a platform variant."""
        for kind in (PlatformKind.AWS, PlatformKind.AZURE, PlatformKind.QEMU):
            if platform_id == kind.value:
                return cls(kind=kind, raw=platform_id)
        return cls(kind=PlatformKind.OTHER, raw=platform_id)

    def __str__(self) -> str:
        return self.raw


# ==============================================================================
# Block Device Domain
# ==============================================================================


def _optional_str(device: dict[str, Any], key: str) -> Optional[str]:
    value = device.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValueError(f"expected string for '{key}', got {type(value).__name__}")
    return value


@dataclass(frozen=True)
class BlockDevice:
    """A block device node as reported by lsblk.

    Attribute values are kept exactly as lsblk reports them (lsblk pads model
    and serial strings); matching code trims them.
    """

    name: str
    serial: Optional[str] = None
    model: Optional[str] = None
    label: Optional[str] = None
    fstype: Optional[str] = None
    children: tuple[BlockDevice, ...] = ()

    @property
    def path(self) -> str:
        """Device node path (e.g., /dev/nvme1n1).

        Built from the name because older lsblk builds have no PATH column.
        """
        return f"/dev/{self.name}"

    @property
    def has_signature(self) -> bool:
        """True when lsblk reports a filesystem on the device or a child."""
        if self.fstype and self.fstype.strip():
            return True
        return any(child.has_signature for child in self.children)

    @classmethod
    def from_lsblk_dict(cls, device: dict[str, Any]) -> BlockDevice:
        """Convert an lsblk JSON node (and its children) into a BlockDevice.

        Raises:
            KeyError: If the required ``name`` key is missing
            ValueError: If a field has the wrong type
        """
        if not isinstance(device, dict):
            raise ValueError(f"expected object, got {type(device).__name__}")
        name = device["name"]
        if not isinstance(name, str) or not name:
            raise ValueError("device name must be a non-empty string")
        raw_children = device.get("children") or []
        if not isinstance(raw_children, list):
            raise ValueError(f"children of {name} must be a list")
        return cls(
            name=name,
            serial=_optional_str(device, "serial"),
            model=_optional_str(device, "model"),
            label=_optional_str(device, "label"),
            fstype=_optional_str(device, "fstype"),
            children=tuple(cls.from_lsblk_dict(child) for child in raw_children),
        )


@dataclass(frozen=True)
class DeviceSelection:
    """Instance-local device paths selected for a platform.

    ``signed`` holds the selected paths that still carry a foreign filesystem
    signature and must be wiped before reuse.
    """

    paths: tuple[str, ...] = ()
    signed: frozenset[str] = field(default_factory=frozenset)

    def __len__(self) -> int:
        return len(self.paths)


@dataclass(frozen=True)
class AssembledVolume:
    """The single block device the filesystem is created on."""

    device_path: str
    striped: bool = False
    foreign_signature: bool = False


# ==============================================================================
# Mount Domain
# ==============================================================================

BIND_MOUNT_TYPE = "none"


@dataclass(frozen=True)
class MountUnit:
    """A systemd mount unit declaration."""

    what: str
    where: str
    type: str
    options: Optional[str] = None

    @property
    def is_bind(self) -> bool:
        return self.type == BIND_MOUNT_TYPE or "bind" in (self.options or "").split(",")

    @classmethod
    def bind(cls, what: str, where: str) -> MountUnit:
        return cls(what=what, where=where, type=BIND_MOUNT_TYPE, options="bind")


@dataclass(frozen=True)
class DirectoryEntry:
    """A configured directory and where it lands on instance storage."""

    original: PurePosixPath
    target: PurePosixPath

    @classmethod
    def for_mountpoint(cls, original: str, mountpoint: str) -> DirectoryEntry:
        path = PurePosixPath(original)
        if not path.name:
            raise ValueError(f"Expected filename in {original!r}")
        return cls(original=path, target=PurePosixPath(mountpoint) / path.name)
