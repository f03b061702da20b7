"""Settings and directory configuration for the provisioner."""

from __future__ import annotations

import os
from dataclasses import dataclass, replace
from pathlib import Path, PurePosixPath
from typing import Any

import yaml

from instance_store.storage.exceptions import ConfigAbsent, ConfigInvalid, ParseFailure


# Default values - use these constants instead of hardcoding values elsewhere
DEFAULT_CONFIG_PATH = Path("/etc/coreos-cloud-instance-store-provisioner.yaml")
DEFAULT_CMDLINE_PATH = Path("/proc/cmdline")
DEFAULT_PLATFORM_FLAG = "ignition.platform.id"
DEFAULT_MOUNTPOINT = Path("/var/mnt/instance-storage")
DEFAULT_FS_LABEL = "ccisp-store"
DEFAULT_FS_TYPE = "xfs"
DEFAULT_UNIT_DIR = Path("/etc/systemd/system")
DEFAULT_VOLUME_GROUP = "coreos-instance-vg"
DEFAULT_LOGICAL_VOLUME = "striped"
DEFAULT_SELINUX_REFERENCE = Path("/var")

ENV_OVERRIDES = {
    "config_path": "CCISP_CONFIG_PATH",
    "cmdline_path": "CCISP_CMDLINE_PATH",
    "mountpoint": "CCISP_MOUNTPOINT",
    "unit_dir": "CCISP_UNIT_DIR",
}


@dataclass(frozen=True)
class ProvisionerSettings:
    """Immutable run settings, built once at startup."""

    config_path: Path = DEFAULT_CONFIG_PATH
    cmdline_path: Path = DEFAULT_CMDLINE_PATH
    platform_flag: str = DEFAULT_PLATFORM_FLAG
    mountpoint: Path = DEFAULT_MOUNTPOINT
    fs_label: str = DEFAULT_FS_LABEL
    fs_type: str = DEFAULT_FS_TYPE
    unit_dir: Path = DEFAULT_UNIT_DIR
    volume_group: str = DEFAULT_VOLUME_GROUP
    logical_volume: str = DEFAULT_LOGICAL_VOLUME
    selinux_reference: Path = DEFAULT_SELINUX_REFERENCE

    @property
    def label_device(self) -> str:
        """Stable device path udev creates for the filesystem label."""
        return f"/dev/disk/by-label/{self.fs_label}"

    @classmethod
    def from_env(cls, environ: dict[str, str] | None = None, **overrides: Any) -> ProvisionerSettings:
        """Build settings from defaults, CCISP_* environment variables and overrides.

        Explicit ``overrides`` (e.g. from the command line) win over the
        environment. ``None`` overrides are ignored.
        """
        environ = os.environ if environ is None else environ
        values: dict[str, Any] = {}
        for field_name, env_name in ENV_OVERRIDES.items():
            value = environ.get(env_name)
            if value:
                values[field_name] = Path(value)
        for key, value in overrides.items():
            if value is not None:
                values[key] = value
        return replace(cls(), **values)


@dataclass(frozen=True)
class DirectoryConfig:
    """Ordered list of absolute directories to redirect onto instance storage."""

    directories: tuple[str, ...]


def _validate_directories(path: Path, raw: Any) -> tuple[str, ...]:
    if raw is None:
        raw = []
    if not isinstance(raw, list):
        raise ConfigInvalid(path, "'directories' must be a list of paths")
    if not raw:
        raise ConfigInvalid(path, "Specified directories list is empty")
    directories = []
    for entry in raw:
        if not isinstance(entry, str) or not entry:
            raise ConfigInvalid(path, f"directory entry {entry!r} is not a path")
        posix = PurePosixPath(entry)
        if not posix.is_absolute():
            raise ConfigInvalid(path, f"directory {entry!r} is not absolute")
        if not posix.name:
            raise ConfigInvalid(path, f"Expected filename in {entry!r}")
        directories.append(entry)
    return tuple(directories)


def load_directory_config(path: Path) -> DirectoryConfig:
    """Load the directory list from the YAML config file.

    Raises:
        ConfigAbsent: if the file does not exist (benign)
        ParseFailure: if the file is not valid UTF-8 or YAML
        ConfigInvalid: if the document is not a mapping with a usable
            ``directories`` list
    """
    path = Path(path)
    if not path.exists():
        raise ConfigAbsent(path)
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as error:
        raise ConfigInvalid(path, f"cannot read file ({error.strerror or error})") from error
    except UnicodeDecodeError as error:
        raise ParseFailure(str(path), "file is not valid UTF-8") from error
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as error:
        raise ParseFailure(str(path), "invalid YAML") from error
    if not isinstance(data, dict) or "directories" not in data:
        raise ConfigInvalid(path, "expected a mapping with a 'directories' key")
    return DirectoryConfig(directories=_validate_directories(path, data["directories"]))
