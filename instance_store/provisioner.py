"""Instance storage provisioning pipeline.

Runs the provisioning steps in a fixed order. Every step either returns its
result or raises; there are no retries and nothing is rolled back.

    1. load the directory config        (ConfigAbsent stops the run, benign)
    2. detect the platform              (PlatformUnsupported stops, benign)
    3. select instance-local devices
    4. assemble one volume              (NoDevicesFound stops, benign)
    5. create the XFS filesystem
    6. create the mountpoint, write + start its mount unit, label it like /var
    7. redirect each configured directory and start the bind mounts
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

from instance_store.config.settings import (
    DirectoryConfig,
    ProvisionerSettings,
    load_directory_config,
)
from instance_store.domain.models import AssembledVolume, MountUnit, Platform
from instance_store.logging import operation_context
from instance_store.storage.commands import CommandRunner, subprocess_runner
from instance_store.storage.exceptions import IOFailure, NothingToProvision
from instance_store.storage.format import format_volume
from instance_store.storage.lvm import assemble_volume
from instance_store.storage.migrate import DirectoryMigrator
from instance_store.storage.mount import MountUnitManager
from instance_store.storage.platforms import detect_platform, select_devices
from instance_store.storage.selinux import copy_context


@dataclass
class ProvisionResult:
    """What a successful run produced."""

    platform: Platform
    volume: AssembledVolume
    root_unit: str
    bind_units: list[str] = field(default_factory=list)


def mount_root(
    runner: CommandRunner,
    units: MountUnitManager,
    settings: ProvisionerSettings,
) -> str:
    """Create the mountpoint, mount the labelled filesystem there and label it."""
    try:
        settings.mountpoint.mkdir()
    except OSError as error:
        raise IOFailure(settings.mountpoint, "creating mountpoint") from error
    name = units.write(
        MountUnit(
            what=settings.label_device,
            where=str(settings.mountpoint),
            type=settings.fs_type,
        )
    )
    units.activate([name])
    copy_context(runner, settings.selinux_reference, settings.mountpoint)
    return name


def provision(
    settings: ProvisionerSettings,
    runner: Optional[CommandRunner] = None,
    config: Optional[DirectoryConfig] = None,
) -> ProvisionResult:
    """Run the full pipeline.

    Raises:
        NothingToProvision: for the benign outcomes (no config, unsupported
            platform, no devices)
        ProvisionerError: for any fatal failure
    """
    if runner is None:
        runner = subprocess_runner
    with operation_context(
        "provision", benign=(NothingToProvision,), mountpoint=str(settings.mountpoint)
    ) as log:
        if config is None:
            config = load_directory_config(settings.config_path)
        log.debug(f"Configured directories: {', '.join(config.directories)}")

        platform = detect_platform(settings.cmdline_path, settings.platform_flag)
        selection = select_devices(platform, runner)
        volume = assemble_volume(
            runner,
            selection,
            vgname=settings.volume_group,
            lvname=settings.logical_volume,
        )
        format_volume(runner, volume, label=settings.fs_label, fs_type=settings.fs_type)

        units = MountUnitManager(runner, settings.unit_dir)
        root_unit = mount_root(runner, units, settings)

        migrator = DirectoryMigrator(runner, units, settings.mountpoint)
        bind_units = migrator.migrate(config.directories)

        return ProvisionResult(
            platform=platform,
            volume=volume,
            root_unit=root_unit,
            bind_units=bind_units,
        )
