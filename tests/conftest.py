"""
Pytest configuration and shared fixtures for instance storage provisioner tests.

This module provides common fixtures and utilities used across all test modules.
No test runs a real lsblk, lvm, mkfs, systemctl or chcon: collaborators are
replaced by FakeRunner, and every host path lives under tmp_path.
"""

import contextlib
import json
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence

import pytest

from instance_store.config.settings import ProvisionerSettings
from instance_store.storage.commands import CommandResult


# ==============================================================================
# Fake command runner
# ==============================================================================


class FakeRunner:
    """Records every command and answers from a table of canned results.

    ``responses`` maps a command prefix (tuple) to a CommandResult or a
    callable taking the argv. The longest matching prefix wins; unknown
    commands succeed with empty output.
    """

    def __init__(self, responses: Optional[Dict[tuple, Any]] = None):
        self.calls: List[List[str]] = []
        self.responses: Dict[tuple, Any] = dict(responses or {})

    def __call__(self, command: Sequence[str]) -> CommandResult:
        argv = list(command)
        self.calls.append(argv)
        best = None
        for prefix in self.responses:
            if tuple(argv[: len(prefix)]) == prefix:
                if best is None or len(prefix) > len(best):
                    best = prefix
        if best is None:
            return CommandResult(command=tuple(argv), returncode=0)
        response = self.responses[best]
        if callable(response):
            response = response(argv)
        return response

    def respond(self, prefix: Sequence[str], stdout: str = "", returncode: int = 0, stderr: str = ""):
        self.responses[tuple(prefix)] = CommandResult(
            command=tuple(prefix), returncode=returncode, stdout=stdout, stderr=stderr
        )

    def fail(self, prefix: Sequence[str], returncode: int = 1, stderr: str = "boom"):
        self.respond(prefix, returncode=returncode, stderr=stderr)

    def commands(self, program: str) -> List[List[str]]:
        return [call for call in self.calls if call and call[0] == program]

    def lvm(self, subcommand: str) -> List[List[str]]:
        return [call for call in self.commands("lvm") if call[1] == subcommand]


@pytest.fixture
def fake_runner() -> FakeRunner:
    return FakeRunner()


# ==============================================================================
# Device Mock Fixtures
# ==============================================================================


def lsblk_json(devices: List[Dict[str, Any]]) -> str:
    return json.dumps({"blockdevices": devices})


@pytest.fixture
def root_disk() -> Dict[str, Any]:
    """The boot disk, present on every platform and never selected."""
    return {
        "name": "nvme0n1",
        "serial": "vol0123456789abcdef0",
        "model": "Amazon Elastic Block Store              ",
        "label": None,
        "fstype": None,
        "children": [
            {"name": "nvme0n1p3", "serial": None, "model": None, "label": "boot", "fstype": "ext4"},
            {"name": "nvme0n1p4", "serial": None, "model": None, "label": "root", "fstype": "xfs"},
        ],
    }


@pytest.fixture
def aws_instance_disks() -> List[Dict[str, Any]]:
    return [
        {
            "name": f"nvme{index}n1",
            "serial": f"AWS1234567890ABCDEF{index}",
            "model": "Amazon EC2 NVMe Instance Storage        ",
            "label": None,
            "fstype": None,
        }
        for index in (1, 2)
    ]


@pytest.fixture
def azure_resource_disk() -> Dict[str, Any]:
    return {
        "name": "sdb",
        "serial": None,
        "model": "Virtual Disk    ",
        "label": None,
        "fstype": None,
        "children": [
            {
                "name": "sdb1",
                "serial": None,
                "model": None,
                "label": "Temporary Storage",
                "fstype": "ntfs",
            }
        ],
    }


@pytest.fixture
def qemu_instance_disks() -> List[Dict[str, Any]]:
    return [
        {
            "name": f"nvme{index}n1",
            "serial": f"CoreOSQEMUInstance{index}",
            "model": "QEMU NVMe Ctrl",
            "label": None,
            "fstype": None,
        }
        for index in (1, 2)
    ]


@pytest.fixture
def make_lsblk_runner(fake_runner) -> Callable[[List[Dict[str, Any]]], FakeRunner]:
    """Configure the fake runner's lsblk output from a list of device dicts."""

    def _make(devices: List[Dict[str, Any]]) -> FakeRunner:
        fake_runner.respond(["lsblk"], stdout=lsblk_json(devices))
        return fake_runner

    return _make


# ==============================================================================
# Host filesystem fixtures
# ==============================================================================


@pytest.fixture
def host_root(tmp_path) -> Path:
    root = tmp_path / "host"
    (root / "etc" / "systemd" / "system").mkdir(parents=True)
    (root / "proc").mkdir()
    (root / "var" / "mnt").mkdir(parents=True)
    (root / "var" / "lib").mkdir(parents=True)
    return root


@pytest.fixture
def settings(host_root) -> ProvisionerSettings:
    return ProvisionerSettings(
        config_path=host_root / "etc" / "coreos-cloud-instance-store-provisioner.yaml",
        cmdline_path=host_root / "proc" / "cmdline",
        mountpoint=host_root / "var" / "mnt" / "instance-storage",
        unit_dir=host_root / "etc" / "systemd" / "system",
        selinux_reference=host_root / "var",
    )


@pytest.fixture
def write_cmdline(settings) -> Callable[[str], Path]:
    def _write(platform_id: str) -> Path:
        settings.cmdline_path.write_text(
            f"BOOT_IMAGE=(hd0,gpt3)/ostree/fedora-coreos/vmlinuz rw "
            f"ignition.platform.id={platform_id} console=ttyS0,115200n8\n"
        )
        return settings.cmdline_path

    return _write


@pytest.fixture
def write_config(settings) -> Callable[[List[str]], Path]:
    def _write(directories: List[str]) -> Path:
        if not directories:
            settings.config_path.write_text("directories: []\n")
            return settings.config_path
        lines = ["directories:"] + [f"  - {directory}" for directory in directories]
        settings.config_path.write_text("\n".join(lines) + "\n")
        return settings.config_path

    return _write


@pytest.fixture
def log_records() -> List[dict]:
    """Capture loguru records emitted during a test."""
    from loguru import logger

    records: List[dict] = []
    handler_id = logger.add(lambda message: records.append(message.record), level="TRACE")
    yield records
    # setup_logging() may already have removed every handler
    with contextlib.suppress(ValueError):
        logger.remove(handler_id)
