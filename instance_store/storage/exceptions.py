"""Custom exceptions for instance storage provisioning.

This module defines a hierarchy of exceptions for the provisioning pipeline so
callers can tell benign "nothing to do" outcomes apart from fatal failures, and
so every fatal failure carries enough context (command, path, source) to
diagnose which step failed.

Exception Hierarchy:
    ProvisionerError (base)
        ├── NothingToProvision (benign, exit 0)
        │   ├── ConfigAbsent
        │   ├── PlatformUnsupported
        │   └── NoDevicesFound
        ├── ConfigInvalid
        ├── PlatformUndetected
        ├── ExternalCommandFailure
        ├── ParseFailure
        └── IOFailure

Usage:
    from instance_store.storage.exceptions import IOFailure

    try:
        target.mkdir()
    except OSError as error:
        raise IOFailure(target, "creating target directory") from error
"""

from __future__ import annotations

import os
from typing import Optional, Sequence


class ProvisionerError(Exception):
    """Base exception for all provisioning operations."""


class NothingToProvision(ProvisionerError):
    """The run has nothing to do; this is not an error condition."""


class ConfigAbsent(NothingToProvision):
    """No configuration file is present."""

    def __init__(self, path: os.PathLike | str):
        self.path = str(path)
        super().__init__(f"No configuration specified ({self.path})")


class PlatformUnsupported(NothingToProvision):
    """The detected platform has no instance storage selector."""

    def __init__(self, platform: str):
        self.platform = platform
        super().__init__(f"Unhandled platform: {platform}")


class NoDevicesFound(NothingToProvision):
    """The platform selector matched no instance-local devices."""

    def __init__(self, platform: str = ""):
        self.platform = platform
        super().__init__("No ephemeral devices found.")


class ConfigInvalid(ProvisionerError):
    """The configuration file exists but its contents are unusable."""

    def __init__(self, path: os.PathLike | str, reason: str):
        self.path = str(path)
        self.reason = reason
        super().__init__(f"Invalid configuration in {self.path}: {reason}")


class PlatformUndetected(ProvisionerError):
    """The platform identifier could not be read from the boot parameters."""

    def __init__(self, source: os.PathLike | str, reason: str):
        self.source = str(source)
        self.reason = reason
        super().__init__(f"Couldn't detect platform from {self.source}: {reason}")


class ExternalCommandFailure(ProvisionerError):
    """A collaborator command exited non-zero or could not be started."""

    def __init__(
        self,
        command: Sequence[str],
        returncode: Optional[int] = None,
        stderr: str = "",
    ):
        self.command = list(command)
        self.returncode = returncode
        self.stderr = stderr
        msg = f"Child [{' '.join(self.command)}] exited"
        if returncode is not None:
            msg += f" with status {returncode}"
        else:
            msg += " without running"
        if stderr:
            msg += f": {stderr}"
        super().__init__(msg)


class ParseFailure(ProvisionerError):
    """Structured output or input did not match the expected schema."""

    def __init__(self, source: str, reason: str):
        self.source = source
        self.reason = reason
        super().__init__(f"Failed to parse {source}: {reason}")


class IOFailure(ProvisionerError):
    """A filesystem operation on the host failed."""

    def __init__(self, path: os.PathLike | str, action: str):
        self.path = str(path)
        self.action = action
        super().__init__(f"{action.capitalize()} failed for {self.path}")


def describe_error(error: BaseException) -> str:
    """Render an exception and its ``__cause__`` chain as one line."""
    messages = []
    current: Optional[BaseException] = error
    while current is not None:
        text = str(current) or type(current).__name__
        if text not in messages:
            messages.append(text)
        current = current.__cause__
    return ": ".join(messages)
