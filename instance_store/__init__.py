"""Provision instance-local storage and redirect directories onto it."""

from instance_store.__version__ import __version__

__all__ = ["__version__"]
