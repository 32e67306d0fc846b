"""Provider interfaces for run-vault."""
from __future__ import annotations

from .metadata import Ec2MetadataProvider, InstanceMetadataProvider
from .ownership import FileOwnerLookup, PathOwnerLookup
from .systemd import SystemdError, SystemdProvider
from .version_probe import BinaryVersionProbe, VersionProbe

__all__ = [
    "BinaryVersionProbe",
    "Ec2MetadataProvider",
    "FileOwnerLookup",
    "InstanceMetadataProvider",
    "PathOwnerLookup",
    "SystemdError",
    "SystemdProvider",
    "VersionProbe",
]
