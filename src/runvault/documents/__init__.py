"""Documents rendered by run-vault: the Vault config file and the systemd unit."""
from __future__ import annotations

from .systemd_unit import (
    InstallSection,
    LoggingSection,
    ServiceSection,
    UnitDocument,
    UnitSection,
    build_unit_document,
)
from .vault_config import (
    ConfigDocument,
    ListenerFragment,
    PrimaryStorageFragment,
    S3StorageFragment,
    SealFragment,
    UiFragment,
    build_config_document,
    write_config_document,
)

__all__ = [
    # vault configuration
    "ConfigDocument",
    "ListenerFragment",
    "PrimaryStorageFragment",
    "S3StorageFragment",
    "SealFragment",
    "UiFragment",
    "build_config_document",
    "write_config_document",
    # systemd unit
    "InstallSection",
    "LoggingSection",
    "ServiceSection",
    "UnitDocument",
    "UnitSection",
    "build_unit_document",
]
