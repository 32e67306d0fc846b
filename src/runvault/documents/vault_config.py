"""Vault server configuration document (HCL) assembled from typed fragments."""
from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import ClassVar

from ..providers.ownership import FileOwnerLookup
from ..resolver import ResolvedConfig
from ..templates import TemplateEngine, write_text_atomic

CONFIG_FILE_MODE = 0o640


@dataclass(frozen=True, slots=True)
class UiFragment:
    """Enable the Vault web UI."""

    name: ClassVar[str] = "ui"
    template: ClassVar[str] = "vault/ui.hcl.j2"

    def context(self) -> Mapping[str, object]:
        return {}


@dataclass(frozen=True, slots=True)
class SealFragment:
    """AWS KMS auto-unseal seal stanza."""

    kms_key_id: str
    region: str
    endpoint: str | None = None

    name: ClassVar[str] = "seal"
    template: ClassVar[str] = "vault/seal.hcl.j2"

    def context(self) -> Mapping[str, object]:
        return {"kms_key_id": self.kms_key_id, "region": self.region, "endpoint": self.endpoint}


@dataclass(frozen=True, slots=True)
class ListenerFragment:
    """TCP listener for client and cluster traffic."""

    port: int
    cluster_port: int
    tls_cert_file: str
    tls_key_file: str

    name: ClassVar[str] = "listener"
    template: ClassVar[str] = "vault/listener.hcl.j2"

    def context(self) -> Mapping[str, object]:
        return {
            "port": self.port,
            "cluster_port": self.cluster_port,
            "tls_cert_file": self.tls_cert_file,
            "tls_key_file": self.tls_key_file,
        }


@dataclass(frozen=True, slots=True)
class S3StorageFragment:
    """Auxiliary S3 data store."""

    bucket: str
    region: str

    name: ClassVar[str] = "s3_storage"
    template: ClassVar[str] = "vault/s3_storage.hcl.j2"

    def context(self) -> Mapping[str, object]:
        return {"bucket": self.bucket, "region": self.region}


@dataclass(frozen=True, slots=True)
class PrimaryStorageFragment:
    """Primary backend, either the sole data store or the HA coordination store."""

    backend: str
    settings: tuple[tuple[str, str], ...]
    cluster_addr: str
    api_addr: str
    high_availability: bool = False

    name: ClassVar[str] = "primary_storage"
    template: ClassVar[str] = "vault/primary_storage.hcl.j2"

    @property
    def stanza(self) -> str:
        """Return ``ha_storage`` when coordinating for another store, else ``storage``."""
        return "ha_storage" if self.high_availability else "storage"

    def context(self) -> Mapping[str, object]:
        return {
            "stanza": self.stanza,
            "backend": self.backend,
            "settings": self.settings,
            "cluster_addr": self.cluster_addr,
            "api_addr": self.api_addr,
        }


ConfigFragment = (
    UiFragment | SealFragment | ListenerFragment | S3StorageFragment | PrimaryStorageFragment
)


@dataclass(frozen=True, slots=True)
class ConfigDocument:
    """Ordered fragments making up ``default.hcl``."""

    fragments: tuple[ConfigFragment, ...]

    def names(self) -> tuple[str, ...]:
        """Return fragment names in render order."""
        return tuple(fragment.name for fragment in self.fragments)

    def get(self, name: str) -> ConfigFragment | None:
        """Return the first fragment called *name*, if present."""
        for fragment in self.fragments:
            if fragment.name == name:
                return fragment
        return None

    def render(self, templates: TemplateEngine) -> str:
        """Render every fragment and join them with blank lines."""
        blocks = [
            templates.render_to_string(fragment.template, fragment.context()).rstrip("\n")
            for fragment in self.fragments
        ]
        return "\n\n".join(blocks) + "\n"


def build_config_document(resolved: ResolvedConfig, *, ui_enabled: bool) -> ConfigDocument:
    """Compose the configuration fragments selected by *resolved*."""
    fragments: list[ConfigFragment] = []
    if ui_enabled:
        fragments.append(UiFragment())
    if resolved.auto_unseal is not None:
        fragments.append(
            SealFragment(
                kms_key_id=resolved.auto_unseal.kms_key_id,
                region=resolved.auto_unseal.region,
                endpoint=resolved.auto_unseal.endpoint,
            )
        )
    fragments.append(
        ListenerFragment(
            port=resolved.port,
            cluster_port=resolved.cluster_port,
            tls_cert_file=resolved.tls_cert_file,
            tls_key_file=resolved.tls_key_file,
        )
    )
    if resolved.s3 is not None:
        fragments.append(S3StorageFragment(bucket=resolved.s3.bucket, region=resolved.s3.region))
    fragments.append(
        PrimaryStorageFragment(
            backend=resolved.storage.backend,
            settings=resolved.storage.settings(),
            cluster_addr=resolved.cluster_addr,
            api_addr=resolved.api_addr,
            high_availability=resolved.s3 is not None,
        )
    )
    return ConfigDocument(fragments=tuple(fragments))


def write_config_document(
    content: str,
    destination: Path,
    *,
    user: str,
    owners: FileOwnerLookup,
) -> bool:
    """Write *content* to *destination* and hand ownership to ``user:user``."""
    changed = write_text_atomic(destination, content, mode=CONFIG_FILE_MODE)
    owners.chown(destination, user, user)
    return changed


__all__ = [
    "ConfigDocument",
    "ConfigFragment",
    "ListenerFragment",
    "PrimaryStorageFragment",
    "S3StorageFragment",
    "SealFragment",
    "UiFragment",
    "build_config_document",
    "write_config_document",
]
