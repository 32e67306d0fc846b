"""Pytest configuration helpers for the test suite."""

from __future__ import annotations

from pathlib import Path

import pytest

from runvault.config import StorageConfig
from runvault.resolver import ResolvedConfig


class FakeMetadata:
    """Deterministic instance metadata provider."""

    def __init__(self, values: dict[str, str] | None = None) -> None:
        """Initialise with a path -> value mapping."""
        self.values = values if values is not None else {"local-ipv4": "10.0.0.5"}
        self.calls: list[str] = []

    def lookup(self, path: str) -> str:
        """Return the stored value for *path*."""
        self.calls.append(path)
        return self.values[path]


class FakeOwners:
    """Ownership lookup that records chown calls instead of applying them."""

    def __init__(self, owner: str = "vault") -> None:
        """Initialise with the owner reported for every path."""
        self.default_owner = owner
        self.owner_calls: list[Path] = []
        self.chowns: list[tuple[Path, str, str]] = []

    def owner(self, path: Path) -> str:
        """Return the configured owner."""
        self.owner_calls.append(path)
        return self.default_owner

    def chown(self, path: Path, user: str, group: str) -> None:
        """Record the requested ownership change."""
        self.chowns.append((path, user, group))


def make_resolved(**changes: object) -> ResolvedConfig:
    """Build a :class:`ResolvedConfig` with sensible defaults."""
    values: dict[str, object] = {
        "tls_cert_file": "/a/crt",
        "tls_key_file": "/a/key",
        "port": 8200,
        "cluster_port": 8201,
        "api_addr": "https://10.0.0.5:8200",
        "instance_ip": "10.0.0.5",
        "config_dir": Path("/opt/vault/config"),
        "bin_dir": Path("/opt/vault/bin"),
        "config_file_name": "default.hcl",
        "log_level": "info",
        "user": "vault",
        "storage": StorageConfig(),
    }
    values.update(changes)
    return ResolvedConfig(**values)  # type: ignore[arg-type]


@pytest.fixture
def fake_metadata() -> FakeMetadata:
    """Return a metadata provider reporting ``10.0.0.5``."""
    return FakeMetadata()


@pytest.fixture
def fake_owners() -> FakeOwners:
    """Return an ownership lookup reporting ``vault``."""
    return FakeOwners()
