"""Resolve effective run-vault settings from options, defaults and lookups.

Resolution runs in three phases so that cheap, user-correctable problems are
reported before anything touches the network or the filesystem:

1. Required and conditionally-required options are validated.
2. Required external tools are located on ``PATH``.
3. Unset values are derived from defaults and from instance metadata and
   ownership lookups.
"""
from __future__ import annotations

import shutil
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from pathlib import Path

from .config import AppConfig, StorageConfig
from .errors import (
    IncompatibleOptions,
    InvalidArgument,
    MissingArgument,
    MissingDependency,
)
from .providers.metadata import PRIVATE_IP_PATH, InstanceMetadataProvider
from .providers.ownership import FileOwnerLookup

VAULT_BINARY = "vault"

Which = Callable[[str], str | None]


@dataclass(slots=True)
class RunOptions:
    """Raw option values as supplied on the command line."""

    tls_cert_file: str | None = None
    tls_key_file: str | None = None
    port: int | None = None
    cluster_port: int | None = None
    api_addr: str | None = None
    config_dir: str | None = None
    bin_dir: str | None = None
    log_level: str | None = None
    systemd_stdout: str | None = None
    systemd_stderr: str | None = None
    user: str | None = None
    skip_config: bool = False
    enable_s3_backend: bool = False
    s3_bucket: str | None = None
    s3_bucket_region: str | None = None
    enable_auto_unseal: bool = False
    auto_unseal_kms_key_id: str | None = None
    auto_unseal_kms_key_region: str | None = None
    auto_unseal_endpoint: str | None = None


@dataclass(frozen=True, slots=True)
class S3Settings:
    """Auxiliary S3 storage backend settings."""

    bucket: str
    region: str


@dataclass(frozen=True, slots=True)
class AutoUnsealSettings:
    """AWS KMS auto-unseal settings."""

    kms_key_id: str
    region: str
    endpoint: str | None = None


@dataclass(frozen=True, slots=True)
class ResolvedConfig:
    """Authoritative settings consumed by both document renderers."""

    tls_cert_file: str
    tls_key_file: str
    port: int
    cluster_port: int
    api_addr: str
    instance_ip: str | None
    config_dir: Path
    bin_dir: Path
    config_file_name: str
    log_level: str
    user: str
    storage: StorageConfig
    systemd_stdout: str | None = None
    systemd_stderr: str | None = None
    skip_config: bool = False
    s3: S3Settings | None = None
    auto_unseal: AutoUnsealSettings | None = None

    @property
    def config_path(self) -> Path:
        """Return the path of the rendered Vault configuration file."""
        return self.config_dir / self.config_file_name

    @property
    def vault_binary(self) -> Path:
        """Return the path of the Vault server binary."""
        return self.bin_dir / VAULT_BINARY

    @property
    def cluster_addr(self) -> str:
        """Return the address other nodes use for cluster traffic."""
        return f"https://{self.instance_ip}:{self.cluster_port}"

    def to_dict(self) -> dict[str, object]:
        """Return a JSON-serialisable representation."""
        return {
            "tls_cert_file": self.tls_cert_file,
            "tls_key_file": self.tls_key_file,
            "port": self.port,
            "cluster_port": self.cluster_port,
            "api_addr": self.api_addr,
            "instance_ip": self.instance_ip,
            "config_path": str(self.config_path),
            "bin_dir": str(self.bin_dir),
            "log_level": self.log_level,
            "user": self.user,
            "systemd_stdout": self.systemd_stdout,
            "systemd_stderr": self.systemd_stderr,
            "skip_config": self.skip_config,
            "s3": (
                {"bucket": self.s3.bucket, "region": self.s3.region} if self.s3 else None
            ),
            "auto_unseal": (
                {
                    "kms_key_id": self.auto_unseal.kms_key_id,
                    "region": self.auto_unseal.region,
                    "endpoint": self.auto_unseal.endpoint,
                }
                if self.auto_unseal
                else None
            ),
        }


def validate_options(options: RunOptions) -> None:
    """Fail fast when a required or conditionally-required option is blank."""
    _require(options.tls_cert_file, "--tls-cert-file")
    _require(options.tls_key_file, "--tls-key-file")

    if options.enable_s3_backend:
        _require(options.s3_bucket, "--s3-bucket", "Required when --enable-s3-backend is set.")
        _require(
            options.s3_bucket_region,
            "--s3-bucket-region",
            "Required when --enable-s3-backend is set.",
        )

    if options.enable_auto_unseal:
        _require(
            options.auto_unseal_kms_key_id,
            "--auto-unseal-kms-key-id",
            "Required when --enable-auto-unseal is set.",
        )
        _require(
            options.auto_unseal_kms_key_region,
            "--auto-unseal-kms-key-region",
            "Required when --enable-auto-unseal is set.",
        )

    for option, value in (("--port", options.port), ("--cluster-port", options.cluster_port)):
        if value is not None and not 0 < value < 65536:
            raise InvalidArgument(option, f"{value} is not a TCP port (1-65535).")


def check_dependencies(tools: Iterable[str], *, which: Which | None = None) -> None:
    """Raise :class:`MissingDependency` for the first tool not found on ``PATH``."""
    locate = which or shutil.which
    for tool in tools:
        if not locate(tool):
            raise MissingDependency(tool)


def resolve_config(
    options: RunOptions,
    config: AppConfig,
    *,
    metadata: InstanceMetadataProvider,
    owners: FileOwnerLookup,
    which: Which | None = None,
) -> ResolvedConfig:
    """Return the :class:`ResolvedConfig` for *options* on this host."""
    validate_options(options)

    if options.enable_s3_backend and not config.storage.supports_ha:
        raise IncompatibleOptions(
            f"--enable-s3-backend turns the '{config.storage.backend}' backend into an HA "
            "coordination store, which it does not support."
        )

    check_dependencies(config.required_tools, which=which)

    port = options.port if options.port is not None else config.port
    cluster_port = options.cluster_port if options.cluster_port is not None else port + 1
    if cluster_port > 65535:
        raise InvalidArgument("--cluster-port", f"derived value {cluster_port} exceeds 65535.")

    config_dir = _as_path(options.config_dir) or config.config_dir
    bin_dir = _as_path(options.bin_dir) or config.bin_dir
    log_level = _text(options.log_level) or config.log_level

    api_addr = _text(options.api_addr)
    instance_ip: str | None = None
    if not options.skip_config or api_addr is None:
        instance_ip = metadata.lookup(PRIVATE_IP_PATH)
    if api_addr is None:
        api_addr = f"https://{instance_ip}:{port}"

    user = _text(options.user) or owners.owner(config_dir)

    s3: S3Settings | None = None
    if options.enable_s3_backend:
        s3 = S3Settings(
            bucket=str(options.s3_bucket).strip(),
            region=str(options.s3_bucket_region).strip(),
        )

    auto_unseal: AutoUnsealSettings | None = None
    if options.enable_auto_unseal:
        auto_unseal = AutoUnsealSettings(
            kms_key_id=str(options.auto_unseal_kms_key_id).strip(),
            region=str(options.auto_unseal_kms_key_region).strip(),
            endpoint=_text(options.auto_unseal_endpoint),
        )

    return ResolvedConfig(
        tls_cert_file=str(options.tls_cert_file),
        tls_key_file=str(options.tls_key_file),
        port=port,
        cluster_port=cluster_port,
        api_addr=api_addr,
        instance_ip=instance_ip,
        config_dir=config_dir,
        bin_dir=bin_dir,
        config_file_name=config.config_file_name,
        log_level=log_level,
        user=user,
        storage=config.storage,
        systemd_stdout=_text(options.systemd_stdout),
        systemd_stderr=_text(options.systemd_stderr),
        skip_config=options.skip_config,
        s3=s3,
        auto_unseal=auto_unseal,
    )


def _require(value: str | None, option: str, reason: str | None = None) -> None:
    if _text(value) is None:
        raise MissingArgument(option, reason)


def _text(value: str | None) -> str | None:
    if value is None:
        return None
    stripped = value.strip()
    return stripped or None


def _as_path(value: str | None) -> Path | None:
    text = _text(value)
    return Path(text).expanduser() if text else None


__all__ = [
    "AutoUnsealSettings",
    "ResolvedConfig",
    "RunOptions",
    "S3Settings",
    "check_dependencies",
    "resolve_config",
    "validate_options",
]
