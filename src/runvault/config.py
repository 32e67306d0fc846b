"""Defaults loader for run-vault.

The values the resolver falls back to are read from multiple sources:

1. Built-in defaults.
2. ``/etc/run-vault/config.yml`` (or an override path).
3. Environment variables prefixed with ``RUN_VAULT_``.
4. Explicit overrides supplied programmatically.

Environment keys use double underscores to express nesting, e.g.::

    export RUN_VAULT_PORT=8300
    export RUN_VAULT_STORAGE__ADDRESS=10.0.0.9:8500

Values are coerced via PyYAML's ``safe_load`` so that booleans and numbers are
parsed naturally. The result is exposed as immutable ``dataclasses`` and passed
into the resolver explicitly; nothing in this module is consulted as ambient
global state.
"""
from __future__ import annotations

import os
import sys
from collections.abc import Mapping, MutableMapping, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import cast

import yaml

from .errors import RunVaultError

ENV_PREFIX = "RUN_VAULT_"
CONFIG_ENV_VAR = f"{ENV_PREFIX}CONFIG_FILE"
RESERVED_ENV_KEYS = {CONFIG_ENV_VAR}

ALLOWED_LOG_LEVELS = {"trace", "debug", "info", "warn", "warning", "err", "error"}
ALLOWED_STORAGE_BACKENDS = {"consul", "file"}
HA_CAPABLE_BACKENDS = {"consul"}


class ConfigError(RunVaultError):
    """Raised when defaults parsing fails."""


@dataclass(frozen=True)
class MetadataConfig:
    """Instance metadata service settings."""

    endpoint: str = "http://169.254.169.254/latest"
    timeout: float = 5.0
    token_ttl: int = 21600


@dataclass(frozen=True)
class SystemdConfig:
    """Systemd integration settings."""

    unit_path: Path = Path("/etc/systemd/system/vault.service")
    systemctl_bin: str = "systemctl"


@dataclass(frozen=True)
class StorageConfig:
    """Primary storage backend settings."""

    backend: str = "consul"
    address: str = "127.0.0.1:8500"
    path: str = "vault/"
    scheme: str = "http"
    service: str = "vault"

    @property
    def supports_ha(self) -> bool:
        """Return True when the backend can act as an HA coordination store."""
        return self.backend in HA_CAPABLE_BACKENDS

    def settings(self) -> tuple[tuple[str, str], ...]:
        """Return the ordered key/value pairs rendered into the storage stanza."""
        if self.backend == "file":
            return (("path", self.path),)
        return (
            ("address", self.address),
            ("path", self.path),
            ("scheme", self.scheme),
            ("service", self.service),
        )


@dataclass(frozen=True)
class AppConfig:
    """Resolved defaults for run-vault."""

    config_file: Path
    base_dir: Path
    config_dir: Path
    bin_dir: Path
    config_file_name: str
    logs_dir: Path
    templates_dir: Path
    port: int
    log_level: str
    ui_min_version: str
    required_tools: tuple[str, ...]
    metadata: MetadataConfig
    systemd: SystemdConfig
    storage: StorageConfig


DEFAULTS: dict[str, object] = {
    "config_file": "/etc/run-vault/config.yml",
    "base_dir": None,  # directory of the invoked script when absent
    "config_dir": None,  # derived from base_dir when absent
    "bin_dir": None,  # derived from base_dir when absent
    "config_file_name": "default.hcl",
    "logs_dir": "/var/log/run-vault",
    "templates_dir": "/etc/run-vault/templates",
    "port": 8200,
    "log_level": "info",
    "ui_min_version": "0.10.0",
    "required_tools": ["systemctl", "aws", "curl", "jq"],
    "metadata": {
        "endpoint": "http://169.254.169.254/latest",
        "timeout": 5.0,
        "token_ttl": 21600,
    },
    "systemd": {
        "unit_path": "/etc/systemd/system/vault.service",
        "systemctl_bin": "systemctl",
    },
    "storage": {
        "backend": "consul",
        "address": "127.0.0.1:8500",
        "path": "vault/",
        "scheme": "http",
        "service": "vault",
    },
}

ALLOWED_TOP_LEVEL_KEYS = set(DEFAULTS.keys())
_NESTED_KEYS: dict[str, set[str]] = {
    "metadata": {"endpoint", "timeout", "token_ttl"},
    "systemd": {"unit_path", "systemctl_bin"},
    "storage": {"backend", "address", "path", "scheme", "service"},
}


def load_config(
    config_file: str | os.PathLike[str] | None = None,
    *,
    env: Mapping[str, str] | None = None,
    overrides: Mapping[str, object] | None = None,
) -> AppConfig:
    """Load and merge defaults sources into an :class:`AppConfig`."""
    merged: dict[str, object] = _deep_copy(DEFAULTS)
    resolved_env = dict(os.environ if env is None else env)

    config_default = _expect_str(merged["config_file"], "config_file")
    config_path = _determine_config_path(config_default, config_file, resolved_env)

    file_values = _load_yaml_file(config_path)
    if file_values:
        _deep_merge(merged, file_values)

    env_values = _build_env_overrides(resolved_env)
    if env_values:
        _deep_merge(merged, env_values)

    if overrides:
        _deep_merge(merged, dict(overrides))

    merged["config_file"] = str(config_path)

    _validate_structure(merged)

    return _build_app_config(merged)


def default_base_dir() -> Path:
    """Return the directory holding the invoked script."""
    return Path(sys.argv[0] or ".").resolve().parent


def _determine_config_path(
    default_path: str,
    cli_override: str | os.PathLike[str] | None,
    env: Mapping[str, str],
) -> Path:
    if cli_override:
        return Path(cli_override)
    if CONFIG_ENV_VAR in env:
        return Path(env[CONFIG_ENV_VAR])
    return Path(default_path)


def _load_yaml_file(path: Path) -> dict[str, object]:
    if not path.exists():
        return {}
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as exc:  # pragma: no cover - PyYAML owns detailed error
        raise ConfigError(f"Failed to parse config file {path}: {exc}") from exc
    if not isinstance(data, Mapping):
        raise ConfigError(f"Config file {path} must contain a mapping at the top level.")
    return _as_dict(data, f"file:{path}")


def _validate_structure(raw: Mapping[str, object]) -> None:
    unknown_keys = set(raw.keys()) - ALLOWED_TOP_LEVEL_KEYS
    if unknown_keys:
        joined = ", ".join(sorted(unknown_keys))
        raise ConfigError(f"Unknown configuration keys: {joined}.")

    for section, allowed in _NESTED_KEYS.items():
        mapping = _as_dict(raw.get(section), section)
        unknown = set(mapping.keys()) - allowed
        if unknown:
            joined = ", ".join(sorted(unknown))
            raise ConfigError(f"Unknown {section} configuration keys: {joined}.")

    log_level = raw.get("log_level")
    if log_level is not None and str(log_level).lower() not in ALLOWED_LOG_LEVELS:
        allowed_levels = ", ".join(sorted(ALLOWED_LOG_LEVELS))
        raise ConfigError(f"Unsupported log_level '{log_level}'. Allowed: {allowed_levels}.")

    storage = _as_dict(raw.get("storage"), "storage")
    backend = storage.get("backend")
    if backend is not None and str(backend) not in ALLOWED_STORAGE_BACKENDS:
        allowed_backends = ", ".join(sorted(ALLOWED_STORAGE_BACKENDS))
        raise ConfigError(
            f"Unsupported storage backend '{backend}'. Allowed: {allowed_backends}."
        )


def _build_app_config(raw: Mapping[str, object]) -> AppConfig:
    config_file = _to_path(raw.get("config_file"))
    base_value = raw.get("base_dir")
    base_dir = _to_path(base_value) if base_value else default_base_dir()
    config_dir_value = raw.get("config_dir")
    config_dir = _to_path(config_dir_value) if config_dir_value else base_dir.parent / "config"
    bin_dir_value = raw.get("bin_dir")
    bin_dir = _to_path(bin_dir_value) if bin_dir_value else base_dir.parent / "bin"

    port = _expect_int(raw.get("port"), "port", default=8200)
    if not 0 < port < 65536:
        raise ConfigError(f"port must be between 1 and 65535. Got {port}.")

    required_raw = raw.get("required_tools")
    required_tools: tuple[str, ...]
    if required_raw is None:
        required_tools = ()
    else:
        required_tools = tuple(
            str(item) for item in _as_sequence(required_raw, "required_tools") if str(item)
        )

    metadata_mapping = _as_dict(raw.get("metadata"), "metadata")
    metadata = MetadataConfig(
        endpoint=str(metadata_mapping.get("endpoint", MetadataConfig.endpoint)).rstrip("/"),
        timeout=_expect_positive_float(
            metadata_mapping.get("timeout"), "metadata.timeout", default=5.0
        ),
        token_ttl=_expect_int(
            metadata_mapping.get("token_ttl"), "metadata.token_ttl", default=21600
        ),
    )

    systemd_mapping = _as_dict(raw.get("systemd"), "systemd")
    systemd = SystemdConfig(
        unit_path=_to_path(systemd_mapping.get("unit_path", "/etc/systemd/system/vault.service")),
        systemctl_bin=str(systemd_mapping.get("systemctl_bin", "systemctl")),
    )

    storage_mapping = _as_dict(raw.get("storage"), "storage")
    storage = StorageConfig(
        backend=str(storage_mapping.get("backend", "consul")),
        address=str(storage_mapping.get("address", "127.0.0.1:8500")),
        path=str(storage_mapping.get("path", "vault/")),
        scheme=str(storage_mapping.get("scheme", "http")),
        service=str(storage_mapping.get("service", "vault")),
    )

    return AppConfig(
        config_file=config_file,
        base_dir=base_dir,
        config_dir=config_dir,
        bin_dir=bin_dir,
        config_file_name=str(raw.get("config_file_name", "default.hcl")),
        logs_dir=_to_path(raw.get("logs_dir")),
        templates_dir=_to_path(raw.get("templates_dir")),
        port=port,
        log_level=str(raw.get("log_level", "info")),
        ui_min_version=str(raw.get("ui_min_version", "0.10.0")),
        required_tools=required_tools,
        metadata=metadata,
        systemd=systemd,
        storage=storage,
    )


def _build_env_overrides(env: Mapping[str, str]) -> dict[str, object]:
    overrides: dict[str, object] = {}
    for key, value in env.items():
        if key in RESERVED_ENV_KEYS:
            continue
        if not key.startswith(ENV_PREFIX):
            continue
        suffix = key[len(ENV_PREFIX) :]
        path_segments = [segment.lower() for segment in suffix.split("__") if segment]
        if not path_segments:
            continue
        _assign_nested(overrides, path_segments, _coerce_value(value))
    return overrides


def _assign_nested(tree: MutableMapping[str, object], path: list[str], value: object) -> None:
    current: MutableMapping[str, object] = tree
    for segment in path[:-1]:
        existing = current.get(segment)
        if existing is None:
            new_child: MutableMapping[str, object] = {}
            current[segment] = new_child
            current = new_child
            continue
        if isinstance(existing, MutableMapping):
            current = cast(MutableMapping[str, object], existing)
            continue
        raise ConfigError(
            "Environment overrides conflict with existing scalar value at "
            f"{'.'.join(path)}"
        )
    current[path[-1]] = value


def _deep_merge(target: MutableMapping[str, object], overrides: Mapping[str, object]) -> None:
    for key, value in overrides.items():
        existing = target.get(key)
        if isinstance(existing, MutableMapping) and isinstance(value, Mapping):
            _deep_merge(existing, _as_dict(value, f"merge.{key}"))
            continue
        target[key] = value


def _deep_copy(source: Mapping[str, object]) -> dict[str, object]:
    result: dict[str, object] = {}
    for key, value in source.items():
        if isinstance(value, Mapping):
            result[key] = _deep_copy(_as_dict(value, f"copy.{key}"))
        elif isinstance(value, list):
            result[key] = list(value)
        else:
            result[key] = value
    return result


def _as_sequence(value: object, label: str) -> Sequence[object]:
    if isinstance(value, str):
        # Allow comma separated lists from environment variables.
        return [item.strip() for item in value.split(",") if item.strip()]
    if isinstance(value, bytes) or not isinstance(value, Sequence):
        raise ConfigError(f"Expected {label} to be a sequence. Got {type(value).__name__}.")
    return value


def _coerce_value(raw: str) -> object:
    raw = raw.strip()
    try:
        parsed = yaml.safe_load(raw)
    except yaml.YAMLError:  # pragma: no cover - treat as string if parsing fails
        return raw
    return parsed


def _to_path(value: object) -> Path:
    if value is None:
        raise ConfigError("Expected a filesystem path, received None.")
    if isinstance(value, Path):
        return value.expanduser()
    if isinstance(value, str):
        return Path(value).expanduser()
    raise ConfigError(f"Cannot convert value {value!r} to Path.")


def _expect_int(value: object | None, label: str, *, default: int) -> int:
    if value is None:
        return default
    if isinstance(value, bool):
        raise ConfigError(f"Expected {label} to be an integer. Got boolean {value!r}.")
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        try:
            return int(value, 0)
        except ValueError as exc:
            raise ConfigError(f"Invalid integer for {label}: {value!r}.") from exc
    raise ConfigError(f"Expected {label} to be an integer. Got {type(value).__name__}.")


def _expect_str(value: object, key: str) -> str:
    if isinstance(value, str):
        return value
    raise ConfigError(f"Expected {key} to resolve to a string. Got {value!r}.")


def _expect_positive_float(
    value: object | None,
    label: str,
    *,
    default: float,
) -> float:
    if value is None:
        return float(default)
    if isinstance(value, bool):
        raise ConfigError(f"Expected {label} to be a number. Got boolean {value!r}.")
    if isinstance(value, (int, float)):
        numeric = float(value)
    elif isinstance(value, str):
        try:
            numeric = float(value)
        except ValueError as exc:
            raise ConfigError(f"Invalid number for {label}: {value!r}.") from exc
    else:
        raise ConfigError(
            f"Expected {label} to be numeric. Got {type(value).__name__}."
        )
    if numeric <= 0:
        raise ConfigError(f"{label} must be greater than zero. Got {numeric}.")
    return numeric


def _as_dict(value: object | None, label: str) -> dict[str, object]:
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        raise ConfigError(f"Expected {label} to be a mapping. Got {type(value).__name__}.")
    result: dict[str, object] = {}
    for key, item in value.items():
        if not isinstance(key, str):
            raise ConfigError(f"Mapping {label} must use string keys. Got {key!r}.")
        result[key] = item
    return result


__all__ = [
    "ALLOWED_STORAGE_BACKENDS",
    "AppConfig",
    "ConfigError",
    "HA_CAPABLE_BACKENDS",
    "MetadataConfig",
    "StorageConfig",
    "SystemdConfig",
    "load_config",
]
