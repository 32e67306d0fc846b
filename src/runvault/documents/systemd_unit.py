"""Systemd unit document for the Vault service."""
from __future__ import annotations

import shlex
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import ClassVar

from ..resolver import ResolvedConfig
from ..templates import TemplateEngine

DESCRIPTION = "HashiCorp Vault - A tool for managing secrets"
DOCUMENTATION = "https://www.vaultproject.io/docs/"


@dataclass(frozen=True, slots=True)
class UnitSection:
    """``[Unit]`` metadata and start conditions."""

    config_path: Path
    description: str = DESCRIPTION
    documentation: str = DOCUMENTATION

    name: ClassVar[str] = "unit"
    template: ClassVar[str] = "systemd/unit.j2"

    def context(self) -> Mapping[str, object]:
        return {
            "description": self.description,
            "documentation": self.documentation,
            "config_path": str(self.config_path),
        }


@dataclass(frozen=True, slots=True)
class ServiceSection:
    """``[Service]`` execution, sandboxing and restart policy."""

    user: str
    exec_start: str
    restart_sec: int = 5
    timeout_stop_sec: int = 30
    start_limit_interval_sec: int = 60
    start_limit_burst: int = 3
    limit_nofile: int = 65536

    name: ClassVar[str] = "service"
    template: ClassVar[str] = "systemd/service.j2"

    def context(self) -> Mapping[str, object]:
        return {
            "user": self.user,
            "group": self.user,
            "exec_start": self.exec_start,
            "restart_sec": self.restart_sec,
            "timeout_stop_sec": self.timeout_stop_sec,
            "start_limit_interval_sec": self.start_limit_interval_sec,
            "start_limit_burst": self.start_limit_burst,
            "limit_nofile": self.limit_nofile,
        }


@dataclass(frozen=True, slots=True)
class LoggingSection:
    """Stdout/stderr redirection appended to ``[Service]``."""

    stdout: str | None = None
    stderr: str | None = None

    name: ClassVar[str] = "logging"
    template: ClassVar[str] = "systemd/logging.j2"

    def context(self) -> Mapping[str, object]:
        return {"stdout": self.stdout, "stderr": self.stderr}


@dataclass(frozen=True, slots=True)
class InstallSection:
    """``[Install]`` enablement target."""

    name: ClassVar[str] = "install"
    template: ClassVar[str] = "systemd/install.j2"

    def context(self) -> Mapping[str, object]:
        return {}


UnitPart = UnitSection | ServiceSection | LoggingSection | InstallSection


@dataclass(frozen=True, slots=True)
class UnitDocument:
    """Ordered sections making up ``vault.service``."""

    sections: tuple[UnitPart, ...]

    def names(self) -> tuple[str, ...]:
        """Return section names in render order."""
        return tuple(section.name for section in self.sections)

    def get(self, name: str) -> UnitPart | None:
        """Return the section called *name*, if present."""
        for section in self.sections:
            if section.name == name:
                return section
        return None

    def render(self, templates: TemplateEngine) -> str:
        """Render every section and join them with blank lines."""
        blocks = [
            templates.render_to_string(section.template, section.context()).rstrip("\n")
            for section in self.sections
        ]
        return "\n\n".join(blocks) + "\n"


def exec_start_command(resolved: ResolvedConfig) -> str:
    """Return the ``ExecStart`` command line for the Vault server."""
    return " ".join(
        [
            shlex.quote(str(resolved.vault_binary)),
            "server",
            "-config",
            shlex.quote(str(resolved.config_dir)),
            f"-log-level={shlex.quote(resolved.log_level)}",
        ]
    )


def build_unit_document(resolved: ResolvedConfig) -> UnitDocument:
    """Compose the unit sections selected by *resolved*."""
    sections: list[UnitPart] = [
        UnitSection(config_path=resolved.config_path),
        ServiceSection(user=resolved.user, exec_start=exec_start_command(resolved)),
    ]
    if resolved.systemd_stdout or resolved.systemd_stderr:
        sections.append(
            LoggingSection(stdout=resolved.systemd_stdout, stderr=resolved.systemd_stderr)
        )
    sections.append(InstallSection())
    return UnitDocument(sections=tuple(sections))


__all__ = [
    "InstallSection",
    "LoggingSection",
    "ServiceSection",
    "UnitDocument",
    "UnitSection",
    "build_unit_document",
    "exec_start_command",
]
