"""Apply rendered artifacts and (re)start the Vault service under systemd."""
from __future__ import annotations

import subprocess
from dataclasses import dataclass, field
from pathlib import Path

from .documents.vault_config import write_config_document
from .logging import OperationScope
from .providers.ownership import FileOwnerLookup
from .providers.systemd import SystemdProvider


@dataclass(frozen=True, slots=True)
class RenderedArtifacts:
    """Fully rendered documents ready to be written."""

    unit_text: str
    config_path: Path
    user: str
    config_text: str | None = None


@dataclass(slots=True)
class LaunchResult:
    """Outcome of applying artifacts and restarting the service."""

    unit_changed: bool
    config_changed: bool | None = None
    commands: list[subprocess.CompletedProcess[str]] = field(default_factory=list)

    @property
    def changed(self) -> int:
        return int(bool(self.config_changed)) + int(self.unit_changed)


@dataclass(slots=True)
class Launcher:
    """Write artifacts, then reload, enable and restart the unit.

    Failures are never retried; the first ``SystemdError`` propagates.
    """

    systemd: SystemdProvider
    owners: FileOwnerLookup

    def apply(
        self,
        artifacts: RenderedArtifacts,
        *,
        op: OperationScope | None = None,
    ) -> LaunchResult:
        """Write both artifacts and restart the service."""
        config_changed: bool | None = None
        if artifacts.config_text is not None:
            config_changed = write_config_document(
                artifacts.config_text,
                artifacts.config_path,
                user=artifacts.user,
                owners=self.owners,
            )
            if op is not None:
                op.add_step(
                    "config.write",
                    detail=(
                        f"path={artifacts.config_path} owner={artifacts.user}:{artifacts.user} "
                        f"changed={config_changed}"
                    ),
                )
        elif op is not None:
            op.add_step("config.write", status="skipped", detail="--skip-vault-config")

        unit_changed = self.systemd.write_unit(artifacts.unit_text)
        if op is not None:
            op.add_step(
                "systemd.unit",
                detail=f"path={self.systemd.unit_path} changed={unit_changed}",
            )

        result = LaunchResult(unit_changed=unit_changed, config_changed=config_changed)
        result.commands.extend(self.launch(op=op))
        return result

    def launch(
        self,
        *,
        op: OperationScope | None = None,
    ) -> list[subprocess.CompletedProcess[str]]:
        """Reload unit definitions, enable the unit and restart it."""
        commands: list[subprocess.CompletedProcess[str]] = []
        for name, action in (
            ("systemd.daemon-reload", self.systemd.daemon_reload),
            ("systemd.enable", self.systemd.enable),
            ("systemd.restart", self.systemd.restart),
        ):
            completed = action()
            commands.append(completed)
            if op is not None:
                op.add_step(name, detail=_format_detail(completed))
        return commands


def _format_detail(result: subprocess.CompletedProcess[str]) -> str:
    args = result.args
    if isinstance(args, (list, tuple)):
        command = " ".join(str(item) for item in args)
    else:
        command = str(args)
    return f"command={command} rc={result.returncode}"


__all__ = ["LaunchResult", "Launcher", "RenderedArtifacts"]
