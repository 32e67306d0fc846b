"""Systemd provider for the Vault service unit."""
from __future__ import annotations

import subprocess
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path

from ..errors import RunVaultError
from ..templates import write_text_atomic


class SystemdError(RunVaultError):
    """Raised when systemd operations fail."""


@dataclass(slots=True)
class SystemdProvider:
    """Persist the Vault unit file and drive ``systemctl``."""

    unit_path: Path = Path("/etc/systemd/system/vault.service")
    systemctl_bin: str = "systemctl"

    @property
    def unit_name(self) -> str:
        """Return the systemd unit name."""
        return self.unit_path.name

    def write_unit(self, content: str) -> bool:
        """Write *content* to the unit path; return True when it changed."""
        return write_text_atomic(self.unit_path, content, mode=0o644)

    def daemon_reload(self) -> subprocess.CompletedProcess[str]:
        """Ask systemd to reload unit definitions."""
        return self._systemctl("daemon-reload")

    def enable(self) -> subprocess.CompletedProcess[str]:
        """Enable the unit at boot."""
        return self._systemctl("enable", self.unit_name)

    def restart(self) -> subprocess.CompletedProcess[str]:
        """Restart the unit."""
        return self._systemctl("restart", self.unit_name)

    # ------------------------------------------------------------------
    def _systemctl(self, command: str, unit: str | None = None) -> subprocess.CompletedProcess[str]:
        args: list[str] = [self.systemctl_bin, command]
        if unit is not None:
            args.append(unit)
        return self._run_command(args, error_prefix=f"{self.systemctl_bin} {command}")

    def _run_command(
        self,
        args: Sequence[str],
        *,
        error_prefix: str,
    ) -> subprocess.CompletedProcess[str]:
        try:
            result = subprocess.run(  # noqa: S603, S607
                list(args),
                capture_output=True,
                text=True,
                check=False,
            )
        except FileNotFoundError as exc:
            raise SystemdError(f"{args[0]} not found: {exc}") from exc
        if result.returncode != 0:
            stdout = getattr(result, "stdout", "") or ""
            stderr = getattr(result, "stderr", "") or ""
            message = stderr.strip() or stdout.strip() or "no output"
            raise SystemdError(f"{error_prefix} failed (exit {result.returncode}): {message}")
        return result


__all__ = ["SystemdError", "SystemdProvider"]
