"""Tests for the systemd provider."""
from __future__ import annotations

from pathlib import Path

import pytest

from runvault.providers.systemd import SystemdError, SystemdProvider


class DummyResult:
    """Simple stand-in for ``subprocess.CompletedProcess``."""

    def __init__(self, returncode: int = 0, stdout: str = "", stderr: str = "") -> None:
        """Initialise the dummy result."""
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr


@pytest.fixture
def provider(tmp_path: Path) -> SystemdProvider:
    """Return a provider writing its unit under the temporary path."""
    return SystemdProvider(
        unit_path=tmp_path / "systemd" / "vault.service",
        systemctl_bin="systemctl",  # Not invoked; monkeypatched in tests.
    )


def test_write_unit_is_idempotent(provider: SystemdProvider) -> None:
    """Writing identical content twice reports a change only once."""
    assert provider.write_unit("[Unit]\n") is True
    assert provider.write_unit("[Unit]\n") is False
    assert provider.unit_path.read_text(encoding="utf-8") == "[Unit]\n"
    assert provider.unit_path.stat().st_mode & 0o777 == 0o644
    assert provider.unit_name == "vault.service"


@pytest.mark.parametrize(
    ("method", "expected"),
    [
        ("daemon_reload", ("daemon-reload", None)),
        ("enable", ("enable", "vault.service")),
        ("restart", ("restart", "vault.service")),
    ],
)
def test_unit_management_calls_systemctl(
    monkeypatch: pytest.MonkeyPatch,
    provider: SystemdProvider,
    method: str,
    expected: tuple[str, str | None],
) -> None:
    """Each action delegates to systemctl with the unit name where needed."""
    captured: list[tuple[str, str | None]] = []

    def fake_systemctl(
        self: SystemdProvider,
        command: str,
        unit: str | None = None,
    ) -> DummyResult:
        captured.append((command, unit))
        return DummyResult()

    monkeypatch.setattr(SystemdProvider, "_systemctl", fake_systemctl)

    getattr(provider, method)()

    assert captured == [expected]


def test_failed_command_raises(monkeypatch: pytest.MonkeyPatch, provider: SystemdProvider) -> None:
    """A non-zero exit surfaces stderr in a SystemdError."""

    def fake_run(*args: object, **kwargs: object) -> DummyResult:
        return DummyResult(returncode=1, stderr="Unit vault.service not found.")

    monkeypatch.setattr("runvault.providers.systemd.subprocess.run", fake_run)

    with pytest.raises(SystemdError, match=r"systemctl restart failed \(exit 1\): Unit"):
        provider.restart()


def test_missing_systemctl_raises(monkeypatch: pytest.MonkeyPatch, provider: SystemdProvider) -> None:
    """A missing systemctl binary is reported as a SystemdError."""

    def fake_run(*args: object, **kwargs: object) -> DummyResult:
        raise FileNotFoundError("systemctl")

    monkeypatch.setattr("runvault.providers.systemd.subprocess.run", fake_run)

    with pytest.raises(SystemdError, match="not found"):
        provider.daemon_reload()
