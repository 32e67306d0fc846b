"""Tests for semantic version parsing and the UI gate."""
from __future__ import annotations

import io

import pytest
from rich.console import Console

from runvault.logging import StructuredLogger
from runvault.versioning import (
    VersionGate,
    VersionParseError,
    compare_versions,
    parse_version,
    ui_available,
)


class StaticProbe:
    """Version probe returning a fixed string."""

    def __init__(self, output: str) -> None:
        """Store the output returned by :meth:`version`."""
        self.output = output

    def version(self) -> str:
        """Return the stored output."""
        return self.output


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("0.9.9", False),
        ("0.10.0", True),
        ("0.10.4", True),
        ("1.2.0", True),
        ("Vault v1.2.0 ('4e0c4a0fa8a4e6ff2bc3c8eaaa9fe4d1f1df1e7f')", True),
        ("Vault v0.9.6 ('7e1fbde40afee241f81ef08700e7987d86fc7242')", False),
        ("v0.10.0-rc1", False),
        ("Vault v1.2.0-custom", True),
        ("Vault v1.4.0-ent.hsm", True),
        ("1.2.0-beta.x", True),
        ("Vault v0.10.0+ent", True),
    ],
)
def test_ui_gate(raw: str, expected: bool) -> None:
    """The UI is enabled only at or above 0.10.0."""
    gate = VersionGate.from_text("0.10.0")

    assert gate.evaluate(raw) is expected


def test_parse_version_extracts_components() -> None:
    """``vault -v`` output is reduced to its semantic version."""
    version = parse_version("Vault v1.2.0 ('abc123')")

    assert str(version) == "1.2.0"
    assert (version.major, version.minor, version.patch) == (1, 2, 0)
    assert version.is_prerelease is False


def test_numeric_comparison_not_lexical() -> None:
    """Components compare numerically."""
    assert compare_versions(parse_version("0.10.0"), parse_version("0.9.10")) == 1
    assert compare_versions(parse_version("0.9.10"), parse_version("0.10.0")) == -1
    assert compare_versions(parse_version("v1.2.3"), parse_version("1.2.3")) == 0


def test_prerelease_sorts_below_release() -> None:
    """A pre-release suffix sorts before the corresponding release."""
    prerelease = parse_version("1.0.0-beta1")

    assert prerelease.is_prerelease is True
    assert compare_versions(prerelease, parse_version("1.0.0")) == -1


@pytest.mark.parametrize("raw", ["", "garbage", "1.2", "Vault version unknown"])
def test_parse_version_rejects_malformed(raw: str) -> None:
    """Text without MAJOR.MINOR.PATCH is rejected."""
    with pytest.raises(VersionParseError):
        parse_version(raw)


def test_malformed_version_disables_ui_with_warning() -> None:
    """Unparsable output disables the UI and logs a warning."""
    buffer = io.StringIO()
    logger = StructuredLogger(None, console=Console(file=buffer, width=200, soft_wrap=True))

    assert ui_available(StaticProbe("not a version"), logger=logger) is False
    assert "[WARN] [run-vault] Unable to parse Vault version" in buffer.getvalue()


def test_ui_available_uses_probe() -> None:
    """The probe output is evaluated against the minimum."""
    assert ui_available(StaticProbe("Vault v0.10.1")) is True
    assert ui_available(StaticProbe("Vault v0.10.1"), minimum="0.11.0") is False


def test_semver_suffixes_parse() -> None:
    """Pre-release tags outside the PEP 440 grammar still parse."""
    version = parse_version("Vault v1.4.0-ent.hsm ('abc123')")

    assert str(version) == "1.4.0-ent.hsm"
    assert (version.major, version.minor, version.patch) == (1, 4, 0)
    assert version.prerelease == ("ent", "hsm")
    assert parse_version("1.4.0+build.7").is_prerelease is False


@pytest.mark.parametrize(
    ("lower", "higher"),
    [
        ("1.0.0-alpha", "1.0.0-alpha.1"),
        ("1.0.0-alpha.1", "1.0.0-alpha.beta"),
        ("1.0.0-beta.2", "1.0.0-beta.11"),
        ("1.0.0-rc.1", "1.0.0"),
        ("0.9.9", "0.10.0-custom"),
    ],
)
def test_prerelease_precedence(lower: str, higher: str) -> None:
    """Pre-releases order by identifier and sit below their release."""
    assert compare_versions(parse_version(lower), parse_version(higher)) == -1
    assert compare_versions(parse_version(higher), parse_version(lower)) == 1


def test_build_metadata_is_ignored() -> None:
    """Build metadata does not affect precedence."""
    assert compare_versions(parse_version("1.2.3+abc"), parse_version("1.2.3")) == 0
