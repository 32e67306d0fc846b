"""Semantic version parsing and the Vault UI version gate."""
from __future__ import annotations

import re
from dataclasses import dataclass

from packaging.version import InvalidVersion, Version

from .errors import RunVaultError
from .logging import StructuredLogger
from .providers.version_probe import VersionProbe

UI_MIN_VERSION = "0.10.0"

_VERSION_PATTERN = re.compile(
    r"(?<![\w.])v?(?P<core>\d+\.\d+\.\d+)(?P<suffix>[-+][0-9A-Za-z.+-]*[0-9A-Za-z])?(?!\.\d)"
)


class VersionParseError(RunVaultError):
    """Raised when text does not contain a ``MAJOR.MINOR.PATCH`` version."""


@dataclass(frozen=True, slots=True)
class SemanticVersion:
    """A parsed ``MAJOR.MINOR.PATCH`` version with optional pre-release tag.

    The numeric core is held as a :class:`packaging.version.Version`; the
    pre-release identifiers follow semver and only order versions that share
    the same core. Build metadata (``+...``) is kept in ``text`` but ignored.
    """

    text: str
    release: Version
    prerelease: tuple[str, ...] = ()

    @property
    def major(self) -> int:
        return self.release.release[0]

    @property
    def minor(self) -> int:
        return self.release.release[1]

    @property
    def patch(self) -> int:
        return self.release.release[2]

    @property
    def is_prerelease(self) -> bool:
        return bool(self.prerelease)

    def __str__(self) -> str:
        return self.text


def parse_version(text: str) -> SemanticVersion:
    """Extract the first semantic version from *text*.

    Accepts bare versions (``0.10.0``), a ``v`` prefix, and ``vault -v`` style
    output such as ``Vault v1.2.0 ('abc123')`` or ``Vault v1.4.0-ent.hsm``.
    """
    match = _VERSION_PATTERN.search(text or "")
    if match is None:
        raise VersionParseError(f"No MAJOR.MINOR.PATCH version found in {text!r}.")
    core = match.group("core")
    suffix = match.group("suffix") or ""
    try:
        release = Version(core)
    except InvalidVersion as exc:
        raise VersionParseError(f"Unrecognised version {core!r}: {exc}") from exc
    prerelease: tuple[str, ...] = ()
    if suffix.startswith("-"):
        tag = suffix[1:].partition("+")[0]
        prerelease = tuple(part for part in tag.split(".") if part)
    return SemanticVersion(text=core + suffix, release=release, prerelease=prerelease)


def _identifier_key(identifier: str) -> tuple[int, int, str]:
    # Numeric identifiers sort numerically and below alphanumeric ones.
    if identifier.isdigit():
        return (0, int(identifier), "")
    return (1, 0, identifier)


def _prerelease_key(version: SemanticVersion) -> tuple[int, tuple[tuple[int, int, str], ...]]:
    # A release sorts above every pre-release of the same core.
    if not version.prerelease:
        return (1, ())
    return (0, tuple(_identifier_key(part) for part in version.prerelease))


def compare_versions(left: SemanticVersion, right: SemanticVersion) -> int:
    """Return -1, 0 or 1 as *left* sorts below, equal to, or above *right*."""
    if left.release != right.release:
        return -1 if left.release < right.release else 1
    left_key = _prerelease_key(left)
    right_key = _prerelease_key(right)
    if left_key < right_key:
        return -1
    if left_key > right_key:
        return 1
    return 0


@dataclass(frozen=True, slots=True)
class VersionGate:
    """Decide whether a version-dependent feature is available."""

    minimum: SemanticVersion
    feature: str = "ui"

    @classmethod
    def from_text(cls, minimum: str, *, feature: str = "ui") -> VersionGate:
        """Build a gate from a minimum version string."""
        return cls(minimum=parse_version(minimum), feature=feature)

    def evaluate(self, raw_version: str, *, logger: StructuredLogger | None = None) -> bool:
        """Return True when *raw_version* is at or above the minimum.

        Unparsable versions are treated as below the minimum and reported as a
        warning instead of failing the run.
        """
        try:
            detected = parse_version(raw_version)
        except VersionParseError as exc:
            if logger is not None:
                logger.warn(
                    f"Unable to parse Vault version from {raw_version!r}; "
                    f"disabling {self.feature} ({exc})"
                )
            return False
        return compare_versions(detected, self.minimum) >= 0


def ui_available(
    probe: VersionProbe,
    minimum: str = UI_MIN_VERSION,
    *,
    logger: StructuredLogger | None = None,
) -> bool:
    """Probe the installed binary and return whether the UI can be enabled."""
    return VersionGate.from_text(minimum).evaluate(probe.version(), logger=logger)


__all__ = [
    "SemanticVersion",
    "UI_MIN_VERSION",
    "VersionGate",
    "VersionParseError",
    "compare_versions",
    "parse_version",
    "ui_available",
]
