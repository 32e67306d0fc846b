"""Filesystem ownership lookups backed by the passwd/group databases."""
from __future__ import annotations

import grp
import logging
import pwd
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

from ..errors import ExternalLookupFailed

LOGGER = logging.getLogger(__name__)


class FileOwnerLookup(Protocol):
    """Inspect and change file ownership."""

    def owner(self, path: Path) -> str:
        """Return the user name owning *path*."""
        ...

    def chown(self, path: Path, user: str, group: str) -> None:
        """Set ownership of *path* to ``user:group``."""
        ...


@dataclass(slots=True)
class PathOwnerLookup:
    """Resolve owners through ``stat`` and apply them with ``chown``."""

    def owner(self, path: Path) -> str:
        """Return the user name owning *path*."""
        try:
            uid = path.stat().st_uid
        except OSError as exc:
            raise ExternalLookupFailed(f"owner of {path}", str(exc)) from exc
        try:
            return pwd.getpwuid(uid).pw_name
        except KeyError as exc:
            raise ExternalLookupFailed(
                f"owner of {path}",
                f"uid {uid} has no passwd entry",
            ) from exc

    def chown(self, path: Path, user: str, group: str) -> None:
        """Set ownership of *path* to ``user:group``."""
        try:
            pwd.getpwnam(user)
        except KeyError as exc:
            raise ExternalLookupFailed(f"user '{user}'", "no passwd entry") from exc
        try:
            grp.getgrnam(group)
        except KeyError as exc:
            raise ExternalLookupFailed(f"group '{group}'", "no group entry") from exc
        LOGGER.debug("Changing ownership of %s to %s:%s", path, user, group)
        try:
            shutil.chown(path, user=user, group=group)
        except OSError as exc:
            raise ExternalLookupFailed(f"ownership of {path}", str(exc)) from exc


__all__ = ["FileOwnerLookup", "PathOwnerLookup"]
