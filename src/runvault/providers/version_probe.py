"""Query the installed Vault binary for its version."""
from __future__ import annotations

import logging
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

from ..errors import ExternalLookupFailed

LOGGER = logging.getLogger(__name__)


class VersionProbe(Protocol):
    """Return the raw version output of the server binary."""

    def version(self) -> str:
        """Return the binary's version output."""
        ...


@dataclass(slots=True)
class BinaryVersionProbe:
    """Run ``<binary> -v`` and return its output."""

    binary: Path

    def version(self) -> str:
        """Return stdout (or stderr when stdout is empty) of ``vault -v``."""
        try:
            result = subprocess.run(  # noqa: S603
                [str(self.binary), "-v"],
                capture_output=True,
                text=True,
                check=False,
            )
        except OSError as exc:
            raise ExternalLookupFailed(f"version of {self.binary}", str(exc)) from exc
        if result.returncode != 0:
            message = (result.stderr or result.stdout or "no output").strip()
            raise ExternalLookupFailed(
                f"version of {self.binary}",
                f"exit {result.returncode}: {message}",
            )
        output = (result.stdout or result.stderr or "").strip()
        LOGGER.debug("%s -v returned %r", self.binary, output)
        return output


__all__ = ["BinaryVersionProbe", "VersionProbe"]
