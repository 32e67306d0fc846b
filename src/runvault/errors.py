"""Error taxonomy shared by every run-vault stage.

Every failure is operator-actionable: nothing here is retried. The CLI maps
each :class:`RunVaultError` to exit code ``1`` after logging it.
"""
from __future__ import annotations


class RunVaultError(RuntimeError):
    """Base class for all run-vault failures."""

    show_usage = False


class MissingArgument(RunVaultError):
    """A required or conditionally-required option was not supplied."""

    show_usage = True

    def __init__(self, option: str, reason: str | None = None) -> None:
        self.option = option
        message = f"The value for '{option}' cannot be empty."
        if reason:
            message = f"{message} {reason}"
        super().__init__(message)


class InvalidArgument(RunVaultError):
    """An option value was supplied but cannot be used."""

    show_usage = True

    def __init__(self, option: str, message: str) -> None:
        self.option = option
        super().__init__(f"Invalid value for '{option}': {message}")


class IncompatibleOptions(RunVaultError):
    """Two or more options cannot be combined."""

    show_usage = True


class UnrecognizedOption(RunVaultError):
    """An unknown flag was passed on the command line."""

    show_usage = True

    def __init__(self, option: str) -> None:
        self.option = option
        super().__init__(f"Unrecognized argument: {option}")


class MissingDependency(RunVaultError):
    """A required external executable is not on ``PATH``."""

    def __init__(self, tool: str) -> None:
        self.tool = tool
        super().__init__(
            f"The binary '{tool}' is required by this script but is not installed or in the "
            "system's PATH."
        )


class ExternalLookupFailed(RunVaultError):
    """A metadata, ownership or version lookup could not be completed."""

    def __init__(self, what: str, detail: str) -> None:
        self.what = what
        self.detail = detail
        super().__init__(f"Failed to look up {what}: {detail}")


__all__ = [
    "ExternalLookupFailed",
    "IncompatibleOptions",
    "InvalidArgument",
    "MissingArgument",
    "MissingDependency",
    "RunVaultError",
    "UnrecognizedOption",
]
