"""Structured logging for run-vault operations.

Two sinks are maintained:

* ``operations.jsonl`` under the configured log directory receives one JSON
  record per CLI operation (arguments, steps, and result). The sink disables
  itself when the directory cannot be created or written so that a read-only
  host never blocks a deployment.
* The error stream receives human-readable lines formatted as
  ``<timestamp> [LEVEL] [run-vault] message``.
"""
from __future__ import annotations

import json
import time
from collections.abc import Iterator, Mapping, Sequence
from contextlib import contextmanager
from datetime import UTC, datetime
from pathlib import Path

from rich.console import Console

SCRIPT_NAME = "run-vault"
OPERATIONS_LOG = "operations.jsonl"


def _sanitize(value: object) -> object:
    if value is None:
        return None
    if isinstance(value, (str, int, float, bool)):
        return value
    if isinstance(value, Path):
        return str(value)
    if isinstance(value, Mapping):
        return {str(key): _sanitize(item) for key, item in value.items()}
    if isinstance(value, Sequence) and not isinstance(value, (str, bytes, bytearray)):
        return [_sanitize(item) for item in value]
    return str(value)


def _now() -> str:
    return datetime.now(UTC).isoformat()


class OperationScope:
    """Collects steps and the final result for a single operation."""

    def __init__(
        self,
        command: str,
        args: Mapping[str, object] | None,
        target: Mapping[str, object] | None,
    ) -> None:
        self._command = command
        self._args = dict(args or {})
        self._target = dict(target or {})
        self._steps: list[dict[str, object]] = []
        self._result: dict[str, object] | None = None
        self._started_at = _now()
        self._started = time.monotonic()

    @property
    def finished(self) -> bool:
        """Return True once a result has been recorded."""
        return self._result is not None

    def add_step(self, name: str, *, status: str = "success", detail: str | None = None) -> None:
        """Record a named step within the operation."""
        step: dict[str, object] = {"name": name, "status": status}
        if detail:
            step["detail"] = detail
        self._steps.append(step)

    def success(
        self,
        message: str,
        *,
        changed: int = 0,
        context: Mapping[str, object] | None = None,
    ) -> None:
        """Mark the operation successful."""
        self._finish("success", message, changed=changed, context=context)

    def error(
        self,
        message: str,
        *,
        errors: Sequence[str] | None = None,
        rc: int = 1,
        context: Mapping[str, object] | None = None,
    ) -> None:
        """Mark the operation failed."""
        self._finish(
            "error",
            message,
            errors=list(errors or [message]),
            rc=rc,
            context=context,
        )

    def _finish(
        self,
        status: str,
        message: str,
        *,
        changed: int = 0,
        errors: list[str] | None = None,
        rc: int | None = None,
        context: Mapping[str, object] | None = None,
    ) -> None:
        result: dict[str, object] = {
            "status": status,
            "message": message,
            "changed": changed,
        }
        if errors:
            result["errors"] = errors
        if rc is not None:
            result["rc"] = rc
        if context:
            result["context"] = _sanitize(context)
        self._result = result

    def to_record(self) -> dict[str, object]:
        """Return the JSON record describing this operation."""
        return {
            "timestamp": self._started_at,
            "command": self._command,
            "args": _sanitize(self._args),
            "target": _sanitize(self._target),
            "steps": list(self._steps),
            "result": self._result or {"status": "unknown"},
            "duration_ms": int((time.monotonic() - self._started) * 1000),
        }


class StructuredLogger:
    """Write operation records and human-readable log lines."""

    def __init__(self, log_dir: Path | None, *, console: Console | None = None) -> None:
        self._log_dir = log_dir
        self._operations_log_path = log_dir / OPERATIONS_LOG if log_dir is not None else None
        self._console = console or Console(stderr=True, soft_wrap=True)
        self._enabled = False
        if log_dir is None:
            return
        try:
            log_dir.mkdir(parents=True, exist_ok=True)
        except OSError:
            return
        self._enabled = True

    @property
    def operations_log_path(self) -> Path | None:
        """Return the JSONL path operations are appended to."""
        return self._operations_log_path

    def log(self, level: str, message: str) -> None:
        """Emit a timestamped line on the error stream."""
        timestamp = datetime.now().strftime("%Y-%m-%d %H:%M:%S")
        self._console.print(
            f"{timestamp} [{level.upper()}] [{SCRIPT_NAME}] {message}",
            markup=False,
            highlight=False,
        )

    def info(self, message: str) -> None:
        """Emit an INFO line."""
        self.log("INFO", message)

    def warn(self, message: str) -> None:
        """Emit a WARN line."""
        self.log("WARN", message)

    def error(self, message: str) -> None:
        """Emit an ERROR line."""
        self.log("ERROR", message)

    @contextmanager
    def operation(
        self,
        command: str,
        *,
        args: Mapping[str, object] | None = None,
        target: Mapping[str, object] | None = None,
    ) -> Iterator[OperationScope]:
        """Track an operation and persist its record when the block exits."""
        scope = OperationScope(command, args, target)
        try:
            yield scope
        except BaseException as exc:
            if not scope.finished:
                scope.error(str(exc) or type(exc).__name__)
            raise
        finally:
            self._write(scope.to_record())

    def _write(self, record: Mapping[str, object]) -> None:
        if not self._enabled or self._operations_log_path is None:
            return
        try:
            with self._operations_log_path.open("a", encoding="utf-8") as handle:
                handle.write(json.dumps(record, sort_keys=True) + "\n")
        except OSError:
            self._enabled = False


__all__ = ["OperationScope", "StructuredLogger"]
