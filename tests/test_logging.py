"""Tests for the structured logging subsystem."""
from __future__ import annotations

import io
import json
from pathlib import Path

import pytest
from rich.console import Console

from runvault.logging import StructuredLogger


def _capture_console() -> tuple[Console, io.StringIO]:
    buffer = io.StringIO()
    return Console(file=buffer, width=200, soft_wrap=True), buffer


def test_log_lines_are_timestamped_and_tagged(tmp_path: Path) -> None:
    """Human-readable lines carry the level and the script name."""
    console, buffer = _capture_console()
    logger = StructuredLogger(tmp_path / "logs", console=console)

    logger.info("Creating default Vault config file in /opt/vault/config/default.hcl")
    logger.warn("careful")
    logger.error("boom [bold]")

    lines = buffer.getvalue().splitlines()
    assert len(lines) == 3
    assert lines[0].endswith(
        "[INFO] [run-vault] Creating default Vault config file in "
        "/opt/vault/config/default.hcl"
    )
    assert "[WARN] [run-vault] careful" in lines[1]
    assert lines[2].endswith("[ERROR] [run-vault] boom [bold]")


def test_operation_record_is_appended(tmp_path: Path) -> None:
    """Each operation appends one JSON record with steps and result."""
    console, _ = _capture_console()
    logger = StructuredLogger(tmp_path / "logs", console=console)

    with logger.operation("run", args={"path": Path("/a/crt")}, target={"unit": "vault"}) as op:
        op.add_step("resolve", detail="port=8200")
        op.add_step("config.render", status="skipped")
        op.success("done", changed=2, context={"config_path": Path("/x/default.hcl")})

    assert logger.operations_log_path == tmp_path / "logs" / "operations.jsonl"
    lines = logger.operations_log_path.read_text(encoding="utf-8").splitlines()
    assert len(lines) == 1
    record = json.loads(lines[0])
    assert record["command"] == "run"
    assert record["args"] == {"path": "/a/crt"}
    assert record["target"] == {"unit": "vault"}
    assert record["steps"] == [
        {"name": "resolve", "status": "success", "detail": "port=8200"},
        {"name": "config.render", "status": "skipped"},
    ]
    assert record["result"]["status"] == "success"
    assert record["result"]["changed"] == 2
    assert record["result"]["context"] == {"config_path": "/x/default.hcl"}
    assert isinstance(record["duration_ms"], int)


def test_unhandled_exception_records_error(tmp_path: Path) -> None:
    """Exceptions escaping the block are recorded then re-raised."""
    console, _ = _capture_console()
    logger = StructuredLogger(tmp_path / "logs", console=console)

    with pytest.raises(ValueError, match="bad"):
        with logger.operation("run"):
            raise ValueError("bad")

    record = json.loads(logger.operations_log_path.read_text(encoding="utf-8"))
    assert record["result"]["status"] == "error"
    assert record["result"]["errors"] == ["bad"]
    assert record["result"]["rc"] == 1


def test_logger_without_directory_only_prints(tmp_path: Path) -> None:
    """A logger without a log directory never writes records."""
    console, buffer = _capture_console()
    logger = StructuredLogger(None, console=console)

    assert logger.operations_log_path is None
    with logger.operation("run") as op:
        op.error("failed", rc=1)
    logger.error("printed")

    assert "[ERROR] [run-vault] printed" in buffer.getvalue()


def test_structured_logger_disables_when_directory_unavailable(
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    """Logger gracefully disables itself when log directory cannot be created."""
    log_dir = tmp_path / "logs"

    original_mkdir = Path.mkdir

    def fail_mkdir(self: Path, *args: object, **kwargs: object) -> None:
        if self == log_dir:
            raise PermissionError("no access")
        original_mkdir(self, *args, **kwargs)

    monkeypatch.setattr(Path, "mkdir", fail_mkdir)

    logger = StructuredLogger(log_dir, console=_capture_console()[0])
    assert logger._enabled is False  # type: ignore[attr-defined]

    with logger.operation("demo", args={"foo": "bar"}) as op:
        op.success("done", changed=0)

    assert not log_dir.exists()


def test_structured_logger_disables_after_write_failure(
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    """Write failures mark the logger disabled so subsequent writes are skipped."""
    logger = StructuredLogger(tmp_path / "logs", console=_capture_console()[0])
    operations_path = logger.operations_log_path

    original_open = Path.open

    def fail_open(self: Path, *args: object, **kwargs: object) -> object:
        if self == operations_path:
            raise OSError("disk full")
        return original_open(self, *args, **kwargs)

    monkeypatch.setattr(Path, "open", fail_open)

    with logger.operation("demo") as op:
        op.success("done", changed=0)

    assert logger._enabled is False  # type: ignore[attr-defined]

    # Subsequent operations should not raise even though logger is disabled.
    with logger.operation("demo-2") as op:
        op.success("done", changed=0)


def test_operation_scope_error_sanitises_context(tmp_path: Path) -> None:
    """Errors should be recorded with JSON-safe context values."""
    logger = StructuredLogger(tmp_path / "logs", console=_capture_console()[0])

    class Custom:
        def __str__(self) -> str:
            return "<custom>"

    with logger.operation("demo", args={"path": Path("foo")}) as op:
        op.error(
            "failed",
            errors=("ExternalLookupFailed",),
            context={"path": Path("/var/lib"), "obj": Custom()},
        )

    record = json.loads(logger.operations_log_path.read_text(encoding="utf-8"))
    assert record["args"] == {"path": "foo"}
    assert record["result"]["errors"] == ["ExternalLookupFailed"]
    assert record["result"]["context"] == {"path": "/var/lib", "obj": "<custom>"}
