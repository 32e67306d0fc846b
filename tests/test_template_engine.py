"""Tests for the template rendering engine."""
from __future__ import annotations

from pathlib import Path

import pytest

from runvault.templates import TemplateEngine, TemplateError, hcl_string, write_text_atomic


def test_render_to_string_uses_builtin_templates() -> None:
    """Built-in templates render with strict variables."""
    engine = TemplateEngine.with_overrides(None)

    output = engine.render_to_string(
        "vault/s3_storage.hcl.j2",
        {"bucket": "vault-data", "region": "us-east-1"},
    )

    assert output == 'storage "s3" {\n  bucket = "vault-data"\n  region = "us-east-1"\n}\n'


def test_missing_variable_raises_template_error() -> None:
    """StrictUndefined turns a missing variable into a TemplateError."""
    engine = TemplateEngine.with_overrides(None)

    with pytest.raises(TemplateError, match="s3_storage"):
        engine.render_to_string("vault/s3_storage.hcl.j2", {"bucket": "vault-data"})


def test_write_text_atomic_writes_with_mode(tmp_path: Path) -> None:
    """Rendered text is written with the requested mode; identical content is a no-op."""
    engine = TemplateEngine.with_overrides(None)
    destination = tmp_path / "nested" / "storage.hcl"
    content = engine.render_to_string(
        "vault/s3_storage.hcl.j2", {"bucket": "vault-data", "region": "eu-west-1"}
    )

    changed = write_text_atomic(destination, content, mode=0o600)

    assert changed is True
    assert destination.read_text(encoding="utf-8") == content
    assert oct(destination.stat().st_mode & 0o777) == "0o600"

    # Second write with same content should be a no-op.
    assert write_text_atomic(destination, content, mode=0o600) is False


def test_override_path_takes_precedence(tmp_path: Path) -> None:
    """Override templates shadow the built-in ones."""
    override_dir = tmp_path / "templates"
    override_template = override_dir / "vault" / "ui.hcl.j2"
    override_template.parent.mkdir(parents=True)
    override_template.write_text("ui = false", encoding="utf-8")

    engine = TemplateEngine.with_overrides(override_dir)

    assert engine.render_to_string("vault/ui.hcl.j2", {}) == "ui = false"
    # Templates that are not overridden still come from the package.
    assert engine.render_to_string("systemd/install.j2", {}).startswith("[Install]")


def test_write_text_atomic_restores_mode_on_unchanged_content(tmp_path: Path) -> None:
    """Unchanged content is not rewritten but the mode is corrected."""
    destination = tmp_path / "unit.service"
    destination.write_text("same\n", encoding="utf-8")
    destination.chmod(0o600)

    changed = write_text_atomic(destination, "same\n", mode=0o644)

    assert changed is False
    assert destination.stat().st_mode & 0o777 == 0o644
    assert list(tmp_path.iterdir()) == [destination]


@pytest.mark.parametrize(
    ("value", "expected"),
    [
        ("/etc/vault/tls/vault.crt", '"/etc/vault/tls/vault.crt"'),
        ('bucket"name', '"bucket\\"name"'),
        ("C:\\certs\\vault.crt", '"C:\\\\certs\\\\vault.crt"'),
        ("line\nbreak", '"line\\nbreak"'),
    ],
)
def test_hcl_string_escapes(value: str, expected: str) -> None:
    """Values are quoted with backslashes, quotes and newlines escaped."""
    assert hcl_string(value) == expected


def test_hcl_string_filter_in_templates() -> None:
    """Config templates quote their values through the filter."""
    engine = TemplateEngine.with_overrides(None)

    output = engine.render_to_string(
        "vault/s3_storage.hcl.j2",
        {"bucket": 'odd"bucket\\', "region": "us-east-1"},
    )

    assert '  bucket = "odd\\"bucket\\\\"\n' in output
