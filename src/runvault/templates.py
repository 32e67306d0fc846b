"""Jinja2 template rendering for run-vault artifacts."""
from __future__ import annotations

import os
import tempfile
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

from jinja2 import (
    ChoiceLoader,
    Environment,
    FileSystemLoader,
    PackageLoader,
    StrictUndefined,
    TemplateError as JinjaTemplateError,
)

from .errors import RunVaultError


class TemplateError(RunVaultError):
    """Raised when a template cannot be rendered or written."""


_HCL_ESCAPES = (
    ("\\", "\\\\"),
    ('"', '\\"'),
    ("\n", "\\n"),
    ("\r", "\\r"),
    ("\t", "\\t"),
)


def hcl_string(value: object) -> str:
    """Return *value* as a double-quoted HCL string literal."""
    text = str(value)
    for raw, escaped in _HCL_ESCAPES:
        text = text.replace(raw, escaped)
    return f'"{text}"'


@dataclass(slots=True)
class TemplateEngine:
    """Render packaged templates, optionally shadowed by an override directory."""

    environment: Environment

    @classmethod
    def with_overrides(cls, override_dir: Path | None) -> TemplateEngine:
        """Return an engine that prefers templates under *override_dir*."""
        loaders = []
        if override_dir is not None and override_dir.is_dir():
            loaders.append(FileSystemLoader(str(override_dir)))
        loaders.append(PackageLoader("runvault", "templates"))
        environment = Environment(
            loader=ChoiceLoader(loaders),
            undefined=StrictUndefined,
            autoescape=False,
            keep_trailing_newline=True,
            trim_blocks=True,
            lstrip_blocks=True,
        )
        environment.filters["hcl_string"] = hcl_string
        return cls(environment=environment)

    def render_to_string(self, template_name: str, context: Mapping[str, object]) -> str:
        """Render *template_name* with *context* and return the text."""
        try:
            template = self.environment.get_template(template_name)
            return template.render(**context)
        except JinjaTemplateError as exc:
            raise TemplateError(f"Failed to render template '{template_name}': {exc}") from exc


def write_text_atomic(destination: Path, content: str, *, mode: int = 0o644) -> bool:
    """Replace *destination* with *content*; return True when the file changed."""
    if destination.exists():
        try:
            current = destination.read_text(encoding="utf-8")
        except OSError:
            current = None
        if current == content:
            if (destination.stat().st_mode & 0o777) != mode:
                destination.chmod(mode)
            return False

    try:
        destination.parent.mkdir(parents=True, exist_ok=True)
        fd, temp_name = tempfile.mkstemp(
            prefix=f".{destination.name}.",
            suffix=".tmp",
            dir=str(destination.parent),
        )
        temp_path = Path(temp_name)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(content)
            temp_path.chmod(mode)
            temp_path.replace(destination)
        except BaseException:
            temp_path.unlink(missing_ok=True)
            raise
    except OSError as exc:
        raise TemplateError(f"Failed to write {destination}: {exc}") from exc
    return True


__all__ = ["TemplateEngine", "TemplateError", "hcl_string", "write_text_atomic"]
