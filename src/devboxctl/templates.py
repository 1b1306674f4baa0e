"""Jinja2 template engine used to render configuration artifacts.

Built-in templates ship inside the package (``devboxctl/templates``). An
optional override directory is searched first so operators can customise
individual files without forking the package. Rendering is strict: a missing
variable raises instead of silently producing an empty string.
"""
from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

from jinja2 import (
    ChoiceLoader,
    Environment,
    FileSystemLoader,
    PackageLoader,
    StrictUndefined,
    TemplateError,
    select_autoescape,
)

from .errors import DevboxError

_NGINX_SAFE = re.compile(r"[A-Za-z0-9._:/@=+-]+")


class TemplateRenderError(DevboxError):
    """Raised when a template cannot be loaded or rendered."""


def nginx_quote(value: object) -> str:
    """Return *value* as an nginx token, quoting it when required."""
    text = str(value)
    if _NGINX_SAFE.fullmatch(text):
        return text
    escaped = text.replace("\\", "\\\\").replace('"', '\\"').replace("$", "\\$")
    return f'"{escaped}"'


def systemd_quote(value: object) -> str:
    """Return *value* quoted for use in a systemd unit directive."""
    text = str(value)
    if text and not re.search(r"[\s\"'\\%$;]", text):
        return text
    escaped = (
        text.replace("\\", "\\\\")
        .replace('"', '\\"')
        .replace("%", "%%")
        .replace("$", "$$")
    )
    return f'"{escaped}"'


@dataclass(slots=True)
class TemplateEngine:
    """Render package templates, honouring an optional override directory."""

    environment: Environment

    @classmethod
    def with_overrides(cls, override_dir: Path | None) -> TemplateEngine:
        """Create an engine searching *override_dir* before the built-ins."""
        loaders = []
        if override_dir is not None and Path(override_dir).is_dir():
            loaders.append(FileSystemLoader(str(override_dir)))
        loaders.append(PackageLoader("devboxctl", "templates"))
        environment = Environment(
            loader=ChoiceLoader(loaders),
            undefined=StrictUndefined,
            autoescape=select_autoescape(
                ["xml", "xml.j2"], default_for_string=False, default=False
            ),
            keep_trailing_newline=True,
            trim_blocks=True,
            lstrip_blocks=True,
        )
        environment.filters["nginx_quote"] = nginx_quote
        environment.filters["systemd_quote"] = systemd_quote
        return cls(environment=environment)

    def render_to_string(self, template_name: str, context: Mapping[str, object]) -> str:
        """Render *template_name* with *context* and return the text."""
        try:
            template = self.environment.get_template(template_name)
            return template.render(**context)
        except TemplateError as exc:
            raise TemplateRenderError(f"Failed to render {template_name}: {exc}") from exc


__all__ = ["TemplateEngine", "TemplateRenderError", "nginx_quote", "systemd_quote"]
