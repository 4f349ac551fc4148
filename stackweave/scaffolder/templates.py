"""Jinja2 template rendering for module file contributions.

Provides the TemplateRenderer class which renders contributed template
source with the final template context.  Rendering is strict: a variable
with no value fails instead of silently rendering as an empty string, unless
the template itself supplies a fallback (``{{ name | default('x') }}``).

Content that did not come from a template is wrapped in ``Verbatim`` and
passes through untouched, so a plain ``.vue`` file may contain ``{{ count }}``.
"""

from __future__ import annotations

import re
from pathlib import Path
from typing import Any

from jinja2 import Environment, StrictUndefined, TemplateError, UndefinedError

from .errors import TemplatingError


_UNDEFINED_NAME = re.compile(r"'([^']+)' is undefined")


class Verbatim(str):
    """A string copied as-is, never passed through Jinja2."""


def verbatim(data: Any) -> Any:
    """Mark every string key and value in a parsed structure as ``Verbatim``."""
    if isinstance(data, dict):
        return {verbatim(key): verbatim(value) for key, value in data.items()}
    if isinstance(data, list):
        return [verbatim(item) for item in data]
    if isinstance(data, str):
        return Verbatim(data)
    return data


# ---------------------------------------------------------------------------
# TemplateRenderer
# ---------------------------------------------------------------------------


class TemplateRenderer:
    """Renders module template source against a template context."""

    def __init__(self) -> None:
        self.env = Environment(
            undefined=StrictUndefined,
            autoescape=False,
            keep_trailing_newline=True,
            trim_blocks=True,
            lstrip_blocks=True,
        )
        self.env.filters["slugify"] = slugify
        self.env.filters["pascal_case"] = _pascal_case_filter
        self.env.filters["snake_case"] = _snake_case_filter
        self.env.filters["camel_case"] = _camel_case_filter

    def render_string(
        self,
        template_string: str,
        context: dict[str, Any],
        *,
        path: str = "<string>",
    ) -> str:
        """Render *template_string* with *context*.

        Args:
            template_string: Jinja2 source.
            context: Variables available inside the template.
            path: Target file path, used in error messages.

        Raises:
            TemplatingError: if a variable is undefined or the source does
                not compile.
        """
        if isinstance(template_string, Verbatim):
            return str(template_string)
        if "{" not in template_string:
            return template_string
        try:
            template = self.env.from_string(template_string)
            return template.render(**context)
        except UndefinedError as exc:
            match = _UNDEFINED_NAME.search(str(exc))
            if match:
                raise TemplatingError(path, key=match.group(1)) from exc
            raise TemplatingError(path, detail=str(exc)) from exc
        except TemplateError as exc:
            raise TemplatingError(path, detail=str(exc)) from exc

    def render_data(self, data: Any, context: dict[str, Any], *, path: str) -> Any:
        """Render every string key and value inside a parsed structure.

        ``Verbatim`` strings are returned as plain ``str`` without rendering.
        """
        if isinstance(data, dict):
            return {
                self._render_key(key, context, path): self.render_data(value, context, path=path)
                for key, value in data.items()
            }
        if isinstance(data, list):
            return [self.render_data(item, context, path=path) for item in data]
        if isinstance(data, str):
            return self.render_string(data, context, path=path)
        return data

    def _render_key(self, key: Any, context: dict[str, Any], path: str) -> Any:
        if isinstance(key, str):
            return self.render_string(key, context, path=path)
        return key


# ---------------------------------------------------------------------------
# Jinja2 custom filters
# ---------------------------------------------------------------------------

def slugify(value: str) -> str:
    """Lower-case *value* and join its alphanumeric runs with hyphens."""
    slug = re.sub(r"[^a-z0-9]+", "-", value.lower().strip())
    return slug.strip("-")


def _pascal_case_filter(value: str) -> str:
    """``user-profile`` / ``user_profile`` -> ``UserProfile``."""
    return "".join(word.capitalize() for word in re.split(r"[-_\s]+", value) if word)


def _snake_case_filter(value: str) -> str:
    """``UserProfile`` / ``user-profile`` -> ``user_profile``."""
    value = re.sub(r"(.)([A-Z][a-z]+)", r"\1_\2", value)
    value = re.sub(r"([a-z0-9])([A-Z])", r"\1_\2", value)
    return re.sub(r"[-\s]+", "_", value).lower()


def _camel_case_filter(value: str) -> str:
    pascal = _pascal_case_filter(value)
    return pascal[:1].lower() + pascal[1:]


def _write_file(path: Path, content: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")
