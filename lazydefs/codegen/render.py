"""Jinja rendering of generated Python text."""

from __future__ import annotations

import json
from functools import lru_cache
from pathlib import Path
from typing import Optional

from jinja2 import Environment, FileSystemLoader

from ..models import ScannedForm

DISABLED_NOTICE = "THIS FUNCTION DOES NOTHING BECAUSE {component} IS DISABLED"


def quote(value: object) -> str:
    """Render ``value`` as a double-quoted Python string literal."""
    return json.dumps(str(value), ensure_ascii=False)


def docstring(value: Optional[str]) -> str:
    """Render ``value`` as a docstring literal, triple-quoted when that is safe."""
    text = value or ""
    if '"""' in text or "\\" in text or text.endswith('"') or "\r" in text:
        return quote(text)
    return f'"""{text}"""'


class TemplateRenderer:
    """Renders headers, deferred-load bindings, stubs and aliases."""

    def __init__(self, templates_dir: Path | None = None) -> None:
        self.templates_dir = templates_dir or Path(__file__).with_name("templates")
        self._env = self._create_env(self.templates_dir)

    def header(self, entry_point: str) -> str:
        return self._render("header.py.j2", entry_point=entry_point)

    def binding(self, form: ScannedForm, path: str, *, component: Optional[str] = None) -> str:
        return self._render("binding.py.j2", form=form, path=path, component=component)

    def stub(self, form: ScannedForm, component: str) -> str:
        notice = DISABLED_NOTICE.format(component=component)
        doc = f"{notice}\n\n{form.doc or 'No documentation.'}"
        return self._render("stub.py.j2", form=form, component=component, doc=doc)

    def alias(
        self,
        form: ScannedForm,
        component: str,
        *,
        target: str,
        doc: Optional[str] = None,
    ) -> str:
        return self._render("alias.py.j2", form=form, component=component, target=target, doc=doc)

    def _render(self, template_name: str, **context: object) -> str:
        return self._env.get_template(template_name).render(**context)

    @staticmethod
    def _create_env(templates_dir: Path) -> Environment:
        env = Environment(
            loader=FileSystemLoader(str(templates_dir)),
            autoescape=False,
            trim_blocks=True,
            lstrip_blocks=True,
            keep_trailing_newline=True,
        )
        env.filters["quote"] = quote
        env.filters["docstring"] = docstring
        return env


@lru_cache(maxsize=1)
def default_renderer() -> TemplateRenderer:
    return TemplateRenderer()


__all__ = ["DISABLED_NOTICE", "TemplateRenderer", "default_renderer", "docstring", "quote"]
