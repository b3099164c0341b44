"""Component-aware synthesis of ``# ###autodef`` declarations.

Every ``autodef`` form is emitted whether or not its component is enabled, so
call sites keep working when a component is switched off:

* functions and classes of enabled components become deferred-load bindings;
* those of disabled components become inert stubs with the same parameter
  list, or the cookie's alternate form when one was given;
* aliases forward to their target, or to ``ignore`` when disabled;
* any other form is copied when enabled and dropped when disabled.
"""

from __future__ import annotations

import ast
from pathlib import Path
from typing import Iterable, List, Optional, Set

from ..logging import get_logger
from ..models import Binding, FormKind, ScannedForm
from ..registry.components import ComponentSource
from ..scanner import AUTODEF, ScanFormMalformed, collect_forms, relative_load_path
from .render import DISABLED_NOTICE, TemplateRenderer, default_renderer

CORE_COMPONENT = "core"

logger = get_logger("stubs")


def choose_binding(form: ScannedForm, enabled: bool) -> Optional[Binding]:
    """Return how ``form`` is emitted, or ``None`` when it is dropped."""
    if not enabled and form.alternate:
        return Binding.VERBATIM
    if form.kind in (FormKind.FUNCTION, FormKind.MACRO):
        return Binding.REAL if enabled else Binding.STUB
    if form.kind is FormKind.ALIAS:
        return Binding.ALIAS_REAL if enabled else Binding.ALIAS_STUB
    return Binding.VERBATIM if enabled else None


class StubSynthesizer:
    """Turns ``autodef`` forms into real bindings or inert stand-ins."""

    def __init__(
        self,
        registry: ComponentSource | None = None,
        renderer: TemplateRenderer | None = None,
    ) -> None:
        self.registry = registry
        self.renderer = renderer or default_renderer()

    def generate(
        self,
        targets: Iterable[Path],
        enabled_targets: Iterable[Path],
        *,
        artifact_dir: Path,
    ) -> str:
        enabled: Set[Path] = {path.resolve() for path in enabled_targets}
        chunks: List[str] = []
        for path in targets:
            component = self._component_id(path)
            forms = collect_forms(path, AUTODEF, component=component)
            if not forms:
                continue
            module_enabled = path.resolve() in enabled
            load_path = relative_load_path(path, artifact_dir)
            for form in forms:
                chunk = self.render_form(form, module_enabled, load_path=load_path)
                if chunk:
                    chunks.append(chunk)
        return "".join(chunks)

    def render_form(self, form: ScannedForm, enabled: bool, *, load_path: str) -> str:
        """Render one form; synthesis failures are logged and yield an empty string."""
        binding = choose_binding(form, enabled)
        if binding is None:
            return ""
        component = form.component or CORE_COMPONENT
        try:
            if binding is Binding.VERBATIM:
                return self._verbatim(form, enabled)
            if binding is Binding.REAL:
                return self.renderer.binding(form, load_path, component=component)
            if binding is Binding.STUB:
                return self._checked(self.renderer.stub(form, component), form)
            doc = None
            target = form.body
            if binding is Binding.ALIAS_STUB:
                target = "ignore"
                doc = f"{DISABLED_NOTICE.format(component=component)}\n\nAlias for {form.body}."
            return self.renderer.alias(form, component, target=target, doc=doc)
        except ScanFormMalformed as exc:
            logger.warning("Skipping %s: %s", form.name or "declaration", exc)
            return ""

    def _verbatim(self, form: ScannedForm, enabled: bool) -> str:
        text = form.body if enabled or not form.alternate else form.alternate
        return self._checked(text.rstrip() + "\n\n", form)

    def _component_id(self, path: Path) -> Optional[str]:
        if self.registry is None:
            return None
        component = self.registry.component_for_path(path)
        return component.id if component is not None else None

    @staticmethod
    def _checked(text: str, form: ScannedForm) -> str:
        try:
            ast.parse(text)
        except SyntaxError as exc:
            raise ScanFormMalformed(form.source, form.line, f"cannot synthesize form ({exc.msg})") from exc
        return text


__all__ = ["CORE_COMPONENT", "StubSynthesizer", "choose_binding"]
