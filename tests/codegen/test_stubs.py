"""Tests for component-aware stub synthesis."""

from __future__ import annotations

import ast
import logging
import textwrap
from pathlib import Path
from typing import Dict, List, Optional

import pytest

from lazydefs import runtime
from lazydefs.codegen.render import default_renderer
from lazydefs.codegen.stubs import StubSynthesizer, choose_binding
from lazydefs.models import Binding, Component, FormKind, ScannedForm
from lazydefs.scanner import parse_form


class StaticRegistry:
    """Component lookup keyed by directory, for tests."""

    def __init__(self, components: List[Component]) -> None:
        self.components = components

    def enumerate_components(self) -> List[Component]:
        return list(self.components)

    def component_for_path(self, path: Path) -> Optional[Component]:
        for component in self.components:
            if path.resolve().is_relative_to(component.path.resolve()):
                return component
        return None

    def is_enabled(self, component: Component) -> bool:
        return component.enabled

    def search_roots(self, all: bool = False) -> List[Path]:
        return [c.path for c in self.components if all or c.enabled]


def _form(text: str, *, alternate: Optional[str] = None, component: str = "lang/demo") -> ScannedForm:
    return parse_form(
        textwrap.dedent(text).lstrip("\n"),
        source=Path("modules/lang/demo/autoload.py"),
        line=1,
        component=component,
        alternate=alternate,
    )


def _execute(text: str) -> Dict[str, object]:
    namespace: Dict[str, object] = {}
    exec(default_renderer().header("test") + text, namespace)
    return namespace


@pytest.mark.parametrize(
    ("kind", "enabled", "alternate", "expected"),
    [
        (FormKind.FUNCTION, True, None, Binding.REAL),
        (FormKind.FUNCTION, False, None, Binding.STUB),
        (FormKind.MACRO, False, None, Binding.STUB),
        (FormKind.FUNCTION, True, "x = ignore", Binding.REAL),
        (FormKind.FUNCTION, False, "x = ignore", Binding.VERBATIM),
        (FormKind.ALIAS, True, None, Binding.ALIAS_REAL),
        (FormKind.ALIAS, False, None, Binding.ALIAS_STUB),
        (FormKind.MEMBER, True, None, Binding.VERBATIM),
        (FormKind.MEMBER, False, None, None),
    ],
)
def test_choose_binding(kind: FormKind, enabled: bool, alternate: Optional[str], expected) -> None:
    form = ScannedForm(
        kind=kind,
        name="x",
        params="",
        param_names=(),
        body="x = 1\n",
        source=Path("x.py"),
        line=1,
        alternate=alternate,
    )

    assert choose_binding(form, enabled) is expected


def test_disabled_function_becomes_inert_stub() -> None:
    form = _form(
        """
        def foo(a, b):
            \"\"\"Combine A with B.\"\"\"
            return a + b
        """
    )

    text = StubSynthesizer().render_form(form, False, load_path="../modules/lang/demo/autoload")

    assert "def foo(a, b):" in text
    assert "THIS FUNCTION DOES NOTHING BECAUSE lang/demo IS DISABLED" in text
    assert "Combine A with B." in text
    assert "@autoload" not in text
    stub = next(node for node in ast.parse(text).body if isinstance(node, ast.FunctionDef))
    assert [arg.arg for arg in stub.args.args] == ["a", "b"]
    body_calls = [node for node in stub.body if isinstance(node, ast.Expr) and isinstance(node.value, ast.Call)]
    assert len(body_calls) == 1
    assert ast.unparse(body_calls[0]) == "_lazydefs_ignore(a, b)"

    namespace = _execute(text)
    assert namespace["foo"](1, 2) is None
    assert runtime.component_of("foo") == "lang/demo"


def test_enabled_function_becomes_real_binding() -> None:
    form = _form("def foo(a, b):\n    return a + b\n")

    text = StubSynthesizer().render_form(form, True, load_path="../modules/lang/demo/autoload")

    assert text.startswith('@autoload("../modules/lang/demo/autoload", "foo")\ndef foo(a, b):')
    assert "DOES NOTHING" not in text
    assert 'put_component("foo", "lang/demo")' in text


def test_stub_without_parameters_has_no_ignore_call() -> None:
    form = _form("def reset():\n    pass\n")

    text = StubSynthesizer().render_form(form, False, load_path="x")

    assert "ignore(" not in text
    assert _execute(text)["reset"]() is None


def test_stub_parameter_named_ignore_does_not_shadow_helper() -> None:
    form = _form("def sort_items(items, ignore=None):\n    return sorted(items)\n")

    text = StubSynthesizer().render_form(form, False, load_path="x")

    assert "_lazydefs_ignore(items, ignore)" in text
    sort_items = _execute(text)["sort_items"]
    assert sort_items([1], None) is None
    assert sort_items([2], ignore=[3]) is None


def test_disabled_async_function_stays_awaitable() -> None:
    form = _form("async def fetch(url, *, timeout=5):\n    pass\n")

    text = StubSynthesizer().render_form(form, False, load_path="x")

    assert "async def fetch(url, *, timeout=...):" in text
    assert "ignore(url, timeout)" in text


def test_disabled_class_keeps_constructor_arity() -> None:
    form = _form(
        """
        class Popup:
            def __init__(self, buffer, /, size=0.3):
                self.buffer = buffer
        """
    )

    text = StubSynthesizer().render_form(form, False, load_path="x")

    assert "def Popup(buffer, /, size=...):" in text
    assert _execute(text)["Popup"]("*scratch*") is None


def test_alternate_form_replaces_stub_only_when_disabled() -> None:
    form = _form("def set_popup_rule(predicate, **plist):\n    pass\n", alternate="set_popup_rule = ignore")

    disabled = StubSynthesizer().render_form(form, False, load_path="x")
    enabled = StubSynthesizer().render_form(form, True, load_path="x")

    assert disabled == "set_popup_rule = ignore\n\n"
    assert enabled.startswith('@autoload("x", "set_popup_rule")')


def test_alias_forwards_or_ignores() -> None:
    form = _form("open_file = find_file\n")

    enabled = StubSynthesizer().render_form(form, True, load_path="x")
    disabled = StubSynthesizer().render_form(form, False, load_path="x")

    assert 'open_file = defalias(globals(), "find_file", None)' in enabled
    assert 'open_file = defalias(globals(), "ignore", ' in disabled
    assert "IS DISABLED" in disabled
    assert 'put_component("open_file", "lang/demo")' in disabled

    namespace = _execute(disabled)
    assert namespace["open_file"]("README.md") is None
    assert "lang/demo IS DISABLED" in namespace["open_file"].__doc__


def test_member_forms_pass_through_only_when_enabled() -> None:
    form = _form("HOOKS = []\n")

    assert StubSynthesizer().render_form(form, True, load_path="x") == "HOOKS = []\n\n"
    assert StubSynthesizer().render_form(form, False, load_path="x") == ""


def test_malformed_alternate_is_logged_and_skipped(caplog) -> None:
    form = _form("def broken(a):\n    pass\n", alternate="broken = (")

    with caplog.at_level(logging.WARNING, logger="lazydefs"):
        text = StubSynthesizer().render_form(form, False, load_path="x")

    assert text == ""
    assert "broken" in caplog.text


def test_generate_uses_enabled_subset(tmp_path: Path) -> None:
    enabled_dir = tmp_path / "modules" / "tools" / "lsp"
    disabled_dir = tmp_path / "modules" / "lang" / "rust"
    enabled_file = enabled_dir / "autoload.py"
    disabled_file = disabled_dir / "autoload.py"
    for path, name in ((enabled_file, "lsp_start"), (disabled_file, "rust_compile")):
        path.parent.mkdir(parents=True)
        path.write_text(f"# ###autodef\ndef {name}(project):\n    pass\n", encoding="utf-8")
    registry = StaticRegistry(
        [
            Component("tools", "lsp", enabled_dir, enabled=True),
            Component("lang", "rust", disabled_dir, enabled=False),
        ]
    )

    text = StubSynthesizer(registry).generate(
        [enabled_file, disabled_file],
        [enabled_file],
        artifact_dir=tmp_path / ".lazydefs",
    )

    assert '@autoload("../modules/tools/lsp/autoload", "lsp_start")' in text
    assert 'put_component("lsp_start", "tools/lsp")' in text
    assert "THIS FUNCTION DOES NOTHING BECAUSE lang/rust IS DISABLED" in text
    assert text.index("lsp_start") < text.index("rust_compile")
