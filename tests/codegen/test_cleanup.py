"""Tests for build-directive and cached-mutation removal."""

from __future__ import annotations

import ast
import textwrap

from lazydefs.codegen.cleanup import comment_only_lines, strip_annotations, strip_cached_mutations


def _dedent(text: str) -> str:
    return textwrap.dedent(text).lstrip("\n")


def test_strip_annotations_removes_cookie_lines() -> None:
    text = _dedent(
        """
        # ###autoload
        def foo():
            # ###autodef
            pass
        # lazydefs: no-compile
        # an ordinary comment
        """
    )

    stripped = strip_annotations(text)

    assert "###" not in stripped
    assert "no-compile" not in stripped
    assert "# an ordinary comment" in stripped
    assert "def foo():" in stripped


def test_strip_annotations_leaves_strings_alone() -> None:
    text = 'NOTE = """\n# ###autoload\n"""\nx = 1  # ###autoload\n'

    assert strip_annotations(text) == text


def test_strip_annotations_returns_untokenizable_text_unchanged() -> None:
    text = 'x = """never closed\n# ###autoload\n'

    assert comment_only_lines(text) is None
    assert strip_annotations(text) == text


def test_strip_cached_mutations_removes_top_level_statements() -> None:
    text = _dedent(
        """
        import sys
        sys.path.append("/opt/pkg")
        add_to_load_path("/opt/pkg/lisp")
        register_extension(".rs", "rust_mode")
        EXTENSION_HANDLERS[".go"] = "go_mode"
        LOAD_PATH += ["/tmp"]
        keep = "sys.path.append('/not/removed')"
        """
    )

    stripped = strip_cached_mutations(text)

    assert stripped == "import sys\nkeep = \"sys.path.append('/not/removed')\"\n"


def test_strip_cached_mutations_keeps_blocks_valid() -> None:
    text = _dedent(
        """
        if HAVE_GO:
            add_to_load_path("/opt/go")
            register_extension(".go", "go_mode")
        else:
            enable_fallback()
        """
    )

    stripped = strip_cached_mutations(text)

    ast.parse(stripped)
    assert "add_to_load_path" not in stripped
    assert "register_extension" not in stripped
    assert "    pass\n" in stripped
    assert "enable_fallback()" in stripped


def test_strip_cached_mutations_ignores_shared_lines() -> None:
    text = "x = 1; sys.path.append('/opt')\n"

    assert strip_cached_mutations(text) == text


def test_strip_cached_mutations_returns_unparsable_text_unchanged() -> None:
    text = "def broken(:\n    sys.path.append('/opt')\n"

    assert strip_cached_mutations(text) == text
