"""End-to-end regeneration tests for the autoloads orchestrator."""

from __future__ import annotations

import os
import sys
import time
from pathlib import Path
from typing import Optional

import pytest

from lazydefs import runtime
from lazydefs.artifacts import PyCompiler, RegenerationError
from lazydefs.orchestrator import AutoloadOrchestrator, InvalidTargetError
from lazydefs.session import SessionNotices


class ExplodingCompiler(PyCompiler):
    def compile(self, path: Path, *, cfile: Optional[Path] = None, dfile: Optional[Path] = None) -> Path:
        raise SyntaxError("simulated compiler failure")


def _component_tree(tree) -> None:
    tree.write(
        {
            "core/autoload/files.py": """
                # ###autoload
                def glob_files(*segments):
                    \"\"\"Return SEGMENTS unchanged.\"\"\"
                    return segments
                """,
            "modules/lang/python/autoload.py": """
                # ###autodef
                def python_version():
                    return 3
                """,
            "modules/lang/rust/autoload.py": """
                # ###autodef
                def rust_compile(project, release=False):
                    \"\"\"Compile PROJECT with cargo.\"\"\"
                    return project
                """,
        }
    )


def _package_tree(tree) -> None:
    tree.write(
        {
            "packages/go_mode/go_mode_autoloads.py": """
                import os
                import sys
                from lazydefs.runtime import add_to_load_path, register_extension

                # Autoloads for go_mode.
                HERE = os.path.dirname(__file__)
                sys.path.append(HERE)
                add_to_load_path(os.path.join(HERE, "lisp"))
                register_extension(".go", "go_mode")
                """,
            "packages/magit/magit_autoloads.py": "MAGIT = True\n",
        }
    )


def _make_fresh(path: Path) -> None:
    stamp = time.time() - 500
    os.utime(path, (stamp, stamp))


def test_regenerate_core_binds_enabled_and_stubs_disabled(tree) -> None:
    _component_tree(tree)
    config = tree.configure(components=["lang/python"])
    notices = SessionNotices()

    outcome = AutoloadOrchestrator(config, notices=notices).regenerate_core()

    assert outcome.regenerated
    assert outcome.scan is not None and outcome.scan.scanned == 1
    module = outcome.module
    assert module.glob_files("a", "b") == ("a", "b")
    assert module.python_version() == 3
    assert module.rust_compile("crate") is None
    assert "lang/rust IS DISABLED" in module.rust_compile.__doc__
    assert runtime.component_of("rust_compile") == "lang/rust"
    assert runtime.component_of("python_version") == "lang/python"
    assert config.core_artifact.with_suffix(".pyc").is_file()
    assert notices


def test_core_text_is_deterministic_and_clean(tree) -> None:
    _component_tree(tree)
    config = tree.configure(components=["lang/python"])
    orchestrator = AutoloadOrchestrator(config)
    targets, enabled = orchestrator.core_targets()

    first, _ = orchestrator.build_core_text(targets, enabled)
    second, _ = orchestrator.build_core_text(targets, enabled)

    assert first == second
    assert "###autoload" not in first
    assert "###autodef" not in first
    assert "../core/autoload/files" not in first


def test_fresh_core_artifact_is_loaded_not_rebuilt(tree) -> None:
    _component_tree(tree)
    config = tree.configure(components=["lang/python"])
    AutoloadOrchestrator(config).regenerate_core()
    tree.age()
    _make_fresh(config.core_artifact)

    skipped = AutoloadOrchestrator(config).regenerate_core()

    assert not skipped.regenerated
    assert skipped.module.python_version() == 3

    tree.write({"modules/lang/rust/autoload.py": "# ###autodef\ndef rust_build():\n    pass\n"})

    rebuilt = AutoloadOrchestrator(config).regenerate_core()

    assert rebuilt.regenerated
    assert hasattr(rebuilt.module, "rust_build")
    assert not hasattr(rebuilt.module, "rust_compile")


def test_force_regenerates_fresh_artifact(tree) -> None:
    _component_tree(tree)
    config = tree.configure(components=["lang/python"])
    AutoloadOrchestrator(config).regenerate_core()
    tree.age()
    _make_fresh(config.core_artifact)

    assert AutoloadOrchestrator(config).regenerate_core(force=True).regenerated


def test_enabling_component_through_config_triggers_regeneration(tree) -> None:
    _component_tree(tree)
    config = tree.configure(components=["lang/python"])
    AutoloadOrchestrator(config).regenerate_core()
    tree.age()
    _make_fresh(config.core_artifact)

    config = tree.configure(components=["lang/python", "lang/rust"])
    outcome = AutoloadOrchestrator(config).regenerate_core()

    assert outcome.regenerated
    assert outcome.module.rust_compile("crate") == "crate"


def test_regenerate_packages_caches_state(tree, monkeypatch) -> None:
    monkeypatch.setattr(sys, "path", list(sys.path))
    _component_tree(tree)
    _package_tree(tree)
    config = tree.configure(components=["lang/python"], excluded_packages=["magit"])

    outcome = AutoloadOrchestrator(config).regenerate_packages()

    package_dir = config.packages_dir / "go_mode"
    text = config.package_artifact.read_text(encoding="utf-8")
    assert outcome.regenerated
    assert text.count("LOAD_PATH, EXTENSION_HANDLERS, DISABLED_PACKAGES = (") == 1
    assert "sys.path.append" not in text
    assert "add_to_load_path(os.path" not in text
    assert "register_extension(\".go\"" not in text
    assert "Autoloads for go_mode" not in text
    assert "MAGIT" not in text
    assert outcome.module.HERE == str(package_dir)
    assert str(package_dir / "lisp") in runtime.LOAD_PATH
    assert str(config.packages_dir / "magit") in runtime.LOAD_PATH
    assert runtime.EXTENSION_HANDLERS == {".go": "go_mode"}


def test_fresh_package_artifact_still_applies_snapshot(tree, monkeypatch) -> None:
    monkeypatch.setattr(sys, "path", list(sys.path))
    _package_tree(tree)
    config = tree.configure(disabled_packages=["magit"])
    AutoloadOrchestrator(config).regenerate_packages()
    tree.age()
    _make_fresh(config.package_artifact)
    runtime.apply_snapshot([], {}, [])

    outcome = AutoloadOrchestrator(config).regenerate_packages()

    assert not outcome.regenerated
    assert runtime.EXTENSION_HANDLERS == {".go": "go_mode"}
    assert runtime.DISABLED_PACKAGES == ["magit"]


def test_reload_dispatches_by_artifact_path(tree) -> None:
    _component_tree(tree)
    config = tree.configure(components=["lang/python"])
    orchestrator = AutoloadOrchestrator(config)

    outcomes = orchestrator.reload(config.core_artifact)

    assert [o.artifact.path for o in outcomes] == [config.core_artifact]
    with pytest.raises(InvalidTargetError):
        orchestrator.reload(tree.path() / "init.py")


def test_regenerate_all_builds_core_then_packages(tree, monkeypatch) -> None:
    monkeypatch.setattr(sys, "path", list(sys.path))
    _component_tree(tree)
    _package_tree(tree)
    config = tree.configure(components=["lang/python"])

    outcomes = AutoloadOrchestrator(config).regenerate_all()

    assert [o.artifact.path for o in outcomes] == [config.core_artifact, config.package_artifact]
    assert all(o.regenerated for o in outcomes)


def test_failed_core_compile_leaves_package_artifact_alone(tree, monkeypatch) -> None:
    monkeypatch.setattr(sys, "path", list(sys.path))
    _component_tree(tree)
    _package_tree(tree)
    config = tree.configure(components=["lang/python"])
    AutoloadOrchestrator(config).regenerate_all()
    package_text = config.package_artifact.read_text(encoding="utf-8")

    with pytest.raises(RegenerationError):
        AutoloadOrchestrator(config, compiler=ExplodingCompiler()).regenerate_core(force=True)

    assert not config.core_artifact.exists()
    assert config.core_artifact.with_name("autoloads.py.bk").is_file()
    assert config.package_artifact.read_text(encoding="utf-8") == package_text


def test_cache_dir_can_be_overridden_from_environment(tree, monkeypatch, tmp_path: Path) -> None:
    _component_tree(tree)
    tree.configure(components=["lang/python"])
    monkeypatch.setenv("LAZYDEFS_CACHE_DIR", str(tmp_path / "cache"))
    config = tree.config()

    AutoloadOrchestrator(config).regenerate_core()

    assert (tmp_path / "cache" / "autoloads.py").is_file()


def test_text_generation_failure_keeps_previous_artifact(tree, monkeypatch) -> None:
    _component_tree(tree)
    config = tree.configure(components=["lang/python"])
    AutoloadOrchestrator(config).regenerate_core()
    previous = config.core_artifact.read_text(encoding="utf-8")

    def explode(self, targets, enabled_targets):
        raise RuntimeError("simulated scan failure")

    monkeypatch.setattr(AutoloadOrchestrator, "build_core_text", explode)
    with pytest.raises(RuntimeError):
        AutoloadOrchestrator(config).regenerate_core(force=True)

    assert config.core_artifact.read_text(encoding="utf-8") == previous
    assert config.core_artifact.with_suffix(".pyc").is_file()
