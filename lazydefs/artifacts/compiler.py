"""Byte-compilation and loading of generated artifacts."""

from __future__ import annotations

import importlib.machinery
import importlib.util
import py_compile
import sys
from pathlib import Path
from types import ModuleType
from typing import Optional, Protocol


class Compiler(Protocol):
    def compile(
        self, path: Path, *, cfile: Optional[Path] = None, dfile: Optional[Path] = None
    ) -> Path:
        ...

    def load(self, path: Path, must_exist: bool = False) -> Optional[ModuleType]:
        ...


class PyCompiler:
    """Compiles artifacts with :mod:`py_compile` and imports them with :mod:`importlib`."""

    MODULE_PREFIX = "_lazydefs_"

    def compile(
        self, path: Path, *, cfile: Optional[Path] = None, dfile: Optional[Path] = None
    ) -> Path:
        """Compile ``path`` into ``cfile`` (default ``<stem>.pyc``); raise on errors."""
        target = cfile or path.with_suffix(".pyc")
        py_compile.compile(
            str(path),
            cfile=str(target),
            dfile=str(dfile) if dfile is not None else None,
            doraise=True,
        )
        return target

    def load(self, path: Path, must_exist: bool = False) -> Optional[ModuleType]:
        """Import ``path`` (source or compiled) as a fresh module.

        Returns ``None`` when the file is missing and ``must_exist`` is false.
        """
        if not path.is_file():
            if must_exist:
                raise FileNotFoundError(f"Cannot load {path}: no such file")
            return None

        module_name = self.MODULE_PREFIX + path.stem
        if path.suffix == ".pyc":
            loader = importlib.machinery.SourcelessFileLoader(module_name, str(path))
            spec = importlib.util.spec_from_loader(module_name, loader)
        else:
            spec = importlib.util.spec_from_file_location(module_name, path)
        if spec is None or spec.loader is None:
            raise ImportError(f"Cannot build an import spec for {path}")

        module = importlib.util.module_from_spec(spec)
        previous = sys.modules.get(module_name)
        sys.modules[module_name] = module
        try:
            spec.loader.exec_module(module)
        except BaseException:
            if previous is not None:
                sys.modules[module_name] = previous
            else:
                sys.modules.pop(module_name, None)
            raise
        return module


__all__ = ["Compiler", "PyCompiler"]
