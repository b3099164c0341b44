"""Installed-package bookkeeping for the aggregated package artifact."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, List, Optional

from .. import runtime
from ..config import LazydefsConfig
from ..logging import get_logger
from ..models import InstalledPackage
from .components import ComponentRegistry


class PackageRegistry:
    """Tracks packages installed under ``packages_dir``.

    ``initialize`` activates every installed package by executing its
    ``<name>_autoloads.py`` module, which is how packages register load-path
    entries and extension handlers. The resulting state is what the package
    artifact caches.
    """

    def __init__(
        self, config: LazydefsConfig, components: ComponentRegistry | None = None
    ) -> None:
        self.config = config
        self.components = components or ComponentRegistry(config)
        self.logger = get_logger("packages")
        self._initialized = False
        self._load_path: List[str] = []
        self._extension_handlers: Dict[str, str] = {}

    def installed(self) -> List[InstalledPackage]:
        packages_dir = self.config.packages_dir
        if packages_dir is None or not packages_dir.is_dir():
            return []
        disabled = set(self.config.disabled_packages)
        return [
            InstalledPackage(name=path.name, path=path)
            for path in sorted(packages_dir.iterdir())
            if path.is_dir() and not path.name.startswith((".", "_")) and path.name not in disabled
        ]

    def initialize(self, *, force: bool = False) -> None:
        if self._initialized and not force:
            return
        with runtime.capture_state() as (load_path, handlers):
            for package in self.installed():
                self._activate(package)
        seeds = [str(self.config.core_dir)]
        seeds.extend(str(path) for path in self.components.search_roots())
        seeds.extend(str(package.path) for package in self.installed())
        self._load_path = _unique(seeds + load_path)
        self._extension_handlers = dict(handlers)
        self._initialized = True
        self.logger.debug(
            "Initialized %d package(s): %d load-path entries, %d extension handlers",
            len(self.installed()),
            len(self._load_path),
            len(self._extension_handlers),
        )

    def load_path(self) -> List[str]:
        self.initialize()
        return list(self._load_path)

    def extension_handlers(self) -> Dict[str, str]:
        self.initialize()
        return dict(self._extension_handlers)

    def disabled_packages(self) -> List[str]:
        return sorted(set(self.config.disabled_packages))

    def _activate(self, package: InstalledPackage) -> None:
        source = package.autoloads_file
        if not source.is_file():
            self.logger.debug("No autoloads module for %s", package.name)
            return
        namespace: Dict[str, object] = {
            "__name__": f"_lazydefs_pkg_{package.name}",
            "__file__": str(source),
        }
        try:
            code = compile(source.read_text(encoding="utf-8"), str(source), "exec")
            exec(code, namespace)
        except Exception as exc:
            self._log_exception(f"Failed to activate package {package.name}", exc)

    def _log_exception(self, message: str, exc: Exception) -> None:
        if self.logger.isEnabledFor(logging.DEBUG):
            self.logger.exception("%s: %s", message, exc)
        else:
            self.logger.warning("%s: %s", message, exc)


def _unique(entries: List[str]) -> List[str]:
    seen: set[str] = set()
    ordered: List[str] = []
    for entry in entries:
        if entry not in seen:
            ordered.append(entry)
            seen.add(entry)
    return ordered


__all__ = ["PackageRegistry"]
