"""Component discovery for module trees declared in .lazydefs.yml."""

from __future__ import annotations

from pathlib import Path
from typing import Dict, List, Optional, Protocol

from ..config import LazydefsConfig
from ..logging import get_logger
from ..models import Component

AUTOLOAD_FILE = "autoload.py"
AUTOLOAD_DIR = "autoload"
PACKAGES_FILE = "packages.py"

logger = get_logger("registry")


class ComponentSource(Protocol):
    def enumerate_components(self) -> List[Component]:
        ...

    def component_for_path(self, path: Path) -> Optional[Component]:
        ...

    def is_enabled(self, component: Component) -> bool:
        ...

    def search_roots(self, all: bool = False) -> List[Path]:
        ...


class ComponentRegistry:
    """Enumerates ``<modules_dir>/<category>/<name>`` components.

    A component is enabled when ``category/name`` is listed under
    ``components`` in the configuration. Enabled components keep the order in
    which they were declared; the rest follow in directory order.
    """

    def __init__(self, config: LazydefsConfig) -> None:
        self.config = config
        self._components: Optional[List[Component]] = None

    def enumerate_components(self) -> List[Component]:
        if self._components is None:
            self._components = self._discover()
        return list(self._components)

    def enabled_components(self) -> List[Component]:
        return [component for component in self.enumerate_components() if component.enabled]

    def component_for_path(self, path: Path) -> Optional[Component]:
        resolved = path.resolve()
        for component in self.enumerate_components():
            if resolved.is_relative_to(component.path.resolve()):
                return component
        return None

    def is_enabled(self, component: Component) -> bool:
        return component.id in self.config.components

    def search_roots(self, all: bool = False) -> List[Path]:
        components = self.enumerate_components() if all else self.enabled_components()
        return [component.path for component in components]

    def autoload_targets(self, component: Component) -> List[Path]:
        """Return the autoload files of ``component``: ``autoload.py`` then ``autoload/*.py``."""
        targets: List[Path] = []
        single = component.path / AUTOLOAD_FILE
        if single.is_file():
            targets.append(single)
        directory = component.path / AUTOLOAD_DIR
        if directory.is_dir():
            targets.extend(sorted(directory.glob("*.py")))
        return targets

    def package_declarations(self) -> List[Path]:
        """Return the ``packages.py`` files of enabled components."""
        return [
            component.path / PACKAGES_FILE
            for component in self.enabled_components()
            if (component.path / PACKAGES_FILE).is_file()
        ]

    def _discover(self) -> List[Component]:
        found: Dict[str, Component] = {}
        for modules_dir in self.config.modules_dirs:
            if not modules_dir.is_dir():
                continue
            for category_dir in sorted(p for p in modules_dir.iterdir() if p.is_dir()):
                if category_dir.name.startswith((".", "_")):
                    continue
                for component_dir in sorted(p for p in category_dir.iterdir() if p.is_dir()):
                    if component_dir.name.startswith((".", "_")):
                        continue
                    component_id = f"{category_dir.name}/{component_dir.name}"
                    if component_id in found:
                        continue
                    found[component_id] = Component(
                        category=category_dir.name,
                        name=component_dir.name,
                        path=component_dir,
                        enabled=component_id in self.config.components,
                    )

        order = {component_id: index for index, component_id in enumerate(self.config.components)}
        for component_id in self.config.components:
            if component_id not in found:
                logger.warning("Component %s is enabled but was not found", component_id)
        return sorted(
            found.values(),
            key=lambda component: (
                0 if component.enabled else 1,
                order.get(component.id, 0),
            ),
        )


__all__ = [
    "AUTOLOAD_DIR",
    "AUTOLOAD_FILE",
    "PACKAGES_FILE",
    "ComponentRegistry",
    "ComponentSource",
]
