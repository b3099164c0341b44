"""Collaborators that describe the component tree and installed packages."""

from .components import ComponentRegistry, ComponentSource
from .packages import PackageRegistry
from .resolver import LibraryResolver

__all__ = ["ComponentRegistry", "ComponentSource", "LibraryResolver", "PackageRegistry"]
