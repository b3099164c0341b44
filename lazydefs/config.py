"""Configuration loading for lazydefs (.lazydefs.yml)."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

import yaml

CONFIG_FILENAME = ".lazydefs.yml"
CACHE_DIR_ENV = "LAZYDEFS_CACHE_DIR"


class ConfigError(RuntimeError):
    """Raised when the configuration file cannot be parsed."""


@dataclass
class LazydefsConfig:
    """Represents the project layout and component selection in .lazydefs.yml."""

    root: Path
    config_path: Path
    core_dir: Path
    modules_dirs: List[Path] = field(default_factory=list)
    packages_dir: Optional[Path] = None
    cache_dir: Optional[Path] = None
    components: List[str] = field(default_factory=list)
    disabled_packages: List[str] = field(default_factory=list)
    excluded_packages: List[str] = field(default_factory=list)
    extra_roots: List[Path] = field(default_factory=list)

    @property
    def core_artifact(self) -> Path:
        return self._cache_root() / "autoloads.py"

    @property
    def package_artifact(self) -> Path:
        return self._cache_root() / "autoloads_pkg.py"

    def _cache_root(self) -> Path:
        return self.cache_dir or (self.root / ".lazydefs")


def load_config(config_path: Path) -> LazydefsConfig:
    """Load configuration from disk, falling back to the default layout."""
    config_file = _resolve_config_path(config_path)
    root = config_file.parent.resolve()

    data: Dict[str, Any] = {}
    if config_file.exists():
        data = _read_config(config_file)
        if not isinstance(data, dict):
            raise ConfigError(f"{CONFIG_FILENAME} must contain a mapping at the root")

    core_dir = root / (_as_str(data.get("core_dir")) or "core")
    modules = _as_str_list(data.get("modules_dirs")) or ["modules"]
    packages_dir = root / (_as_str(data.get("packages_dir")) or "packages")

    cache_override = os.environ.get(CACHE_DIR_ENV)
    cache_str = cache_override or _as_str(data.get("cache_dir")) or ".lazydefs"
    cache_dir = Path(cache_str).expanduser()
    if not cache_dir.is_absolute():
        cache_dir = root / cache_dir

    return LazydefsConfig(
        root=root,
        config_path=config_file,
        core_dir=core_dir,
        modules_dirs=[root / entry for entry in modules],
        packages_dir=packages_dir,
        cache_dir=cache_dir,
        components=_parse_components(data.get("components")),
        disabled_packages=_as_str_list(data.get("disabled_packages")),
        excluded_packages=_as_str_list(data.get("excluded_packages")),
        extra_roots=[
            _expand_root(root, entry) for entry in _as_str_list(data.get("extra_roots"))
        ],
    )


def _resolve_config_path(config_path: Path) -> Path:
    config_path = config_path.expanduser()
    if config_path.is_dir():
        return (config_path / CONFIG_FILENAME).resolve()
    if config_path.name != CONFIG_FILENAME:
        return (config_path.parent / CONFIG_FILENAME).resolve()
    return config_path.resolve()


def _read_config(path: Path) -> Dict[str, Any]:
    text = path.read_text(encoding="utf-8")
    if not text.strip():
        return {}
    try:
        loaded = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise ConfigError(f"Failed to parse {path.name}: {exc}") from exc
    return loaded or {}


def _parse_components(value: Any) -> List[str]:
    """Normalise the components section to ``category/name`` identifiers.

    Both shapes are accepted::

        components:
          lang: [python, rust]
          tools:
            - lsp

        components: [lang/python, tools/lsp]
    """
    if isinstance(value, dict):
        result: List[str] = []
        for category, names in value.items():
            for name in _as_str_list(names):
                result.append(f"{category}/{name}")
        return result
    result = []
    for entry in _as_str_list(value):
        if "/" not in entry:
            raise ConfigError(f"Component '{entry}' must be written as category/name")
        result.append(entry.strip("/"))
    return result


def _expand_root(root: Path, entry: str) -> Path:
    path = Path(entry).expanduser()
    return path if path.is_absolute() else root / path


def _as_str(value: Any) -> Optional[str]:
    return str(value) if isinstance(value, (str, int, float)) and not isinstance(value, bool) else None


def _as_str_list(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    if isinstance(value, Sequence):
        return [str(item) for item in value if isinstance(item, (str, int, float))]
    return []


__all__ = ["CONFIG_FILENAME", "ConfigError", "LazydefsConfig", "load_config"]
