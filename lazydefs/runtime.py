"""Runtime helpers imported by generated autoloads modules.

Generated artifacts only reference the names exported here, so the host
application needs nothing but ``lazydefs.runtime`` on its import path to
start up from a precompiled artifact.
"""

from __future__ import annotations

import functools
import importlib.util
import os
import re
from contextlib import contextmanager
from pathlib import Path
from types import ModuleType
from typing import Any, Callable, Dict, Iterator, List, MutableMapping, Optional, Tuple

LOAD_PATH: List[str] = []
EXTENSION_HANDLERS: Dict[str, str] = {}
DISABLED_PACKAGES: List[str] = []

_COMPONENTS: Dict[str, str] = {}
_LOADED: Dict[str, ModuleType] = {}
_MODULE_NAME_PATTERN = re.compile(r"[^0-9A-Za-z_]")


class AutoloadError(ImportError):
    """Raised when a deferred definition cannot be loaded."""


def ignore(*args: Any, **kwargs: Any) -> None:
    """Accept any arguments and do nothing."""
    return None


def put_component(name: str, component: str) -> None:
    """Record which component a generated definition belongs to."""
    _COMPONENTS[name] = component


def component_of(name: str) -> Optional[str]:
    return _COMPONENTS.get(name)


def autoload(path: str, name: str) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    """Replace a signature-only stub with a proxy that loads ``name`` from ``path``.

    ``path`` names a Python file without its suffix. The real definition is
    imported on the first call and reused afterwards.
    """

    def decorator(stub: Callable[..., Any]) -> Callable[..., Any]:
        target: Optional[Callable[..., Any]] = None

        @functools.wraps(stub)
        def proxy(*args: Any, **kwargs: Any) -> Any:
            nonlocal target
            if target is None:
                target = _load_definition(path, name)
            return target(*args, **kwargs)

        proxy.__autoload__ = (path, name)  # type: ignore[attr-defined]
        return proxy

    return decorator


def defalias(
    namespace: MutableMapping[str, Any], target: str, doc: Optional[str] = None
) -> Callable[..., Any]:
    """Return a callable forwarding to ``namespace[target]`` at call time."""

    def alias(*args: Any, **kwargs: Any) -> Any:
        try:
            function = namespace[target]
        except KeyError:
            raise AutoloadError(f"Alias target '{target}' is not defined") from None
        return function(*args, **kwargs)

    alias.__doc__ = doc
    alias.__alias_target__ = target  # type: ignore[attr-defined]
    return alias


def add_to_load_path(path: str, *, append: bool = False) -> None:
    """Register a directory searched for relative autoload paths."""
    entry = os.path.expanduser(str(path))
    if entry in LOAD_PATH:
        return
    if append:
        LOAD_PATH.append(entry)
    else:
        LOAD_PATH.insert(0, entry)


def register_extension(suffix: str, handler: str) -> None:
    """Map a file suffix to the name of the handler that opens it."""
    EXTENSION_HANDLERS[suffix] = handler


def apply_snapshot(
    load_path: List[str], extension_handlers: Dict[str, str], disabled_packages: List[str]
) -> None:
    """Replace the runtime state with values cached in a package artifact."""
    LOAD_PATH[:] = list(load_path)
    EXTENSION_HANDLERS.clear()
    EXTENSION_HANDLERS.update(extension_handlers)
    DISABLED_PACKAGES[:] = list(disabled_packages)


@contextmanager
def capture_state() -> Iterator[Tuple[List[str], Dict[str, str]]]:
    """Collect load-path and extension registrations into fresh containers.

    The previous contents are restored on exit.
    """
    saved_path = list(LOAD_PATH)
    saved_handlers = dict(EXTENSION_HANDLERS)
    LOAD_PATH.clear()
    EXTENSION_HANDLERS.clear()
    captured_path: List[str] = []
    captured_handlers: Dict[str, str] = {}
    try:
        yield captured_path, captured_handlers
    finally:
        captured_path.extend(LOAD_PATH)
        captured_handlers.update(EXTENSION_HANDLERS)
        LOAD_PATH[:] = saved_path
        EXTENSION_HANDLERS.clear()
        EXTENSION_HANDLERS.update(saved_handlers)


def locate(path: str) -> Optional[Path]:
    """Find the file behind an autoload path, searching ``LOAD_PATH`` for relative ones."""
    expanded = Path(os.path.expanduser(path))
    candidates = [expanded] if expanded.is_absolute() else [Path(root) / expanded for root in LOAD_PATH]
    for candidate in candidates:
        source = candidate.with_name(candidate.name + ".py")
        if source.is_file():
            return source
    return None


def _load_definition(path: str, name: str) -> Callable[..., Any]:
    source = locate(path)
    if source is None:
        raise AutoloadError(f"Cannot open autoload file: {path}")
    module = _import_file(source)
    try:
        return getattr(module, name)
    except AttributeError:
        raise AutoloadError(f"Autoloading file {source} failed to define {name}") from None


def _import_file(source: Path) -> ModuleType:
    key = str(source.resolve())
    cached = _LOADED.get(key)
    if cached is not None:
        return cached
    module_name = "_lazydefs_lib_" + _MODULE_NAME_PATTERN.sub("_", source.with_suffix("").as_posix())
    spec = importlib.util.spec_from_file_location(module_name, source)
    if spec is None or spec.loader is None:
        raise AutoloadError(f"Cannot import {source}")
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    _LOADED[key] = module
    return module


__all__ = [
    "DISABLED_PACKAGES",
    "EXTENSION_HANDLERS",
    "LOAD_PATH",
    "AutoloadError",
    "add_to_load_path",
    "apply_snapshot",
    "autoload",
    "capture_state",
    "component_of",
    "defalias",
    "ignore",
    "locate",
    "put_component",
    "register_extension",
]
