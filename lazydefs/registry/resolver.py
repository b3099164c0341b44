"""Library lookup for autoload paths."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Iterable, List, Optional, Sequence

_SUFFIXES = (".py",)


class LibraryResolver:
    """Locates the Python file behind a symbolic autoload path.

    Relative paths are tried against ``extra_roots`` (when given) and then
    against the default roots, in order. The first existing file wins.
    """

    def __init__(self, default_roots: Iterable[Path] = ()) -> None:
        self.default_roots: List[Path] = list(default_roots)

    def resolve(
        self, symbolic_path: str, extra_roots: Optional[Sequence[Path]] = None
    ) -> Optional[Path]:
        expanded = Path(os.path.expanduser(symbolic_path))
        if expanded.is_absolute():
            return _existing(expanded)
        roots = list(extra_roots) if extra_roots is not None else self.default_roots
        for root in roots:
            located = _existing(root / expanded)
            if located is not None:
                return located
        return None


def _existing(candidate: Path) -> Optional[Path]:
    if candidate.suffix in _SUFFIXES and candidate.is_file():
        return Path(os.path.normpath(candidate.resolve()))
    for suffix in _SUFFIXES:
        source = candidate.with_name(candidate.name + suffix)
        if source.is_file():
            return Path(os.path.normpath(source.resolve()))
    return None


__all__ = ["LibraryResolver"]
