"""Canonicalisation of autoload paths embedded in generated text."""

from __future__ import annotations

import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional, Protocol, Sequence

from ..logging import get_logger

_AUTOLOAD_PATH_PATTERN = re.compile(r'^(?P<prefix>[ \t]*@autoload\(\s*")(?P<path>[^"\n]*)(?P<suffix>")', re.MULTILINE)

logger = get_logger("rewriter")


class Resolver(Protocol):
    def resolve(self, symbolic_path: str, extra_roots: Optional[Sequence[Path]] = None) -> Optional[Path]:
        ...


@dataclass
class RewriteStats:
    resolved: int = 0
    unresolved: int = 0
    cache_hits: int = 0


def abbreviate(path: Path) -> str:
    """Return ``path`` without its suffix and with the home directory shown as ``~``."""
    text = path.with_suffix("").as_posix()
    home = Path.home().as_posix()
    if home not in ("", "/") and (text == home or text.startswith(home + "/")):
        return "~" + text[len(home):]
    return text


class ReferenceRewriter:
    """Replaces symbolic ``@autoload`` paths with resolved, abbreviated paths.

    One instance corresponds to one regeneration run; its path cache is
    append-only and discarded with the instance.
    """

    def __init__(self, resolver: Resolver, *, extra_roots: Sequence[Path] = ()) -> None:
        self.resolver = resolver
        self.extra_roots = list(extra_roots)
        self.cache: Dict[str, str] = {}
        self.last_stats = RewriteStats()

    def rewrite(self, text: str, *, allow_internal: bool = False) -> str:
        stats = RewriteStats()

        def _replace(match: re.Match[str]) -> str:
            original = match.group("path")
            resolved = self._lookup(original, allow_internal, stats)
            if resolved is None:
                stats.unresolved += 1
                return match.group(0)
            stats.resolved += 1
            return f"{match.group('prefix')}{resolved}{match.group('suffix')}"

        rewritten = _AUTOLOAD_PATH_PATTERN.sub(_replace, text)
        self.last_stats = stats
        logger.debug(
            "Expanded %d autoload path(s), left %d unresolved", stats.resolved, stats.unresolved
        )
        return rewritten

    def _lookup(self, path: str, allow_internal: bool, stats: RewriteStats) -> Optional[str]:
        cached = self.cache.get(path)
        if cached is not None:
            stats.cache_hits += 1
            return cached
        located: Optional[Path] = None
        if allow_internal and self.extra_roots:
            located = self.resolver.resolve(path, self.extra_roots)
        if located is None:
            located = self.resolver.resolve(path)
        if located is None:
            return None
        display = abbreviate(Path(os.path.normpath(located)))
        if '"' in display or "\\" in display:
            return None
        self.cache[path] = display
        return display


__all__ = ["ReferenceRewriter", "RewriteStats", "abbreviate"]
