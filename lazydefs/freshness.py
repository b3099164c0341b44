"""Staleness checks deciding whether an artifact must be regenerated."""

from __future__ import annotations

import os
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Iterable, Optional

from .logging import get_logger

_SKIPPED_DIRS = {"__pycache__", ".git"}

logger = get_logger("freshness")


class Freshness(str, Enum):
    SKIP = "skip"
    REGENERATE = "regenerate"


@dataclass(frozen=True)
class FreshnessReport:
    """Decision plus the reason it was reached."""

    decision: Freshness
    reason: str

    @property
    def stale(self) -> bool:
        return self.decision is Freshness.REGENERATE


def mtime(path: Path) -> float:
    """Return the modification time of ``path`` or ``0.0`` when it is missing."""
    try:
        return path.stat().st_mtime
    except FileNotFoundError:
        return 0.0


def newest_descendant_mtime(directory: Path) -> float:
    """Return the newest modification time found anywhere below ``directory``."""
    newest = mtime(directory)
    if not directory.is_dir():
        return newest
    for dirpath, dirnames, filenames in os.walk(directory):
        dirnames[:] = [name for name in dirnames if name not in _SKIPPED_DIRS]
        current = Path(dirpath)
        for name in dirnames:
            newest = max(newest, mtime(current / name))
        for name in filenames:
            newest = max(newest, mtime(current / name))
    return newest


def check_freshness(
    target: Path,
    dependencies: Iterable[Path] = (),
    *,
    root: Optional[Path] = None,
    force: bool = False,
) -> FreshnessReport:
    """Decide whether ``target`` is stale relative to its inputs.

    ``root`` is a directory whose newest descendant counts as a dependency.
    Missing dependencies are ignored; a deleted input cannot be newer than
    the target.
    """
    if force:
        return _report(Freshness.REGENERATE, "forced")
    if not target.exists():
        return _report(Freshness.REGENERATE, f"{target.name} does not exist")

    target_mtime = mtime(target)
    if root is not None and newest_descendant_mtime(root) > target_mtime:
        return _report(Freshness.REGENERATE, f"{root} changed")

    for dependency in dependencies:
        if mtime(dependency) > target_mtime:
            return _report(Freshness.REGENERATE, f"{dependency} is newer")

    return _report(Freshness.SKIP, "up-to-date")


def _report(decision: Freshness, reason: str) -> FreshnessReport:
    logger.debug("Freshness decision %s (%s)", decision.value, reason)
    return FreshnessReport(decision=decision, reason=reason)


__all__ = [
    "Freshness",
    "FreshnessReport",
    "check_freshness",
    "mtime",
    "newest_descendant_mtime",
]
