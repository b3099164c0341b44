"""One-shot notices shown when a lazydefs command finishes successfully."""

from __future__ import annotations

import logging
from typing import Dict, List, Sequence

from .logging import get_logger

RESTART_NOTICE = "restart"
RESTART_LINES = (
    "Restart or reload your application for changes to take effect:",
    "  the regenerated autoloads are only picked up at startup.",
)


class SessionNotices:
    """Collects messages keyed by purpose; each key is shown at most once."""

    def __init__(self) -> None:
        self._notices: Dict[str, List[str]] = {}

    def add_once(self, key: str, lines: Sequence[str]) -> bool:
        if key in self._notices:
            return False
        self._notices[key] = list(lines)
        return True

    def pending(self) -> List[str]:
        return [line for lines in self._notices.values() for line in lines]

    def flush(self, logger: logging.Logger | None = None) -> List[str]:
        """Emit and forget all pending notices."""
        target = logger or get_logger("session")
        lines = self.pending()
        for line in lines:
            target.info(line)
        self._notices.clear()
        return lines

    def __bool__(self) -> bool:
        return bool(self._notices)


__all__ = ["RESTART_LINES", "RESTART_NOTICE", "SessionNotices"]
