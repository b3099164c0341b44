"""Helper utilities for constructing temporary component trees in tests."""

from __future__ import annotations

import os
import textwrap
import time
from pathlib import Path
from typing import Any, Mapping

import yaml

from lazydefs.config import CONFIG_FILENAME, LazydefsConfig, load_config


class TreeBuilder:
    """Utility for writing files into a throwaway project and loading its config."""

    def __init__(self, tmp_path: Path) -> None:
        self.root = tmp_path / "project"
        self.root.mkdir()

    def write(self, files: Mapping[str, str]) -> None:
        """Write `path -> contents` entries into the project."""
        for relative, content in files.items():
            path = self.root / relative
            path.parent.mkdir(parents=True, exist_ok=True)
            normalised = textwrap.dedent(content).lstrip("\n")
            path.write_text(normalised, encoding="utf-8")

    def configure(self, **settings: Any) -> LazydefsConfig:
        """Write .lazydefs.yml from keyword settings and return the loaded config."""
        (self.root / CONFIG_FILENAME).write_text(yaml.safe_dump(settings), encoding="utf-8")
        return self.config()

    def config(self) -> LazydefsConfig:
        return load_config(self.root)

    def age(self, seconds: float = 1000.0) -> None:
        """Push every file and directory mtime into the past."""
        stamp = time.time() - seconds
        for dirpath, dirnames, filenames in os.walk(self.root):
            for name in dirnames + filenames:
                os.utime(Path(dirpath) / name, (stamp, stamp))
        os.utime(self.root, (stamp, stamp))

    def path(self) -> Path:
        """Return the project root path."""
        return self.root


__all__ = ["TreeBuilder"]
