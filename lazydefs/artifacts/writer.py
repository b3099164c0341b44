"""Crash-safe replacement of generated artifacts.

The new text is written to a temporary file beside the artifact, compiled
from there and only then renamed over the canonical path. A compilation or
load failure leaves a ``.bk`` copy of the attempted text and no artifact at
the canonical path.
"""

from __future__ import annotations

import logging
import os
import shutil
import tempfile
from contextlib import contextmanager
from pathlib import Path
from types import ModuleType
from typing import IO, Iterator, Optional

from ..logging import get_logger
from ..models import Artifact
from ..session import RESTART_LINES, RESTART_NOTICE, SessionNotices
from .compiler import Compiler, PyCompiler


class RegenerationError(RuntimeError):
    """Raised when a freshly generated artifact fails to compile or load."""

    def __init__(self, path: Path, backup_path: Path, cause: BaseException) -> None:
        super().__init__(f"Failed to compile {path} ({cause}); attempted text saved to {backup_path}")
        self.path = path
        self.backup_path = backup_path
        self.cause = cause


@contextmanager
def scoped_write(path: Path) -> Iterator[IO[str]]:
    """Yield a handle to a temporary file that replaces ``path`` on success.

    On an exception the temporary file is removed and ``path`` is untouched.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    handle = tempfile.NamedTemporaryFile(
        "w",
        encoding="utf-8",
        dir=path.parent,
        prefix=f".{path.stem}.",
        suffix=".tmp",
        delete=False,
    )
    staged = Path(handle.name)
    try:
        with handle:
            yield handle
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(staged, path)
    except BaseException:
        staged.unlink(missing_ok=True)
        raise


class ArtifactWriter:
    """Writes, validates and loads generated artifacts."""

    def __init__(
        self,
        compiler: Compiler | None = None,
        notices: SessionNotices | None = None,
        *,
        interactive: bool = False,
    ) -> None:
        self.compiler = compiler or PyCompiler()
        self.notices = notices or SessionNotices()
        self.interactive = interactive
        self.logger = get_logger("writer")

    def delete(self, artifact: Artifact) -> bool:
        """Delete the artifact and its compiled sibling; return True if a file was removed."""
        if not artifact.path.exists():
            return False
        artifact.path.unlink()
        try:
            artifact.compiled_path.unlink()
        except FileNotFoundError:
            pass
        self.logger.info("Deleted old %s", artifact.path.name)
        return True

    def prepare(self, artifact: Artifact) -> None:
        """Delete a previous artifact or create the directory that will hold it."""
        if not self.delete(artifact):
            artifact.path.parent.mkdir(parents=True, exist_ok=True)

    def commit(self, artifact: Artifact, text: str) -> Optional[ModuleType]:
        """Replace ``artifact`` with ``text``, compile and load it.

        Raises :class:`RegenerationError` after rolling back when the text
        does not compile or load.
        """
        self.prepare(artifact)
        with scoped_write(artifact.path) as handle:
            handle.write(text)
            handle.flush()
            staged = Path(handle.name)
            try:
                self.compiler.compile(staged, cfile=artifact.compiled_path, dfile=artifact.path)
            except Exception as exc:
                raise self._rollback(artifact, staged, exc) from exc

        try:
            module = self.compiler.load(artifact.compiled_path, must_exist=True)
        except Exception as exc:
            raise self._rollback(artifact, artifact.path, exc) from exc

        self.logger.info("Compiled %s", artifact.path.name)
        if not self.interactive:
            self.notices.add_once(RESTART_NOTICE, RESTART_LINES)
        return module

    def load_existing(self, artifact: Artifact) -> Optional[ModuleType]:
        """Load an up-to-date artifact, preferring its compiled sibling."""
        if artifact.compiled_path.is_file():
            return self.compiler.load(artifact.compiled_path)
        return self.compiler.load(artifact.path)

    def _rollback(self, artifact: Artifact, written: Path, cause: Exception) -> RegenerationError:
        backup = artifact.backup_path
        shutil.copyfile(written, backup)
        self.logger.warning("Copied backup to %s", backup)
        for path in (artifact.path, artifact.compiled_path):
            try:
                path.unlink()
            except FileNotFoundError:
                pass
        self._log_exception(f"Failed to compile {artifact.path.name}", cause)
        return RegenerationError(artifact.path, backup, cause)

    def _log_exception(self, message: str, exc: Exception) -> None:
        if self.logger.isEnabledFor(logging.DEBUG):
            self.logger.error("%s: %s", message, exc, exc_info=exc)
        else:
            self.logger.error("%s: %s", message, exc)


__all__ = ["ArtifactWriter", "RegenerationError", "scoped_write"]
