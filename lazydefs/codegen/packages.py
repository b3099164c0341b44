"""Per-package contributions to the aggregated package artifact."""

from __future__ import annotations

import ast
from pathlib import Path
from typing import List, Optional, Tuple

from ..logging import get_logger
from ..models import InstalledPackage
from .cleanup import blank_lines, comment_only_lines, drop_lines
from .render import quote

LOAD_CONTEXT_NAME = "__file__"

logger = get_logger("packages")


def package_contribution(package: InstalledPackage) -> Optional[str]:
    """Return the cleaned autoloads text of ``package``, or ``None`` when it has none."""
    source = package.autoloads_file
    if not source.is_file():
        return None
    text = source.read_text(encoding="utf-8")
    body = clean_contribution(text, source)
    if not body.strip():
        return None
    return f"# --- {package.name} ---\n{body.rstrip()}\n# --- end {package.name} ---\n\n"


def clean_contribution(text: str, source: Path) -> str:
    """Pin ``__file__`` to ``source`` and strip comments, blank lines and ``__all__``."""
    text = _drop_exports(text)
    text = pin_load_context(text, quote(str(source)))
    comments = comment_only_lines(text)
    if comments is None:
        logger.warning("Copying %s unchanged: it cannot be tokenized", source)
        return text
    return drop_lines(text, set(comments) | blank_lines(text))


def pin_load_context(text: str, literal: str) -> str:
    """Replace every read of the ``__file__`` global with ``literal``.

    Attribute access such as ``os.__file__``, keyword arguments and
    assignment targets are left alone. Text that does not parse is returned
    unchanged.
    """
    try:
        tree = ast.parse(text)
    except SyntaxError:
        return text
    lines = text.splitlines(keepends=True)
    positions: List[Tuple[int, int]] = []
    for node in ast.walk(tree):
        if (
            isinstance(node, ast.Name)
            and node.id == LOAD_CONTEXT_NAME
            and isinstance(node.ctx, ast.Load)
        ):
            # ast columns are UTF-8 byte offsets.
            prefix = lines[node.lineno - 1].encode("utf-8")[: node.col_offset]
            positions.append((node.lineno, len(prefix.decode("utf-8"))))
    for row, col in sorted(positions, reverse=True):
        line = lines[row - 1]
        if line[col : col + len(LOAD_CONTEXT_NAME)] != LOAD_CONTEXT_NAME:
            continue
        lines[row - 1] = line[:col] + literal + line[col + len(LOAD_CONTEXT_NAME) :]
    return "".join(lines)


def _drop_exports(text: str) -> str:
    try:
        tree = ast.parse(text)
    except SyntaxError:
        return text
    doomed: List[int] = []
    for stmt in tree.body:
        targets: List[ast.expr] = []
        if isinstance(stmt, ast.Assign):
            targets = list(stmt.targets)
        elif isinstance(stmt, (ast.AugAssign, ast.AnnAssign)):
            targets = [stmt.target]
        if any(isinstance(target, ast.Name) and target.id == "__all__" for target in targets):
            doomed.extend(range(stmt.lineno, (stmt.end_lineno or stmt.lineno) + 1))
    return drop_lines(text, doomed)


__all__ = ["LOAD_CONTEXT_NAME", "clean_contribution", "package_contribution", "pin_load_context"]
