"""Removal of build-time-only text from generated artifacts.

Both passes are syntax-aware: comments are found with :mod:`tokenize` and
statements with :mod:`ast`, so matching text inside string literals is never
touched.
"""

from __future__ import annotations

import ast
import io
import re
import tokenize
from typing import Iterable, List, Optional, Set, Tuple

from ..logging import get_logger

ANNOTATION_PATTERN = re.compile(r"^#\s*(###[A-Za-z]+\b.*|lazydefs:\s*no-compile\s*)$")

_LOAD_PATH_MUTATORS = {
    "sys.path.append",
    "sys.path.insert",
    "sys.path.extend",
    "LOAD_PATH.append",
    "LOAD_PATH.insert",
    "LOAD_PATH.extend",
    "EXTENSION_HANDLERS.update",
    "EXTENSION_HANDLERS.setdefault",
}
_MUTATING_FUNCTIONS = {"add_to_load_path", "register_extension"}
_CACHED_GLOBALS = {"LOAD_PATH", "EXTENSION_HANDLERS", "sys.path"}

logger = get_logger("cleanup")


def comment_only_lines(text: str) -> Optional[dict[int, str]]:
    """Map line numbers (1-based) holding nothing but a comment to that comment.

    Returns ``None`` when ``text`` cannot be tokenized.
    """
    comments: dict[int, str] = {}
    code_lines: Set[int] = set()
    try:
        for token in tokenize.generate_tokens(io.StringIO(text).readline):
            if token.type == tokenize.COMMENT:
                comments[token.start[0]] = token.string
            elif token.type not in (
                tokenize.NL,
                tokenize.NEWLINE,
                tokenize.INDENT,
                tokenize.DEDENT,
                tokenize.ENDMARKER,
            ):
                code_lines.update(range(token.start[0], token.end[0] + 1))
    except (tokenize.TokenError, SyntaxError) as exc:
        logger.debug("Cannot tokenize generated text: %s", exc)
        return None
    return {line: comment for line, comment in comments.items() if line not in code_lines}


def blank_lines(text: str) -> Set[int]:
    """Return blank line numbers that do not sit inside a string literal."""
    string_lines: Set[int] = set()
    try:
        for token in tokenize.generate_tokens(io.StringIO(text).readline):
            if token.type == tokenize.STRING and token.end[0] > token.start[0]:
                string_lines.update(range(token.start[0] + 1, token.end[0] + 1))
    except (tokenize.TokenError, SyntaxError):
        return set()
    return {
        number
        for number, line in enumerate(text.splitlines(), start=1)
        if not line.strip() and number not in string_lines
    }


def drop_lines(text: str, numbers: Iterable[int]) -> str:
    doomed = set(numbers)
    if not doomed:
        return text
    lines = text.splitlines(keepends=True)
    return "".join(line for number, line in enumerate(lines, start=1) if number not in doomed)


def strip_annotations(text: str) -> str:
    """Remove full-line build directives such as ``# ###autoload`` cookies."""
    comments = comment_only_lines(text)
    if comments is None:
        return text
    doomed = [line for line, comment in comments.items() if ANNOTATION_PATTERN.match(comment.strip())]
    return drop_lines(text, doomed)


def strip_cached_mutations(text: str) -> str:
    """Remove statements that modify the globals cached by the state snapshot.

    A removed statement that was the only one in its block is replaced by
    ``pass``. Text that does not parse is returned unchanged.
    """
    try:
        tree = ast.parse(text)
    except SyntaxError as exc:
        logger.debug("Leaving unparsable package text untouched: %s", exc)
        return text

    lines = text.splitlines(keepends=True)
    edits: List[Tuple[int, int, Optional[str]]] = []
    for body in _iter_bodies(tree):
        doomed = [stmt for stmt in body if _is_cached_mutation(stmt) and _owns_lines(stmt, lines)]
        for index, stmt in enumerate(doomed):
            replacement = None
            if index == 0 and len(doomed) == len(body):
                replacement = " " * stmt.col_offset + "pass\n"
            edits.append((stmt.lineno, stmt.end_lineno or stmt.lineno, replacement))

    for start, end, replacement in sorted(edits, reverse=True):
        lines[start - 1 : end] = [replacement] if replacement else []
    return "".join(lines)


def _iter_bodies(node: ast.AST) -> Iterable[List[ast.stmt]]:
    for child in ast.walk(node):
        for field in ("body", "orelse", "finalbody"):
            value = getattr(child, field, None)
            if isinstance(value, list) and value and isinstance(value[0], ast.stmt):
                yield value


def _is_cached_mutation(stmt: ast.stmt) -> bool:
    if isinstance(stmt, ast.Expr) and isinstance(stmt.value, ast.Call):
        name = _dotted_name(stmt.value.func)
        if name is None:
            return False
        return name in _LOAD_PATH_MUTATORS or name.rsplit(".", 1)[-1] in _MUTATING_FUNCTIONS
    if isinstance(stmt, ast.AugAssign):
        return _dotted_name(stmt.target) in _CACHED_GLOBALS
    if isinstance(stmt, ast.Assign):
        return any(
            isinstance(target, ast.Subscript) and _dotted_name(target.value) in _CACHED_GLOBALS
            for target in stmt.targets
        )
    return False


def _dotted_name(node: ast.AST) -> Optional[str]:
    parts: List[str] = []
    while isinstance(node, ast.Attribute):
        parts.append(node.attr)
        node = node.value
    if not isinstance(node, ast.Name):
        return None
    parts.append(node.id)
    return ".".join(reversed(parts))


def _owns_lines(stmt: ast.stmt, lines: List[str]) -> bool:
    """Return True when ``stmt`` does not share its lines with other code."""
    first = lines[stmt.lineno - 1]
    last = lines[(stmt.end_lineno or stmt.lineno) - 1]
    if first[: stmt.col_offset].strip():
        return False
    trailing = last[stmt.end_col_offset or len(last) :].strip()
    return not trailing or trailing.startswith("#")


__all__ = [
    "ANNOTATION_PATTERN",
    "blank_lines",
    "comment_only_lines",
    "drop_lines",
    "strip_annotations",
    "strip_cached_mutations",
]
