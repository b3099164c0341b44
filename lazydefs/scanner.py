"""Cookie scanning and deferred-load declaration synthesis."""

from __future__ import annotations

import ast
import operator
import os
import re
import sys
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, Iterator, List, Mapping, Optional, Sequence, Tuple

from .codegen.render import TemplateRenderer, default_renderer
from .logging import get_logger
from .models import Cookie, FormKind, ScannedForm, ScanResult

AUTOLOAD = "autoload"
AUTODEF = "autodef"

_COOKIE_PATTERN = re.compile(r"^# ###(autoload|autodef)\b[ \t]*(.*?)\s*$")
_IF_COOKIE_PATTERN = re.compile(r"^# ###if[ \t]+(.+?)\s*$")
_IF_COOKIE_WINDOW = 16
_CONTINUATION_PREFIXES = ("#", ")", "]", "}")
_CONTINUATION_KEYWORDS = re.compile(r"^(else|elif|except|finally)\b")

logger = get_logger("scanner")


class ScanFormMalformed(ValueError):
    """Raised when a declaration after a cookie cannot be parsed."""

    def __init__(self, path: Path, line: int, message: str) -> None:
        super().__init__(f"{path}:{line}: {message}")
        self.path = path
        self.line = line


def has_cookie(text: str, kind: str = AUTOLOAD) -> bool:
    """Return True when ``text`` carries at least one cookie of ``kind``."""
    return any(cookie.kind == kind for cookie in iter_cookies(text.splitlines()))


def iter_cookies(lines: Sequence[str]) -> Iterator[Cookie]:
    for index, line in enumerate(lines):
        match = _COOKIE_PATTERN.match(line)
        if match:
            yield Cookie(kind=match.group(1), line=index + 1, alternate=match.group(2) or None)


def file_condition(text: str) -> Optional[str]:
    """Return the expression of a file-level ``# ###if`` cookie, if any."""
    for line in text.splitlines()[:_IF_COOKIE_WINDOW]:
        match = _IF_COOKIE_PATTERN.match(line)
        if match:
            return match.group(1)
    return None


class UnsupportedCondition(ValueError):
    """Raised when a ``# ###if`` expression uses a construct outside the allowed subset."""


_COMPARATORS: Dict[type, Callable[[Any, Any], bool]] = {
    ast.Eq: operator.eq,
    ast.NotEq: operator.ne,
    ast.Lt: operator.lt,
    ast.LtE: operator.le,
    ast.Gt: operator.gt,
    ast.GtE: operator.ge,
    ast.Is: operator.is_,
    ast.IsNot: operator.is_not,
    ast.In: lambda left, right: left in right,
    ast.NotIn: lambda left, right: left not in right,
}


def evaluate_condition(expression: str, env: Mapping[str, object]) -> object:
    """Evaluate a file condition without ``eval``.

    Only names from ``env``, calls to callables from ``env``, literals,
    tuples/lists of those, ``not``, ``and``/``or`` and comparisons are
    accepted; anything else raises :class:`UnsupportedCondition`.
    """
    tree = ast.parse(expression.strip(), mode="eval")
    return _evaluate(tree.body, env)


def _evaluate(node: ast.AST, env: Mapping[str, object]) -> Any:
    if isinstance(node, ast.Constant):
        return node.value
    if isinstance(node, ast.Name):
        if node.id not in env:
            raise UnsupportedCondition(f"unknown name {node.id!r}")
        return env[node.id]
    if isinstance(node, (ast.Tuple, ast.List)):
        return tuple(_evaluate(item, env) for item in node.elts)
    if isinstance(node, ast.UnaryOp) and isinstance(node.op, ast.Not):
        return not _evaluate(node.operand, env)
    if isinstance(node, ast.BoolOp):
        if isinstance(node.op, ast.And):
            return all(_evaluate(value, env) for value in node.values)
        return any(_evaluate(value, env) for value in node.values)
    if isinstance(node, ast.Compare):
        left = _evaluate(node.left, env)
        for op, comparator in zip(node.ops, node.comparators):
            right = _evaluate(comparator, env)
            if not _COMPARATORS[type(op)](left, right):
                return False
            left = right
        return True
    if isinstance(node, ast.Call):
        if not isinstance(node.func, ast.Name) or node.func.id not in env:
            raise UnsupportedCondition("only functions provided to the scanner may be called")
        function = env[node.func.id]
        if not callable(function):
            raise UnsupportedCondition(f"{node.func.id!r} is not callable")
        if any(isinstance(arg, ast.Starred) for arg in node.args) or any(
            keyword.arg is None for keyword in node.keywords
        ):
            raise UnsupportedCondition("argument unpacking is not supported")
        args = [_evaluate(arg, env) for arg in node.args]
        kwargs = {keyword.arg: _evaluate(keyword.value, env) for keyword in node.keywords}
        return function(*args, **kwargs)
    raise UnsupportedCondition(f"unsupported expression {type(node).__name__}")


def read_source(path: Path) -> Optional[str]:
    """Return the UTF-8 text of ``path``, or ``None`` (with a warning) when unreadable."""
    try:
        return path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        logger.warning("Ignoring unreadable file %s: %s", path, exc)
        return None


def extract_form(lines: Sequence[str], start: int) -> Tuple[str, int]:
    """Return the top-level statement starting at ``start`` (0-based) and its end.

    A form ends before the first column-0 code line at which the accumulated
    text parses on its own. Trailing blank and comment lines are dropped.
    """
    end = start + 1
    while end < len(lines):
        line = lines[end]
        if _starts_new_statement(line) and _parses("".join(lines[start:end])):
            break
        end += 1
    while end > start + 1 and (not lines[end - 1].strip() or lines[end - 1].startswith("#")):
        end -= 1
    return "".join(lines[start:end]), end


def parse_form(
    text: str,
    *,
    source: Path,
    line: int,
    component: Optional[str] = None,
    alternate: Optional[str] = None,
) -> ScannedForm:
    """Parse the text of one declaration into a :class:`ScannedForm`."""
    try:
        module = ast.parse(text)
    except SyntaxError as exc:
        raise ScanFormMalformed(source, line, f"invalid syntax ({exc.msg})") from exc
    if not module.body:
        raise ScanFormMalformed(source, line, "cookie is not followed by a form")

    node = module.body[0]
    base = dict(body=text, source=source, line=line, component=component, alternate=alternate)
    if len(module.body) == 1 and isinstance(node, (ast.FunctionDef, ast.AsyncFunctionDef)):
        params, names = render_params(node.args, source=source, line=line)
        return ScannedForm(
            kind=FormKind.FUNCTION,
            name=node.name,
            params=params,
            param_names=names,
            doc=ast.get_docstring(node),
            is_async=isinstance(node, ast.AsyncFunctionDef),
            **base,
        )
    if len(module.body) == 1 and isinstance(node, ast.ClassDef):
        params, names = _class_params(node, source=source, line=line)
        return ScannedForm(
            kind=FormKind.MACRO,
            name=node.name,
            params=params,
            param_names=names,
            doc=ast.get_docstring(node),
            **base,
        )
    if (
        len(module.body) == 1
        and isinstance(node, ast.Assign)
        and len(node.targets) == 1
        and isinstance(node.targets[0], ast.Name)
        and isinstance(node.value, (ast.Name, ast.Attribute))
    ):
        return ScannedForm(
            kind=FormKind.ALIAS,
            name=node.targets[0].id,
            params="",
            param_names=(),
            **{**base, "body": ast.unparse(node.value)},
        )
    name = None
    if isinstance(node, ast.Assign) and isinstance(node.targets[0], ast.Name):
        name = node.targets[0].id
    return ScannedForm(kind=FormKind.MEMBER, name=name, params="", param_names=(), **base)


def render_params(
    args: ast.arguments, *, source: Path, line: int, drop_first: bool = False
) -> Tuple[str, Tuple[str, ...]]:
    """Render a parameter list without annotations, defaults replaced by ``...``.

    Positional-only and keyword-only markers are kept so the arity of the
    rendered signature matches the original exactly.
    """
    posonly = list(args.posonlyargs)
    regular = list(args.args)
    defaults_start = len(posonly) + len(regular) - len(args.defaults)
    if drop_first:
        if posonly:
            posonly.pop(0)
        elif regular:
            regular.pop(0)
        else:
            raise ScanFormMalformed(source, line, "__init__ takes no self parameter")
        defaults_start -= 1

    parts: List[str] = []
    names: List[str] = []
    for index, arg in enumerate(posonly + regular):
        parts.append(f"{arg.arg}=..." if index >= defaults_start else arg.arg)
        names.append(arg.arg)
        if posonly and index == len(posonly) - 1:
            parts.append("/")
    if args.vararg is not None:
        parts.append(f"*{args.vararg.arg}")
        names.append(args.vararg.arg)
    elif args.kwonlyargs:
        parts.append("*")
    for arg, default in zip(args.kwonlyargs, args.kw_defaults):
        parts.append(f"{arg.arg}=..." if default is not None else arg.arg)
        names.append(arg.arg)
    if args.kwarg is not None:
        parts.append(f"**{args.kwarg.arg}")
        names.append(args.kwarg.arg)
    return ", ".join(parts), tuple(names)


def collect_forms(
    path: Path,
    kind: str = AUTODEF,
    *,
    component: Optional[str] = None,
    text: Optional[str] = None,
) -> List[ScannedForm]:
    """Return every form following a cookie of ``kind`` in ``path``.

    Malformed forms are logged and skipped.
    """
    if text is None:
        text = read_source(path)
        if text is None:
            return []
    lines = text.splitlines(keepends=True)
    forms: List[ScannedForm] = []
    for cookie in iter_cookies(lines):
        if cookie.kind != kind:
            continue
        try:
            form_text = _form_after(lines, cookie, path)
            forms.append(
                parse_form(
                    form_text,
                    source=path,
                    line=cookie.line,
                    component=component,
                    alternate=cookie.alternate,
                )
            )
        except ScanFormMalformed as exc:
            logger.warning("Skipping malformed declaration: %s", exc)
    return forms


class DeclarationScanner:
    """Walks candidate files and emits deferred-load declarations for their cookies."""

    def __init__(
        self,
        renderer: TemplateRenderer | None = None,
        *,
        condition_env: Mapping[str, object] | None = None,
    ) -> None:
        self.renderer = renderer or default_renderer()
        self.condition_env: Dict[str, object] = {
            "platform": sys.platform,
            "env": os.environ.get,
        }
        if condition_env:
            self.condition_env.update(condition_env)

    def scan(self, files: Iterable[Path], *, artifact_dir: Path) -> ScanResult:
        """Return concatenated declarations for ``files`` in listing order."""
        result = ScanResult(text="")
        chunks: List[str] = []
        for path in files:
            text = read_source(path)
            if text is None:
                result.ignored += 1
                continue
            if not has_cookie(text):
                logger.debug("Ignoring %s", path)
                result.ignored += 1
                continue
            condition = file_condition(text)
            if condition is not None and not self._condition_holds(condition, path):
                logger.debug("Ignoring %s (condition %r is false)", path, condition)
                result.ignored += 1
                continue
            result.scanned += 1
            chunk = self.scan_file(path, artifact_dir=artifact_dir, text=text, skipped=result.skipped)
            if chunk:
                logger.debug("Scanned %s", path)
                result.contributed += 1
                chunks.append(chunk)
            else:
                logger.debug("Nothing in %s", path)
        result.text = "".join(chunks)
        return result

    def scan_file(
        self,
        path: Path,
        *,
        artifact_dir: Path,
        text: Optional[str] = None,
        skipped: Optional[List[str]] = None,
    ) -> str:
        if text is None:
            text = read_source(path)
            if text is None:
                return ""
        lines = text.splitlines(keepends=True)
        load_path = relative_load_path(path, artifact_dir)
        parts: List[str] = []
        for cookie in iter_cookies(lines):
            if cookie.kind != AUTOLOAD:
                continue
            if cookie.alternate:
                parts.append(cookie.alternate.rstrip() + "\n\n")
                continue
            try:
                form = parse_form(_form_after(lines, cookie, path), source=path, line=cookie.line)
            except ScanFormMalformed as exc:
                logger.warning("Skipping malformed declaration: %s", exc)
                if skipped is not None:
                    skipped.append(str(exc))
                continue
            if form.kind in (FormKind.FUNCTION, FormKind.MACRO):
                parts.append(self.renderer.binding(form, load_path))
            else:
                parts.append(form.body.rstrip() + "\n\n")
        return "".join(parts)

    def _condition_holds(self, expression: str, path: Path) -> bool:
        try:
            return bool(evaluate_condition(expression, self.condition_env))
        except (UnsupportedCondition, SyntaxError, TypeError) as exc:
            logger.warning("Ignoring %s: cannot evaluate condition %r (%s)", path, expression, exc)
            return False


def relative_load_path(path: Path, artifact_dir: Path) -> str:
    """Return ``path`` relative to the artifact directory, without its suffix."""
    stem = path.with_suffix("")
    return Path(os.path.relpath(stem, artifact_dir)).as_posix()


def _form_after(lines: Sequence[str], cookie: Cookie, path: Path) -> str:
    index = cookie.line
    while index < len(lines):
        line = lines[index]
        if _COOKIE_PATTERN.match(line):
            break
        if line.strip() and not line.startswith("#"):
            if line[0].isspace():
                raise ScanFormMalformed(path, cookie.line, "cookie must precede a top-level form")
            text, _ = extract_form(lines, index)
            return text
        index += 1
    raise ScanFormMalformed(path, cookie.line, "cookie is not followed by a form")


def _class_params(node: ast.ClassDef, *, source: Path, line: int) -> Tuple[str, Tuple[str, ...]]:
    for item in node.body:
        if isinstance(item, ast.FunctionDef) and item.name == "__init__":
            return render_params(item.args, source=source, line=line, drop_first=True)
    return "*args, **kwargs", ("args", "kwargs")


def _starts_new_statement(line: str) -> bool:
    if not line.strip() or line[0].isspace():
        return False
    if line.startswith(_CONTINUATION_PREFIXES):
        return False
    return not _CONTINUATION_KEYWORDS.match(line)


def _parses(text: str) -> bool:
    try:
        ast.parse(text)
    except SyntaxError:
        return False
    return True


__all__ = [
    "AUTODEF",
    "AUTOLOAD",
    "DeclarationScanner",
    "ScanFormMalformed",
    "UnsupportedCondition",
    "collect_forms",
    "evaluate_condition",
    "extract_form",
    "file_condition",
    "has_cookie",
    "iter_cookies",
    "parse_form",
    "read_source",
    "relative_load_path",
    "render_params",
]
