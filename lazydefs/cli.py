"""CLI entrypoints for lazydefs commands."""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

from .artifacts import RegenerationError
from .config import ConfigError, load_config
from .logging import configure_logging, get_logger
from .orchestrator import AutoloadOrchestrator, InvalidTargetError, RegenerationOutcome


def _add_verbose_option(
    parser: argparse.ArgumentParser, *, suppress_default: bool = False
) -> None:
    kwargs: dict[str, object] = {
        "action": "store_true",
        "help": "Increase log verbosity for troubleshooting.",
    }
    if suppress_default:
        kwargs["default"] = argparse.SUPPRESS
    else:
        kwargs["default"] = False
    parser.add_argument(
        "-v",
        "--verbose",
        **kwargs,
    )


def _add_log_file_option(
    parser: argparse.ArgumentParser, *, suppress_default: bool = False
) -> None:
    parser.add_argument(
        "--log-file",
        type=Path,
        default=argparse.SUPPRESS if suppress_default else None,
        help="Also write log records to this file.",
    )


def _add_common_options(parser: argparse.ArgumentParser) -> None:
    _add_verbose_option(parser, suppress_default=True)
    _add_log_file_option(parser, suppress_default=True)
    parser.add_argument(
        "-f",
        "--force",
        action="store_true",
        help="Regenerate even when the artifacts look up-to-date.",
    )
    parser.add_argument(
        "--root",
        default=".",
        help="Path to the project root holding .lazydefs.yml (defaults to current directory).",
    )


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="lazydefs",
        description="Regenerate consolidated autoloads modules for a component tree.",
    )
    _add_verbose_option(parser)
    _add_log_file_option(parser)
    subparsers = parser.add_subparsers(dest="command", required=True)

    sync_parser = subparsers.add_parser(
        "sync",
        help="Regenerate stale autoloads artifacts (core first, then packages).",
    )
    _add_common_options(sync_parser)
    only = sync_parser.add_mutually_exclusive_group()
    only.add_argument("--core", action="store_true", help="Only regenerate the core artifact.")
    only.add_argument(
        "--packages", action="store_true", help="Only regenerate the package artifact."
    )

    reload_parser = subparsers.add_parser(
        "reload",
        help="Regenerate one artifact by path, or both when no path is given.",
    )
    _add_common_options(reload_parser)
    reload_parser.add_argument(
        "file",
        nargs="?",
        default=None,
        help="Path of the artifact to regenerate.",
    )

    return parser


def main(argv: list[str] | None = None) -> None:
    """CLI entrypoint for lazydefs commands."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    configure_logging(verbose=bool(args.verbose), log_file=args.log_file)
    logger = get_logger("cli")

    try:
        config = load_config(Path(args.root))
    except ConfigError as exc:
        parser.exit(1, f"{exc}\n")

    orchestrator = AutoloadOrchestrator(config)
    force = bool(getattr(args, "force", False))

    try:
        if args.command == "sync":
            if args.core:
                outcomes = [orchestrator.regenerate_core(force)]
            elif args.packages:
                outcomes = [orchestrator.regenerate_packages(force)]
            else:
                outcomes = orchestrator.regenerate_all(force)
        elif args.command == "reload":
            outcomes = orchestrator.reload(args.file, force)
        else:  # pragma: no cover - argparse enforces choices
            parser.exit(1, "Unknown command\n")
    except InvalidTargetError as exc:
        parser.exit(1, f"{exc}\n")
    except RegenerationError as exc:
        parser.exit(
            1,
            f"lazydefs {args.command} failed: {exc}\nRun with --verbose for more details.\n",
        )

    for outcome in outcomes:
        print(_describe(outcome))
    orchestrator.notices.flush(logger)


def _describe(outcome: RegenerationOutcome) -> str:
    path = _relativize(outcome.artifact.path)
    if not outcome.regenerated:
        return f"{outcome.artifact.name} up to date at {path}"
    return f"{outcome.artifact.name} regenerated at {path}"


def _relativize(path: Path) -> str:
    try:
        return str(path.relative_to(Path.cwd()))
    except ValueError:
        return str(path)


if __name__ == "__main__":
    main(sys.argv[1:])
