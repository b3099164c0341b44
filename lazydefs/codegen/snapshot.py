"""Serialisation of cached startup state into the package artifact."""

from __future__ import annotations

from typing import Dict, List, Protocol

from ..models import StateSnapshot

SNAPSHOT_NAMES = ("LOAD_PATH", "EXTENSION_HANDLERS", "DISABLED_PACKAGES")


class SnapshotSource(Protocol):
    def initialize(self) -> None:
        ...

    def load_path(self) -> List[str]:
        ...

    def extension_handlers(self) -> Dict[str, str]:
        ...

    def disabled_packages(self) -> List[str]:
        ...


def take_snapshot(source: SnapshotSource) -> StateSnapshot:
    """Initialise ``source`` and capture its state with a stable ordering."""
    source.initialize()
    load_path: List[str] = []
    for entry in source.load_path():
        if entry not in load_path:
            load_path.append(entry)
    handlers = source.extension_handlers()
    return StateSnapshot(
        load_path=tuple(load_path),
        extension_handlers={key: handlers[key] for key in sorted(handlers)},
        disabled_packages=tuple(sorted(set(source.disabled_packages()))),
    )


def render_snapshot(snapshot: StateSnapshot) -> str:
    """Render ``snapshot`` as one assignment statement."""
    load_path = "".join(f"\n  {entry!r}," for entry in snapshot.load_path)
    handlers = "".join(
        f"\n  {key!r}: {value!r}," for key, value in snapshot.extension_handlers.items()
    )
    disabled = "".join(f"\n  {name!r}," for name in snapshot.disabled_packages)
    return (
        f"{', '.join(SNAPSHOT_NAMES)} = (\n"
        f" [{load_path}\n ],\n"
        f" {{{handlers}\n }},\n"
        f" [{disabled}\n ],\n"
        ")\n\n"
    )


def emit_snapshot(source: SnapshotSource) -> str:
    return render_snapshot(take_snapshot(source))


__all__ = ["SNAPSHOT_NAMES", "emit_snapshot", "render_snapshot", "take_snapshot"]
