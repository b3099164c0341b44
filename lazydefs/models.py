"""Core data models shared across lazydefs components."""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional, Tuple


@dataclass(frozen=True)
class SourceFile:
    """A scanned input file and its modification time."""

    path: Path
    mtime: float


@dataclass(frozen=True)
class Component:
    """A logical, independently enable-able unit of source."""

    category: str
    name: str
    path: Path
    enabled: bool = False

    @property
    def id(self) -> str:
        return f"{self.category}/{self.name}"


@dataclass(frozen=True)
class Cookie:
    """A marker comment located in a source file."""

    kind: str
    line: int
    alternate: Optional[str] = None


class FormKind(str, Enum):
    """Declaration kinds recognised after a cookie."""

    FUNCTION = "function"
    MACRO = "macro"
    ALIAS = "alias"
    MEMBER = "member"


class Binding(str, Enum):
    """How a scanned form is emitted, decided once at generation time."""

    REAL = "real"
    STUB = "stub"
    ALIAS_REAL = "alias-real"
    ALIAS_STUB = "alias-stub"
    VERBATIM = "verbatim"


@dataclass
class ScannedForm:
    """Parsed declaration extracted from a source file."""

    kind: FormKind
    name: Optional[str]
    params: str
    param_names: Tuple[str, ...]
    body: str
    source: Path
    line: int
    component: Optional[str] = None
    alternate: Optional[str] = None
    doc: Optional[str] = None
    is_async: bool = False


@dataclass
class ScanResult:
    """Aggregated text plus counters for one scanner pass."""

    text: str
    ignored: int = 0
    scanned: int = 0
    contributed: int = 0
    skipped: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class Artifact:
    """A generated output module and its derived siblings."""

    name: str
    path: Path

    @property
    def compiled_path(self) -> Path:
        return self.path.with_suffix(".pyc")

    @property
    def backup_path(self) -> Path:
        return self.path.with_name(self.path.name + ".bk")


@dataclass(frozen=True)
class InstalledPackage:
    """A third-party package that ships its own autoloads module."""

    name: str
    path: Path

    @property
    def autoloads_file(self) -> Path:
        return self.path / f"{self.name}_autoloads.py"


@dataclass(frozen=True)
class StateSnapshot:
    """Expensive startup state cached wholesale in the package artifact."""

    load_path: Tuple[str, ...]
    extension_handlers: Dict[str, str]
    disabled_packages: Tuple[str, ...]

    @classmethod
    def from_namespace(cls, namespace: object) -> "StateSnapshot":
        """Read the snapshot back from a loaded artifact module."""
        return cls(
            load_path=tuple(getattr(namespace, "LOAD_PATH", ())),
            extension_handlers=dict(getattr(namespace, "EXTENSION_HANDLERS", {})),
            disabled_packages=tuple(getattr(namespace, "DISABLED_PACKAGES", ())),
        )
