"""Pipeline orchestration for the core and package autoloads artifacts."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from types import ModuleType
from typing import List, Optional, Tuple

from . import runtime
from .artifacts import ArtifactWriter, Compiler, RegenerationError
from .codegen.cleanup import strip_annotations, strip_cached_mutations
from .codegen.packages import package_contribution
from .codegen.render import TemplateRenderer, default_renderer
from .codegen.rewriter import ReferenceRewriter, Resolver
from .codegen.snapshot import emit_snapshot
from .codegen.stubs import StubSynthesizer
from .config import LazydefsConfig
from .freshness import check_freshness
from .logging import get_logger
from .models import Artifact, ScanResult, StateSnapshot
from .registry import ComponentRegistry, LibraryResolver, PackageRegistry
from .scanner import DeclarationScanner
from .session import SessionNotices

CORE_AUTOLOAD_DIR = "autoload"


class InvalidTargetError(ValueError):
    """Raised when asked to reload a file that is neither autoloads artifact."""


@dataclass
class RegenerationOutcome:
    """Result of bringing one artifact up to date."""

    artifact: Artifact
    regenerated: bool
    module: Optional[ModuleType] = None
    scan: Optional[ScanResult] = None


class AutoloadOrchestrator:
    """Coordinates regeneration of the core and package autoloads artifacts."""

    def __init__(
        self,
        config: LazydefsConfig,
        *,
        registry: ComponentRegistry | None = None,
        packages: PackageRegistry | None = None,
        resolver: Resolver | None = None,
        compiler: Compiler | None = None,
        notices: SessionNotices | None = None,
        renderer: TemplateRenderer | None = None,
        interactive: bool = False,
    ) -> None:
        self.config = config
        self.registry = registry or ComponentRegistry(config)
        self.packages = packages or PackageRegistry(config, self.registry)
        self.core_artifact = Artifact(name="core autoloads", path=config.core_artifact)
        self.package_artifact = Artifact(name="package autoloads", path=config.package_artifact)
        self.resolver = resolver or LibraryResolver(
            [self.core_artifact.path.parent, *self.registry.search_roots()]
        )
        self.notices = notices or SessionNotices()
        self.renderer = renderer or default_renderer()
        self.writer = ArtifactWriter(compiler, self.notices, interactive=interactive)
        self.logger = get_logger("orchestrator")

    # ------------------------------------------------------------------
    # Entry points

    def regenerate_core(self, force: bool = False) -> RegenerationOutcome:
        """Bring the core autoloads artifact up to date."""
        artifact = self.core_artifact
        targets, enabled_targets = self.core_targets()
        report = check_freshness(
            artifact.path, [self.config.config_path, *targets], force=force
        )
        if not report.stale:
            self.logger.info("Skipping core autoloads, they are up-to-date")
            return RegenerationOutcome(artifact, False, self.writer.load_existing(artifact))

        self.logger.info("Regenerating core autoloads file (%s)", report.reason)
        text, scan = self.build_core_text(targets, enabled_targets)
        module = self.writer.commit(artifact, text)
        self.logger.info("Generated %s", artifact.path)
        return RegenerationOutcome(artifact, True, module, scan)

    def regenerate_packages(self, force: bool = False) -> RegenerationOutcome:
        """Bring the aggregated package autoloads artifact up to date."""
        artifact = self.package_artifact
        report = check_freshness(
            artifact.path,
            [self.config.config_path, *self.registry.package_declarations()],
            root=self.config.packages_dir,
            force=force,
        )
        if not report.stale:
            self.logger.info("Skipping package autoloads, they are up-to-date")
            module = self.writer.load_existing(artifact)
            self._apply_snapshot(module)
            return RegenerationOutcome(artifact, False, module)

        self.logger.info("Regenerating package autoloads (%s)", report.reason)
        text = self.build_package_text()
        module = self.writer.commit(artifact, text)
        self._apply_snapshot(module)
        self.logger.info("Generated %s", artifact.path)
        return RegenerationOutcome(artifact, True, module)

    def regenerate_all(self, force: bool = False) -> List[RegenerationOutcome]:
        """Regenerate the core artifact, then the package artifact."""
        return [self.regenerate_core(force), self.regenerate_packages(force)]

    def reload(self, file: Path | str | None = None, force: bool = False) -> List[RegenerationOutcome]:
        """Regenerate the artifact at ``file``, or both when ``file`` is None."""
        if file is None:
            return self.regenerate_all(force)
        target = Path(file).expanduser().resolve()
        if target == self.core_artifact.path.resolve():
            return [self.regenerate_core(force)]
        if target == self.package_artifact.path.resolve():
            return [self.regenerate_packages(force)]
        raise InvalidTargetError(f"Invalid autoloads file: {file}")

    # ------------------------------------------------------------------
    # Text generation

    def core_targets(self) -> Tuple[List[Path], List[Path]]:
        """Return all autoload files and the subset belonging to enabled components."""
        core = sorted((self.config.core_dir / CORE_AUTOLOAD_DIR).glob("*.py"))
        targets = list(core)
        enabled = list(core)
        for component in self.registry.enumerate_components():
            files = self.registry.autoload_targets(component)
            targets.extend(files)
            if self.registry.is_enabled(component):
                enabled.extend(files)
        return targets, enabled

    def build_core_text(
        self, targets: List[Path], enabled_targets: List[Path]
    ) -> Tuple[str, ScanResult]:
        artifact_dir = self.core_artifact.path.parent
        scanner = DeclarationScanner(
            self.renderer, condition_env={"enabled": self._component_enabled}
        )
        scan = scanner.scan(enabled_targets, artifact_dir=artifact_dir)
        level = logging.INFO if scan.scanned else logging.DEBUG
        self.logger.log(level, "Scanned %d file(s), ignored %d", scan.scanned, scan.ignored)

        synthesizer = StubSynthesizer(self.registry, self.renderer)
        autodefs = synthesizer.generate(targets, enabled_targets, artifact_dir=artifact_dir)

        text = self.renderer.header("regenerate_core") + scan.text + autodefs
        text = strip_annotations(text)
        self.logger.info("Expanding autoload paths")
        text = self._rewriter().rewrite(text, allow_internal=True)
        return text, scan

    def build_package_text(self) -> str:
        self.logger.info("Storing cached state")
        parts = [self.renderer.header("regenerate_packages"), emit_snapshot(self.packages)]
        excluded = set(self.config.excluded_packages)
        for package in self.packages.installed():
            if package.name in excluded:
                self.logger.debug("Excluding %s from package autoloads", package.name)
                continue
            contribution = package_contribution(package)
            if contribution is None:
                self.logger.debug("No autoloads found for %s", package.name)
                continue
            parts.append(contribution)

        text = "".join(parts)
        self.logger.info("Removing load-path and extension handler modifications")
        text = strip_cached_mutations(strip_annotations(text))
        return self._rewriter().rewrite(text, allow_internal=False)

    # ------------------------------------------------------------------
    # Internal helpers

    def _rewriter(self) -> ReferenceRewriter:
        extra_roots = [
            self.config.core_dir,
            *self.registry.search_roots(all=True),
            *self.config.extra_roots,
        ]
        return ReferenceRewriter(self.resolver, extra_roots=extra_roots)

    def _component_enabled(self, component_id: str) -> bool:
        return component_id in self.config.components

    @staticmethod
    def _apply_snapshot(module: Optional[ModuleType]) -> None:
        if module is None:
            return
        snapshot = StateSnapshot.from_namespace(module)
        runtime.apply_snapshot(
            list(snapshot.load_path),
            snapshot.extension_handlers,
            list(snapshot.disabled_packages),
        )


__all__ = [
    "AutoloadOrchestrator",
    "InvalidTargetError",
    "RegenerationError",
    "RegenerationOutcome",
]
