"""Sequential build orchestrator.

Processes every tracked project one at a time, in ascending id order:

    skip decision -> checkout -> idempotence check -> build-root discovery
    -> build (and migrate on failure) per root -> verdict

Build logs are collected for the whole run and committed to the store only
after the last project, so an interrupted run persists nothing.
"""

from __future__ import annotations

import os
import shutil
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Optional, Union

from ecotrack.models import BuildLog, Project, SemVer
from ecotrack.registry import CompatibilityStore
from ecotrack.runner.compiler import CompilerRunner, pin_arg
from ecotrack.runner.git import CheckoutError, GitClient
from ecotrack.runner.migration import MigrationProber
from ecotrack.utils.logging import get_logger, set_project, set_stage

logger = get_logger("runner.orchestrator")

# Marker stored as the revision when a checkout could not be made
NO_REVISION = ""


@dataclass(frozen=True)
class FullRefresh:
    """Re-evaluate every project and persist all outcomes."""

    name = "full_refresh"


@dataclass(frozen=True)
class SelectiveCheck:
    """Ad hoc verification pass; outcomes are reported, not persisted."""

    target_version: Optional[str] = None
    reference_version: Optional[str] = None
    include_known_failures: bool = False
    force: bool = False

    name = "selective_check"


RunMode = Union[FullRefresh, SelectiveCheck]


class ProjectStatus(str, Enum):
    """Per-project outcome of a run."""

    PASSED = "passed"
    MIGRATED = "migrated"
    FAILED = "failed"
    CLONE_FAILED = "clone_failed"
    UNCHANGED = "unchanged"
    SKIPPED = "skipped"


@dataclass
class RootOutcome:
    """Result of one build root."""

    path: str
    passed: bool
    migrated: bool = False
    reference_passed: Optional[bool] = None


@dataclass
class ProjectOutcome:
    """Result of one project in a run."""

    project_id: int
    url: str
    status: ProjectStatus
    revision: Optional[str] = None
    compiler_version: Optional[str] = None
    roots: list[RootOutcome] = field(default_factory=list)
    build_log: Optional[BuildLog] = None

    @property
    def failed_roots(self) -> list[str]:
        return [root.path for root in self.roots if not root.passed]

    @property
    def reference_failed_roots(self) -> list[str]:
        return [root.path for root in self.roots if root.reference_passed is False]

    def to_dict(self) -> dict:
        return {
            "project_id": self.project_id,
            "url": self.url,
            "status": self.status.value,
            "revision": self.revision,
            "compiler_version": self.compiler_version,
            "failed_roots": self.failed_roots,
            "reference_failed_roots": self.reference_failed_roots,
        }


@dataclass
class RunReport:
    """Everything a run observed."""

    mode: str
    compiler_version: str
    reference_version: Optional[str] = None
    outcomes: list[ProjectOutcome] = field(default_factory=list)
    committed: bool = False

    @property
    def new_logs(self) -> dict[int, BuildLog]:
        return {
            outcome.project_id: outcome.build_log
            for outcome in self.outcomes
            if outcome.build_log is not None
        }

    def count(self, status: ProjectStatus) -> int:
        return sum(1 for outcome in self.outcomes if outcome.status == status)

    def to_dict(self) -> dict:
        return {
            "mode": self.mode,
            "compiler_version": self.compiler_version,
            "reference_version": self.reference_version,
            "committed": self.committed,
            "new_logs": len(self.new_logs),
            "projects": [outcome.to_dict() for outcome in self.outcomes],
        }


def find_build_roots(checkout: Path, manifest_name: str) -> list[Path]:
    """Every directory under ``checkout`` holding a manifest, sorted, ``.git`` excluded."""
    roots = []
    for dirpath, dirnames, filenames in os.walk(checkout):
        dirnames[:] = sorted(d for d in dirnames if d != ".git")
        if manifest_name in filenames:
            roots.append(Path(dirpath))
    return sorted(roots)


class BuildOrchestrator:
    """
    Runs the build pipeline over every tracked project.

    Single-threaded: one project, one build root, one compiler invocation at
    a time.
    """

    def __init__(
        self,
        store: CompatibilityStore,
        compiler: CompilerRunner,
        git: GitClient,
        build_dir: Path,
        manifest_name: str = "Veryl.toml",
        prober: Optional[MigrationProber] = None,
    ) -> None:
        """
        Initialize the orchestrator.

        Args:
            store: Store whose projects are built and which receives the logs
            compiler: Target compiler runner
            git: Source-control client
            build_dir: Scratch directory, wiped at the start of every run
            manifest_name: File marking a build root
            prober: Migration prober (defaults to one driving ``compiler``)
        """
        self.store = store
        self.compiler = compiler
        self.git = git
        self.build_dir = Path(build_dir)
        self.manifest_name = manifest_name
        self.prober = prober or MigrationProber(compiler)

    async def run(self, mode: RunMode) -> RunReport:
        """
        Build every project once under ``mode``.

        Raises:
            CompilerError: If the target compiler's version cannot be queried
        """
        set_stage("build")

        target_pin = None
        reference_pin = None
        if isinstance(mode, SelectiveCheck):
            if mode.target_version:
                target_pin = pin_arg(mode.target_version)
            if mode.reference_version:
                reference_pin = pin_arg(mode.reference_version)

        version = await self.compiler.version(pin=target_pin)
        reference_version = None
        if reference_pin:
            reference_version = str(await self.compiler.version(pin=reference_pin))

        self._reset_build_dir()

        report = RunReport(
            mode=mode.name,
            compiler_version=str(version),
            reference_version=reference_version,
        )
        logger.info(
            "build_run_started",
            mode=mode.name,
            compiler_version=str(version),
            reference_version=reference_version,
            projects=len(self.store.projects),
        )

        try:
            for project_id in sorted(self.store.projects):
                project = self.store.projects[project_id]
                set_project(project_id)
                outcome = await self._process_project(
                    project_id, project, mode, version, target_pin, reference_pin
                )
                report.outcomes.append(outcome)
                logger.info(
                    "project_checked",
                    url=project.url,
                    status=outcome.status.value,
                    revision=outcome.revision,
                    failed_roots=outcome.failed_roots,
                )
        finally:
            set_project(None)

        if isinstance(mode, FullRefresh):
            self.store.append_build_logs(report.new_logs)
            report.committed = True

        logger.info(
            "build_run_completed",
            mode=mode.name,
            passed=report.count(ProjectStatus.PASSED),
            migrated=report.count(ProjectStatus.MIGRATED),
            failed=report.count(ProjectStatus.FAILED) + report.count(ProjectStatus.CLONE_FAILED),
            unchanged=report.count(ProjectStatus.UNCHANGED),
            skipped=report.count(ProjectStatus.SKIPPED),
            committed=report.committed,
        )
        return report

    async def _process_project(
        self,
        project_id: int,
        project: Project,
        mode: RunMode,
        version: SemVer,
        target_pin: Optional[str],
        reference_pin: Optional[str],
    ) -> ProjectOutcome:
        outcome = ProjectOutcome(
            project_id=project_id,
            url=project.url,
            status=ProjectStatus.SKIPPED,
            compiler_version=str(version),
        )
        latest = project.latest_log

        if self._should_skip(mode, latest):
            return outcome

        workspace = self.build_dir / (project.path or f"project-{project_id}")
        force = isinstance(mode, SelectiveCheck) and mode.force

        try:
            async with self.git.checkout(project.url, workspace) as checkout:
                outcome.revision = checkout.revision

                if (
                    not force
                    and latest is not None
                    and latest.rev == checkout.revision
                    and latest.compiler_version == str(version)
                ):
                    outcome.status = ProjectStatus.UNCHANGED
                    return outcome

                roots = find_build_roots(checkout.path, self.manifest_name)
                if not roots:
                    logger.warning("manifest_not_found", url=project.url)

                for root in roots:
                    outcome.roots.append(
                        await self._build_root(root, checkout.path, version, target_pin, reference_pin)
                    )

        except CheckoutError as e:
            logger.warning("checkout_failed", url=project.url, error=str(e))
            outcome.status = ProjectStatus.CLONE_FAILED
            outcome.revision = NO_REVISION
            outcome.build_log = BuildLog(rev=NO_REVISION, compiler_version=str(version), result=False)
            return outcome

        result = bool(outcome.roots) and all(root.passed for root in outcome.roots)
        if not result:
            outcome.status = ProjectStatus.FAILED
        elif any(root.migrated for root in outcome.roots):
            outcome.status = ProjectStatus.MIGRATED
        else:
            outcome.status = ProjectStatus.PASSED

        outcome.build_log = BuildLog(rev=outcome.revision, compiler_version=str(version), result=result)
        return outcome

    def _should_skip(self, mode: RunMode, latest: Optional[BuildLog]) -> bool:
        if not isinstance(mode, SelectiveCheck) or mode.include_known_failures:
            return False
        return latest is not None and not latest.result

    async def _build_root(
        self,
        root: Path,
        checkout_path: Path,
        version: SemVer,
        target_pin: Optional[str],
        reference_pin: Optional[str],
    ) -> RootOutcome:
        relative = root.relative_to(checkout_path).as_posix()
        outcome = RootOutcome(path=relative, passed=False)

        # The reference build produces the output the target build is checked against
        compare = reference_pin is not None
        if compare:
            reference = await self.compiler.build(root, pin=reference_pin)
            outcome.reference_passed = reference.success
            if not reference.success:
                logger.warning("reference_build_failed", root=relative, pin=reference_pin)

        async def build():
            return await self.compiler.build(root, pin=target_pin, check=compare)

        first = await build()
        if first.success:
            outcome.passed = True
            return outcome

        logger.info("build_failed", root=relative, returncode=first.returncode)
        migration = await self.prober.probe(root, version, build)
        outcome.passed = migration.success
        outcome.migrated = migration.success
        return outcome

    def _reset_build_dir(self) -> None:
        if self.build_dir.exists():
            shutil.rmtree(self.build_dir)
        self.build_dir.mkdir(parents=True)
