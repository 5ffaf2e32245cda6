"""Analysis orchestrator for a CPM workspace.

:class:`PackageAnalysisService` runs the ``dotnet`` CLI against the
workspace, reconciles what it reports with the central manifest, and
keeps the latest :class:`AnalysisResult` together with an index of
transitive constraints.

State machine::

    IDLE --run--> RUNNING --done--> READY --run--> RUNNING ...
      ^                                |
      +----------- clear_cache --------+

Only one pass is in flight at a time. The running latch is the
``is_running`` flag of the published snapshot, checked and set without
an intervening ``await``, so a second trigger during a pass returns the
current snapshot instead of queueing. A pass's results become visible
only when it ends: the snapshot is replaced as a whole.

Typical usage::

    manifest = CentralManifest.load("/src/app")
    service = PackageAnalysisService(DotnetCli(), manifest)
    result = await service.run_full()
    for conflict in result.transitive_conflicts:
        print(conflict)
"""

from __future__ import annotations

import time
import asyncio
from enum import Enum
from datetime import datetime
from dataclasses import replace
from typing import Any, Callable, List, Optional, Protocol, Sequence

from cpmkeeper.constants import DEFAULT_CACHE_TTL_MINUTES
from cpmkeeper.core.conflict_detector import (
    detect_conflicts,
    extract_vulnerabilities,
    merge_conflicts,
    merge_project_conflicts,
    merge_project_vulnerabilities,
    parse_restore_warnings,
)
from cpmkeeper.core.constraint_extractor import (
    ConstraintIndex,
    LockGraphReader,
    build_constraint_index,
    collect_lock_graphs,
    read_lock_graph,
)
from cpmkeeper.core.dotnet_cli import project_display_name
from cpmkeeper.exceptions import CpmKeeperError, DotnetCliError
from cpmkeeper.models.conflict import (
    AnalysisResult,
    TransitiveConflict,
    TransitiveConstraint,
    VulnerablePackageInfo,
)
from cpmkeeper.models.package import Package, ProjectInfo, normalize_id
from cpmkeeper.models.report import ResolvedDependencyReport, RestoreWarning
from cpmkeeper.utils.logger import get_logger, log_duration

logger = get_logger("analysis")

__all__ = [
    "AnalysisObserver",
    "AnalysisState",
    "DependencyResolver",
    "ManifestSource",
    "PackageAnalysisService",
]

NO_WORKSPACE_ROOT = "No workspace root found"
DOTNET_NOT_FOUND = (
    "dotnet CLI not found. Install the .NET SDK or set dotnet_path in cpmkeeper.toml."
)

#: Callback receiving each published :class:`AnalysisResult`.
AnalysisObserver = Callable[[AnalysisResult], None]


# ---------------------------------------------------------------------------
# Collaborator interfaces
# ---------------------------------------------------------------------------


class DependencyResolver(Protocol):
    """What the service needs from the ``dotnet`` CLI."""

    async def is_available(self) -> bool: ...

    async def list_transitive_packages(
        self, cwd: str, target: Optional[str] = None
    ) -> ResolvedDependencyReport: ...

    async def list_vulnerable_packages(
        self, cwd: str, target: Optional[str] = None
    ) -> ResolvedDependencyReport: ...

    async def restore_and_get_warnings(
        self, cwd: str, target: Optional[str] = None
    ) -> List[RestoreWarning]: ...


class ManifestSource(Protocol):
    """Read-only view of the central manifest."""

    def get_all_packages(self) -> List[Package]: ...

    def get_all_projects(self) -> List[ProjectInfo]: ...

    def get_workspace_root(self) -> Optional[str]: ...

    def get_solution_path(self) -> Optional[str]: ...


class AnalysisState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    READY = "ready"


def _error_message(exc: BaseException) -> str:
    return exc.message if isinstance(exc, CpmKeeperError) else str(exc)


def _is_parse_error(exc: BaseException) -> bool:
    return isinstance(exc, DotnetCliError) and exc.code == DotnetCliError.PARSE_ERROR


def _reraise_cancellation(outcome: Any) -> None:
    if isinstance(outcome, BaseException) and not isinstance(outcome, Exception):
        raise outcome


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------


class PackageAnalysisService:
    """Coordinates full and per-project analysis passes.

    Args:
        cli: Dependency resolver, normally a :class:`DotnetCli`.
        manifest: Central manifest, normally a :class:`CentralManifest`.
        cache_ttl: Seconds a completed full pass stays fresh.
        lock_file_reader: Loads one project's lock graph.
        clock: Wall-clock time source in seconds since the epoch.
        enable_vulnerability_scan: Run ``dotnet list --vulnerable`` during
            full passes.
    """

    def __init__(
        self,
        cli: DependencyResolver,
        manifest: ManifestSource,
        *,
        cache_ttl: float = DEFAULT_CACHE_TTL_MINUTES * 60.0,
        lock_file_reader: LockGraphReader = read_lock_graph,
        clock: Callable[[], float] = time.time,
        enable_vulnerability_scan: bool = True,
    ) -> None:
        self._cli = cli
        self._manifest = manifest
        self.cache_ttl = cache_ttl
        self._lock_file_reader = lock_file_reader
        self._clock = clock
        self.enable_vulnerability_scan = enable_vulnerability_scan

        self._result = AnalysisResult.empty()
        self._completed_at: Optional[float] = None
        self._constraints = ConstraintIndex()
        self._observers: List[AnalysisObserver] = []

    # ------------------------------------------------------------------
    # State and observers
    # ------------------------------------------------------------------

    @property
    def state(self) -> AnalysisState:
        if self._result.is_running:
            return AnalysisState.RUNNING
        if self._result.last_updated is None and self._result.error is None:
            return AnalysisState.IDLE
        return AnalysisState.READY

    def get_analysis_result(self) -> AnalysisResult:
        return self._result

    def on_did_change_analysis(self, callback: AnalysisObserver) -> Callable[[], None]:
        """Register *callback* for every published snapshot.

        Returns:
            A function that unregisters the callback.
        """
        self._observers.append(callback)

        def unsubscribe() -> None:
            if callback in self._observers:
                self._observers.remove(callback)

        return unsubscribe

    def _publish(self, result: AnalysisResult) -> None:
        self._result = result
        for observer in list(self._observers):
            try:
                observer(result)
            except Exception:
                logger.exception("Analysis observer %r failed", observer)

    def _is_fresh(self) -> bool:
        return (
            self._completed_at is not None
            and self._clock() - self._completed_at < self.cache_ttl
        )

    # ------------------------------------------------------------------
    # Passes
    # ------------------------------------------------------------------

    async def run_full(self, force: bool = False) -> AnalysisResult:
        """Analyze the whole workspace.

        Returns the cached result without running when it is younger than
        ``cache_ttl`` (unless *force*) or when a pass is already running.
        """
        if not force and self._is_fresh():
            logger.debug("Analysis cache is fresh, skipping full pass")
            return self._result
        if self._result.is_running:
            return self._result

        previous = self._result
        self._publish(replace(previous, is_running=True, error=None))

        conflicts = previous.transitive_conflicts
        vulnerabilities = previous.vulnerable_packages
        last_updated = previous.last_updated
        error: Optional[str] = None

        try:
            with log_duration(logger, "Full analysis"):
                root = await self._require_environment()
                solution = self._manifest.get_solution_path()

                transitive, vulnerable = await asyncio.gather(
                    self._run_transitive(root, solution),
                    self._run_vulnerability(root, solution),
                    return_exceptions=True,
                )
                _reraise_cancellation(transitive)
                _reraise_cancellation(vulnerable)

                errors: List[str] = []
                if isinstance(transitive, BaseException):
                    conflicts = []
                    if _is_parse_error(transitive):
                        logger.warning(
                            "Transitive analysis produced no data: %s", transitive
                        )
                    else:
                        errors.append(
                            f"Transitive analysis: {_error_message(transitive)}"
                        )
                else:
                    conflicts = transitive

                if isinstance(vulnerable, BaseException):
                    vulnerabilities = []
                    logger.warning(
                        "Vulnerability analysis failed: %s",
                        _error_message(vulnerable),
                    )
                else:
                    vulnerabilities = vulnerable

                error = "; ".join(errors) if errors else None
                last_updated = self._mark_completed()
        except CpmKeeperError as exc:
            error = exc.message
            logger.error("Full analysis failed: %s", error)
        finally:
            await self._rebuild_constraints()
            self._publish(
                AnalysisResult(
                    transitive_conflicts=conflicts,
                    vulnerable_packages=vulnerabilities,
                    last_updated=last_updated,
                    is_running=False,
                    error=error,
                )
            )

        logger.info(
            "Analysis found %d conflict(s) and %d vulnerable package(s)",
            len(conflicts),
            len(vulnerabilities),
        )
        return self._result

    async def run_incremental(self, project_paths: Sequence[str]) -> AnalysisResult:
        """Re-analyze only *project_paths* and fold the results in.

        Falls back to a forced full pass when no pass has completed yet.
        Vulnerability data is not rescanned; the affected projects lose
        their vulnerability attribution until the next full pass.
        """
        if self._result.is_running:
            return self._result
        if self._result.last_updated is None:
            return await self.run_full(force=True)

        project_names = [project_display_name(p) for p in project_paths]
        logger.info("Per-project analysis for: %s", ", ".join(project_names))

        previous = self._result
        self._publish(replace(previous, is_running=True, error=None))

        conflicts = previous.transitive_conflicts
        vulnerabilities = previous.vulnerable_packages
        last_updated = previous.last_updated
        error: Optional[str] = None

        try:
            with log_duration(logger, "Per-project analysis"):
                root = await self._require_environment()

                outcomes = await asyncio.gather(
                    *(self._run_transitive(root, path) for path in project_paths),
                    return_exceptions=True,
                )

                fresh: List[TransitiveConflict] = []
                errors: List[str] = []
                for path, outcome in zip(project_paths, outcomes):
                    _reraise_cancellation(outcome)
                    if isinstance(outcome, BaseException):
                        if _is_parse_error(outcome):
                            logger.warning("No data for %s: %s", path, outcome)
                        else:
                            errors.append(f"Transitive: {_error_message(outcome)}")
                    else:
                        fresh.extend(outcome)

                conflicts = merge_project_conflicts(conflicts, fresh, project_names)
                vulnerabilities = merge_project_vulnerabilities(
                    vulnerabilities, [], project_names
                )

                error = "; ".join(errors) if errors else None
                last_updated = self._mark_completed()
        except CpmKeeperError as exc:
            error = exc.message
            logger.error("Per-project analysis failed: %s", error)
        finally:
            await self._rebuild_constraints()
            self._publish(
                AnalysisResult(
                    transitive_conflicts=conflicts,
                    vulnerable_packages=vulnerabilities,
                    last_updated=last_updated,
                    is_running=False,
                    error=error,
                )
            )

        return self._result

    def _mark_completed(self) -> datetime:
        now = self._clock()
        self._completed_at = now
        return datetime.fromtimestamp(now)

    async def _require_environment(self) -> str:
        root = self._manifest.get_workspace_root()
        if not root:
            raise CpmKeeperError(NO_WORKSPACE_ROOT)
        if not await self._cli.is_available():
            raise DotnetCliError(DOTNET_NOT_FOUND, DotnetCliError.NOT_FOUND)
        return root

    async def _run_transitive(
        self,
        root: str,
        target: Optional[str],
    ) -> List[TransitiveConflict]:
        target_name = project_display_name(target) if target else "workspace"

        # Restore first: it refreshes the lock files the list command reads.
        with log_duration(logger, f"dotnet restore ({target_name})"):
            try:
                warnings = await self._cli.restore_and_get_warnings(root, target)
            except DotnetCliError as exc:
                logger.debug("Restore failed for %s: %s", target_name, exc)
                warnings = []

        with log_duration(logger, f"dotnet list --include-transitive ({target_name})"):
            report = await self._cli.list_transitive_packages(root, target)

        from_report = detect_conflicts(report, self._manifest.get_all_packages())
        from_warnings = parse_restore_warnings(warnings)
        return merge_conflicts(from_warnings, from_report)

    async def _run_vulnerability(
        self,
        root: str,
        target: Optional[str],
    ) -> List[VulnerablePackageInfo]:
        if not self.enable_vulnerability_scan:
            return []

        target_name = project_display_name(target) if target else "workspace"
        with log_duration(logger, f"dotnet list --vulnerable ({target_name})"):
            report = await self._cli.list_vulnerable_packages(root, target)
        return extract_vulnerabilities(report)

    async def _rebuild_constraints(self) -> None:
        # The previous index stays queryable until the new one is complete.
        with log_duration(logger, "Constraint extraction"):
            try:
                graphs = await collect_lock_graphs(
                    self._manifest.get_all_projects(), self._lock_file_reader
                )
                index = build_constraint_index(
                    graphs, self._manifest.get_all_packages()
                )
            except (CpmKeeperError, OSError, ValueError) as exc:
                logger.warning("Failed to extract transitive constraints: %s", exc)
                index = ConstraintIndex()
        self._constraints = index

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_conflicts_for_package(self, package_id: str) -> List[TransitiveConflict]:
        key = normalize_id(package_id)
        return [
            c
            for c in self._result.transitive_conflicts
            if normalize_id(c.package_id) == key
        ]

    def get_vulnerabilities_for_package(
        self, package_id: str
    ) -> List[VulnerablePackageInfo]:
        key = normalize_id(package_id)
        return [
            v
            for v in self._result.vulnerable_packages
            if normalize_id(v.package_id) == key
        ]

    def get_constraint_for_package(
        self, package_id: str
    ) -> Optional[TransitiveConstraint]:
        return self._constraints.get(package_id)

    def get_all_constraints(self) -> List[TransitiveConstraint]:
        return self._constraints.values()

    def clear_cache(self) -> None:
        """Forget all results and constraints, returning to ``IDLE``."""
        self._completed_at = None
        self._constraints = ConstraintIndex()
        self._publish(AnalysisResult.empty())
