"""
Build pipeline - end-to-end catkin-bloom run.

Steps:
1. Collect package.xml manifests from the workspace
2. Resolve the dependency graph and compute tiers (fails on duplicates
   and cycles before anything is touched)
3. Prepare the repository: package.yaml for rosdep, apt/rosdep source
   lists, rosdep update
4. Install system dependencies (unless disabled)
5. Build the tiers with the bloom backend
6. Save the run report as the pipeline state
7. Write the Packages index (a failure here is logged, the report is kept)

A dry run stops after step 2 and runs the schedule against NoOpBackend.
"""

import json
import logging
from collections.abc import Callable
from pathlib import Path
from typing import Any, Optional

from .backends import BackendAdapter, BloomBackend, NoOpBackend
from .config import BloomConfig
from .errors import CommandError
from .graph import DependencyGraph, build_graph
from .manifest import load_workspace
from .orchestrator import BuildOrchestrator
from .repository import PackageRepository, SystemDependencyInstaller
from .scheduler import schedule
from .schemas import PackageRecord, RunReport, Tier

logger = logging.getLogger(__name__)

STATE_FILE_NAME = "last_run.json"


def select_packages(
    records: list[PackageRecord],
    only: Optional[list[str]],
) -> list[PackageRecord]:
    """
    Restrict the build to `only`.

    Packages that are not selected are expected to be available already;
    selected packages that depend on them treat them as external.
    """
    if not only:
        return list(records)
    wanted = set(only)
    selected = [r for r in records if r.id in wanted]
    missing = wanted - {r.id for r in selected}
    if missing:
        logger.warning(f"Selected packages not found in workspace: {', '.join(sorted(missing))}")
    return selected


class BuildPipeline:
    """
    Runs a whole workspace build from configuration.

    Usage:
        pipeline = BuildPipeline(config)
        report = pipeline.run()
    """

    def __init__(
        self,
        config: BloomConfig,
        backend: Optional[BackendAdapter] = None,
        progress_callback: Optional[Callable[..., Any]] = None,
    ):
        """
        Args:
            config: Run settings
            backend: Override the backend (defaults to BloomBackend)
            progress_callback: Forwarded to the orchestrator
        """
        self.config = config
        self._backend = backend
        self._progress_callback = progress_callback
        self.repository = PackageRepository(
            Path(config.repo_path or "."),
            os_name=config.os_name,
            ros_distro=config.ros_distro,
        )

    def load(self) -> list[PackageRecord]:
        return load_workspace(Path(self.config.src), ignore=self.config.ignore_pkgs)

    def plan(self, records: Optional[list[PackageRecord]] = None) -> list[Tier]:
        """
        Compute the tiers for the selected packages.

        Raises:
            DuplicatePackageError, CycleError: If no build order exists
        """
        if records is None:
            records = self.load()
        # Validate the whole workspace first so a cycle outside the
        # selection is still reported
        build_graph(records)
        selected = select_packages(records, self.config.only)
        return schedule(build_graph(selected))

    def run(self, dry_run: bool = False) -> RunReport:
        """
        Run the pipeline.

        Args:
            dry_run: Compute the schedule and walk it without building

        Returns:
            RunReport for the selected packages

        Raises:
            StructuralError: If no build order exists (nothing is built)
            CommandError: If repository setup or dependency install fails
        """
        records = self.load()
        full_graph = build_graph(records)
        full_tiers = schedule(full_graph)

        selected = select_packages(records, self.config.only)
        graph = full_graph if len(selected) == len(records) else build_graph(selected)
        tiers = full_tiers if graph is full_graph else schedule(graph)

        if dry_run:
            logger.info("Dry run: skipping repository setup and dependency install")
            backend = self._backend or NoOpBackend()
        else:
            self._prepare_repository(full_tiers)
            if self.config.install_deps:
                SystemDependencyInstaller(Path(self.config.src)).install()
            backend = self._backend or self._create_backend(graph)

        orchestrator = BuildOrchestrator(
            backend,
            concurrency_limit=self.config.jobs,
            stop_on_failure=self.config.stop_on_failure,
            progress_callback=self._progress_callback,
        )
        report = orchestrator.run(tiers)

        if not dry_run:
            self._save_state(report)
            try:
                self.repository.write_packages_index()
            except CommandError as e:
                logger.warning(
                    f"Could not write package index: {e}",
                    extra={"event": "packages_index_failed", "metadata": {"stderr": e.stderr}},
                )

        return report

    def status(self) -> Optional[RunReport]:
        """
        Get the report of the last run.

        Returns:
            RunReport from the last run, or None if no previous run
        """
        state_file = self._get_state_file()

        if not state_file.exists():
            return None

        try:
            with open(state_file, "r") as f:
                return RunReport.from_dict(json.load(f))
        except (OSError, ValueError, KeyError) as e:
            logger.warning(f"Could not load pipeline state: {e}")
            return None

    def _prepare_repository(self, tiers: list[Tier]) -> None:
        """Create the repository and register it with rosdep and apt."""
        self.repository.prepare()
        ordered = [pkg for tier in tiers for pkg in sorted(tier.members)]
        self.repository.write_rosdep_yaml(ordered, self.config.rosdep_defs)
        self.repository.register_sources(
            [Path(r) for r in self.config.extra_repos],
            rosdep_sources_dir=Path(self.config.rosdep_sources_dir),
            apt_sources_dir=Path(self.config.apt_sources_dir),
        )
        logger.info("Run rosdep update", extra={"event": "rosdep_update"})
        SystemDependencyInstaller(Path(self.config.src)).update_rosdep()

    def _create_backend(self, graph: DependencyGraph) -> BackendAdapter:
        package_dirs = {
            pkg: Path(graph.record(pkg).path)
            for pkg in graph
            if graph.record(pkg).path
        }
        return BloomBackend(
            package_dirs,
            self.repository,
            os_name=self.config.os_name,
            os_version=self.config.os_version,
            ros_distro=self.config.ros_distro,
        )

    def _save_state(self, report: RunReport) -> None:
        """
        Save the run report to disk.

        Args:
            report: Report to save
        """
        state_file = self._get_state_file()

        try:
            state_file.parent.mkdir(parents=True, exist_ok=True)
            with open(state_file, "w") as f:
                json.dump(report.to_dict(), f, indent=2)
            logger.debug(
                f"Saved pipeline state to {state_file}",
                extra={"event": "state_saved", "metadata": {"file": str(state_file)}},
            )
        except OSError as e:
            logger.warning(
                f"Could not save pipeline state: {e}",
                extra={"event": "state_save_failed", "metadata": {"error": str(e)}},
            )

    def _get_state_file(self) -> Path:
        """Get path to pipeline state file."""
        return self.config.get_state_dir() / STATE_FILE_NAME
