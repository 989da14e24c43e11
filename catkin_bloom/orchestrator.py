"""
Build orchestrator - runs a tier schedule against a backend.

Execution model:
1. Tiers run strictly in order. Tier k+1 is not dispatched until every
   member of tier k has settled (succeeded, failed or skipped).
2. Within a tier, members whose dependencies all succeeded are submitted
   to a thread pool sized to the concurrency limit, so at most that many
   builds are in flight at any time.
3. Each worker calls backend.build() and, on success, backend.publish()
   before the package is recorded as succeeded. Later tiers can therefore
   rely on the artifact being installed.
4. A member with a failed or skipped dependency is marked skipped without
   taking a worker slot. A failure never cancels siblings that are
   already running.

Every scheduled package ends up in the report; a failing package does not
abort the run.
"""

import logging
import threading
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor, wait
from datetime import datetime, timezone
from typing import Any, Iterable, Optional

from .backends.base import BackendAdapter
from .schemas import BuildOutcome, BuildStatus, RunReport, Tier

logger = logging.getLogger(__name__)

ProgressCallback = Callable[..., Any]


def _utcnow() -> datetime:
    """Return current UTC time as timezone-aware datetime."""
    return datetime.now(timezone.utc)


class _OutcomeCollector:
    """Lock-protected accumulator shared by all workers of a run."""

    def __init__(self, report: RunReport):
        self._report = report
        self._lock = threading.Lock()

    def record(self, outcome: BuildOutcome) -> None:
        with self._lock:
            if outcome.package_id in self._report.outcomes:
                raise RuntimeError(f"Outcome for {outcome.package_id} recorded twice")
            self._report.outcomes[outcome.package_id] = outcome

    def status_of(self, package_id: str) -> Optional[BuildStatus]:
        with self._lock:
            return self._report.status_of(package_id)


class BuildOrchestrator:
    """
    Executes tiers against a BackendAdapter with bounded parallelism.

    Usage:
        orchestrator = BuildOrchestrator(backend, concurrency_limit=8)
        report = orchestrator.run(schedule(build_graph(records)))
    """

    def __init__(
        self,
        backend: BackendAdapter,
        concurrency_limit: int = 1,
        stop_on_failure: bool = False,
        progress_callback: Optional[ProgressCallback] = None,
    ):
        """
        Args:
            backend: Builds and publishes single packages
            concurrency_limit: Maximum number of builds in flight
            stop_on_failure: Skip every later tier once a tier had a failure.
                Off by default; siblings in the failing tier still finish.
            progress_callback: Optional callback(event, **kwargs). Events:
                'tier_start', 'package_start', 'package_ok', 'package_fail',
                'package_skip', 'tier_done'
        """
        if isinstance(concurrency_limit, bool) or not isinstance(concurrency_limit, int):
            raise ValueError(f"concurrency_limit must be an integer, got {concurrency_limit!r}")
        if concurrency_limit < 1:
            raise ValueError(f"concurrency_limit must be >= 1, got {concurrency_limit}")

        self.backend = backend
        self.concurrency_limit = concurrency_limit
        self.stop_on_failure = stop_on_failure
        self._progress_callback = progress_callback

    def _emit(self, event: str, **kwargs) -> None:
        if not self._progress_callback:
            return
        # Runs on worker threads; a broken callback must not cost an outcome
        try:
            self._progress_callback(event, **kwargs)
        except Exception as e:
            logger.warning(
                f"Progress callback failed on {event}: {e}",
                extra={"event": "progress_callback_failed", "metadata": {"progress_event": event}},
            )

    def run(self, tiers: Iterable[Tier]) -> RunReport:
        """
        Build every tier in order and return the full report.

        Args:
            tiers: Schedule produced by scheduler.schedule()

        Returns:
            RunReport with one outcome per scheduled package
        """
        tiers = sorted(tiers, key=lambda t: t.index)
        report = RunReport.for_tiers(tiers)
        report.started_at = _utcnow()
        collector = _OutcomeCollector(report)

        total = sum(len(t) for t in tiers)
        logger.info(
            f"Building {total} packages in {len(tiers)} tiers (jobs={self.concurrency_limit})",
            extra={"event": "run_started"},
        )

        with ThreadPoolExecutor(
            max_workers=self.concurrency_limit,
            thread_name_prefix="catkin-bloom",
        ) as pool:
            for tier in tiers:
                if report.stopped_early:
                    self._skip_tier(tier, collector)
                    continue

                had_failure = self._run_tier(tier, pool, collector)

                if had_failure and self.stop_on_failure:
                    logger.error(
                        f"Tier {tier.index} had failures, skipping remaining tiers",
                        extra={"event": "run_stopped", "tier": tier.index},
                    )
                    report.stopped_early = True

        report.completed_at = _utcnow()
        counts = report.counts
        logger.info(
            f"Run finished: succeeded={counts['succeeded']}, failed={counts['failed']}, "
            f"skipped={counts['skipped']}",
            extra={"event": "run_completed", "metadata": counts},
        )
        return report

    def _run_tier(
        self,
        tier: Tier,
        pool: ThreadPoolExecutor,
        collector: _OutcomeCollector,
    ) -> bool:
        """Dispatch one tier and block until all of it settled. Returns True on any failure."""
        logger.info(
            f"Tier {tier.index}: {len(tier)} packages",
            extra={"event": "tier_started", "tier": tier.index},
        )
        self._emit("tier_start", tier=tier.index, package_count=len(tier))

        futures = []
        for package_id in sorted(tier.members):
            blocked_by = [
                dep for dep in tier.dependencies_of(package_id)
                if collector.status_of(dep) != BuildStatus.SUCCEEDED
            ]
            if blocked_by:
                self._skip(
                    collector,
                    package_id,
                    tier.index,
                    f"dependency did not build: {', '.join(sorted(blocked_by))}",
                    blocked_by,
                )
                continue
            futures.append(pool.submit(self._build_one, package_id, tier.index, collector))

        # Barrier: the next tier needs this tier's artifacts published
        wait(futures)

        failed = 0
        for future in futures:
            # _build_one records its own outcome; anything raised here is a bug
            if future.result().status == BuildStatus.FAILED:
                failed += 1

        self._emit("tier_done", tier=tier.index, failed=failed)
        return failed > 0

    def _build_one(
        self,
        package_id: str,
        tier_index: int,
        collector: _OutcomeCollector,
    ) -> BuildOutcome:
        """Build and publish a single package. Runs on a worker thread."""
        started_at = _utcnow()
        logger.info(
            f"Building {package_id}",
            extra={"event": "package_started", "package": package_id, "tier": tier_index},
        )
        self._emit("package_start", package_id=package_id, tier=tier_index)

        try:
            artifact = self.backend.build(package_id)
            self.backend.publish(artifact)
        except Exception as e:
            outcome = BuildOutcome.failed(
                package_id,
                e,
                tier=tier_index,
                started_at=started_at,
                completed_at=_utcnow(),
            )
            logger.error(
                f"FAIL {package_id}: {e}",
                extra={"event": "package_failed", "package": package_id, "tier": tier_index},
            )
            collector.record(outcome)
            self._emit("package_fail", package_id=package_id, tier=tier_index, error=str(e))
            return outcome

        outcome = BuildOutcome.succeeded(
            package_id,
            str(artifact),
            tier=tier_index,
            started_at=started_at,
            completed_at=_utcnow(),
        )
        logger.info(
            f"ok {package_id} ({outcome.duration_seconds:.1f}s)",
            extra={"event": "package_succeeded", "package": package_id, "tier": tier_index},
        )
        collector.record(outcome)
        self._emit(
            "package_ok",
            package_id=package_id,
            tier=tier_index,
            artifact=str(artifact),
            duration_seconds=outcome.duration_seconds,
        )
        return outcome

    def _skip(
        self,
        collector: _OutcomeCollector,
        package_id: str,
        tier_index: int,
        reason: str,
        blocked_by: Iterable[str] = (),
    ) -> None:
        collector.record(BuildOutcome.skipped(package_id, reason, blocked_by, tier=tier_index))
        logger.warning(
            f"SKIP {package_id}: {reason}",
            extra={"event": "package_skipped", "package": package_id, "tier": tier_index},
        )
        self._emit("package_skip", package_id=package_id, tier=tier_index, reason=reason)

    def _skip_tier(self, tier: Tier, collector: _OutcomeCollector) -> None:
        self._emit("tier_start", tier=tier.index, package_count=len(tier))
        for package_id in sorted(tier.members):
            self._skip(collector, package_id, tier.index, "run stopped after failure")
        self._emit("tier_done", tier=tier.index, failed=0)


def run(
    tiers: Iterable[Tier],
    backend: BackendAdapter,
    concurrency_limit: int = 1,
    **kwargs,
) -> RunReport:
    """Convenience wrapper: BuildOrchestrator(backend, concurrency_limit, **kwargs).run(tiers)."""
    return BuildOrchestrator(backend, concurrency_limit, **kwargs).run(tiers)
