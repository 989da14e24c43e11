"""
Outcome schemas - per-package build results and the run report.

BuildOutcome records how a single package's build settled.
RunReport aggregates every outcome of a run once the last tier settles.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Iterable, Optional

from .tier import Tier


class BuildStatus(str, Enum):
    """Terminal status of a package in a run."""
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass(frozen=True)
class BuildOutcome:
    """
    The outcome of one package in a run.

    Attributes:
        package_id: The package this outcome belongs to
        status: succeeded, failed or skipped
        tier: Index of the tier the package was scheduled in
        artifact: Path of the produced artifact (succeeded only)
        error: {"type", "message"} of the failure (failed only)
        reason: Why the build was not attempted (skipped only)
        blocked_by: Upstream packages that failed or were skipped
        started_at: When the build was dispatched (not set for skipped)
        completed_at: When the build settled (not set for skipped)
    """
    package_id: str
    status: BuildStatus
    tier: Optional[int] = None
    artifact: Optional[str] = None
    error: Optional[dict[str, Any]] = None
    reason: Optional[str] = None
    blocked_by: tuple[str, ...] = ()
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    def __post_init__(self):
        if self.status == BuildStatus.SUCCEEDED:
            if not self.artifact:
                raise ValueError("Succeeded outcomes must carry an artifact path")
        elif self.status == BuildStatus.FAILED:
            if not self.error:
                raise ValueError("Failed outcomes must carry error details")
        elif self.status == BuildStatus.SKIPPED:
            if not self.reason:
                raise ValueError("Skipped outcomes must carry a reason")
            if self.started_at is not None:
                raise ValueError("Skipped packages were never started")

    @classmethod
    def succeeded(cls, package_id: str, artifact: str, **kwargs) -> "BuildOutcome":
        return cls(package_id=package_id, status=BuildStatus.SUCCEEDED, artifact=artifact, **kwargs)

    @classmethod
    def failed(cls, package_id: str, exc: BaseException, **kwargs) -> "BuildOutcome":
        error = {"type": type(exc).__name__, "message": str(exc)}
        return cls(package_id=package_id, status=BuildStatus.FAILED, error=error, **kwargs)

    @classmethod
    def skipped(
        cls,
        package_id: str,
        reason: str,
        blocked_by: Iterable[str] = (),
        **kwargs,
    ) -> "BuildOutcome":
        return cls(
            package_id=package_id,
            status=BuildStatus.SKIPPED,
            reason=reason,
            blocked_by=tuple(sorted(blocked_by)),
            **kwargs,
        )

    @property
    def duration_seconds(self) -> Optional[float]:
        """Build duration if the package was actually built."""
        if self.started_at and self.completed_at:
            return (self.completed_at - self.started_at).total_seconds()
        return None

    @property
    def cause(self) -> str:
        """Human readable explanation for a non-successful outcome."""
        if self.status == BuildStatus.FAILED and self.error:
            return self.error.get("message") or self.error.get("type", "unknown error")
        if self.status == BuildStatus.SKIPPED:
            return self.reason or ""
        return ""

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary for JSON output."""
        result: dict[str, Any] = {
            "package_id": self.package_id,
            "status": self.status.value,
        }
        if self.tier is not None:
            result["tier"] = self.tier
        if self.artifact is not None:
            result["artifact"] = self.artifact
        if self.error is not None:
            result["error"] = self.error
        if self.reason is not None:
            result["reason"] = self.reason
        if self.blocked_by:
            result["blocked_by"] = list(self.blocked_by)
        if self.started_at is not None:
            result["started_at"] = self.started_at.isoformat()
        if self.completed_at is not None:
            result["completed_at"] = self.completed_at.isoformat()
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "BuildOutcome":
        """Deserialize from dictionary."""
        return cls(
            package_id=data["package_id"],
            status=BuildStatus(data["status"]),
            tier=data.get("tier"),
            artifact=data.get("artifact"),
            error=data.get("error"),
            reason=data.get("reason"),
            blocked_by=tuple(data.get("blocked_by", ())),
            started_at=datetime.fromisoformat(data["started_at"]) if data.get("started_at") else None,
            completed_at=datetime.fromisoformat(data["completed_at"]) if data.get("completed_at") else None,
        )


@dataclass
class RunReport:
    """
    Final report of a build run.

    Every scheduled package has exactly one outcome. A report only exists
    when a build order could be computed; structural failures raise instead.
    """
    outcomes: dict[str, BuildOutcome] = field(default_factory=dict)
    tiers: list[list[str]] = field(default_factory=list)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    stopped_early: bool = False

    @classmethod
    def for_tiers(cls, tiers: Iterable[Tier]) -> "RunReport":
        return cls(tiers=[sorted(t.members) for t in tiers])

    def _with_status(self, status: BuildStatus) -> list[BuildOutcome]:
        return sorted(
            (o for o in self.outcomes.values() if o.status == status),
            key=lambda o: (o.tier if o.tier is not None else -1, o.package_id),
        )

    @property
    def succeeded(self) -> list[BuildOutcome]:
        return self._with_status(BuildStatus.SUCCEEDED)

    @property
    def failed(self) -> list[BuildOutcome]:
        return self._with_status(BuildStatus.FAILED)

    @property
    def skipped(self) -> list[BuildOutcome]:
        return self._with_status(BuildStatus.SKIPPED)

    @property
    def counts(self) -> dict[str, int]:
        return {
            "total": len(self.outcomes),
            "succeeded": len(self.succeeded),
            "failed": len(self.failed),
            "skipped": len(self.skipped),
        }

    @property
    def success(self) -> bool:
        return not self.failed and not self.skipped

    @property
    def artifacts(self) -> list[str]:
        return [o.artifact for o in self.succeeded if o.artifact]

    @property
    def duration_seconds(self) -> float:
        if self.started_at and self.completed_at:
            return (self.completed_at - self.started_at).total_seconds()
        return 0.0

    def get(self, package_id: str) -> Optional[BuildOutcome]:
        return self.outcomes.get(package_id)

    def status_of(self, package_id: str) -> Optional[BuildStatus]:
        outcome = self.outcomes.get(package_id)
        return outcome.status if outcome else None

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "success": self.success,
            "counts": self.counts,
            "tiers": self.tiers,
            "outcomes": {
                pkg: outcome.to_dict() for pkg, outcome in sorted(self.outcomes.items())
            },
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "duration_seconds": self.duration_seconds,
        }
        if self.stopped_early:
            result["stopped_early"] = True
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "RunReport":
        return cls(
            outcomes={
                pkg: BuildOutcome.from_dict(o) for pkg, o in data.get("outcomes", {}).items()
            },
            tiers=[list(t) for t in data.get("tiers", [])],
            started_at=datetime.fromisoformat(data["started_at"]) if data.get("started_at") else None,
            completed_at=datetime.fromisoformat(data["completed_at"]) if data.get("completed_at") else None,
            stopped_early=data.get("stopped_early", False),
        )
