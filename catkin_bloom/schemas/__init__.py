"""
catkin_bloom.schemas - Data passed between the build stages.

PackageRecord -> (graph) -> Tier -> (orchestrator) -> BuildOutcome -> RunReport

Lifecycle:
1. PackageRecord: parsed from package.xml, immutable
2. Tier: produced by the scheduler, read-only for the orchestrator
3. BuildOutcome: created as each package settles
4. RunReport: aggregated after the last tier settles
"""

from .package import PackageRecord
from .tier import Tier
from .outcome import (
    BuildOutcome,
    BuildStatus,
    RunReport,
)

__all__ = [
    "PackageRecord",
    "Tier",
    "BuildOutcome",
    "BuildStatus",
    "RunReport",
]
