"""
Tier - one layer of the build schedule.

Members of a tier never depend on each other, so they may build in any
order or all at once. Every dependency of a member lives in a lower tier.
"""

from dataclasses import dataclass, field
from typing import Any, Mapping


@dataclass(frozen=True)
class Tier:
    """
    A set of mutually independent packages at a fixed schedule position.

    Attributes:
        index: 0-based position in the schedule
        members: Package ids in this tier (a set; order is meaningless)
        dependencies: In-workspace dependency ids of each member. Carried
            along so the orchestrator can skip dependents of failed builds
            without holding on to the graph.
    """
    index: int
    members: frozenset[str]
    dependencies: Mapping[str, frozenset[str]] = field(
        default_factory=dict, compare=False, hash=False
    )

    def __post_init__(self):
        if self.index < 0:
            raise ValueError(f"Tier index must be >= 0, got {self.index}")
        if not isinstance(self.members, frozenset):
            object.__setattr__(self, "members", frozenset(self.members))

    def __len__(self) -> int:
        return len(self.members)

    def __contains__(self, package_id: object) -> bool:
        return package_id in self.members

    def dependencies_of(self, package_id: str) -> frozenset[str]:
        """In-workspace dependencies of a member (empty for roots)."""
        return frozenset(self.dependencies.get(package_id, frozenset()))

    def to_dict(self) -> dict[str, Any]:
        return {
            "index": self.index,
            "members": sorted(self.members),
        }
