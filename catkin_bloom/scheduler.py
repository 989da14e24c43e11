"""
Tier scheduler - layered topological sort of the dependency graph.

Tier 0 holds every package without in-workspace dependencies. Each later
tier holds every remaining package whose dependencies have all been placed
in earlier tiers. A package therefore lands in the earliest tier its
dependencies allow, which keeps each tier as wide as possible.
"""

import logging

from .errors import UnschedulableError
from .graph import DependencyGraph
from .schemas import Tier

logger = logging.getLogger(__name__)


def schedule(graph: DependencyGraph) -> list[Tier]:
    """
    Partition the graph into an ordered list of tiers.

    Args:
        graph: Validated dependency graph

    Returns:
        Tiers in build order

    Raises:
        UnschedulableError: If a pass places no package while some remain
            (only possible if the graph was not validated)
    """
    # Number of dependencies not yet placed in a tier
    pending = {pkg: len(graph.dependencies(pkg)) for pkg in graph}
    ready = {pkg for pkg, count in pending.items() if count == 0}
    tiers: list[Tier] = []

    while pending:
        if not ready:
            raise UnschedulableError(pending)

        members = frozenset(ready)
        tiers.append(Tier(
            index=len(tiers),
            members=members,
            dependencies={pkg: graph.dependencies(pkg) for pkg in members},
        ))
        logger.debug(f"Tier {len(tiers) - 1}: {sorted(members)}")

        next_ready: set[str] = set()
        for pkg in members:
            del pending[pkg]
        for pkg in members:
            for user in graph.dependents(pkg):
                pending[user] -= 1
                if pending[user] == 0:
                    next_ready.add(user)
        ready = next_ready

    logger.info(
        f"Scheduled {len(graph)} packages into {len(tiers)} tiers",
        extra={"event": "schedule_built"},
    )
    return tiers


def tier_index(tiers: list[Tier]) -> dict[str, int]:
    """Map each scheduled package to the index of its tier."""
    return {pkg: tier.index for tier in tiers for pkg in tier.members}


def describe(tiers: list[Tier]) -> list[str]:
    """One line per tier, members sorted, for console output."""
    return [
        f"Tier {tier.index} ({len(tier)}): {', '.join(sorted(tier.members))}"
        for tier in tiers
    ]
