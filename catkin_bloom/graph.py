"""
Dependency graph - workspace packages and their in-workspace edges.

build_graph() resolves each record's dependency ids against the other
records of the same workspace. Ids that match no record are dropped: they
name system packages that rosdep/apt are expected to provide.

The graph is validated before it is handed out:
- duplicate package ids raise DuplicatePackageError
- dependency cycles raise CycleError with the offending path
"""

import logging
from enum import Enum
from typing import Iterable, Iterator, Mapping

from .errors import CycleError, DuplicatePackageError
from .schemas import PackageRecord

logger = logging.getLogger(__name__)


class _Visit(Enum):
    UNVISITED = 0
    IN_PROGRESS = 1
    DONE = 2


class DependencyGraph:
    """
    Directed, acyclic "depends on" graph over workspace packages.

    Instances are created through build_graph(); the constructor does not
    validate. Read-only once built.
    """

    def __init__(
        self,
        packages: Mapping[str, PackageRecord],
        edges: Mapping[str, frozenset[str]],
    ):
        self._packages = dict(packages)
        self._edges = {pkg: frozenset(deps) for pkg, deps in edges.items()}

        reverse: dict[str, set[str]] = {pkg: set() for pkg in self._packages}
        for pkg, deps in self._edges.items():
            for dep in deps:
                reverse[dep].add(pkg)
        self._reverse = {pkg: frozenset(users) for pkg, users in reverse.items()}

    @property
    def packages(self) -> dict[str, PackageRecord]:
        return dict(self._packages)

    def __len__(self) -> int:
        return len(self._packages)

    def __contains__(self, package_id: object) -> bool:
        return package_id in self._packages

    def __iter__(self) -> Iterator[str]:
        return iter(sorted(self._packages))

    def record(self, package_id: str) -> PackageRecord:
        return self._packages[package_id]

    def dependencies(self, package_id: str) -> frozenset[str]:
        """In-workspace packages that `package_id` depends on."""
        return self._edges[package_id]

    def dependents(self, package_id: str) -> frozenset[str]:
        """In-workspace packages that depend directly on `package_id`."""
        return self._reverse[package_id]

    def external_dependencies(self, package_id: str) -> frozenset[str]:
        """Declared dependencies that were pruned as non-workspace."""
        return self._packages[package_id].dependencies - self._edges[package_id]

    def transitive_dependents(self, package_id: str) -> frozenset[str]:
        """Every package that depends on `package_id`, directly or not."""
        seen: set[str] = set()
        stack = list(self._reverse[package_id])
        while stack:
            pkg = stack.pop()
            if pkg in seen:
                continue
            seen.add(pkg)
            stack.extend(self._reverse[pkg] - seen)
        return frozenset(seen)

    def roots(self) -> frozenset[str]:
        """Packages without in-workspace dependencies."""
        return frozenset(pkg for pkg, deps in self._edges.items() if not deps)

    def edge_count(self) -> int:
        return sum(len(deps) for deps in self._edges.values())

    def __repr__(self) -> str:
        return f"DependencyGraph(packages={len(self)}, edges={self.edge_count()})"


def _index_records(records: Iterable[PackageRecord]) -> dict[str, PackageRecord]:
    """Key records by id, rejecting duplicates."""
    packages: dict[str, PackageRecord] = {}
    for record in records:
        existing = packages.get(record.id)
        if existing is not None:
            raise DuplicatePackageError(record.id, [existing.path, record.path])
        packages[record.id] = record
    return packages


def find_cycle(edges: Mapping[str, Iterable[str]]) -> list[str] | None:
    """
    Return one dependency cycle in `edges`, or None if the graph is acyclic.

    Iterative depth-first traversal with three node states. Reaching a node
    that is still in progress closes a cycle; the returned path runs from
    that node through the current DFS stack back to itself. Nodes and
    their successors are visited in sorted order so the result is stable.
    """
    state = {node: _Visit.UNVISITED for node in edges}

    for start in sorted(edges):
        if state[start] is not _Visit.UNVISITED:
            continue

        path: list[str] = [start]
        stack: list[Iterator[str]] = [iter(sorted(edges[start]))]
        state[start] = _Visit.IN_PROGRESS

        while stack:
            node = next(stack[-1], None)
            if node is None:
                # All successors done
                state[path.pop()] = _Visit.DONE
                stack.pop()
                continue

            if state[node] is _Visit.IN_PROGRESS:
                return path[path.index(node):] + [node]
            if state[node] is _Visit.UNVISITED:
                state[node] = _Visit.IN_PROGRESS
                path.append(node)
                stack.append(iter(sorted(edges[node])))

    return None


def build_graph(records: Iterable[PackageRecord]) -> DependencyGraph:
    """
    Build and validate the dependency graph for a workspace.

    Args:
        records: All package records of the workspace

    Returns:
        Validated, acyclic DependencyGraph

    Raises:
        DuplicatePackageError: If two records share an id
        CycleError: If in-workspace dependencies form a cycle
    """
    packages = _index_records(records)

    edges: dict[str, frozenset[str]] = {}
    for pkg, record in packages.items():
        edges[pkg] = frozenset(dep for dep in record.dependencies if dep in packages)
        pruned = record.dependencies - edges[pkg]
        if pruned:
            logger.debug(f"{pkg}: treating {len(pruned)} dependencies as external: {sorted(pruned)}")

    cycle = find_cycle(edges)
    if cycle is not None:
        raise CycleError(cycle)

    graph = DependencyGraph(packages, edges)
    logger.info(
        f"Resolved dependency graph: {len(graph)} packages, {graph.edge_count()} edges",
        extra={"event": "graph_built"},
    )
    return graph
