"""
Backend adapter contract.

The orchestrator only needs two operations from a packaging toolchain:
- build(package_id): produce an installable artifact, return its path
- publish(artifact): make the artifact resolvable by later builds

Failures are exceptions, not return values. Backends raise BuildError or
PublishError; the orchestrator catches at the package boundary and
records the failure in the run report.
"""

from abc import ABC, abstractmethod


class BackendAdapter(ABC):
    """
    Abstract base class for packaging backends.

    Implementations must be safe to call from several worker threads at
    once: build() runs concurrently for all eligible members of a tier.
    """

    name = "abstract"

    @abstractmethod
    def build(self, package_id: str) -> str:
        """
        Build a single package.

        Args:
            package_id: Workspace package to build

        Returns:
            Path of the produced artifact

        Raises:
            BuildError: If the package could not be built
        """
        pass

    @abstractmethod
    def publish(self, artifact: str) -> None:
        """
        Make a built artifact visible to subsequent builds.

        Args:
            artifact: Path returned by build()

        Raises:
            PublishError: If the artifact could not be registered
        """
        pass
