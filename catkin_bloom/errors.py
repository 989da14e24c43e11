"""
Error classes for catkin_bloom.

Two families of errors, handled at different boundaries:
- StructuralError: the workspace cannot be ordered at all (duplicate package
  names, dependency cycles). Raised before any build starts; the run ends
  without a report.
- BackendError: a single package failed to build or publish. The
  orchestrator catches these at the package boundary, records a FAILED
  outcome and skips the package's dependents. They never abort a run.
"""

from typing import Iterable, Optional, Sequence


class CatkinBloomError(Exception):
    """Base exception for catkin_bloom."""
    pass


class ConfigError(CatkinBloomError):
    """Configuration validation error."""
    pass


class ManifestError(CatkinBloomError):
    """A package.xml could not be read or is missing required fields."""
    pass


class CommandError(CatkinBloomError):
    """An external command exited with a non-zero status."""

    def __init__(
        self,
        cmd: Sequence[str],
        returncode: int,
        stdout: str = "",
        stderr: str = "",
    ):
        self.cmd = list(cmd)
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr
        super().__init__(
            f"Command '{' '.join(self.cmd)}' failed with exit code {returncode}"
        )


class StructuralError(CatkinBloomError):
    """No safe build order exists for the workspace."""
    pass


class DuplicatePackageError(StructuralError):
    """Two package records share the same id."""

    def __init__(self, package_id: str, paths: Iterable[Optional[str]] = ()):
        self.package_id = package_id
        self.paths = [p for p in paths if p]
        message = f"Duplicate package '{package_id}'"
        if self.paths:
            message += f" (found in {', '.join(self.paths)})"
        super().__init__(message)


class CycleError(StructuralError):
    """
    The dependency graph contains a cycle.

    `cycle` is the path from the re-encountered package back to itself,
    e.g. ["x", "y", "x"].
    """

    def __init__(self, cycle: Sequence[str]):
        self.cycle = list(cycle)
        super().__init__(f"Dependency cycle detected: {' -> '.join(self.cycle)}")


class UnschedulableError(StructuralError):
    """
    Packages remained unassigned after tiering.

    Unreachable for graphs that passed the cycle check; seeing this means
    the scheduler itself is broken, not the workspace.
    """

    def __init__(self, remaining: Iterable[str]):
        self.remaining = sorted(remaining)
        super().__init__(
            f"Scheduler could not place packages: {', '.join(self.remaining)}"
        )


class BackendError(CatkinBloomError):
    """Base class for per-package backend failures."""

    def __init__(self, package_id: Optional[str], message: str):
        self.package_id = package_id
        super().__init__(message)


class BuildError(BackendError):
    """The packaging toolchain failed to build a package."""
    pass


class PublishError(BackendError):
    """
    A built artifact could not be made visible to later builds.

    publish() only sees the artifact path, so `artifact` identifies the
    failure; the orchestrator records it under the owning package.
    """

    def __init__(self, artifact: str, message: str, package_id: Optional[str] = None):
        self.artifact = artifact
        super().__init__(package_id, message)
