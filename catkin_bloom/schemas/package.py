"""
PackageRecord - parsed identity of one workspace package.

Created once by the manifest loader and never mutated afterwards.
"""

from dataclasses import dataclass, field
from typing import Any, Iterable, Optional


@dataclass(frozen=True)
class PackageRecord:
    """
    A package's identity and its declared dependencies.

    Attributes:
        id: Package name, unique within a workspace
        dependencies: Ids this package needs to build. May name packages
            outside the workspace (system packages); those are not errors.
        path: Source directory of the package (None for synthetic records)
        version: Version string from the manifest, if any
    """
    id: str
    dependencies: frozenset[str] = field(default_factory=frozenset)
    path: Optional[str] = None
    version: Optional[str] = None

    def __post_init__(self):
        if not self.id:
            raise ValueError("PackageRecord id must be a non-empty string")
        # Accept any iterable from callers but store it frozen
        if not isinstance(self.dependencies, frozenset):
            object.__setattr__(self, "dependencies", frozenset(self.dependencies))

    @classmethod
    def create(
        cls,
        package_id: str,
        dependencies: Iterable[str] = (),
        path: Optional[str] = None,
        version: Optional[str] = None,
    ) -> "PackageRecord":
        """Build a record from any iterable of dependency ids."""
        return cls(
            id=package_id,
            dependencies=frozenset(d for d in dependencies if d),
            path=path,
            version=version,
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary for JSON output."""
        result: dict[str, Any] = {
            "id": self.id,
            "dependencies": sorted(self.dependencies),
        }
        if self.path is not None:
            result["path"] = self.path
        if self.version is not None:
            result["version"] = self.version
        return result
