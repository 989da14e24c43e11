"""
No-op backend for dry runs and testing.

Records which packages were built and published without running any
external tool.
"""

import threading

from .base import BackendAdapter


class NoOpBackend(BackendAdapter):
    """Returns a synthetic artifact path for every package."""

    name = "noop"

    def __init__(self, artifact_dir: str = "dry-run"):
        self.artifact_dir = artifact_dir
        self.built: list[str] = []
        self.published: list[str] = []
        self._lock = threading.Lock()

    def build(self, package_id: str) -> str:
        with self._lock:
            self.built.append(package_id)
        return f"{self.artifact_dir}/{package_id}.deb"

    def publish(self, artifact: str) -> None:
        with self._lock:
            self.published.append(artifact)
