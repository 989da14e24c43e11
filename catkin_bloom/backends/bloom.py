"""
Bloom backend - builds ROS packages into .deb files.

For each package:
1. `bloom-generate rosdebian` writes a debian/ directory into a scratch
   build directory
2. debian/rules is patched so the build points at the package sources
3. `fakeroot debian/rules binary` produces the .deb files next to the
   build directory
4. dpkg-scanpackages lists the produced files, which are copied into the
   repository

publish() installs an artifact with `dpkg -i` so packages of later tiers
can build against it.
"""

import logging
import shutil
import tempfile
import threading
from pathlib import Path
from typing import Mapping, Optional

from catkin_bloom.errors import BuildError, PublishError
from catkin_bloom.repository import PackageRepository, debian_name, parse_scanpackages_filenames
from catkin_bloom.utils import run_command

from .base import BackendAdapter

logger = logging.getLogger(__name__)

BUILD_TESTING_ARG = "$(BUILD_TESTING_ARG)"


class BloomBackend(BackendAdapter):
    """
    BackendAdapter driving bloom-generate and debian/rules.

    Builds may run concurrently; each one works in its own temporary
    directory. Installs are serialised because dpkg holds a global lock.
    """

    name = "bloom"

    def __init__(
        self,
        package_dirs: Mapping[str, Path],
        repository: PackageRepository,
        os_name: str = "ubuntu",
        os_version: str = "bionic",
        ros_distro: str = "melodic",
    ):
        """
        Args:
            package_dirs: Source directory of every buildable package
            repository: Repository that receives the .deb files
            os_name: Target OS for bloom (e.g. "ubuntu")
            os_version: Target OS release (e.g. "bionic")
            ros_distro: ROS distribution (e.g. "melodic")
        """
        self.package_dirs = {pkg: Path(path) for pkg, path in package_dirs.items()}
        self.repository = repository
        self.os_name = os_name
        self.os_version = os_version
        self.ros_distro = ros_distro
        self._dpkg_lock = threading.Lock()

    def build(self, package_id: str) -> str:
        source_dir = self.package_dirs.get(package_id)
        if source_dir is None:
            raise BuildError(package_id, f"No source directory known for {package_id}")
        source_dir = source_dir.resolve()

        with tempfile.TemporaryDirectory(prefix=f"catkin-bloom-{package_id}-") as tmp:
            build_root = Path(tmp)
            build_dir = build_root / "build"
            build_dir.mkdir()

            self._generate(package_id, source_dir, build_dir)
            self._patch_rules(package_id, source_dir, build_dir / "debian" / "rules")
            self._run_rules(package_id, build_dir)
            debs = self._collect(package_id, build_root)

        return str(self._primary_artifact(package_id, debs))

    def publish(self, artifact: str) -> None:
        with self._dpkg_lock:
            result = run_command(["dpkg", "-i", artifact])
        if result.returncode != 0:
            raise PublishError(
                artifact,
                f"dpkg -i {artifact} failed with exit code {result.returncode}: {result.stderr.strip()}",
            )
        logger.debug(f"Installed {artifact}")

    def _generate(self, package_id: str, source_dir: Path, build_dir: Path) -> None:
        """Generate the debian/ directory for the package."""
        result = run_command(
            [
                "bloom-generate", "rosdebian",
                "--os-name", self.os_name,
                "--os-version", self.os_version,
                "--ros-distro", self.ros_distro,
                str(source_dir),
            ],
            cwd=build_dir,
        )
        if result.returncode != 0:
            logger.error(f"{package_id}: stdout:\n{result.stdout}\n\nstderr:\n{result.stderr}")
            raise BuildError(package_id, f"bloom-generate failed for {package_id}")

    def _patch_rules(self, package_id: str, source_dir: Path, rules_path: Path) -> None:
        """
        Point debian/rules at the package sources.

        bloom expects to run inside the package directory; the build runs in
        a scratch directory instead, so the source path is passed to the
        configure step ahead of the testing argument.
        """
        if not rules_path.exists():
            raise BuildError(package_id, f"bloom-generate did not produce {rules_path}")
        rules = rules_path.read_text()
        rules_path.write_text(rules.replace(BUILD_TESTING_ARG, f"{source_dir} {BUILD_TESTING_ARG}"))

    def _run_rules(self, package_id: str, build_dir: Path) -> None:
        result = run_command(["fakeroot", "debian/rules", "binary"], cwd=build_dir)
        if result.returncode != 0:
            logger.error(f"{package_id}: stdout:\n{result.stdout}\n\nstderr:\n{result.stderr}")
            raise BuildError(package_id, f"debian/rules binary failed for {package_id}")

    def _collect(self, package_id: str, build_root: Path) -> list[Path]:
        """Copy every produced .deb into the repository."""
        result = run_command(["dpkg-scanpackages", "-m", "."], cwd=build_root)
        if result.returncode != 0:
            raise BuildError(package_id, f"dpkg-scanpackages failed: {result.stderr.strip()}")

        debs = []
        for filename in parse_scanpackages_filenames(result.stdout):
            origin = build_root / filename
            target = self.repository.root / filename
            target.parent.mkdir(parents=True, exist_ok=True)
            shutil.copy2(origin, target)
            logger.debug(f"Copied {origin.name} to {target}")
            debs.append(target)

        if not debs:
            raise BuildError(package_id, f"No .deb files produced for {package_id}")
        return debs

    def _primary_artifact(self, package_id: str, debs: list[Path]) -> Path:
        """Pick the package's own .deb over e.g. -dbgsym companions."""
        prefix = f"{debian_name(package_id, self.ros_distro)}_"
        for deb in debs:
            if deb.name.startswith(prefix):
                return deb
        return debs[0]

    def __repr__(self) -> str:
        return (
            f"BloomBackend(os={self.os_name}:{self.os_version}, "
            f"ros_distro={self.ros_distro}, packages={len(self.package_dirs)})"
        )
