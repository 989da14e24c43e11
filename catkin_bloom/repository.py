"""
Local Debian repository and rosdep wiring.

Built packages are collected in a flat apt repository (repo_path). So that
later builds (and later users) can resolve workspace packages as system
dependencies, the repository is registered twice:
- with rosdep, through a generated package.yaml mapping each ROS package
  name to its Debian package name
- with apt, through a trusted `deb file://...` source

Layout of repo_path after a run:
    package.yaml      rosdep definitions for every workspace package
    Packages          dpkg-scanpackages index
    *.deb             built artifacts
"""

import logging
from pathlib import Path
from typing import Iterable, Mapping, Optional, Sequence

import yaml

from .errors import CommandError
from .utils import check_command, run_command

logger = logging.getLogger(__name__)

ROSDEP_SOURCES_DIR = Path("/etc/ros/rosdep/sources.list.d")
APT_SOURCES_DIR = Path("/etc/apt/sources.list.d")
SOURCE_PREFIX = "99-catkin-bloom"

NONINTERACTIVE = {"DEBIAN_FRONTEND": "noninteractive"}


def debian_name(package_id: str, ros_distro: str) -> str:
    """
    Debian package name bloom generates for a ROS package.

    Debian names are lowercase.

    >>> debian_name("my_pkg", "melodic")
    'ros-melodic-my-pkg'
    >>> debian_name("PCL_Tools", "melodic")
    'ros-melodic-pcl-tools'
    """
    return f"ros-{ros_distro}-{package_id.replace('_', '-')}".lower()


def render_rosdep_yaml(
    package_ids: Iterable[str],
    os_name: str,
    ros_distro: str,
    extra_defs: Optional[Mapping[str, str]] = None,
) -> str:
    """
    Render rosdep definitions for workspace packages plus extra keys.

    Args:
        package_ids: Workspace packages, in the order they should appear
        os_name: rosdep OS key (e.g. "ubuntu")
        ros_distro: ROS distribution used for Debian names
        extra_defs: Additional rosdep key -> Debian package mappings

    Returns:
        YAML text, e.g. "my_pkg:\\n  ubuntu: [ros-melodic-my-pkg]\\n"
    """
    definitions: dict[str, dict[str, list[str]]] = {}
    for package_id in package_ids:
        definitions[package_id] = {os_name: [debian_name(package_id, ros_distro)]}
    for key, value in (extra_defs or {}).items():
        definitions[key] = {os_name: [value]}

    if not definitions:
        return ""
    return yaml.safe_dump(definitions, default_flow_style=None, sort_keys=False)


class PackageRepository:
    """
    Flat apt repository that receives built .deb files.

    Usage:
        repo = PackageRepository(Path("/repo"), os_name="ubuntu", ros_distro="melodic")
        repo.prepare()
        repo.write_rosdep_yaml(package_ids)
        repo.register_sources(extra_repos=[])
        ...
        repo.write_packages_index()
    """

    def __init__(self, root: Path, os_name: str = "ubuntu", ros_distro: str = "melodic"):
        self.root = Path(root)
        self.os_name = os_name
        self.ros_distro = ros_distro

    @property
    def rosdep_yaml(self) -> Path:
        return self.root / "package.yaml"

    @property
    def packages_index(self) -> Path:
        return self.root / "Packages"

    def prepare(self) -> None:
        """Create the repository directory if needed."""
        self.root.mkdir(parents=True, exist_ok=True)

    def write_rosdep_yaml(
        self,
        package_ids: Iterable[str],
        extra_defs: Optional[Mapping[str, str]] = None,
    ) -> Path:
        """Write package.yaml with rosdep keys for every workspace package."""
        content = render_rosdep_yaml(package_ids, self.os_name, self.ros_distro, extra_defs)
        self.rosdep_yaml.write_text(content)
        logger.info(f"Wrote rosdep definitions to {self.rosdep_yaml}", extra={"event": "rosdep_yaml_written"})
        return self.rosdep_yaml

    def register_sources(
        self,
        extra_repos: Sequence[Path] = (),
        rosdep_sources_dir: Path = ROSDEP_SOURCES_DIR,
        apt_sources_dir: Path = APT_SOURCES_DIR,
    ) -> list[Path]:
        """
        Register this repository and any extra repositories with rosdep and apt.

        Each repository gets one list file per tool, named
        99-catkin-bloom-<i>-<dirname>.list, where i is 0 for this repository.

        Returns:
            Paths of all written list files
        """
        written: list[Path] = []
        rosdep_sources_dir = Path(rosdep_sources_dir)
        apt_sources_dir = Path(apt_sources_dir)

        for i, repo in enumerate([self.root, *[Path(r) for r in extra_repos]]):
            repo_abs = repo.resolve(strict=True)
            name = repo_abs.name or "unknown"
            filename = f"{SOURCE_PREFIX}-{i}-{name}.list"

            rosdep_list = rosdep_sources_dir / filename
            rosdep_list.write_text(f"yaml file://{repo_abs}/package.yaml\n")

            apt_list = apt_sources_dir / filename
            apt_list.write_text(f"deb [trusted=yes] file://{repo_abs} /\n")

            written.extend([rosdep_list, apt_list])
            logger.debug(f"Registered repository {repo_abs} as {filename}")

        return written

    def scan(self, directory: Optional[Path] = None) -> str:
        """Run dpkg-scanpackages in a directory and return the index text."""
        result = check_command(["dpkg-scanpackages", "-m", "."], cwd=directory or self.root)
        return result.stdout

    def write_packages_index(self) -> Path:
        """Regenerate the Packages index of the repository."""
        self.packages_index.write_text(self.scan())
        logger.info(f"Wrote package index {self.packages_index}", extra={"event": "packages_index_written"})
        return self.packages_index


def parse_scanpackages_filenames(index: str) -> list[str]:
    """Extract the `Filename:` entries of a dpkg-scanpackages index."""
    filenames = []
    for line in index.splitlines():
        line = line.strip()
        if line.startswith("Filename: "):
            filenames.append(line[len("Filename: "):])
    return filenames


class SystemDependencyInstaller:
    """
    Installs the system dependencies of a workspace through rosdep and apt.

    apt-resolvable keys are installed in a single `apt install` first; rosdep
    then installs whatever is left (pip keys, custom sources).
    """

    def __init__(self, src: Path):
        self.src = Path(src)

    def update_rosdep(self) -> None:
        """Refresh rosdep's cache so it sees newly registered sources."""
        result = run_command(["rosdep", "update"])
        if result.returncode != 0:
            logger.warning(f"rosdep update exited with {result.returncode}: {result.stderr.strip()}")

    def apt_packages(self) -> list[str]:
        """Apt packages rosdep reports as missing for the workspace."""
        result = run_command(["rosdep", "check", "--from-paths", str(self.src), "--ignore-src"])
        packages = []
        for line in result.stdout.splitlines():
            if line.startswith("apt\t"):
                packages.append(line[len("apt\t"):].strip())
        return packages

    def install(self) -> None:
        """
        Install all missing system dependencies.

        Raises:
            CommandError: If apt install or rosdep install fails
        """
        packages = self.apt_packages()

        logger.info("Running apt update", extra={"event": "apt_update"})
        run_command(["apt", "update"])

        if packages:
            logger.info(
                f"Installing {len(packages)} apt packages",
                extra={"event": "apt_install", "metadata": {"packages": packages}},
            )
            check_command(["apt", "install", "-y", *packages], env=NONINTERACTIVE)

        logger.info("Running rosdep install", extra={"event": "rosdep_install"})
        try:
            check_command(
                ["rosdep", "install", "--from-paths", str(self.src), "--ignore-src", "-y"],
                env=NONINTERACTIVE,
            )
        except CommandError as e:
            logger.error(f"rosdep install failed:\n{e.stdout}\n{e.stderr}")
            raise
