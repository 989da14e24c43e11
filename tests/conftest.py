import threading
import time
from typing import Iterable, Mapping, Optional

import pytest

from catkin_bloom.backends.base import BackendAdapter
from catkin_bloom.errors import BuildError, PublishError
from catkin_bloom.schemas import PackageRecord


def _make_records(deps: Mapping[str, Iterable[str]]) -> list[PackageRecord]:
    """Records from a {package: [dependencies]} mapping."""
    return [PackageRecord.create(pkg, d) for pkg, d in deps.items()]


# A, B, C are roots; G needs both B and C; H sits on top of D and G
EXAMPLE_DEPS = {
    "A": [],
    "B": [],
    "C": [],
    "D": ["A"],
    "E": ["B"],
    "F": ["C", "roscpp"],
    "G": ["B", "C"],
    "H": ["D", "G", "catkin"],
}


@pytest.fixture
def example_records() -> list[PackageRecord]:
    return _make_records(EXAMPLE_DEPS)


class FakeBackend(BackendAdapter):
    """
    Deterministic backend for orchestrator tests.

    Records the wall-clock interval of every build so tests can check
    overlap, and fails builds or publishes on request.
    """

    name = "fake"

    def __init__(
        self,
        fail: Iterable[str] = (),
        fail_publish: Iterable[str] = (),
        delay: float = 0.0,
        delays: Optional[Mapping[str, float]] = None,
    ):
        self.fail = set(fail)
        self.fail_publish = set(fail_publish)
        self.delay = delay
        self.delays = dict(delays or {})
        self.intervals: dict[str, tuple[float, float]] = {}
        self.build_order: list[str] = []
        self.published: list[str] = []
        self.published_at: dict[str, float] = {}
        self.max_in_flight = 0
        self._in_flight = 0
        self._lock = threading.Lock()

    def build(self, package_id: str) -> str:
        with self._lock:
            self.build_order.append(package_id)
            self._in_flight += 1
            self.max_in_flight = max(self.max_in_flight, self._in_flight)
        start = time.monotonic()
        try:
            time.sleep(self.delays.get(package_id, self.delay))
            if package_id in self.fail:
                raise BuildError(package_id, f"build of {package_id} failed")
            return f"/repo/{package_id}.deb"
        finally:
            end = time.monotonic()
            with self._lock:
                self._in_flight -= 1
                self.intervals[package_id] = (start, end)

    def publish(self, artifact: str) -> None:
        package_id = artifact.rsplit("/", 1)[-1].removesuffix(".deb")
        if package_id in self.fail_publish:
            raise PublishError(artifact, f"dpkg -i {artifact} failed")
        with self._lock:
            self.published.append(package_id)
            self.published_at[package_id] = time.monotonic()


@pytest.fixture
def fake_backend_cls():
    return FakeBackend


@pytest.fixture(autouse=True)
def isolated_home(monkeypatch, tmp_path):
    """Keep config and state lookups away from the real home directory."""
    home = tmp_path / "bloom-home"
    monkeypatch.setenv("CATKIN_BLOOM_HOME", str(home))
    return home


@pytest.fixture
def make_records():
    return _make_records


PACKAGE_XML = """<?xml version="1.0"?>
<package format="2">
  <name>{name}</name>
  <version>{version}</version>
  <description>The {name} package</description>
  <maintainer email="dev@example.com">dev</maintainer>
  <license>BSD</license>
  <buildtool_depend>catkin</buildtool_depend>
{depends}
</package>
"""


def write_package(root, name, depends=(), version="1.0.0", subdir=None):
    """Write <root>/<subdir or name>/package.xml and return the package directory."""
    pkg_dir = root / (subdir or name)
    pkg_dir.mkdir(parents=True, exist_ok=True)
    lines = "\n".join(f"  <depend>{dep}</depend>" for dep in depends)
    (pkg_dir / "package.xml").write_text(
        PACKAGE_XML.format(name=name, version=version, depends=lines)
    )
    return pkg_dir


@pytest.fixture
def workspace(tmp_path):
    """Source tree with the A..H example packages."""
    src = tmp_path / "src"
    for name, deps in EXAMPLE_DEPS.items():
        write_package(src, name, deps)
    return src


@pytest.fixture
def package_writer():
    return write_package
