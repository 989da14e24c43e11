"""Tests for the catkin_bloom error hierarchy."""

import pytest

from catkin_bloom.errors import (
    BackendError,
    BuildError,
    CatkinBloomError,
    CommandError,
    ConfigError,
    CycleError,
    DuplicatePackageError,
    ManifestError,
    PublishError,
    StructuralError,
    UnschedulableError,
)


class TestHierarchy:
    @pytest.mark.parametrize("exc_type", [
        ConfigError, ManifestError, StructuralError, DuplicatePackageError,
        CycleError, UnschedulableError, BackendError, BuildError, PublishError,
        CommandError,
    ])
    def test_all_derive_from_base(self, exc_type):
        assert issubclass(exc_type, CatkinBloomError)

    def test_structural_errors_are_not_backend_errors(self):
        """Structural failures abort the run, backend failures are per package."""
        for exc_type in (DuplicatePackageError, CycleError, UnschedulableError):
            assert issubclass(exc_type, StructuralError)
            assert not issubclass(exc_type, BackendError)
        assert not issubclass(BuildError, StructuralError)


class TestMessages:
    def test_duplicate_package_lists_paths(self):
        err = DuplicatePackageError("nav_core", ["/ws/a", None, "/ws/b"])
        assert err.package_id == "nav_core"
        assert err.paths == ["/ws/a", "/ws/b"]
        assert str(err) == "Duplicate package 'nav_core' (found in /ws/a, /ws/b)"

    def test_duplicate_package_without_paths(self):
        assert str(DuplicatePackageError("x")) == "Duplicate package 'x'"

    def test_cycle_error_path(self):
        err = CycleError(["x", "y", "x"])
        assert err.cycle == ["x", "y", "x"]
        assert str(err) == "Dependency cycle detected: x -> y -> x"

    def test_unschedulable_sorts_remaining(self):
        err = UnschedulableError({"b", "a"})
        assert err.remaining == ["a", "b"]
        assert "a, b" in str(err)

    def test_command_error_keeps_output(self):
        err = CommandError(["apt", "install", "-y", "foo"], 100, "out", "err")
        assert err.cmd == ["apt", "install", "-y", "foo"]
        assert err.returncode == 100
        assert err.stdout == "out"
        assert err.stderr == "err"
        assert str(err) == "Command 'apt install -y foo' failed with exit code 100"

    def test_publish_error_names_artifact(self):
        err = PublishError("/repo/ros-melodic-a_1.0.0_amd64.deb", "dpkg -i failed")
        assert err.artifact == "/repo/ros-melodic-a_1.0.0_amd64.deb"
        assert err.package_id is None
        assert PublishError("/repo/a.deb", "x", package_id="a").package_id == "a"

    def test_backend_error_carries_package(self):
        err = BuildError("pkg", "bloom-generate failed for pkg")
        assert err.package_id == "pkg"
        assert str(err) == "bloom-generate failed for pkg"
