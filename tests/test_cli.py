import json
from unittest.mock import patch

import pytest
import yaml
from click.testing import CliRunner

from catkin_bloom import __version__
from catkin_bloom.cli import main
from catkin_bloom.errors import CommandError
from catkin_bloom.schemas import BuildOutcome, RunReport


@pytest.fixture
def runner():
    return CliRunner()


def _failed_report():
    report = RunReport(tiers=[["A"], ["D"]])
    report.outcomes = {
        "A": BuildOutcome.failed("A", RuntimeError("bloom-generate failed for A"), tier=0),
        "D": BuildOutcome.skipped("D", "dependency did not build: A", ["A"], tier=1),
    }
    return report


class TestVersion:
    def test_version(self, runner):
        result = runner.invoke(main, ["--version"])
        assert result.exit_code == 0
        assert __version__ in result.output


class TestPlanCommand:
    def test_plan_prints_tiers(self, runner, workspace):
        result = runner.invoke(main, ["plan", str(workspace)])
        assert result.exit_code == 0
        assert "Tier 0 (3): A, B, C" in result.output
        assert "Tier 1 (4): D, E, F, G" in result.output
        assert "Tier 2 (1): H" in result.output
        assert "8 packages in 3 tiers" in result.output

    def test_plan_with_ignore(self, runner, workspace):
        result = runner.invoke(main, ["plan", "--ignore-pkgs", "H,G", str(workspace)])
        assert result.exit_code == 0
        assert "6 packages in 2 tiers" in result.output

    def test_plan_cycle_exits_2(self, runner, workspace, package_writer):
        package_writer(workspace, "x", ["y"])
        package_writer(workspace, "y", ["x"])
        result = runner.invoke(main, ["plan", str(workspace)])
        assert result.exit_code == 2
        assert "Could not compute a build order" in result.output
        assert "x -> y -> x" in result.output

    def test_plan_missing_source(self, runner, tmp_path):
        result = runner.invoke(main, ["plan", str(tmp_path / "missing")])
        assert result.exit_code == 2


class TestBuildCommand:
    def test_dry_run(self, runner, workspace):
        result = runner.invoke(main, ["build", "--dry-run", "-j", "4", str(workspace)])
        assert result.exit_code == 0
        assert "Built 8 packages" in result.output

    def test_requires_repo_path(self, runner, workspace):
        result = runner.invoke(main, ["build", str(workspace)])
        assert result.exit_code == 2
        assert "repo_path is required" in result.output

    def test_jobs_must_be_positive(self, runner, workspace):
        result = runner.invoke(main, ["build", "--dry-run", "-j", "0", str(workspace)])
        assert result.exit_code == 2

    def test_duplicate_exits_2(self, runner, workspace, package_writer, tmp_path):
        package_writer(workspace, "A", subdir="copy_of_a")
        result = runner.invoke(main, ["build", "-r", str(tmp_path / "repo"), str(workspace)])
        assert result.exit_code == 2
        assert "Duplicate package 'A'" in result.output
        assert not (tmp_path / "repo").exists()

    def test_partial_failure_exits_1(self, runner, workspace, tmp_path):
        with patch("catkin_bloom.pipeline.BuildPipeline.run", return_value=_failed_report()):
            result = runner.invoke(main, ["build", "-r", str(tmp_path / "repo"), str(workspace)])
        assert result.exit_code == 1
        assert "1 packages failed" in result.output
        assert "Failed:" in result.output
        assert "A (tier 0): bloom-generate failed for A" in result.output
        assert "D (tier 1): dependency did not build: A" in result.output

    def test_setup_failure_exits_2(self, runner, workspace, tmp_path):
        error = CommandError(["rosdep", "install"], 1)
        with patch("catkin_bloom.pipeline.BuildPipeline.run", side_effect=error):
            result = runner.invoke(main, ["build", "-r", str(tmp_path / "repo"), str(workspace)])
        assert result.exit_code == 2
        assert "Build aborted" in result.output

    def test_flags_reach_config(self, runner, workspace, tmp_path):
        captured = {}

        def fake_run(self, dry_run=False):
            captured["config"] = self.config
            return RunReport()

        with patch("catkin_bloom.pipeline.BuildPipeline.run", fake_run):
            result = runner.invoke(main, [
                "build", "-r", str(tmp_path / "repo"), "-j", "3",
                "--os-version", "focal", "--ros-distro", "noetic",
                "--only-check", "A,B", "-e", "/srv/extra",
                "-D", "custom=libcustom-dev", "-n", "--stop-on-failure",
                str(workspace),
            ])

        assert result.exit_code == 0
        config = captured["config"]
        assert config.jobs == 3
        assert config.os_version == "focal"
        assert config.ros_distro == "noetic"
        assert config.only == ["A", "B"]
        assert config.extra_repos == ["/srv/extra"]
        assert config.rosdep_defs == {"custom": "libcustom-dev"}
        assert config.install_deps is False
        assert config.stop_on_failure is True

    def test_config_file_values_used(self, runner, workspace, tmp_path):
        config_path = tmp_path / "custom.yaml"
        config_path.write_text(yaml.dump({"jobs": 6, "ros_distro": "noetic"}))
        captured = {}

        def fake_run(self, dry_run=False):
            captured["config"] = self.config
            return RunReport()

        with patch("catkin_bloom.pipeline.BuildPipeline.run", fake_run):
            result = runner.invoke(main, [
                "build", "--dry-run", "--config", str(config_path), str(workspace),
            ])

        assert result.exit_code == 0
        assert captured["config"].jobs == 6
        assert captured["config"].ros_distro == "noetic"


class TestStatusCommand:
    def test_no_runs(self, runner):
        result = runner.invoke(main, ["status"])
        assert result.exit_code == 0
        assert "No previous build runs found" in result.output

    def test_last_run(self, runner, isolated_home):
        isolated_home.mkdir(parents=True)
        (isolated_home / "last_run.json").write_text(json.dumps(_failed_report().to_dict()))

        result = runner.invoke(main, ["status"])
        assert result.exit_code == 0
        assert "Status: FAILED" in result.output
        assert "Tiers: 2" in result.output


class TestInitCommand:
    def test_init_creates_config(self, runner, isolated_home):
        result = runner.invoke(main, ["init"])
        assert result.exit_code == 0
        assert "Initialized catkin-bloom config" in result.output

        cfg = yaml.safe_load((isolated_home / "config.yaml").read_text())
        assert cfg["ros_distro"] == "melodic"
        assert cfg["jobs"] == 1

    def test_init_does_not_overwrite_without_force(self, runner, isolated_home):
        isolated_home.mkdir(parents=True)
        (isolated_home / "config.yaml").write_text("jobs: 4\n")

        result = runner.invoke(main, ["init"])
        assert result.exit_code == 1
        assert "Config already exists" in result.output
        assert (isolated_home / "config.yaml").read_text() == "jobs: 4\n"

    def test_init_force_overwrites(self, runner, isolated_home):
        isolated_home.mkdir(parents=True)
        (isolated_home / "config.yaml").write_text("jobs: 4\n")

        result = runner.invoke(main, ["init", "--force"])
        assert result.exit_code == 0
        assert yaml.safe_load((isolated_home / "config.yaml").read_text())["jobs"] == 1
