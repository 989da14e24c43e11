import os
from pathlib import Path

import pytest
import yaml

from catkin_bloom.config import (
    BloomConfig,
    get_bloom_home,
    load_config,
    parse_rosdep_defs,
    split_list,
)
from catkin_bloom.errors import ConfigError


def test_get_bloom_home_default(monkeypatch):
    monkeypatch.delenv("CATKIN_BLOOM_HOME", raising=False)
    assert get_bloom_home() == Path("~/.config/catkin-bloom").expanduser()


def test_get_bloom_home_env_var(monkeypatch, tmp_path):
    custom_home = tmp_path / "custom_home"
    monkeypatch.setenv("CATKIN_BLOOM_HOME", str(custom_home))
    assert get_bloom_home() == custom_home


def test_load_config_missing_file(monkeypatch, tmp_path):
    monkeypatch.setenv("CATKIN_BLOOM_HOME", str(tmp_path))
    with pytest.raises(FileNotFoundError, match="catkin-bloom config.yaml not found"):
        load_config()


def test_load_config_valid(monkeypatch, tmp_path):
    monkeypatch.setenv("CATKIN_BLOOM_HOME", str(tmp_path))
    config_data = {
        "os_version": "focal",
        "ros_distro": "noetic",
        "repo_path": "/repo",
        "jobs": 8,
        "ignore_pkgs": ["sim_pkg"],
        "rosdep_defs": {"custom_lib": "libcustom-dev"},
    }
    (tmp_path / "config.yaml").write_text(yaml.dump(config_data))

    cfg = load_config()
    assert isinstance(cfg, BloomConfig)
    assert cfg.os_name == "ubuntu"
    assert cfg.os_version == "focal"
    assert cfg.ros_distro == "noetic"
    assert cfg.jobs == 8
    assert cfg.ignore_pkgs == ["sim_pkg"]
    assert cfg.rosdep_defs == {"custom_lib": "libcustom-dev"}


def test_load_config_explicit_path(tmp_path):
    config_path = tmp_path / "custom.yaml"
    config_path.write_text("repo_path: /srv/repo\n")
    assert load_config(config_path).repo_path == "/srv/repo"


def test_load_config_empty_file(monkeypatch, tmp_path):
    monkeypatch.setenv("CATKIN_BLOOM_HOME", str(tmp_path))
    (tmp_path / "config.yaml").write_text("")
    assert load_config().to_dict() == BloomConfig().to_dict()


def test_load_config_unknown_key(monkeypatch, tmp_path):
    monkeypatch.setenv("CATKIN_BLOOM_HOME", str(tmp_path))
    (tmp_path / "config.yaml").write_text("repo_path: /repo\nparallel: 4\n")
    with pytest.raises(ConfigError, match="Unknown configuration keys: parallel"):
        load_config()


def test_load_config_invalid_yaml(monkeypatch, tmp_path):
    monkeypatch.setenv("CATKIN_BLOOM_HOME", str(tmp_path))
    (tmp_path / "config.yaml").write_text("jobs: [1, 2\n")
    with pytest.raises(ConfigError, match="Invalid YAML syntax"):
        load_config()


def test_load_config_not_a_mapping(monkeypatch, tmp_path):
    monkeypatch.setenv("CATKIN_BLOOM_HOME", str(tmp_path))
    (tmp_path / "config.yaml").write_text("- one\n- two\n")
    with pytest.raises(ConfigError, match="must contain a mapping"):
        load_config()


def test_load_config_with_env_file(monkeypatch, tmp_path):
    monkeypatch.setenv("CATKIN_BLOOM_HOME", str(tmp_path))
    env_file = tmp_path / ".env.test"
    env_file.write_text("CATKIN_BLOOM_TEST_VAR=loaded_from_env")
    (tmp_path / "config.yaml").write_text(yaml.dump({"env_file": str(env_file)}))

    # Pre-clean env var
    monkeypatch.delenv("CATKIN_BLOOM_TEST_VAR", raising=False)

    load_config()
    assert os.environ.get("CATKIN_BLOOM_TEST_VAR") == "loaded_from_env"
    monkeypatch.delenv("CATKIN_BLOOM_TEST_VAR")


class TestValidate:
    def test_defaults_need_repo_path(self):
        with pytest.raises(ConfigError, match="repo_path is required"):
            BloomConfig().validate()

    def test_repo_path_optional_for_dry_runs(self):
        BloomConfig().validate(require_repo=False)

    @pytest.mark.parametrize("jobs", [0, -2, "4", True])
    def test_invalid_jobs(self, jobs):
        with pytest.raises(ConfigError, match="jobs must be a positive integer"):
            BloomConfig(repo_path="/repo", jobs=jobs).validate()

    def test_invalid_log_format(self):
        with pytest.raises(ConfigError, match="log_format"):
            BloomConfig(repo_path="/repo", log_format="xml").validate()

    def test_empty_distro(self):
        with pytest.raises(ConfigError, match="ros_distro must not be empty"):
            BloomConfig(repo_path="/repo", ros_distro="").validate()


class TestHelpers:
    def test_merge_skips_none(self):
        base = BloomConfig(repo_path="/repo", jobs=4)
        merged = base.merge(jobs=None, ros_distro="noetic")
        assert merged.jobs == 4
        assert merged.ros_distro == "noetic"
        assert base.ros_distro == "melodic"

    def test_state_dir_defaults_to_home(self, isolated_home):
        assert BloomConfig().get_state_dir() == isolated_home
        assert BloomConfig(state_dir="/var/lib/bloom").get_state_dir() == Path("/var/lib/bloom")

    def test_log_file_path(self):
        assert BloomConfig().get_log_file_path() is None
        assert BloomConfig(log_file="/tmp/b.log").get_log_file_path() == Path("/tmp/b.log")

    def test_parse_rosdep_defs(self):
        assert parse_rosdep_defs(["a=liba-dev", " b = libb ", "junk", "=x"]) == {
            "a": "liba-dev",
            "b": "libb",
        }

    def test_split_list(self):
        assert split_list("a, b,,c ") == ["a", "b", "c"]
        assert split_list("") == []
        assert split_list(None) is None

    def test_repr(self):
        assert repr(BloomConfig(repo_path="/repo")) == (
            "BloomConfig(os=ubuntu:bionic, ros_distro=melodic, repo_path=/repo, jobs=1)"
        )
