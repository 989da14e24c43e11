"""
Configuration management for catkin_bloom.

Settings come from an optional YAML file in the catkin-bloom home directory
($CATKIN_BLOOM_HOME, default ~/.config/catkin-bloom/config.yaml). Command
line flags override file values.

Example config.yaml:
    os_name: ubuntu
    os_version: bionic
    ros_distro: melodic
    repo_path: /repo
    jobs: 8
    ignore_pkgs: [my_sim_pkg]
    rosdep_defs:
      custom_lib: libcustom-dev
    log_file: ~/.config/catkin-bloom/logs/build.log
"""

import os
from dataclasses import asdict, dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Iterable, Optional

import yaml
from dotenv import load_dotenv

from .errors import ConfigError

LOG_FORMATS = ("pretty", "structured")


def get_bloom_home() -> Path:
    """Directory holding config.yaml and run state."""
    home = os.environ.get("CATKIN_BLOOM_HOME")
    if home:
        return Path(home).expanduser()
    return Path("~/.config/catkin-bloom").expanduser()


@dataclass
class BloomConfig:
    """Settings for a catkin-bloom run."""

    os_name: str = "ubuntu"
    os_version: str = "bionic"
    ros_distro: str = "melodic"
    repo_path: Optional[str] = None
    src: str = "."
    extra_repos: list[str] = field(default_factory=list)
    ignore_pkgs: list[str] = field(default_factory=list)
    only: Optional[list[str]] = None
    rosdep_defs: dict[str, str] = field(default_factory=dict)
    jobs: int = 1
    install_deps: bool = True
    stop_on_failure: bool = False
    rosdep_sources_dir: str = "/etc/ros/rosdep/sources.list.d"
    apt_sources_dir: str = "/etc/apt/sources.list.d"
    log_level: str = "INFO"
    log_format: str = "pretty"
    log_file: Optional[str] = None
    state_dir: Optional[str] = None
    env_file: Optional[str] = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "BloomConfig":
        """
        Build a config from a parsed YAML mapping.

        Raises:
            ConfigError: On unknown keys
        """
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ConfigError(f"Unknown configuration keys: {', '.join(unknown)}")
        return cls(**data)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    def merge(self, **overrides: Any) -> "BloomConfig":
        """Return a copy with every non-None override applied."""
        return replace(self, **{k: v for k, v in overrides.items() if v is not None})

    def get_state_dir(self) -> Path:
        if self.state_dir:
            return Path(self.state_dir).expanduser()
        return get_bloom_home()

    def get_log_file_path(self) -> Optional[Path]:
        if self.log_file:
            return Path(self.log_file).expanduser()
        return None

    def validate(self, require_repo: bool = True) -> None:
        """
        Validate settings before a run.

        Raises:
            ConfigError: If a setting is invalid
        """
        if isinstance(self.jobs, bool) or not isinstance(self.jobs, int) or self.jobs < 1:
            raise ConfigError(f"jobs must be a positive integer, got {self.jobs!r}")
        if require_repo and not self.repo_path:
            raise ConfigError("repo_path is required (use --repo-path or set it in config.yaml)")
        if self.log_format not in LOG_FORMATS:
            raise ConfigError(
                f"log_format must be one of {', '.join(LOG_FORMATS)}, got {self.log_format!r}"
            )
        for name in ("os_name", "os_version", "ros_distro"):
            if not getattr(self, name):
                raise ConfigError(f"{name} must not be empty")

    def __repr__(self) -> str:
        return (
            f"BloomConfig(os={self.os_name}:{self.os_version}, ros_distro={self.ros_distro}, "
            f"repo_path={self.repo_path}, jobs={self.jobs})"
        )


def parse_rosdep_defs(items: Iterable[str]) -> dict[str, str]:
    """
    Parse KEY=DEBIAN_PACKAGE pairs.

    Items without "=" are ignored.
    """
    defs = {}
    for item in items:
        key, sep, value = item.partition("=")
        if sep and key.strip():
            defs[key.strip()] = value.strip()
    return defs


def split_list(value: Optional[str]) -> Optional[list[str]]:
    """Split a comma separated CLI value, None stays None."""
    if value is None:
        return None
    return [v.strip() for v in value.split(",") if v.strip()]


def load_config(config_path: Optional[Path] = None) -> BloomConfig:
    """
    Load configuration from YAML.

    Args:
        config_path: Path to config file. Defaults to <home>/config.yaml

    Returns:
        BloomConfig instance

    Raises:
        FileNotFoundError: If the config file does not exist
        ConfigError: If the file is not a valid YAML mapping
    """
    if config_path is None:
        config_path = get_bloom_home() / "config.yaml"
    config_path = Path(config_path).expanduser()

    if not config_path.exists():
        raise FileNotFoundError(f"catkin-bloom config.yaml not found at {config_path}")

    try:
        with open(config_path, "r") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML syntax in {config_path}: {e}")

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigError(f"Configuration file {config_path} must contain a mapping")

    config = BloomConfig.from_dict(data)

    if config.env_file:
        env_path = Path(config.env_file).expanduser()
        if env_path.exists():
            load_dotenv(env_path)

    return config
