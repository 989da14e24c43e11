"""
CLI interface for catkin-bloom.

Provides commands: build, plan, status, init.

Exit codes of `build`:
    0  every package built
    1  a build order was computed but some packages failed or were skipped
    2  no build order could be computed (duplicate packages, cycles) or
       the environment could not be prepared
"""

from pathlib import Path
from typing import Optional

import click

from catkin_bloom import __version__
from catkin_bloom.config import (
    BloomConfig,
    get_bloom_home,
    load_config,
    parse_rosdep_defs,
    split_list,
)
from catkin_bloom.errors import CatkinBloomError, ConfigError, StructuralError
from catkin_bloom.schemas import RunReport
from catkin_bloom.utils import (
    format_duration,
    print_banner,
    print_error,
    print_info,
    print_success,
    print_warning,
    setup_logging,
)

EXIT_PARTIAL = 1
EXIT_NO_ORDER = 2


def _load_base_config(config_path: Optional[Path]) -> BloomConfig:
    """Config file values, or defaults when there is no default config file."""
    try:
        return load_config(config_path)
    except FileNotFoundError:
        if config_path is not None:
            raise
        return BloomConfig()


def _progress(event: str, **kwargs) -> None:
    """Console progress for orchestrator events."""
    if event == "tier_start":
        print_info(f"Tier {kwargs['tier']} ({kwargs['package_count']} packages)")
    elif event == "package_ok":
        print_success(f"  {kwargs['package_id']} ({format_duration(kwargs['duration_seconds'])})")
    elif event == "package_fail":
        print_error(f"  {kwargs['package_id']}: {kwargs['error']}")
    elif event == "package_skip":
        print_warning(f"  {kwargs['package_id']} skipped: {kwargs['reason']}")


def _print_report(report: RunReport) -> None:
    counts = report.counts
    if report.success:
        print_success(
            f"Built {counts['succeeded']} packages in {format_duration(report.duration_seconds)}"
        )
        return

    print_warning(
        f"Computed a build order but {counts['failed']} packages failed "
        f"and {counts['skipped']} were skipped "
        f"({counts['succeeded']}/{counts['total']} built)"
    )
    if report.failed:
        click.echo("\nFailed:")
        for outcome in report.failed:
            click.echo(f"  {outcome.package_id} (tier {outcome.tier}): {outcome.cause}")
    if report.skipped:
        click.echo("\nSkipped:")
        for outcome in report.skipped:
            click.echo(f"  {outcome.package_id} (tier {outcome.tier}): {outcome.cause}")


@click.group()
@click.version_option(version=__version__, prog_name="catkin-bloom")
def main():
    """
    catkin-bloom - Build a catkin workspace into Debian packages.

    Packages are built tier by tier in dependency order; packages within
    a tier build in parallel.
    """
    pass


@main.command()
@click.argument("src", required=False, type=click.Path(file_okay=False, path_type=Path))
@click.option("-r", "--repo-path", type=click.Path(file_okay=False, path_type=Path),
              help="Directory receiving the built .deb files")
@click.option("-j", "--jobs", type=click.IntRange(min=1), help="Maximum parallel builds")
@click.option("--os-name", help="Target OS name (default: ubuntu)")
@click.option("--os-version", help="Target OS version (default: bionic)")
@click.option("--ros-distro", help="ROS distribution (default: melodic)")
@click.option("--ignore-pkgs", help="Comma separated packages to leave out")
@click.option("--only-check", help="Comma separated packages to build; others are assumed available")
@click.option("-e", "--extra-repos", help="Comma separated extra repositories to register")
@click.option("-D", "--rosdep-defs", help="Comma separated KEY=DEBIAN_PACKAGE rosdep definitions")
@click.option("-n", "--noinstall-deps", is_flag=True, help="Do not install system dependencies")
@click.option("--stop-on-failure", is_flag=True, help="Skip remaining tiers after a failed tier")
@click.option("--dry-run", is_flag=True, help="Show and walk the schedule without building")
@click.option("--config", "config_path", type=click.Path(exists=True, dir_okay=False, path_type=Path),
              help="Custom configuration file (default: ~/.config/catkin-bloom/config.yaml)")
@click.option("--verbose", is_flag=True, help="Enable debug logging")
def build(
    src, repo_path, jobs, os_name, os_version, ros_distro, ignore_pkgs, only_check,
    extra_repos, rosdep_defs, noinstall_deps, stop_on_failure, dry_run, config_path, verbose,
):
    """
    Build every package of the workspace at SRC (default: current directory).

    Examples:

      # Build into /repo with 8 parallel jobs
      catkin-bloom build -r /repo -j 8 /workspace

      # Only rebuild two packages
      catkin-bloom build -r /repo --only-check pkg_a,pkg_b /workspace

      # Show the schedule without building
      catkin-bloom build -r /repo --dry-run /workspace
    """
    from catkin_bloom.pipeline import BuildPipeline

    try:
        config = _load_base_config(config_path).merge(
            src=str(src) if src else None,
            repo_path=str(repo_path) if repo_path else None,
            jobs=jobs,
            os_name=os_name,
            os_version=os_version,
            ros_distro=ros_distro,
            ignore_pkgs=split_list(ignore_pkgs),
            only=split_list(only_check),
            extra_repos=split_list(extra_repos),
            rosdep_defs=parse_rosdep_defs(split_list(rosdep_defs)) if rosdep_defs else None,
            install_deps=False if noinstall_deps else None,
            stop_on_failure=True if stop_on_failure else None,
            log_level="DEBUG" if verbose else None,
        )
        config.validate(require_repo=not dry_run)
    except (ConfigError, FileNotFoundError) as e:
        print_error(f"Invalid configuration: {e}")
        raise SystemExit(EXIT_NO_ORDER)

    setup_logging(config.get_log_file_path(), config.log_level, config.log_format)

    title = f"catkin-bloom {config.ros_distro} ({config.os_name} {config.os_version})"
    print_banner(title + (" [dry run]" if dry_run else ""))

    pipeline = BuildPipeline(config, progress_callback=_progress)
    try:
        report = pipeline.run(dry_run=dry_run)
    except StructuralError as e:
        print_error(f"Could not compute a build order: {e}")
        raise SystemExit(EXIT_NO_ORDER)
    except (CatkinBloomError, OSError) as e:
        print_error(f"Build aborted: {e}")
        raise SystemExit(EXIT_NO_ORDER)

    _print_report(report)
    if not report.success:
        raise SystemExit(EXIT_PARTIAL)


@main.command()
@click.argument("src", required=False, type=click.Path(file_okay=False, path_type=Path))
@click.option("--ignore-pkgs", help="Comma separated packages to leave out")
@click.option("--only-check", help="Comma separated packages to plan for")
@click.option("--config", "config_path", type=click.Path(exists=True, dir_okay=False, path_type=Path),
              help="Custom configuration file")
def plan(src, ignore_pkgs, only_check, config_path):
    """
    Show the build tiers for the workspace at SRC.

    Examples:

      catkin-bloom plan /workspace

      catkin-bloom plan --ignore-pkgs my_sim_pkg /workspace
    """
    from catkin_bloom.pipeline import BuildPipeline
    from catkin_bloom.scheduler import describe

    try:
        config = _load_base_config(config_path).merge(
            src=str(src) if src else None,
            ignore_pkgs=split_list(ignore_pkgs),
            only=split_list(only_check),
        )
    except (ConfigError, FileNotFoundError) as e:
        print_error(f"Invalid configuration: {e}")
        raise SystemExit(EXIT_NO_ORDER)

    try:
        tiers = BuildPipeline(config).plan()
    except StructuralError as e:
        print_error(f"Could not compute a build order: {e}")
        raise SystemExit(EXIT_NO_ORDER)
    except CatkinBloomError as e:
        print_error(str(e))
        raise SystemExit(EXIT_NO_ORDER)

    for line in describe(tiers):
        click.echo(line)
    click.echo(f"\n{sum(len(t) for t in tiers)} packages in {len(tiers)} tiers")


@main.command()
@click.option("--config", "config_path", type=click.Path(exists=True, dir_okay=False, path_type=Path),
              help="Custom configuration file")
def status(config_path):
    """
    Show the outcome of the last build run.

    Examples:

      catkin-bloom status
    """
    from catkin_bloom.pipeline import BuildPipeline

    try:
        config = _load_base_config(config_path)
    except (ConfigError, FileNotFoundError) as e:
        print_error(f"Invalid configuration: {e}")
        raise SystemExit(EXIT_NO_ORDER)

    report = BuildPipeline(config).status()
    if report is None:
        print_info("No previous build runs found")
        return

    status_text = "SUCCESS" if report.success else "FAILED"
    if report.started_at:
        click.echo(f"Last Run: {report.started_at.strftime('%Y-%m-%d %H:%M:%S')}")
    click.echo(f"Status: {status_text}")
    click.echo(f"Duration: {format_duration(report.duration_seconds)}")
    click.echo(f"Tiers: {len(report.tiers)}")
    click.echo()
    _print_report(report)


@main.command()
@click.option("--force", is_flag=True, help="Overwrite existing configuration")
def init(force: bool):
    """Initialize catkin-bloom configuration."""
    import yaml

    home = get_bloom_home()
    home.mkdir(parents=True, exist_ok=True)

    cfg_path = home / "config.yaml"
    if cfg_path.exists() and not force:
        click.echo(f"Config already exists at {cfg_path}. Use --force to overwrite.", err=True)
        raise SystemExit(1)

    default_cfg = BloomConfig().to_dict()
    cfg_path.write_text(yaml.safe_dump(default_cfg, sort_keys=False))

    click.echo(f"Initialized catkin-bloom config at {cfg_path}")


if __name__ == "__main__":
    main()
