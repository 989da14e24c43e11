"""
catkin_bloom - Tiered, concurrent Debian builds for catkin workspaces.

Collects package.xml manifests from a ROS workspace, orders the packages
into dependency tiers and drives bloom to produce .deb artifacts, building
independent packages in parallel.
"""

__version__ = "0.3.0"
__author__ = "catkin-bloom maintainers"


__all__ = [
    "BloomConfig",
    "load_config",
    "get_bloom_home",
    "build_graph",
    "schedule",
    "BuildOrchestrator",
]

from .config import BloomConfig, load_config, get_bloom_home
from .graph import build_graph
from .scheduler import schedule
from .orchestrator import BuildOrchestrator
