"""
catkin_bloom.backends - Packaging toolchains behind the BackendAdapter contract.

- BloomBackend: bloom-generate + fakeroot debian/rules, dpkg -i to publish
- NoOpBackend: dry runs and tests
"""

from .base import BackendAdapter
from .bloom import BloomBackend
from .noop import NoOpBackend

__all__ = [
    "BackendAdapter",
    "BloomBackend",
    "NoOpBackend",
]
