"""
Manifest loader - package.xml files to PackageRecords.

Every element directly under <package> whose tag ends in "depend" counts
as a dependency (depend, build_depend, exec_depend, test_depend,
buildtool_depend, run_depend, ...). Whether the named package lives in the
workspace is decided later by the graph builder.
"""

import logging
import os
from pathlib import Path
from typing import Iterable

from defusedxml import ElementTree
from defusedxml.common import DefusedXmlException

from .errors import ManifestError
from .schemas import PackageRecord

logger = logging.getLogger(__name__)

MANIFEST_NAME = "package.xml"


def discover_manifests(src: Path) -> list[Path]:
    """
    Find every package.xml below a source directory.

    Args:
        src: Workspace source directory

    Returns:
        Manifest paths, sorted
    """
    src = Path(src)
    if not src.is_dir():
        raise ManifestError(f"Source directory does not exist: {src}")

    found = []
    for dirpath, _dirnames, filenames in os.walk(src):
        if MANIFEST_NAME in filenames:
            found.append(Path(dirpath) / MANIFEST_NAME)
    return sorted(found)


def parse_manifest(path: Path) -> PackageRecord:
    """
    Parse a single package.xml.

    Raises:
        ManifestError: If the file is not valid XML or has no <name>
    """
    path = Path(path)
    try:
        root = ElementTree.parse(path).getroot()
    except (ElementTree.ParseError, DefusedXmlException) as e:
        raise ManifestError(f"Invalid manifest {path}: {e}") from e
    except OSError as e:
        raise ManifestError(f"Cannot read manifest {path}: {e}") from e

    name = (root.findtext("name") or "").strip()
    if not name:
        raise ManifestError(f"Manifest {path} has no <name>")

    dependencies = set()
    for child in root:
        if isinstance(child.tag, str) and child.tag.endswith("depend"):
            dep = (child.text or "").strip()
            if dep:
                dependencies.add(dep)

    version = (root.findtext("version") or "").strip() or None
    return PackageRecord.create(
        name,
        dependencies,
        path=str(path.parent),
        version=version,
    )


def load_workspace(src: Path, ignore: Iterable[str] = ()) -> list[PackageRecord]:
    """
    Load all package records of a workspace.

    Args:
        src: Workspace source directory
        ignore: Package names to leave out of the build. Packages that
            depend on them treat them as external.

    Returns:
        One record per manifest (duplicates are left for the graph to reject)
    """
    ignored = set(ignore)
    records = []
    for manifest in discover_manifests(src):
        logger.debug(f"Found {manifest}")
        record = parse_manifest(manifest)
        if record.id in ignored:
            logger.info(f"Ignoring package {record.id}", extra={"event": "package_ignored"})
            continue
        records.append(record)

    logger.info(
        f"Collected {len(records)} packages from {src}",
        extra={"event": "workspace_loaded", "metadata": {"ignored": sorted(ignored)}},
    )
    return records
