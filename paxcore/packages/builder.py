# paxcore/packages/builder.py
from __future__ import annotations

import logging
from pathlib import Path

from paxcore.core.cancellation import CancellationToken, checkpoint
from paxcore.core.errors import SchemaError
from paxcore.packages.formats import parseManifestFile
from paxcore.packages.locator import MAX_DEPTH, MIN_DEPTH, locateManifests
from paxcore.packages.model import (
    Flavor,
    FlavoredPackage,
    PackageNode,
    VersionedPackage,
)

logger = logging.getLogger(__name__)

__all__ = ["buildPackageTree"]



def _collectManifests(
    root: Path,
    *,
    minDepth: int,
    maxDepth: int,
    cancel: CancellationToken | None,
) -> dict[Path, PackageNode]:
    """
    Parse every located manifest, keyed by the directory that holds it.

    Parsing fails fast: the first unreadable or malformed manifest raises.
    """
    byDir: dict[Path, Path] = {}
    parsed: dict[Path, PackageNode] = {}
    for manifestPath in locateManifests(root, minDepth=minDepth, maxDepth=maxDepth, cancel=cancel):
        dirPath = manifestPath.parent
        if dirPath in byDir:
            raise SchemaError(
                dirPath,
                f"more than one manifest in one directory ('{byDir[dirPath].name}' and '{manifestPath.name}')",
            )
        byDir[dirPath] = manifestPath
        parsed[dirPath] = parseManifestFile(manifestPath)
    return parsed



def _assemble(
    dirPath: Path,
    parsed: dict[Path, PackageNode],
    visited: set[Path],
    cancel: CancellationToken | None,
) -> PackageNode:
    checkpoint(cancel, f"build:{dirPath}")
    visited.add(dirPath)
    node = parsed[dirPath]
    childDirs = sorted(path for path in parsed if path.parent == dirPath)

    if isinstance(node, VersionedPackage):
        dupes = node.duplicateVersions()
        if dupes:
            raise SchemaError(dirPath, f"duplicate version numbers: {', '.join(dupes)}")
        if childDirs:
            raise SchemaError(
                childDirs[0],
                "manifest found below a versioned package; only flavored packages have children",
            )
        return node

    declared = set(node.flavorNames)
    for childDir in childDirs:
        if childDir.name not in declared:
            raise SchemaError(childDir, f"flavor {childDir.name!r} is not declared by the parent manifest")

    flavors: list[Flavor] = []
    for flavor in node.flavors:
        childDir = dirPath / flavor.name
        if childDir not in parsed:
            raise SchemaError(childDir, f"declared flavor {flavor.name!r} has no manifest")
        child = _assemble(childDir, parsed, visited, cancel)
        flavors.append(Flavor(name=flavor.name, node=child))

    return FlavoredPackage(metadata=node.metadata, flavors=tuple(flavors))



def buildPackageTree(
    root: Path | str,
    *,
    minDepth: int = MIN_DEPTH,
    maxDepth: int = MAX_DEPTH,
    cancel: CancellationToken | None = None,
) -> PackageNode:
    """
    Build one immutable package tree from the manifests under `root`.

    The manifest directly inside `root` is the tree root; the manifest in a
    subdirectory becomes the flavor of its parent directory's node, named
    after the subdirectory.

    Raises:
        DiscoveryError: `root` cannot be walked.
        UnsupportedExtension / ManifestReadError / MalformedManifest:
            the first manifest that cannot be decoded.
        SchemaError: the manifests do not form a valid tree.
    """
    root = Path(root)
    parsed = _collectManifests(root, minDepth=minDepth, maxDepth=maxDepth, cancel=cancel)

    if root not in parsed:
        raise SchemaError(root, "no manifest at the package root")

    visited: set[Path] = set()
    tree = _assemble(root, parsed, visited, cancel)

    orphans = sorted(set(parsed) - visited)
    if orphans:
        raise SchemaError(orphans[0], "manifest is not reachable from the package root (parent directory has no manifest)")

    logger.info(
        "Built package tree for '%s' (%s): %d manifest(s)",
        root,
        tree.name or root.name,
        len(parsed),
    )
    return tree
