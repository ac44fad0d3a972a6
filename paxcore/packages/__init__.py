# paxcore/packages/__init__.py
from paxcore.packages.builder import buildPackageTree
from paxcore.packages.formats import (
    MANIFEST_FILE_STEM,
    ManifestFormat,
    isManifestFileName,
    parseManifest,
    parseManifestFile,
)
from paxcore.packages.index import DirectoryPackageIndex, MappingPackageIndex, PackageIndex
from paxcore.packages.locator import MAX_DEPTH, MIN_DEPTH, ManifestLocator, locateManifests
from paxcore.packages.model import (
    Author,
    BuildStep,
    CloneStep,
    Dependency,
    Flavor,
    FlavoredPackage,
    PackageMetadata,
    PackageNode,
    Version,
    VersionedPackage,
    iterNodes,
    nodeFromDocument,
)

__all__ = [
    "buildPackageTree",
    "MANIFEST_FILE_STEM",
    "ManifestFormat",
    "isManifestFileName",
    "parseManifest",
    "parseManifestFile",
    "DirectoryPackageIndex",
    "MappingPackageIndex",
    "PackageIndex",
    "MAX_DEPTH",
    "MIN_DEPTH",
    "ManifestLocator",
    "locateManifests",
    "Author",
    "BuildStep",
    "CloneStep",
    "Dependency",
    "Flavor",
    "FlavoredPackage",
    "PackageMetadata",
    "PackageNode",
    "Version",
    "VersionedPackage",
    "iterNodes",
    "nodeFromDocument",
]
