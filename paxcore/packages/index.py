# paxcore/packages/index.py
from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from pathlib import Path
from threading import RLock
from typing import TYPE_CHECKING, Protocol, runtime_checkable

from paxcore.packages.builder import buildPackageTree
from paxcore.packages.model import PackageNode

if TYPE_CHECKING:
    from paxcore.config.layout import PathLayout
    from paxcore.config.registries import RepositoryRegistry

logger = logging.getLogger(__name__)

__all__ = [
    "PackageIndex",
    "MappingPackageIndex",
    "DirectoryPackageIndex",
]



@runtime_checkable
class PackageIndex(Protocol):
    def lookup(self, name: str) -> PackageNode | None: ...



class MappingPackageIndex:
    """In-memory index over already built trees."""

    def __init__(self, packages: Mapping[str, PackageNode] | None = None) -> None:
        self._packages: dict[str, PackageNode] = dict(packages or {})

    def add(self, name: str, tree: PackageNode) -> None:
        self._packages[name] = tree

    def lookup(self, name: str) -> PackageNode | None:
        return self._packages.get(name)

    def names(self) -> list[str]:
        return sorted(self._packages)



def _dedupe(paths: Iterable[Path]) -> list[Path]:
    out: list[Path] = []
    seen: set[str] = set()
    for path in paths:
        key = str(Path(path).resolve(strict=False))
        if key not in seen:
            out.append(Path(path))
            seen.add(key)
    return out



class DirectoryPackageIndex:
    """
    Index over package directories: `<root>/<name>/manifest.*`.

    Precedence: earlier roots win when two roots hold the same package name.
    Trees are built on first lookup and cached until invalidate(); a package
    that cannot be found is not cached, so a later clone is picked up.
    Manifest errors propagate to the caller.
    """

    def __init__(self, roots: Iterable[Path | str]) -> None:
        self.roots = _dedupe(Path(root) for root in roots)
        self._cache: dict[str, PackageNode] = {}
        self._lock = RLock()

    @classmethod
    def fromLayout(cls, layout: PathLayout, repositories: RepositoryRegistry) -> DirectoryPackageIndex:
        # Registry order is by name; the official repository has no precedence.
        return cls(layout.repositoriesDir / name for name in repositories.names())

    def packageDir(self, name: str) -> Path | None:
        if not name or "/" in name or "\\" in name or name in (".", ".."):
            return None
        for root in self.roots:
            candidate = root / name
            if candidate.is_dir():
                return candidate
        return None

    def lookup(self, name: str) -> PackageNode | None:
        with self._lock:
            cached = self._cache.get(name)
            if cached is not None:
                return cached

            pkgDir = self.packageDir(name)
            if pkgDir is None:
                logger.debug("Package '%s' not found in %d root(s)", name, len(self.roots))
                return None

            tree = buildPackageTree(pkgDir)
            self._cache[name] = tree
            return tree

    def names(self) -> list[str]:
        found: set[str] = set()
        for root in self.roots:
            try:
                found.update(entry.name for entry in root.iterdir() if entry.is_dir())
            except OSError as err:
                logger.debug("Skipping unreadable package root '%s': %s", root, err)
        return sorted(found)

    def invalidate(self, name: str | None = None) -> None:
        with self._lock:
            if name is None:
                self._cache.clear()
            else:
                self._cache.pop(name, None)
