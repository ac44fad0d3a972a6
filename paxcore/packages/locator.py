# paxcore/packages/locator.py
from __future__ import annotations

import logging
import os
from collections.abc import Iterator
from pathlib import Path

from paxcore.core.cancellation import CancellationToken, checkpoint
from paxcore.core.errors import DiscoveryError
from paxcore.packages.formats import isManifestFileName

logger = logging.getLogger(__name__)

__all__ = [
    "MIN_DEPTH",
    "MAX_DEPTH",
    "ManifestLocator",
    "locateManifests",
]

# The root directory itself is depth 0; its entries are depth 1.
MIN_DEPTH = 1
MAX_DEPTH = 5



def _sortedEntries(dirPath: Path) -> list[os.DirEntry[str]]:
    with os.scandir(dirPath) as it:
        return sorted(it, key=lambda entry: entry.name)



class ManifestLocator:
    """
    Lazy, restartable walk yielding manifest file paths under a root.

    Every iteration starts a fresh walk. Entries are visited in lexicographic
    order of their names at each directory level, so the output is the same
    on every filesystem; the tree builder relies on this order.
    """

    def __init__(
        self,
        root: Path | str,
        *,
        minDepth: int = MIN_DEPTH,
        maxDepth: int = MAX_DEPTH,
        cancel: CancellationToken | None = None,
    ) -> None:
        if minDepth < 0:
            raise ValueError(f"minDepth must be >= 0, got {minDepth}")
        if maxDepth < minDepth:
            raise ValueError(f"maxDepth ({maxDepth}) must be >= minDepth ({minDepth})")
        self.root = Path(root)
        self.minDepth = minDepth
        self.maxDepth = maxDepth
        self._cancel = cancel

    def __iter__(self) -> Iterator[Path]:
        root = self.root
        try:
            if not root.is_dir():
                raise DiscoveryError(root, "not a directory")
            rootResolved = root.resolve(strict=True)
            entries = _sortedEntries(root)
        except OSError as err:
            raise DiscoveryError(root, err) from err

        checkpoint(self._cancel, f"locate:{root}")
        yield from self._walkEntries(entries, depth=1, ancestors=(rootResolved,))

    def _walkEntries(
        self,
        entries: list[os.DirEntry[str]],
        *,
        depth: int,
        ancestors: tuple[Path, ...],
    ) -> Iterator[Path]:
        for entry in entries:
            entryPath = Path(entry.path)
            try:
                isDir = entry.is_dir(follow_symlinks=True)
                isFile = not isDir and entry.is_file(follow_symlinks=True)
            except OSError as err:
                logger.debug("Skipping unreadable entry '%s': %s", entryPath, err)
                continue

            if isFile:
                if depth >= self.minDepth and isManifestFileName(entry.name):
                    yield entryPath
                continue

            if not isDir or depth >= self.maxDepth:
                continue

            try:
                resolved = entryPath.resolve(strict=True)
            except OSError as err:
                logger.debug("Skipping unresolvable directory '%s': %s", entryPath, err)
                continue
            if resolved in ancestors:
                logger.warning("Detected symlink loop while locating manifests: '%s' -> '%s'", entryPath, resolved)
                continue

            checkpoint(self._cancel, f"locate:{entryPath}")
            try:
                children = _sortedEntries(entryPath)
            except OSError as err:
                logger.debug("Skipping unreadable directory '%s': %s", entryPath, err)
                continue
            yield from self._walkEntries(children, depth=depth + 1, ancestors=ancestors + (resolved,))



def locateManifests(
    root: Path | str,
    *,
    minDepth: int = MIN_DEPTH,
    maxDepth: int = MAX_DEPTH,
    cancel: CancellationToken | None = None,
) -> ManifestLocator:
    return ManifestLocator(root, minDepth=minDepth, maxDepth=maxDepth, cancel=cancel)
