# paxcore/config/registries.py
from __future__ import annotations

import logging
import re
import shutil
from pathlib import Path

from paxcore.config.kvstore import FileKeyValueStore
from paxcore.config.layout import PathLayout
from paxcore.core.errors import RegistryError

logger = logging.getLogger(__name__)

__all__ = [
    "OFFICIAL_REPOSITORY_NAME",
    "OFFICIAL_REPOSITORY_URL",
    "RepositoryRegistry",
]

OFFICIAL_REPOSITORY_NAME = "paxy-official"
OFFICIAL_REPOSITORY_URL = "https://github.com/Pax-Hub/paxy-pkg-repository.git"

_REPOSITORY_NAME_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]*$")



class RepositoryRegistry:
    """
    Known package repositories: name -> clone URL.

    Each repository is cloned (by an outside collaborator) into
    `layout.repositoriesDir / name`; the package index reads packages from
    there.
    """

    def __init__(self, layout: PathLayout) -> None:
        self.layout = layout
        self._store = FileKeyValueStore(
            layout.repositoriesFile,
            seed={OFFICIAL_REPOSITORY_NAME: OFFICIAL_REPOSITORY_URL},
        )

    @staticmethod
    def _checkName(name: str) -> None:
        if not _REPOSITORY_NAME_RE.match(name) or name in (".", ".."):
            raise ValueError(f"Invalid repository name {name!r}")

    def add(self, name: str, url: str) -> None:
        self._checkName(name)
        if not url or not url.strip():
            raise ValueError(f"Repository {name!r} needs a non-empty URL")
        existing = self._store.get(name)
        if existing is not None and existing != url:
            logger.info("Repository '%s' URL changed: '%s' -> '%s'", name, existing, url)
        self._store.set(name, url.strip())

    def get(self, name: str) -> str | None:
        return self._store.get(name)

    def items(self) -> list[tuple[str, str]]:
        return self._store.items()

    def names(self) -> list[str]:
        return self._store.keys()

    def localPath(self, name: str) -> Path:
        self._checkName(name)
        return self.layout.repositoriesDir / name

    def remove(self, name: str) -> bool:
        """
        Forget a repository and delete its local clone.

        The clone is only deleted when it resolves inside the repositories
        directory; anything else raises RegistryError and nothing is removed.
        """
        if self._store.get(name) is None:
            return False

        clonePath = self.localPath(name)
        reposRoot = self.layout.repositoriesDir.resolve()
        resolved = clonePath.resolve()
        if resolved == reposRoot or not resolved.is_relative_to(reposRoot):
            raise RegistryError(
                self.layout.repositoriesFile,
                f"refusing to delete '{resolved}' outside '{reposRoot}'",
                key=name,
            )

        self._store.delete(name)
        if clonePath.is_symlink():
            clonePath.unlink()
        elif clonePath.exists():
            shutil.rmtree(clonePath)
        logger.info("Removed repository '%s'", name)
        return True
