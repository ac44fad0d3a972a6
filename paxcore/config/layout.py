# paxcore/config/layout.py
from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any

import json5

from paxcore.core.errors import RegistryError

logger = logging.getLogger(__name__)

__all__ = ["PathLayout", "loadPathLayout"]



@dataclass(frozen=True)
class PathLayout:
    """
    Every filesystem location the core touches, passed around explicitly.

    Components never look up a home directory themselves; callers build one
    layout (usually with underHome or loadPathLayout) and hand it down.
    """
    home: Path
    repositoriesFile: Path
    repositoriesDir: Path
    pluginsFile: Path
    pluginsDir: Path
    scratchRoot: Path
    stagingRoot: Path

    @classmethod
    def underHome(cls, home: Path | str) -> PathLayout:
        home = Path(home)
        return cls(
            home=home,
            repositoriesFile=home / "repos.json5",
            repositoriesDir=home / "repos",
            pluginsFile=home / "plugins" / "plugins.json5",
            pluginsDir=home / "plugins",
            scratchRoot=home / "tmp",
            stagingRoot=home / "fakeroot",
        )

    def ensureDirectories(self) -> None:
        for path in (self.home, self.repositoriesDir, self.pluginsDir, self.scratchRoot, self.stagingRoot):
            path.mkdir(parents=True, exist_ok=True)

    def withOverrides(self, overrides: Mapping[str, Any]) -> PathLayout:
        known = {fld.name for fld in fields(self)}
        unknown = sorted(set(overrides) - known)
        if unknown:
            raise ValueError(f"Unknown layout keys: {', '.join(unknown)}")
        return replace(self, **{key: Path(value) for key, value in overrides.items()})



def loadPathLayout(path: Path | str, *, home: Path | str | None = None) -> PathLayout:
    """
    Read a JSON5 layout file.

    The file may set "home" and any individual location; relative paths are
    resolved against the directory holding the file. Locations not named
    in the file are derived from home.
    """
    path = Path(path)
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as err:
        raise RegistryError(path, f"cannot read layout file: {err}") from err
    try:
        data = json5.loads(text)
    except ValueError as err:
        raise RegistryError(path, f"layout file is not valid JSON5: {err}") from err
    if data is None:
        data = {}
    if not isinstance(data, Mapping):
        raise RegistryError(path, f"layout file must hold an object, not {type(data).__name__}")

    base = path.parent

    def _resolve(value: Any) -> Path:
        candidate = Path(str(value)).expanduser()
        return candidate if candidate.is_absolute() else base / candidate

    overrides = {key: _resolve(value) for key, value in data.items()}
    homePath = overrides.pop("home", None)
    if homePath is None:
        if home is None:
            raise RegistryError(path, "layout file has no 'home' and no default home was given")
        homePath = Path(home)

    try:
        layout = PathLayout.underHome(homePath).withOverrides(overrides)
    except ValueError as err:
        raise RegistryError(path, str(err)) from err
    logger.debug("Loaded path layout from '%s' (home='%s')", path, layout.home)
    return layout
