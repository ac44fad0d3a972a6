# paxcore/execution/plugins.py
from __future__ import annotations

import logging
from collections.abc import Mapping
from pathlib import Path
from typing import Protocol, runtime_checkable

from paxcore.config.kvstore import FileKeyValueStore
from paxcore.config.layout import PathLayout
from paxcore.core.errors import PluginLoadError

logger = logging.getLogger(__name__)

__all__ = [
    "DEFAULT_PLUGIN_KIND",
    "PluginRegistry",
    "MappingPluginRegistry",
    "FilePluginRegistry",
]

# Kind used for versions without build steps.
DEFAULT_PLUGIN_KIND = "default"



@runtime_checkable
class PluginRegistry(Protocol):
    def lookup(self, kind: str) -> bytes: ...



class MappingPluginRegistry:
    def __init__(self, plugins: Mapping[str, bytes | str] | None = None) -> None:
        self._plugins: dict[str, bytes] = {}
        for kind, data in (plugins or {}).items():
            self.register(kind, data)

    def register(self, kind: str, data: bytes | str) -> None:
        self._plugins[kind] = data.encode("utf-8") if isinstance(data, str) else bytes(data)

    def lookup(self, kind: str) -> bytes:
        try:
            return self._plugins[kind]
        except KeyError:
            raise PluginLoadError(kind, "no plugin registered for this kind") from None

    def kinds(self) -> list[str]:
        return sorted(self._plugins)



class FilePluginRegistry:
    """
    Plugin list file mapping build step kind -> plugin file.

    Relative plugin paths resolve against the plugins directory.
    """

    def __init__(self, store: FileKeyValueStore, pluginsDir: Path) -> None:
        self._store = store
        self.pluginsDir = Path(pluginsDir)

    @classmethod
    def fromLayout(cls, layout: PathLayout) -> FilePluginRegistry:
        return cls(FileKeyValueStore(layout.pluginsFile), layout.pluginsDir)

    def pathFor(self, kind: str) -> Path | None:
        raw = self._store.get(kind)
        if raw is None:
            return None
        path = Path(raw).expanduser()
        return path if path.is_absolute() else self.pluginsDir / path

    def lookup(self, kind: str) -> bytes:
        path = self.pathFor(kind)
        if path is None:
            raise PluginLoadError(kind, f"no plugin registered in '{self._store.path}'")
        try:
            data = path.read_bytes()
        except OSError as err:
            raise PluginLoadError(kind, err) from err
        logger.debug("Loaded plugin for kind '%s' from '%s' (%d bytes)", kind, path, len(data))
        return data

    def register(self, kind: str, path: Path | str) -> None:
        self._store.set(kind, str(path))

    def unregister(self, kind: str) -> bool:
        return self._store.delete(kind)

    def kinds(self) -> list[str]:
        return self._store.keys()
