# paxcore/config/kvstore.py
from __future__ import annotations

import contextlib
import logging
import os
import tempfile
import threading
from collections.abc import Iterator, Mapping
from pathlib import Path

import json5

from paxcore.core.errors import RegistryError

logger = logging.getLogger(__name__)

__all__ = ["FileKeyValueStore"]

# One lock per resolved file path, shared by every store in the process.
_PATH_LOCKS: dict[Path, threading.RLock] = {}
_PATH_LOCKS_GUARD = threading.Lock()



def _lockFor(path: Path) -> threading.RLock:
    key = path.resolve()
    with _PATH_LOCKS_GUARD:
        lock = _PATH_LOCKS.get(key)
        if lock is None:
            lock = _PATH_LOCKS[key] = threading.RLock()
        return lock



class FileKeyValueStore:
    """
    String -> string map persisted as a JSON5 object.

    Every mutation re-reads the file, applies the change and writes it back
    atomically (unique temp file + fsync + os.replace) while holding the lock
    for that path. Stores over the same file in one process share the lock,
    so their read-modify-write cycles never interleave. Other processes are
    not coordinated with.
    """

    def __init__(self, path: Path | str, *, seed: Mapping[str, str] | None = None) -> None:
        self.path = Path(path)
        self._lock = _lockFor(self.path)
        self._data: dict[str, str] = {}
        with self._lock:
            if not self.path.exists() and seed is not None:
                self._data = dict(seed)
                self._write()
                logger.info("Created '%s' with %d seeded entr%s", self.path, len(seed), "y" if len(seed) == 1 else "ies")
            else:
                self._load()

    # ----- Reading -----

    def _load(self) -> None:
        try:
            text = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            self._data = {}
            return
        except OSError as err:
            raise RegistryError(self.path, f"cannot read: {err}") from err

        try:
            parsed = json5.loads(text) if text.strip() else {}
        except ValueError as err:
            raise RegistryError(self.path, f"not valid JSON5: {err}") from err
        if parsed is None:
            parsed = {}
        if not isinstance(parsed, Mapping):
            raise RegistryError(self.path, f"content must be an object, not {type(parsed).__name__}")

        data: dict[str, str] = {}
        for key, value in parsed.items():
            if not isinstance(value, str):
                raise RegistryError(self.path, f"value for {key!r} must be a string", key=str(key))
            data[str(key)] = value
        self._data = data

    def reload(self) -> None:
        with self._lock:
            self._load()

    def get(self, key: str) -> str | None:
        with self._lock:
            return self._data.get(key)

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._data

    def __len__(self) -> int:
        with self._lock:
            return len(self._data)

    def __iter__(self) -> Iterator[str]:
        return iter(self.keys())

    def keys(self) -> list[str]:
        with self._lock:
            return sorted(self._data)

    def items(self) -> list[tuple[str, str]]:
        with self._lock:
            return sorted(self._data.items())

    def snapshot(self) -> dict[str, str]:
        with self._lock:
            return dict(self._data)

    # ----- Writing -----

    def set(self, key: str, value: str) -> None:
        if not isinstance(value, str):
            raise TypeError(f"{type(self).__name__}: value for {key!r} must be a string, not {type(value).__name__}")
        with self._lock:
            self._load()
            self._data[key] = value
            self._write()

    def delete(self, key: str) -> bool:
        with self._lock:
            self._load()
            if key not in self._data:
                return False
            del self._data[key]
            self._write()
            return True

    def _write(self) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as err:
            raise RegistryError(self.path, f"cannot create parent directory: {err}") from err

        out = json5.dumps(self._data, indent=2, quote_keys=True, sort_keys=True)

        # Atomic write
        try:
            fd, tmpName = tempfile.mkstemp(prefix=f".{self.path.name}.", suffix=".tmp", dir=self.path.parent)
        except OSError as err:
            raise RegistryError(self.path, f"cannot create temp file: {err}") from err
        tmpPath = Path(tmpName)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fl:
                fl.write(out)
                fl.write("\n")
                fl.flush()
                os.fsync(fl.fileno())
            os.replace(tmpPath, self.path)
        except OSError as err:
            with contextlib.suppress(OSError):
                tmpPath.unlink(missing_ok=True)
            raise RegistryError(self.path, f"cannot write: {err}") from err
        logger.debug("%s: saved %d keys to '%s'", type(self).__name__, len(self._data), self.path)
