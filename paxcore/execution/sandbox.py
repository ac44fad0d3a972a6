# paxcore/execution/sandbox.py
from __future__ import annotations

import ast
import builtins
import errno
import importlib
import importlib.util
import io
import logging
import types
from collections.abc import Callable, Iterable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import IO, Any, Protocol, runtime_checkable

from paxcore.core.errors import PluginRejected, SandboxPathError

logger = logging.getLogger(__name__)

__all__ = [
    "PathMapping",
    "SandboxFileSystem",
    "PluginResult",
    "PluginInstance",
    "SandboxProvider",
    "PluginFileSystem",
    "PythonSandboxProvider",
    "ALLOWED_PLUGIN_MODULES",
    "PLUGIN_MODULE_NAME",
]



def _splitSandboxPath(raw: str) -> tuple[str, ...]:
    return tuple(part for part in raw.split("/") if part not in ("", "."))



@dataclass(frozen=True)
class PathMapping:
    """A host directory mounted at an absolute POSIX path inside the sandbox."""
    hostPath: Path
    sandboxPath: str
    writable: bool = False

    def __post_init__(self) -> None:
        if not isinstance(self.sandboxPath, str) or not self.sandboxPath.startswith("/"):
            raise ValueError(f"Sandbox mount point must be an absolute POSIX path, got {self.sandboxPath!r}")
        if ".." in self.sandboxPath.split("/"):
            raise ValueError(f"Sandbox mount point may not contain '..': {self.sandboxPath!r}")
        object.__setattr__(self, "hostPath", Path(self.hostPath))

    @property
    def parts(self) -> tuple[str, ...]:
        return _splitSandboxPath(self.sandboxPath)



class SandboxFileSystem:
    """
    The only view of the host filesystem a plugin gets.

    Every sandbox path is resolved against the declared mappings; anything
    that does not land inside a mapping's host directory (after following
    symlinks on the host) raises SandboxPathError.
    """

    def __init__(self, mappings: Iterable[PathMapping]) -> None:
        self.mappings: tuple[PathMapping, ...] = tuple(mappings)
        seen: set[tuple[str, ...]] = set()
        for mapping in self.mappings:
            if mapping.parts in seen:
                raise ValueError(f"Duplicate sandbox mount point {mapping.sandboxPath!r}")
            seen.add(mapping.parts)
        # Longest mount point first so nested mounts win.
        self._ordered = sorted(self.mappings, key=lambda mapping: len(mapping.parts), reverse=True)

    def _mountFor(self, parts: tuple[str, ...] | list[str]) -> PathMapping | None:
        for mapping in self._ordered:
            depth = len(mapping.parts)
            if tuple(parts[:depth]) == mapping.parts:
                return mapping
        return None

    def _normalize(self, sandboxPath: str) -> list[str]:
        stack: list[str] = []
        for part in sandboxPath.split("/"):
            if part in ("", "."):
                continue
            if part == "..":
                mount = self._mountFor(stack)
                if mount is None or len(stack) <= len(mount.parts):
                    raise SandboxPathError(sandboxPath, "'..' leaves its mount")
                stack.pop()
                continue
            stack.append(part)
        return stack

    def resolve(self, sandboxPath: str, *, write: bool = False) -> Path:
        if not isinstance(sandboxPath, str):
            raise SandboxPathError(repr(sandboxPath), "sandbox paths must be strings")
        if not sandboxPath.startswith("/"):
            raise SandboxPathError(sandboxPath, "relative paths are not allowed")
        if "\0" in sandboxPath:
            raise SandboxPathError(sandboxPath, "NUL byte in path")

        parts = self._normalize(sandboxPath)
        mount = self._mountFor(parts)
        if mount is None:
            raise SandboxPathError(sandboxPath, "path is outside every mount")

        hostRoot = mount.hostPath.resolve()
        resolved = hostRoot.joinpath(*parts[len(mount.parts):]).resolve()
        if resolved != hostRoot and not resolved.is_relative_to(hostRoot):
            raise SandboxPathError(sandboxPath, f"resolves outside mount {mount.sandboxPath!r}")
        if write and not mount.writable:
            raise SandboxPathError(sandboxPath, f"mount {mount.sandboxPath!r} is read-only")
        return resolved

    # ----- Helpers used by plugins -----

    def open(self, sandboxPath: str, mode: str = "r", *args: Any, **kwargs: Any) -> IO[Any]:
        write = any(flag in mode for flag in "wax+")
        return open(self.resolve(sandboxPath, write=write), mode, *args, **kwargs)

    def readText(self, sandboxPath: str, encoding: str = "utf-8") -> str:
        return self.resolve(sandboxPath).read_text(encoding=encoding)

    def readBytes(self, sandboxPath: str) -> bytes:
        return self.resolve(sandboxPath).read_bytes()

    def writeText(self, sandboxPath: str, text: str, encoding: str = "utf-8") -> None:
        target = self.resolve(sandboxPath, write=True)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(text, encoding=encoding)

    def writeBytes(self, sandboxPath: str, data: bytes) -> None:
        target = self.resolve(sandboxPath, write=True)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(data)

    def listDir(self, sandboxPath: str) -> list[str]:
        return sorted(entry.name for entry in self.resolve(sandboxPath).iterdir())

    def makeDirs(self, sandboxPath: str) -> None:
        self.resolve(sandboxPath, write=True).mkdir(parents=True, exist_ok=True)

    def exists(self, sandboxPath: str) -> bool:
        return self.resolve(sandboxPath).exists()



# ------------------------------------------------------------------ #
# Provider contract
# ------------------------------------------------------------------ #

@dataclass(frozen=True)
class PluginResult:
    ok: bool
    message: str | None = None

    @classmethod
    def fromReturn(cls, value: Any) -> PluginResult:
        """
        Normalize what an entrypoint returned:
            None / True      -> success
            False            -> failure
            (ok, message)    -> as given
            PluginResult     -> unchanged
        """
        if isinstance(value, PluginResult):
            return value
        if value is None or value is True:
            return cls(True)
        if value is False:
            return cls(False)
        if isinstance(value, tuple) and len(value) == 2 and isinstance(value[0], bool):
            message = value[1]
            return cls(value[0], None if message is None else str(message))
        raise TypeError(f"Plugin entrypoint returned unsupported value of type {type(value).__name__}")



@runtime_checkable
class PluginInstance(Protocol):
    def call(self, entrypoint: str) -> PluginResult: ...



@runtime_checkable
class SandboxProvider(Protocol):
    def instantiate(self, pluginBytes: bytes, fs: SandboxFileSystem) -> PluginInstance: ...



# ------------------------------------------------------------------ #
# Reference provider: Python plugins
# ------------------------------------------------------------------ #

PLUGIN_MODULE_NAME = "paxplugin"

# Exact names only; submodules are not importable.
ALLOWED_PLUGIN_MODULES: frozenset[str] = frozenset({
    "base64", "datetime", "functools", "hashlib", "itertools", "json", "math", "re", "textwrap",
})

_SAFE_BUILTIN_NAMES: tuple[str, ...] = (
    "abs", "all", "any", "bool", "bytearray", "bytes", "callable", "chr",
    "classmethod", "dict", "divmod", "enumerate", "filter", "float", "format",
    "frozenset", "hasattr", "hash", "hex", "int", "isinstance", "issubclass",
    "iter", "len", "list", "map", "max", "min", "next", "object", "oct", "ord",
    "pow", "print", "property", "range", "repr", "reversed", "round", "set",
    "slice", "sorted", "staticmethod", "str", "sum", "super", "tuple", "zip",
    "Exception", "ValueError", "TypeError", "KeyError", "IndexError",
    "AttributeError", "ImportError", "RuntimeError", "OSError",
    "FileNotFoundError", "FileExistsError", "StopIteration", "NotImplementedError",
)

# Attributes that lead to frames, code objects or another module's globals.
# str.format resolves attribute names at runtime, so it is refused as well.
_FORBIDDEN_ATTRIBUTES: frozenset[str] = frozenset({
    "gi_frame", "gi_code", "cr_frame", "cr_code", "ag_frame", "ag_code",
    "f_back", "f_builtins", "f_code", "f_globals", "f_locals",
    "tb_frame", "tb_next",
    "format", "format_map",
})



class _PluginChecker(ast.NodeVisitor):
    """Rejects dunder names and introspection attributes before any plugin code runs."""

    def _checkAttribute(self, attr: str, node: ast.AST) -> None:
        if attr.startswith("_") or attr in _FORBIDDEN_ATTRIBUTES:
            raise PluginRejected(f"attribute {attr!r}", getattr(node, "lineno", None))

    def visit_Attribute(self, node: ast.Attribute) -> None:
        self._checkAttribute(node.attr, node)
        self.generic_visit(node)

    def visit_Name(self, node: ast.Name) -> None:
        if node.id.startswith("__") and node.id != "__name__":
            raise PluginRejected(f"name {node.id!r}", node.lineno)

    def visit_ImportFrom(self, node: ast.ImportFrom) -> None:
        for alias in node.names:
            if alias.name.startswith("_"):
                raise PluginRejected(f"import of {alias.name!r}", node.lineno)
        self.generic_visit(node)

    def visit_MatchClass(self, node: ast.MatchClass) -> None:
        for attr in node.kwd_attrs:
            self._checkAttribute(attr, node)
        self.generic_visit(node)



@contextmanager
def _hostErrors(sandboxPath: str) -> Iterator[None]:
    # Host OSErrors name the host file; plugins only ever see the sandbox path.
    try:
        yield
    except OSError as err:
        raise OSError(err.errno, err.strerror or type(err).__name__, sandboxPath) from None



class _SandboxFile(io.BytesIO):
    """In-memory file contents, handed back to `commit` on close when writable."""

    def __init__(self, data: bytes, commit: Callable[[bytes], None] | None) -> None:
        super().__init__(data)
        self._commit = commit

    def writable(self) -> bool:
        if self._commit is None:
            return False
        return super().writable()

    def write(self, data: Any) -> int:
        if self._commit is None:
            raise io.UnsupportedOperation("not writable")
        return super().write(data)

    def close(self) -> None:
        if self.closed:
            return
        commit, self._commit = self._commit, None
        try:
            if commit is not None:
                commit(self.getvalue())
        finally:
            super().close()



class PluginFileSystem:
    """
    The `sandbox` object a Python plugin receives, and what its `open` calls.

    It accepts and returns sandbox paths only. There is no `resolve`, no
    mount table and no host `Path` anywhere in its results; host errors are
    re-raised with the sandbox path as their filename. `open` returns an
    in-memory file that is written back through the sandbox on close.
    """

    __slots__ = ("_fs",)

    def __init__(self, fs: SandboxFileSystem) -> None:
        self._fs = fs

    def open(self, sandboxPath: str, mode: str = "r", encoding: str = "utf-8") -> IO[Any]:
        kinds = [flag for flag in mode if flag in "rwax"]
        if (
            len(kinds) != 1
            or set(mode) - set("rwaxbt+")
            or len(set(mode)) != len(mode)
            or ("b" in mode and "t" in mode)
        ):
            raise ValueError(f"invalid mode: {mode!r}")
        kind = kinds[0]
        writable = kind != "r" or "+" in mode

        with _hostErrors(sandboxPath):
            target = self._fs.resolve(sandboxPath, write=writable)
            if kind == "x" and target.exists():
                raise FileExistsError(errno.EEXIST, "File exists", sandboxPath)
            if kind == "r" or (kind == "a" and target.exists()):
                data = target.read_bytes()
            else:
                data = b""

        commit = None
        if writable:
            def commit(content: bytes) -> None:
                with _hostErrors(sandboxPath):
                    self._fs.writeBytes(sandboxPath, content)

        buffer = _SandboxFile(data, commit)
        if kind == "a":
            buffer.seek(0, io.SEEK_END)
        if "b" in mode:
            return buffer
        return io.TextIOWrapper(buffer, encoding=encoding)

    def readText(self, sandboxPath: str, encoding: str = "utf-8") -> str:
        with _hostErrors(sandboxPath):
            return self._fs.readText(sandboxPath, encoding)

    def readBytes(self, sandboxPath: str) -> bytes:
        with _hostErrors(sandboxPath):
            return self._fs.readBytes(sandboxPath)

    def writeText(self, sandboxPath: str, text: str, encoding: str = "utf-8") -> None:
        with _hostErrors(sandboxPath):
            self._fs.writeText(sandboxPath, text, encoding)

    def writeBytes(self, sandboxPath: str, data: bytes) -> None:
        with _hostErrors(sandboxPath):
            self._fs.writeBytes(sandboxPath, data)

    def listDir(self, sandboxPath: str) -> list[str]:
        with _hostErrors(sandboxPath):
            return self._fs.listDir(sandboxPath)

    def makeDirs(self, sandboxPath: str) -> None:
        with _hostErrors(sandboxPath):
            self._fs.makeDirs(sandboxPath)

    def exists(self, sandboxPath: str) -> bool:
        with _hostErrors(sandboxPath):
            return self._fs.exists(sandboxPath)



def _moduleView(module: types.ModuleType) -> types.SimpleNamespace:
    """The public, non-module attributes of `module`."""
    names = getattr(module, "__all__", None) or [name for name in vars(module) if not name.startswith("_")]
    public: dict[str, Any] = {}
    for name in names:
        value = getattr(module, name, None)
        if name.startswith("_") or value is None or isinstance(value, types.ModuleType):
            continue
        public[name] = value
    return types.SimpleNamespace(**public)



def _restrictedBuiltins(view: PluginFileSystem, allowedModules: frozenset[str]) -> dict[str, Any]:
    table: dict[str, Any] = {name: getattr(builtins, name) for name in _SAFE_BUILTIN_NAMES}

    def _guardedImport(name: str, globals=None, locals=None, fromlist=(), level=0):
        if level != 0 or name not in allowedModules:
            raise ImportError(f"Import of {name!r} is not allowed inside the sandbox")
        return _moduleView(importlib.import_module(name))

    table["__import__"] = _guardedImport
    table["open"] = view.open
    # Needed by class statements inside plugin code.
    table["__build_class__"] = builtins.__build_class__
    return table



class PythonPluginInstance:
    def __init__(self, namespace: dict[str, Any]) -> None:
        self._namespace = namespace

    def call(self, entrypoint: str) -> PluginResult:
        fn = self._namespace.get(entrypoint)
        if not callable(fn):
            raise AttributeError(f"Plugin does not export a callable {entrypoint!r}")
        return PluginResult.fromReturn(fn())



class PythonSandboxProvider:
    """
    Runs plugins written as Python source.

    The source is checked before it runs: dunder names and attributes, and
    the attributes that reach frames or code objects, are rejected with
    PluginRejected. The module then executes with a restricted builtins
    table. `open` and the injected `sandbox` object are a PluginFileSystem,
    and `import` only admits the exact modules in `allowedModules`, each
    handed over as a view of its public functions and classes.

    This keeps honest plugins inside their mounts; it is not a security
    boundary against hostile code. Use ExtismSandboxProvider for that.
    """

    def __init__(self, *, allowedModules: Iterable[str] = ALLOWED_PLUGIN_MODULES) -> None:
        self.allowedModules = frozenset(allowedModules)

    def instantiate(self, pluginBytes: bytes, fs: SandboxFileSystem) -> PythonPluginInstance:
        source = pluginBytes.decode("utf-8")
        tree = ast.parse(source, "<plugin>")
        _PluginChecker().visit(tree)

        view = PluginFileSystem(fs)
        spec = importlib.util.spec_from_loader(PLUGIN_MODULE_NAME, loader=None)
        module = importlib.util.module_from_spec(spec)
        module.__dict__["__builtins__"] = _restrictedBuiltins(view, self.allowedModules)
        module.sandbox = view
        exec(compile(tree, "<plugin>", "exec"), module.__dict__)
        logger.debug("Instantiated Python plugin (%d bytes)", len(pluginBytes))
        return PythonPluginInstance(module.__dict__)
