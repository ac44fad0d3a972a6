# paxcore/execution/wasm.py
"""
WebAssembly plugins, run through Extism with WASI.

The sandbox mounts become the module's preopened directories and are the
only part of the host filesystem it can reach; read-only mounts carry
Extism's "ro:" prefix. `process` is called with empty input. A non-zero
return from the plugin is a trap, and any output it produced is reported
as the plugin message.
"""
from __future__ import annotations

import base64
import logging
from typing import Any

import extism

from paxcore.execution.sandbox import PluginResult, SandboxFileSystem

logger = logging.getLogger(__name__)

__all__ = [
    "ExtismPluginInstance",
    "ExtismSandboxProvider",
    "extismManifest",
    "READ_ONLY_PREFIX",
]

READ_ONLY_PREFIX = "ro:"



def extismManifest(pluginBytes: bytes, fs: SandboxFileSystem, *, timeoutMs: int | None = None) -> dict[str, Any]:
    """
    Build the Extism manifest for `pluginBytes` with `fs`'s mounts as
    allowed paths (host directory -> sandbox path).
    """
    allowedPaths: dict[str, str] = {}
    for mapping in fs.mappings:
        hostPath = str(mapping.hostPath.resolve())
        if not mapping.writable:
            hostPath = READ_ONLY_PREFIX + hostPath
        allowedPaths[hostPath] = mapping.sandboxPath

    manifest: dict[str, Any] = {
        "wasm": [{"data": base64.b64encode(pluginBytes).decode("ascii")}],
        "allowed_paths": allowedPaths,
    }
    if timeoutMs is not None:
        manifest["timeout_ms"] = timeoutMs
    return manifest



class ExtismPluginInstance:
    def __init__(self, plugin: extism.Plugin) -> None:
        self._plugin = plugin

    def call(self, entrypoint: str) -> PluginResult:
        if not self._plugin.function_exists(entrypoint):
            raise AttributeError(f"Plugin does not export a function {entrypoint!r}")
        output = self._plugin.call(entrypoint, b"")
        if isinstance(output, str):
            message = output
        else:
            message = bytes(output).decode("utf-8", errors="replace")
        return PluginResult(True, message.strip() or None)



class ExtismSandboxProvider:
    """Instantiates WebAssembly plugin modules with WASI enabled."""

    def __init__(self, *, timeoutMs: int | None = None) -> None:
        self.timeoutMs = timeoutMs

    def instantiate(self, pluginBytes: bytes, fs: SandboxFileSystem) -> ExtismPluginInstance:
        manifest = extismManifest(pluginBytes, fs, timeoutMs=self.timeoutMs)
        plugin = extism.Plugin(manifest, wasi=True)
        logger.debug(
            "Instantiated WebAssembly plugin (%d bytes, mounts: %s)",
            len(pluginBytes),
            ", ".join(mapping.sandboxPath for mapping in fs.mappings),
        )
        return ExtismPluginInstance(plugin)
