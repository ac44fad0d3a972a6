# paxcore/core/errors.py
from __future__ import annotations

from collections.abc import Sequence
from pathlib import Path

__all__ = [
    "PaxError",
    "DiscoveryError",
    "ManifestError",
    "UnsupportedExtension",
    "ManifestReadError",
    "MalformedManifest",
    "SchemaError",
    "ResolutionError",
    "FlavorNotFound",
    "PackageNotFound",
    "NoMatchingVersion",
    "CyclicDependency",
    "DependencyResolutionError",
    "ExecutionError",
    "PluginLoadError",
    "PluginInvocationError",
    "PluginRejected",
    "MalformedInstallInstruction",
    "HostCommandError",
    "SandboxPathError",
    "SandboxBusyError",
    "RegistryError",
    "OperationCancelled",
    "formatChain",
]

DependencyChain = Sequence[tuple[str, str]]



def formatChain(chain: DependencyChain) -> str:
    """Render [("a", ""), ("b", "base")] as "a -> b/base"."""
    return " -> ".join(f"{pkg}/{flavor}" if flavor else pkg for pkg, flavor in chain)



class PaxError(RuntimeError):
    """Base class for every error raised by paxcore."""



# ------------------------------------------------------------------ #
# Discovery / manifests
# ------------------------------------------------------------------ #

class DiscoveryError(PaxError):
    """Raised when the root of a manifest walk cannot be read."""

    def __init__(self, path: Path, cause: BaseException | str) -> None:
        super().__init__(f"Cannot walk manifest root '{path}': {cause}")
        self.path = path
        self.cause = cause



class ManifestError(PaxError):
    """Base class for manifest decoding and tree assembly failures."""



class UnsupportedExtension(ManifestError):
    def __init__(
        self,
        extension: str,
        validExtensions: Sequence[str],
        *,
        path: Path | None = None,
    ) -> None:
        where = f" for '{path}'" if path is not None else ""
        super().__init__(
            f"Unsupported manifest extension {extension!r}{where}. "
            f"Valid extensions are: {', '.join(validExtensions)}"
        )
        self.extension = extension
        self.validExtensions = tuple(validExtensions)
        self.path = path



class ManifestReadError(ManifestError):
    def __init__(self, path: Path, cause: BaseException) -> None:
        super().__init__(f"Unable to read the manifest file at '{path}': {cause}")
        self.path = path
        self.cause = cause



class MalformedManifest(ManifestError):
    def __init__(self, path: Path | None, format: str, cause: BaseException | str) -> None:
        where = f"'{path}'" if path is not None else "<memory>"
        super().__init__(f"The {format} manifest at {where} cannot be parsed: {cause}")
        self.path = path
        self.format = format
        self.cause = cause



class SchemaError(ManifestError):
    """Raised when manifests parse but do not assemble into a valid tree."""

    def __init__(self, path: Path, reason: str) -> None:
        super().__init__(f"Invalid package tree at '{path}': {reason}")
        self.path = path
        self.reason = reason



# ------------------------------------------------------------------ #
# Resolution
# ------------------------------------------------------------------ #

class ResolutionError(PaxError):
    """Base class for version resolution errors."""



class FlavorNotFound(ResolutionError):
    def __init__(
        self,
        package: str,
        flavorPath: Sequence[str],
        *,
        available: Sequence[str] = (),
        reason: str = "",
    ) -> None:
        path = "/".join(flavorPath) or "<root>"
        msg = f"Package {package!r} has no versioned flavor {path!r}"
        if reason:
            msg += f" ({reason})"
        if available:
            msg += f"; available here: {', '.join(available)}"
        super().__init__(msg)
        self.package = package
        self.flavorPath = tuple(flavorPath)
        self.available = tuple(available)



class PackageNotFound(ResolutionError):
    def __init__(self, package: str) -> None:
        super().__init__(f"Package {package!r} is not present in the package index")
        self.package = package



class NoMatchingVersion(ResolutionError):
    def __init__(
        self,
        package: str,
        flavorPath: Sequence[str],
        specifier: object,
        available: Sequence[str],
    ) -> None:
        path = "/".join(flavorPath) or "<root>"
        super().__init__(
            f"No version of {package!r} ({path}) matches {str(specifier)!r}; "
            f"available: {', '.join(available) or 'none'}"
        )
        self.package = package
        self.flavorPath = tuple(flavorPath)
        self.specifier = specifier
        self.available = tuple(available)



class CyclicDependency(ResolutionError):
    def __init__(self, chain: DependencyChain) -> None:
        super().__init__(f"Cyclic dependency: {formatChain(chain)}")
        self.chain = tuple(chain)



class DependencyResolutionError(ResolutionError):
    def __init__(self, chain: DependencyChain, cause: BaseException) -> None:
        super().__init__(f"Cannot resolve dependency chain {formatChain(chain)}: {cause}")
        self.chain = tuple(chain)
        self.cause = cause



# ------------------------------------------------------------------ #
# Execution
# ------------------------------------------------------------------ #

class ExecutionError(PaxError):
    """Base class for plugin and install instruction failures."""



class PluginLoadError(ExecutionError):
    def __init__(self, kind: str, cause: BaseException | str) -> None:
        super().__init__(f"Cannot load plugin for build step kind {kind!r}: {cause}")
        self.kind = kind
        self.cause = cause



class PluginInvocationError(ExecutionError):
    def __init__(
        self,
        kind: str,
        message: str | None = None,
        *,
        cause: BaseException | None = None,
    ) -> None:
        detail = message or (f"{type(cause).__name__}: {cause}" if cause is not None else "declared failure")
        super().__init__(f"Plugin for build step kind {kind!r} failed: {detail}")
        self.kind = kind
        self.message = message
        self.cause = cause



class PluginRejected(ExecutionError):
    """Plugin source uses a construct the Python sandbox does not run."""

    def __init__(self, construct: str, lineno: int | None = None) -> None:
        where = f" (line {lineno})" if lineno is not None else ""
        super().__init__(f"Plugin code rejected{where}: {construct}")
        self.construct = construct
        self.lineno = lineno



class MalformedInstallInstruction(ExecutionError):
    def __init__(self, statement: str, index: int) -> None:
        super().__init__(f"Malformed install statement #{index + 1}: {statement!r}")
        self.statement = statement
        self.index = index



class HostCommandError(ExecutionError):
    def __init__(
        self,
        statement: str,
        cause: BaseException | str,
        *,
        returncode: int | None = None,
    ) -> None:
        super().__init__(f"Install statement {statement!r} failed: {cause}")
        self.statement = statement
        self.cause = cause
        self.returncode = returncode



class SandboxPathError(ExecutionError):
    """Raised when a sandboxed path does not resolve inside a declared mapping."""

    def __init__(self, path: str, reason: str) -> None:
        super().__init__(f"Sandbox denied access to {path!r}: {reason}")
        self.path = path
        self.reason = reason



class SandboxBusyError(ExecutionError):
    def __init__(self, path: Path) -> None:
        super().__init__(f"Directory '{path}' is already in use by another install")
        self.path = path



# ------------------------------------------------------------------ #
# Misc
# ------------------------------------------------------------------ #

class RegistryError(PaxError):
    def __init__(self, path: Path, message: str, *, key: str | None = None) -> None:
        super().__init__(f"Registry '{path}': {message}")
        self.path = path
        self.key = key



class OperationCancelled(PaxError):
    def __init__(self, stage: str) -> None:
        super().__init__(f"Operation cancelled during {stage}")
        self.stage = stage
