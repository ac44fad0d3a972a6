# paxcore/execution/executor.py
from __future__ import annotations

import json
import logging
import threading
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from paxcore.config.layout import PathLayout
from paxcore.core.cancellation import CancellationToken, checkpoint
from paxcore.core.errors import (
    ExecutionError,
    HostCommandError,
    PluginInvocationError,
    PluginLoadError,
    SandboxBusyError,
    SandboxPathError,
)
from paxcore.core.logging import clearLogContext, setLogContext
from paxcore.execution.instructions import CommandResult, CommandRunner, parseInstallInstructions, runStatements
from paxcore.execution.plugins import DEFAULT_PLUGIN_KIND, PluginRegistry
from paxcore.execution.sandbox import PathMapping, SandboxFileSystem, SandboxProvider
from paxcore.resolution.resolver import ResolvedVersion

logger = logging.getLogger(__name__)

__all__ = [
    "ExecutionState",
    "ExecutionOutcome",
    "PluginExecutor",
    "PackageLocks",
    "PLUGIN_ENTRYPOINT",
    "SOURCE_MOUNT",
    "SCRATCH_MOUNT",
    "STAGING_MOUNT",
]

PLUGIN_ENTRYPOINT = "process"
SOURCE_MOUNT = "/pkg"
SCRATCH_MOUNT = "/tmp"
STAGING_MOUNT = "/install"
VERSION_FILE = f"{SCRATCH_MOUNT}/version.json"

_ACTIVE_DIRS: set[Path] = set()
_ACTIVE_LOCK = threading.Lock()



class ExecutionState(str, Enum):
    STAGED = "staged"
    PLUGIN_RUNNING = "pluginRunning"
    PLUGIN_FAILED = "pluginFailed"
    INSTRUCTIONS_RUNNING = "instructionsRunning"
    INSTRUCTION_FAILED = "instructionFailed"
    SUCCEEDED = "succeeded"

    @property
    def terminal(self) -> bool:
        return self in (ExecutionState.PLUGIN_FAILED, ExecutionState.INSTRUCTION_FAILED, ExecutionState.SUCCEEDED)



@dataclass(frozen=True)
class ExecutionOutcome:
    state: ExecutionState
    resolved: ResolvedVersion
    pluginMessage: str | None = None
    commands: tuple[CommandResult, ...] = ()
    error: ExecutionError | None = None

    @property
    def succeeded(self) -> bool:
        return self.state is ExecutionState.SUCCEEDED

    def raiseForState(self) -> None:
        if self.error is not None:
            raise self.error



class PackageLocks:
    """One lock per package name, for callers serialising installs."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[str, threading.Lock] = {}

    def lockFor(self, package: str) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(package)
            if lock is None:
                lock = self._locks[package] = threading.Lock()
            return lock

    @contextmanager
    def hold(self, package: str) -> Iterator[None]:
        lock = self.lockFor(package)
        with lock:
            yield



@contextmanager
def _claimDirectories(*paths: Path) -> Iterator[None]:
    keys = [path.resolve() for path in paths]
    with _ACTIVE_LOCK:
        for key in keys:
            if key in _ACTIVE_DIRS:
                raise SandboxBusyError(key)
        _ACTIVE_DIRS.update(keys)
    try:
        yield
    finally:
        with _ACTIVE_LOCK:
            _ACTIVE_DIRS.difference_update(keys)



def _pluginKind(resolved: ResolvedVersion) -> str:
    kinds = sorted(set(resolved.version.stepKinds))
    if not kinds:
        return DEFAULT_PLUGIN_KIND
    if len(kinds) > 1:
        raise PluginLoadError("+".join(kinds), "build steps of one version must share a single kind")
    return kinds[0]



def _versionDocument(resolved: ResolvedVersion) -> dict:
    version = resolved.version
    return {
        "package": resolved.package,
        "flavor": resolved.flavor,
        "version": str(version.number),
        "steps": [step.toManifest() for step in version.steps],
        "prebuilt": version.prebuilt,
        "source": version.source,
        "install": version.install,
        "dependencies": [str(dep) for dep in resolved.dependencies],
    }



class PluginExecutor:
    """
    Runs one resolved version through its build plugin, then its install
    instructions on the host.

        STAGED -> PLUGIN_RUNNING -> PLUGIN_FAILED
                                 -> INSTRUCTIONS_RUNNING -> INSTRUCTION_FAILED
                                                         -> SUCCEEDED

    Terminal failures are reported in the returned ExecutionOutcome.
    Problems found before the plugin starts (no plugin, unreadable plugin,
    malformed install string, busy directory) raise instead.
    """

    def __init__(
        self,
        provider: SandboxProvider,
        pluginRegistry: PluginRegistry,
        *,
        layout: PathLayout | None = None,
        runner: CommandRunner | None = None,
        timeout: float | None = None,
    ) -> None:
        self.provider = provider
        self.pluginRegistry = pluginRegistry
        self.layout = layout
        self.runner = runner
        self.timeout = timeout

    def _defaultDir(self, explicit: Path | str | None, attr: str) -> Path:
        if explicit is not None:
            return Path(explicit)
        if self.layout is None:
            raise ValueError(f"No {attr} given and the executor has no PathLayout")
        return getattr(self.layout, attr)

    def execute(
        self,
        resolved: ResolvedVersion,
        sourceLocation: Path | str,
        *,
        scratchDir: Path | str | None = None,
        stagingRoot: Path | str | None = None,
        cancel: CancellationToken | None = None,
        onTransition: Callable[[ExecutionState], None] | None = None,
    ) -> ExecutionOutcome:
        source = Path(sourceLocation)
        scratch = self._defaultDir(scratchDir, "scratchRoot")
        staging = self._defaultDir(stagingRoot, "stagingRoot")
        if not source.is_dir():
            raise SandboxPathError(str(source), "source location is not a directory")

        statements = parseInstallInstructions(resolved.version.install)

        setLogContext(package=resolved.package, flavor=resolved.flavor or None, version=str(resolved.number))
        try:
            with _claimDirectories(scratch, staging):
                return self._run(resolved, source, scratch, staging, statements, cancel, onTransition)
        finally:
            clearLogContext()

    def _run(self, resolved, source, scratch, staging, statements, cancel, onTransition) -> ExecutionOutcome:
        def transition(state: ExecutionState) -> None:
            setLogContext(stage=state.value)
            logger.info("Install %s: %s", resolved, state.value)
            if onTransition is not None:
                onTransition(state)

        scratch.mkdir(parents=True, exist_ok=True)
        staging.mkdir(parents=True, exist_ok=True)
        fs = SandboxFileSystem([
            PathMapping(source, SOURCE_MOUNT, writable=False),
            PathMapping(scratch, SCRATCH_MOUNT, writable=True),
            PathMapping(staging, STAGING_MOUNT, writable=True),
        ])
        fs.writeText(VERSION_FILE, json.dumps(_versionDocument(resolved), indent=2))
        transition(ExecutionState.STAGED)

        kind = _pluginKind(resolved)
        checkpoint(cancel, f"plugin:{kind}")
        pluginBytes = self.pluginRegistry.lookup(kind)
        try:
            instance = self.provider.instantiate(pluginBytes, fs)
        except PluginLoadError:
            raise
        except Exception as err:
            # Whatever the provider raises while loading (decode, compile, module init)
            raise PluginLoadError(kind, err) from err

        transition(ExecutionState.PLUGIN_RUNNING)
        try:
            result = instance.call(PLUGIN_ENTRYPOINT)
        except Exception as err:
            # A trap inside the plugin, sandbox denials included
            error = PluginInvocationError(kind, cause=err)
            logger.warning("%s", error)
            transition(ExecutionState.PLUGIN_FAILED)
            return ExecutionOutcome(ExecutionState.PLUGIN_FAILED, resolved, error=error)
        if not result.ok:
            error = PluginInvocationError(kind, result.message)
            logger.warning("%s", error)
            transition(ExecutionState.PLUGIN_FAILED)
            return ExecutionOutcome(ExecutionState.PLUGIN_FAILED, resolved, pluginMessage=result.message, error=error)

        transition(ExecutionState.INSTRUCTIONS_RUNNING)
        finished: list[CommandResult] = []
        try:
            runStatements(
                statements,
                staging,
                cancel=cancel,
                runner=self.runner,
                timeout=self.timeout,
                onResult=finished.append,
            )
        except HostCommandError as error:
            transition(ExecutionState.INSTRUCTION_FAILED)
            return ExecutionOutcome(
                ExecutionState.INSTRUCTION_FAILED,
                resolved,
                pluginMessage=result.message,
                commands=tuple(finished),
                error=error,
            )

        transition(ExecutionState.SUCCEEDED)
        return ExecutionOutcome(
            ExecutionState.SUCCEEDED,
            resolved,
            pluginMessage=result.message,
            commands=tuple(finished),
        )
