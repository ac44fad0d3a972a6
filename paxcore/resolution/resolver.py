# paxcore/resolution/resolver.py
from __future__ import annotations

import logging
from collections.abc import Iterator, Sequence
from dataclasses import dataclass
from typing import TypeAlias

from paxcore.core.cancellation import CancellationToken, checkpoint
from paxcore.core.errors import (
    CyclicDependency,
    DependencyResolutionError,
    FlavorNotFound,
    ManifestError,
    NoMatchingVersion,
    PackageNotFound,
)
from paxcore.packages.index import PackageIndex
from paxcore.packages.model import Dependency, FlavoredPackage, PackageNode, Version, VersionedPackage
from paxcore.semver.semver import (
    SemVerRequirement,
    SemVerResolver,
    SemVerVersion,
    parseSemVerRequirement,
    parseSemVerVersion,
)

logger = logging.getLogger(__name__)

__all__ = [
    "ResolvedVersion",
    "Specifier",
    "resolve",
    "normalizeFlavorPath",
]

Specifier: TypeAlias = "SemVerVersion | SemVerRequirement | str | None"
_Chain: TypeAlias = tuple[tuple[str, str], ...]



@dataclass(frozen=True)
class ResolvedVersion:
    """
    One selected version plus the resolved versions of its dependencies.

    The root ResolvedVersion is the root of the whole resolution graph.
    """
    package: str
    flavorPath: tuple[str, ...]
    version: Version
    dependencies: tuple[ResolvedVersion, ...] = ()

    @property
    def number(self) -> SemVerVersion:
        return self.version.number

    @property
    def flavor(self) -> str:
        return "/".join(self.flavorPath)

    @property
    def key(self) -> tuple[str, tuple[str, ...], str]:
        return (self.package, self.flavorPath, str(self.version.number))

    def __str__(self) -> str:
        where = f"{self.package}/{self.flavor}" if self.flavorPath else self.package
        return f"{where}@{self.version.number}"

    def walk(self) -> Iterator[ResolvedVersion]:
        """Pre-order: self, then each dependency subtree."""
        yield self
        for dep in self.dependencies:
            yield from dep.walk()

    def flatten(self) -> list[ResolvedVersion]:
        """
        Post-order install list: dependencies before dependents, each
        (package, flavorPath, version) once.
        """
        out: list[ResolvedVersion] = []
        seen: set[tuple[str, tuple[str, ...], str]] = set()

        def _visit(node: ResolvedVersion) -> None:
            for dep in node.dependencies:
                _visit(dep)
            if node.key not in seen:
                seen.add(node.key)
                out.append(node)

        _visit(self)
        return out



def normalizeFlavorPath(flavorPath: Sequence[str] | str | None) -> tuple[str, ...]:
    if flavorPath is None:
        return ()
    if isinstance(flavorPath, str):
        return tuple(part for part in flavorPath.split("/") if part)
    return tuple(flavorPath)



def _descend(package: str, tree: PackageNode, flavorPath: tuple[str, ...]) -> VersionedPackage:
    node = tree
    for depth, segment in enumerate(flavorPath):
        if isinstance(node, VersionedPackage):
            raise FlavorNotFound(
                package,
                flavorPath,
                reason=f"'{'/'.join(flavorPath[:depth]) or '<root>'}' is a versioned package with no flavors",
            )
        child = node.child(segment)
        if child is None:
            raise FlavorNotFound(package, flavorPath, available=node.flavorNames)
        node = child

    if isinstance(node, FlavoredPackage):
        raise FlavorNotFound(
            package,
            flavorPath,
            available=node.flavorNames,
            reason="path ends at a flavored package; choose one of its flavors",
        )
    return node



def _selectVersion(
    package: str,
    flavorPath: tuple[str, ...],
    leaf: VersionedPackage,
    specifier: Specifier,
) -> Version:
    candidates = [(version.number, version) for version in leaf.versions]
    available = [str(number) for number, _ in candidates]

    if isinstance(specifier, str):
        text = specifier.strip()
        try:
            specifier = parseSemVerVersion(text, strict=True)
        except ValueError:
            specifier = parseSemVerRequirement(text)

    if isinstance(specifier, SemVerVersion):
        exact = SemVerResolver.matchExact(candidates, specifier)
        if exact is None:
            raise NoMatchingVersion(package, flavorPath, specifier, available)
        return exact[1]

    result = SemVerResolver.matchCandidates(candidates, specifier)
    if result.best is None:
        raise NoMatchingVersion(package, flavorPath, specifier if specifier is not None else "*", available)
    return result.best[1]



class _Resolver:
    def __init__(self, packageIndex: PackageIndex, cancel: CancellationToken | None) -> None:
        self.packageIndex = packageIndex
        self.cancel = cancel

    def resolveNode(
        self,
        package: str,
        tree: PackageNode,
        flavorPath: tuple[str, ...],
        specifier: Specifier,
        chain: _Chain,
    ) -> ResolvedVersion:
        checkpoint(self.cancel, f"resolve:{package}")
        leaf = _descend(package, tree, flavorPath)
        version = _selectVersion(package, flavorPath, leaf, specifier)
        logger.info(
            "Selected %s%s@%s (specifier %r)",
            package,
            "/" + "/".join(flavorPath) if flavorPath else "",
            version.number,
            str(specifier) if specifier is not None else "*",
        )

        deps = tuple(self.resolveDependency(dep, chain) for dep in version.dependencies or ())
        return ResolvedVersion(package=package, flavorPath=flavorPath, version=version, dependencies=deps)

    def resolveDependency(self, dep: Dependency, chain: _Chain) -> ResolvedVersion:
        depPath = dep.flavorPath
        link = (dep.name, "/".join(depPath))
        depChain = chain + (link,)
        if link in chain:
            raise CyclicDependency(depChain)

        try:
            depTree = self.packageIndex.lookup(dep.name)
        except ManifestError as err:
            raise DependencyResolutionError(depChain, err) from err
        if depTree is None:
            err = PackageNotFound(dep.name)
            raise DependencyResolutionError(depChain, err) from err

        try:
            # The raw text, so a plain version is matched exactly like a top-level request.
            return self.resolveNode(dep.name, depTree, depPath, dep.version, depChain)
        except (FlavorNotFound, NoMatchingVersion) as err:
            # Only failures at this edge; deeper edges arrive already wrapped.
            raise DependencyResolutionError(depChain, err) from err



def resolve(
    tree: PackageNode,
    flavorPath: Sequence[str] | str | None,
    specifier: Specifier,
    packageIndex: PackageIndex,
    *,
    packageName: str | None = None,
    cancel: CancellationToken | None = None,
) -> ResolvedVersion:
    """
    Select a version inside `tree` and resolve its dependencies.

    Arguments:
      - flavorPath: flavor names from the root ("base/debug" or
                    ["base", "debug"]); empty means the root itself must be
                    a versioned package.
      - specifier:  a SemVerVersion or full version string (exact match,
                    build metadata included), a SemVerRequirement or
                    requirement string ("^1.2", ">=1.0, <2.0"), or None for
                    the highest release.
      - packageName: name used in errors and dependency chains; defaults
                    to the root manifest's name.

    Raises:
      FlavorNotFound, NoMatchingVersion for the requested package itself,
      CyclicDependency when a (package, flavor) pair is reached again on its
      own resolution path, DependencyResolutionError for any other failure
      below the root.
    """
    path = normalizeFlavorPath(flavorPath)
    package = packageName or tree.name or "<root>"
    chain: _Chain = ((package, "/".join(path)),)
    return _Resolver(packageIndex, cancel).resolveNode(package, tree, path, specifier, chain)
