# paxcore/packages/model.py
from __future__ import annotations

import re
from collections.abc import Iterator, Mapping
from typing import Annotated, Any, ClassVar, Union
from urllib.parse import urlparse

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    PlainSerializer,
    PlainValidator,
    field_validator,
    model_validator,
)

from paxcore.semver.semver import (
    SemVerVersion,
    parseSemVerRequirement,
    parseSemVerVersion,
)

__all__ = [
    "Author",
    "PackageMetadata",
    "BuildStep",
    "CloneStep",
    "BUILD_STEP_KINDS",
    "Dependency",
    "Version",
    "Flavor",
    "FlavoredPackage",
    "VersionedPackage",
    "PackageNode",
    "isUrl",
    "iterNodes",
    "nodeFromDocument",
]

# "Jane Doe <jane@example.org>" or just "Jane Doe"
_AUTHOR_RE = re.compile(r"^\s*(?P<name>[^<>]*?)\s*(?:<(?P<email>[^<>]*)>)?\s*$")

_METADATA_KEYS: tuple[str, ...] = (
    "name", "description", "license", "website", "repository", "authors", "author",
)



def isUrl(value: str) -> bool:
    """A generic URI is a URL when it carries a scheme other than a drive letter."""
    parsed = urlparse(value)
    return len(parsed.scheme) > 1



class _Frozen(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True, arbitrary_types_allowed=True)



# ------------------------------------------------------------------ #
# Metadata
# ------------------------------------------------------------------ #

class Author(_Frozen):
    name: str
    email: str | None = None

    @model_validator(mode="before")
    @classmethod
    def _fromString(cls, data: Any) -> Any:
        if not isinstance(data, str):
            return data
        mtch = _AUTHOR_RE.match(data)
        if not mtch or not mtch.group("name"):
            raise ValueError(f"Invalid author {data!r}, expected 'Name <email>'")
        email = mtch.group("email")
        return {"name": mtch.group("name"), "email": email.strip() if email else None}

    def __str__(self) -> str:
        return f"{self.name} <{self.email}>" if self.email else self.name



class PackageMetadata(_Frozen):
    """Descriptive data attached to a package node; not needed to install it."""
    name: str
    description: str | None = None
    license: str | None = None
    website: str | None = None
    repository: str | None = None
    authors: tuple[Author, ...] | None = None

    @model_validator(mode="before")
    @classmethod
    def _foldAuthor(cls, data: Any) -> Any:
        if not isinstance(data, Mapping) or "author" not in data:
            return data
        out = dict(data)
        single = out.pop("author")
        authors = list(out.get("authors") or ())
        authors.insert(0, single)
        out["authors"] = authors
        return out



# ------------------------------------------------------------------ #
# Build steps
# ------------------------------------------------------------------ #

class BuildStep(_Frozen):
    """
    A declarative preparation step performed by a plugin.

    Every manifest format writes a step as a singleton map keyed by its kind:
        {"clone": {"repository": "https://..."}}
    """
    kind: ClassVar[str] = ""

    def toManifest(self) -> dict[str, Any]:
        return {self.kind: self.model_dump(mode="json")}



class CloneStep(BuildStep):
    kind: ClassVar[str] = "clone"
    repository: str



BUILD_STEP_KINDS: dict[str, type[BuildStep]] = {
    CloneStep.kind: CloneStep,
}



def _coerceBuildStep(raw: Any) -> BuildStep:
    if isinstance(raw, BuildStep):
        return raw
    if not isinstance(raw, Mapping) or len(raw) != 1:
        raise ValueError(f"Build step must be a single-key mapping like {{'clone': {{...}}}}, got {raw!r}")
    (tag, body), = raw.items()
    stepType = BUILD_STEP_KINDS.get(str(tag).lower())
    if stepType is None:
        raise ValueError(f"Unknown build step kind {tag!r}; known kinds: {sorted(BUILD_STEP_KINDS)}")
    return stepType.model_validate(body if body is not None else {})



# ------------------------------------------------------------------ #
# Versions
# ------------------------------------------------------------------ #

class Dependency(_Frozen):
    name: str = Field(min_length=1)
    # Slash separated flavor path inside the target package, e.g. "base/debug".
    flavor: str | None = None
    # Exact version or semver range; None means any version.
    version: str | None = None

    @field_validator("version")
    @classmethod
    def _checkRequirement(cls, value: str | None) -> str | None:
        if value is not None:
            parseSemVerRequirement(value)
        return value

    @property
    def flavorPath(self) -> tuple[str, ...]:
        if not self.flavor:
            return ()
        return tuple(part for part in self.flavor.split("/") if part)



def _parseVersionNumber(value: Any) -> SemVerVersion:
    if isinstance(value, SemVerVersion):
        return value
    if not isinstance(value, str):
        raise ValueError(f"Version number must be a string, got {type(value).__name__}")
    return parseSemVerVersion(value, strict=True)



VersionNumber = Annotated[
    SemVerVersion,
    PlainValidator(_parseVersionNumber),
    PlainSerializer(str, return_type=str),
]



class Version(_Frozen):
    number: VersionNumber
    steps: tuple[BuildStep, ...] = ()
    dependencies: tuple[Dependency, ...] | None = None
    # Pre-built artifact: URL or local path.
    prebuilt: str | None = Field(default=None, validation_alias=AliasChoices("prebuilt", "pre_built"))
    source: str | None = None
    # Restricted install grammar, see paxcore.execution.instructions.
    install: str = Field(default="", validation_alias=AliasChoices("install", "install_inst"))

    @field_validator("steps", mode="before")
    @classmethod
    def _parseSteps(cls, value: Any) -> Any:
        if value is None:
            return ()
        if isinstance(value, (str, bytes)) or not isinstance(value, (list, tuple)):
            raise ValueError("steps must be a list of build steps")
        return tuple(_coerceBuildStep(step) for step in value)

    @property
    def stepKinds(self) -> tuple[str, ...]:
        return tuple(step.kind for step in self.steps)

    def toManifest(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "number": str(self.number),
            "steps": [step.toManifest() for step in self.steps],
            "install": self.install,
        }
        if self.dependencies is not None:
            out["dependencies"] = [dep.model_dump(exclude_none=True) for dep in self.dependencies]
        if self.prebuilt is not None:
            out["prebuilt"] = self.prebuilt
        if self.source is not None:
            out["source"] = self.source
        return out



# ------------------------------------------------------------------ #
# Package nodes
# ------------------------------------------------------------------ #

class _NodeBase(_Frozen):
    metadata: PackageMetadata | None = None

    @model_validator(mode="before")
    @classmethod
    def _liftMetadata(cls, data: Any) -> Any:
        # Metadata is written flat next to flavors/versions in manifests.
        if not isinstance(data, Mapping) or "metadata" in data:
            return data
        meta = {key: data[key] for key in _METADATA_KEYS if key in data}
        if not meta:
            return data
        rest = {key: value for key, value in data.items() if key not in meta}
        rest["metadata"] = meta
        return rest

    @property
    def name(self) -> str | None:
        return self.metadata.name if self.metadata is not None else None



class Flavor(_Frozen):
    name: str = Field(min_length=1, pattern=r"^[^/\\]+$")
    # None until the builder attaches the subdirectory's node.
    node: "PackageNode | None" = None

    @model_validator(mode="before")
    @classmethod
    def _fromName(cls, data: Any) -> Any:
        if isinstance(data, str):
            return {"name": data}
        return data



class FlavoredPackage(_NodeBase):
    """Interior node: named child flavors, in declared order."""
    flavors: tuple[Flavor, ...] = Field(min_length=1)

    @field_validator("flavors")
    @classmethod
    def _uniqueNames(cls, value: tuple[Flavor, ...]) -> tuple[Flavor, ...]:
        seen: set[str] = set()
        for flavor in value:
            if flavor.name in seen:
                raise ValueError(f"Duplicate flavor name {flavor.name!r}")
            seen.add(flavor.name)
        return value

    @property
    def flavorNames(self) -> tuple[str, ...]:
        return tuple(flavor.name for flavor in self.flavors)

    def child(self, name: str) -> PackageNode | None:
        for flavor in self.flavors:
            if flavor.name == name:
                return flavor.node
        return None



class VersionedPackage(_NodeBase):
    """Leaf node: one or more installable releases."""
    versions: tuple[Version, ...] = Field(min_length=1)

    def findVersion(self, number: SemVerVersion | str) -> Version | None:
        wanted = parseSemVerVersion(number) if isinstance(number, str) else number
        for version in self.versions:
            if version.number.identical(wanted):
                return version
        return None

    def duplicateVersions(self) -> list[str]:
        """
        Versions sharing precedence with an earlier entry. Build metadata
        does not make two releases distinct: "1.0.0+linux" and "1.0.0+win"
        would tie during selection.
        """
        seen: dict[SemVerVersion, str] = {}
        dupes: list[str] = []
        for version in self.versions:
            key = str(version.number)
            first = seen.get(version.number)
            if first is None:
                seen[version.number] = key
            elif first == key:
                dupes.append(key)
            else:
                dupes.append(f"{first} / {key}")
        return dupes



PackageNode = Union[FlavoredPackage, VersionedPackage]

Flavor.model_rebuild()
FlavoredPackage.model_rebuild()



def nodeFromDocument(document: Any) -> PackageNode:
    """
    Validate a decoded manifest document into a package node.

    The variant is chosen by key presence alone: "flavors" selects
    FlavoredPackage, "versions" selects VersionedPackage. Both or neither
    is an error.
    """
    if not isinstance(document, Mapping):
        raise ValueError(f"Manifest must be a mapping at the top level, got {type(document).__name__}")
    hasFlavors = "flavors" in document
    hasVersions = "versions" in document
    if hasFlavors and hasVersions:
        raise ValueError("Manifest declares both 'flavors' and 'versions'; a node is exactly one of them")
    if hasFlavors:
        return FlavoredPackage.model_validate(document)
    if hasVersions:
        return VersionedPackage.model_validate(document)
    raise ValueError("Manifest declares neither 'flavors' nor 'versions'")



def iterNodes(
    node: PackageNode,
    path: tuple[str, ...] = (),
) -> Iterator[tuple[tuple[str, ...], PackageNode]]:
    """Depth-first walk yielding (flavorPath, node), root first."""
    yield path, node
    if isinstance(node, FlavoredPackage):
        for flavor in node.flavors:
            if flavor.node is not None:
                yield from iterNodes(flavor.node, path + (flavor.name,))
