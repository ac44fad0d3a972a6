# paxcore/semver/semver.py
from __future__ import annotations

import re
from dataclasses import dataclass
from functools import total_ordering
from typing import Literal, Iterable, Generic, TypeVar

__all__ = [
    "SemVerVersion",
    "SemVerComparator",
    "SemVerRequirement",
    "SemVerMatchResult",
    "SemVerResolver",
    "parseSemVerVersion",
    "parseSemVerRequirement",
    "versionSatisfiesRequirement",
]



SEMVER_PATTERN_RE = re.compile(
    r"^(?P<major>0|[1-9]\d*)"
    r"\.(?P<minor>0|[1-9]\d*)"
    r"\.(?P<patch>0|[1-9]\d*)"
    r"(?:-(?P<prerelease>(?:0|[1-9]\d*|[0-9A-Za-z-]*[A-Za-z-][0-9A-Za-z-]*)"
    r"(?:\.(?:0|[1-9]\d*|[0-9A-Za-z-]*[A-Za-z-][0-9A-Za-z-]*))*))?"
    r"(?:\+(?P<build>[0-9A-Za-z-]+(?:\.[0-9A-Za-z-]+)*))?$"
)

_HYPHEN_RANGE_RE = re.compile(r"^(?P<left>\S+)\s+-\s+(?P<right>\S+)$")
_WILDCARD_RE = re.compile(r"^(?P<major>0|[1-9]\d*)(?:\.(?P<minor>0|[1-9]\d*))?\.[*xX]$")



T = TypeVar("T")


@total_ordering
@dataclass(frozen=True)
class SemVerVersion:
    major: int
    minor: int
    patch: int
    prerelease: tuple[str, ...] = ()
    build: tuple[str, ...] = ()

    def __str__(self) -> str:
        base = f"{self.major}.{self.minor}.{self.patch}"
        prerelease = f"-{'.'.join(self.prerelease)}" if self.prerelease else ""
        build = f"+{'.'.join(self.build)}" if self.build else ""
        return f"{base}{prerelease}{build}"

    def __repr__(self) -> str:
        return f"SemVerVersion({str(self)!r})"

    @property
    def core(self) -> tuple[int, int, int]:
        return (self.major, self.minor, self.patch)

    @property
    def isPrerelease(self) -> bool:
        return bool(self.prerelease)

    def identical(self, other: SemVerVersion) -> bool:
        """Equality including build metadata (which precedence ignores)."""
        return self == other and self.build == other.build

    def _prereleaseCmpKey(self) -> tuple:
        # Numeric identifiers have lower precedence than non-numeric.
        # We encode numeric as (0, int), non-numeric as (1, str),
        # so numeric < non-numeric in tuple comparison.
        parts: list[tuple[int, int | str]] = []
        for ident in self.prerelease:
            if ident.isdigit():
                parts.append((0, int(ident)))
            else:
                parts.append((1, ident))
        return tuple(parts)

    def _cmpKey(self) -> tuple:
        # Build is ignored for ordering
        # No prerelease version is preferred over any prerelease version
        releaseFlag = 1 if not self.prerelease else 0
        return (
            self.major,
            self.minor,
            self.patch,
            releaseFlag,
            self._prereleaseCmpKey()
        )

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, SemVerVersion):
            return NotImplemented
        return (
            self.major == other.major
            and self.minor == other.minor
            and self.patch == other.patch
            and self.prerelease == other.prerelease
        )

    def __hash__(self) -> int:
        return hash((self.major, self.minor, self.patch, self.prerelease))

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, SemVerVersion):
            return NotImplemented
        return self._cmpKey() < other._cmpKey()



def _fromMatch(mtch: re.Match[str]) -> SemVerVersion:
    prereleaseGroup = mtch.group("prerelease")
    buildGroup = mtch.group("build")
    return SemVerVersion(
        major=int(mtch.group("major")),
        minor=int(mtch.group("minor")),
        patch=int(mtch.group("patch")),
        prerelease=tuple(prereleaseGroup.split(".")) if prereleaseGroup is not None else (),
        build=tuple(buildGroup.split(".")) if buildGroup is not None else (),
    )



def parseSemVerVersion(raw: str, *, strict: bool = True) -> SemVerVersion:
    """
    Parse a semantic version string into SemVerVersion.

    strict=True (manifest version numbers) accepts only the full SemVer 2.0
    grammar: "1.2.3", "1.2.3-alpha.1", "1.2.3+build.5", "1.2.3-rc.1+sha".

    strict=False (operands inside requirements) additionally accepts:
        "1"             -> 1.0.0
        "1.2"           -> 1.2.0
        "v1.2.3"        -> 1.2.3

    Rejected in both modes:
        ".1", "1.", "1..3", "1.2.3.4", "01.2.3" (leading zeroes), etc.
    """
    if raw is None:
        raise ValueError("Version string cannot be None")

    if not isinstance(raw, str):
        raise TypeError(f"Version string must be a string type, got {type(raw).__name__}")

    raw = raw.strip()
    if not raw:
        raise ValueError("Version string cannot be empty or whitespace only")

    if strict:
        mtch = SEMVER_PATTERN_RE.match(raw)
        if not mtch:
            raise ValueError(f"Invalid semantic version {raw!r}")
        return _fromMatch(mtch)

    # Accept a single 'v' and remove it (v1.2.3 -> 1.2.3)
    if raw.startswith("v") and len(raw) > 1 and "0" <= raw[1] <= "9":
        raw = raw[1:]

    # Split into core (numeric) and suffix (-prerelease +build)
    sepIndex = len(raw)
    for ch in ("-", "+"):
        idx = raw.find(ch)
        if idx != -1 and idx < sepIndex:
            sepIndex = idx

    core = raw[:sepIndex]
    suffix = raw[sepIndex:]

    coreParts = core.split(".")
    if not 1 <= len(coreParts) <= 3:
        raise ValueError(f"Invalid version core {core!r} in {raw!r}")

    # Reject empty components: ".1", "1.", "1..3"
    if any(part == "" for part in coreParts):
        raise ValueError(f"Empty numeric component in version {raw!r}")

    numericParts: list[int] = []
    for part in coreParts:
        if not re.fullmatch(r"0|[1-9]\d*", part):
            raise ValueError(f"Invalid numeric component {part!r} in version {raw!r}")
        numericParts.append(int(part))

    while len(numericParts) < 3:
        numericParts.append(0)

    major, minor, patch = numericParts
    normalized = f"{major}.{minor}.{patch}{suffix}"

    mtch = SEMVER_PATTERN_RE.match(normalized)
    if not mtch:
        raise ValueError(f"Invalid semantic version {raw!r} (normalized {normalized!r})")
    return _fromMatch(mtch)



@dataclass(frozen=True)
class SemVerComparator:
    operator: Literal["<", "<=", ">", ">=", "=="]
    version: SemVerVersion

    def __str__(self) -> str:
        return f"{self.operator}{self.version}"

    def matches(self, version: SemVerVersion) -> bool:
        if self.operator == "==":
            return version == self.version
        if self.operator == ">=":
            return version >= self.version
        if self.operator == "<=":
            return version <= self.version
        if self.operator == ">":
            return version > self.version
        if self.operator == "<":
            return version < self.version
        raise ValueError(f"Unknown operator {self.operator!r}")



@dataclass(frozen=True)
class SemVerRequirement:
    # All comparators are AND-ed.
    comparators: tuple[SemVerComparator, ...] = ()
    # Text the requirement was parsed from, kept for error messages.
    raw: str = ""

    def __str__(self) -> str:
        return self.raw or ", ".join(str(comp) for comp in self.comparators)

    @property
    def isExact(self) -> bool:
        return len(self.comparators) == 1 and self.comparators[0].operator == "=="

    def targetsPrerelease(self, version: SemVerVersion) -> bool:
        """
        True if some comparator names a pre-release of the same
        major.minor.patch as `version`, which opts that release line in.
        """
        return any(
            comp.version.prerelease and comp.version.core == version.core
            for comp in self.comparators
        )



def _makeComparator(op: str, versionStr: str, rawRequirement: str) -> SemVerComparator:
    if not versionStr:
        raise ValueError(f"Missing version after operator {op!r} in requirement {rawRequirement!r}")
    parsedVersion = parseSemVerVersion(versionStr, strict=False)
    canonOp = "==" if op == "=" else op
    if canonOp not in ("<", "<=", ">", ">=", "=="):
        raise ValueError(f"Unsupported operator {op!r} in requirement {rawRequirement!r}")
    return SemVerComparator(canonOp, parsedVersion)



def _caretToComparators(version: SemVerVersion) -> tuple[SemVerComparator, SemVerComparator]:
    """
    ^M.m.p -> caret expansion following SemVer semantics:

    - If M > 0:
        >= M.m.p  and  < (M+1).0.0
    - If M == 0 and m > 0:
        >= 0.m.p  and  < 0.(m+1).0
    - If M == 0 and m == 0
        >= 0.0.p  and  < 0.0.(p+1)
    """
    Major, minor, patch = version.major, version.minor, version.patch
    greaterOrEqual = SemVerComparator(">=", version)
    if Major > 0:
        upperVersion = SemVerVersion(Major + 1, 0, 0)
    elif Major == 0 and minor > 0:
        upperVersion = SemVerVersion(0, minor + 1, 0)
    else:
        upperVersion = SemVerVersion(0, 0, patch + 1)
    lessThan = SemVerComparator("<", upperVersion)
    return greaterOrEqual, lessThan



def _tildeToComparators(version: SemVerVersion) -> tuple[SemVerComparator, SemVerComparator]:
    """
    ~M.m.p -> tilde expansion (simplified npm-ish):

    - If minor or patch non-zero:
        >= M.m.p  and  < M.(m+1).0
    - Else (only Major specified, e.g. '~1')
        >= M.0.0  and  < (M+1).0.0
    """
    Major, minor, patch = version.major, version.minor, version.patch
    greaterOrEqual = SemVerComparator(">=", version)
    if minor > 0 or patch > 0:
        upperVersion = SemVerVersion(Major, minor + 1, 0)
    else:
        upperVersion = SemVerVersion(Major + 1, 0, 0)
    lessThan = SemVerComparator("<", upperVersion)
    return greaterOrEqual, lessThan



def _wildcardToComparators(mtch: re.Match[str]) -> tuple[SemVerComparator, SemVerComparator]:
    # "1.*" -> >=1.0.0 <2.0.0, "1.2.*" -> >=1.2.0 <1.3.0
    major = int(mtch.group("major"))
    minorGroup = mtch.group("minor")
    if minorGroup is None:
        lower = SemVerVersion(major, 0, 0)
        upper = SemVerVersion(major + 1, 0, 0)
    else:
        minor = int(minorGroup)
        lower = SemVerVersion(major, minor, 0)
        upper = SemVerVersion(major, minor + 1, 0)
    return SemVerComparator(">=", lower), SemVerComparator("<", upper)



def parseSemVerRequirement(rawVersion: str | None) -> SemVerRequirement | None:
    """
    Parse a requirement string into SemVerRequirement.

    Accepted forms:

        None, "", or "*"        -> wildcard (no constraint)

        "1.2.3" / "=1.2.3"      -> == 1.2.3
        ">=1.2.0"               -> >= 1.2.0
        "<2.0.0"                -> < 2.0.0
        ">=1.2.0 <2.0.0"        -> >=1.2.0 AND <2.0.0
        ">=1.0, <2.0"           -> >=1.0.0 AND <2.0.0

        "^1.2.3"                -> >=1.2.3 AND <2.0.0 (with 0.x semantics)
        "~1.2.3"                -> >=1.2.3 AND <1.3.0
        "1.2.*"                 -> >=1.2.0 AND <1.3.0

        "1.2.3 - 2.0.0"         -> >=1.2.3 AND <=2.0.0

    Tokens are separated by commas and/or whitespace when not a hyphen range.
    """
    if rawVersion is None:
        return None
    if not isinstance(rawVersion, str):
        raise TypeError(f"Requirement must be a string or None, got {type(rawVersion).__name__}")

    rawVersion = rawVersion.strip()
    if not rawVersion or rawVersion == "*":
        return None

    comparators: list[SemVerComparator] = []

    # Hyphen range: <left> - <right>. The hyphen must be surrounded by
    # whitespace so "1.2.3-beta" stays a pre-release.
    mtch = _HYPHEN_RANGE_RE.match(rawVersion)
    if mtch:
        versionLeft = parseSemVerVersion(mtch.group("left"), strict=False)
        versionRight = parseSemVerVersion(mtch.group("right"), strict=False)
        if versionRight < versionLeft:
            raise ValueError(f"Invalid hyphen range {rawVersion!r}: upper < lower")
        comparators.append(SemVerComparator(">=", versionLeft))
        comparators.append(SemVerComparator("<=", versionRight))
        return SemVerRequirement(comparators=tuple(comparators), raw=rawVersion)

    tokens = rawVersion.replace(",", " ").split()
    for token in tokens:
        # Caret or tilde
        if token[0] in ("^", "~"):
            if len(token) == 1:
                raise ValueError(f"Missing version after {token[0]!r} in requirement {rawVersion!r}")
            parsedVersion = parseSemVerVersion(token[1:], strict=False)
            if token[0] == "^":
                comparators.extend(_caretToComparators(parsedVersion))
            else:
                comparators.extend(_tildeToComparators(parsedVersion))
            continue

        wildcard = _WILDCARD_RE.match(token)
        if wildcard:
            comparators.extend(_wildcardToComparators(wildcard))
            continue

        # Relational / equality operators
        op = None
        versionPart = None
        for candidate in ("<=", ">=", "==", "<", ">", "="):
            if token.startswith(candidate):
                op = candidate
                versionPart = token[len(candidate):]
                break
        if op is not None and isinstance(versionPart, str):
            comparators.append(_makeComparator(op, versionPart, rawVersion))
            continue

        # Otherwise plain version -> ==version
        comparators.append(SemVerComparator("==", parseSemVerVersion(token, strict=False)))

    if not comparators:
        return None

    return SemVerRequirement(comparators=tuple(comparators), raw=rawVersion)



def versionSatisfiesRequirement(
    version: SemVerVersion,
    requirement: SemVerRequirement | None,
) -> bool:
    """
    Checks if a version satisfies the given requirement.

    requirement None => always returns True.

    Pre-release versions only satisfy a requirement that explicitly targets
    a pre-release of the same major.minor.patch (so "^1.2.0" never picks
    "1.3.0-alpha", while ">=1.3.0-alpha" may).
    """
    if requirement is None:
        return True

    if version.prerelease and not requirement.targetsPrerelease(version):
        return False

    return all(comparator.matches(version) for comparator in requirement.comparators)



@dataclass(frozen=True)
class SemVerMatchResult(Generic[T]):
    """
    Result of semver-based selection among candidate versions.

    - requirement: the requirement used (may be None).
    - candidates: all candidates seen by the resolver.
    - matches: candidates that satisfy the requirement.
    - best: the single best match by version, or None if no matches.
            If multiple candidates share the same best version, the
            first one in the input order is returned.
    """
    requirement: SemVerRequirement | None
    candidates: tuple[tuple[SemVerVersion, T], ...]
    matches: tuple[tuple[SemVerVersion, T], ...]
    best: tuple[SemVerVersion, T] | None



class SemVerResolver:
    @staticmethod
    def matchCandidates(
        candidates: Iterable[tuple[SemVerVersion, T]],
        requirement: SemVerRequirement | None,
    ) -> SemVerMatchResult[T]:
        """
        Filter candidates by requirement and select the best version.

        - If requirement is None: every release candidate matches; pre-releases
          are left out as they would be for any range.
        - "Best" is the candidate with the highest SemVerVersion.
          If multiple candidates share the same highest version, the
          first encountered in input order is used.
        """
        candidatesList: list[tuple[SemVerVersion, T]] = list(candidates)

        matchList: list[tuple[SemVerVersion, T]] = []
        for version, payload in candidatesList:
            if requirement is None and version.prerelease:
                continue
            if versionSatisfiesRequirement(version, requirement):
                matchList.append((version, payload))

        best: tuple[SemVerVersion, T] | None = None
        if matchList:
            bestVersion, bestPayload = matchList[0]
            for version, payload in matchList[1:]:
                if version > bestVersion:
                    bestVersion, bestPayload = version, payload
            best = (bestVersion, bestPayload)

        return SemVerMatchResult(
            requirement=requirement,
            candidates=tuple(candidatesList),
            matches=tuple(matchList),
            best=best
        )

    @staticmethod
    def matchExact(
        candidates: Iterable[tuple[SemVerVersion, T]],
        version: SemVerVersion,
    ) -> tuple[SemVerVersion, T] | None:
        """Return the candidate identical to `version` (build metadata included)."""
        for candidate, payload in candidates:
            if candidate.identical(version):
                return (candidate, payload)
        return None
