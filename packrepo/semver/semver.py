# packrepo/semver/semver.py
from __future__ import annotations

import re
from dataclasses import dataclass
from functools import total_ordering
from typing import Literal, Iterable, Generic, TypeVar

__all__ = [
    "Version",
    "EMPTY_VERSION",
    "parseVersion",
    "coerceVersion",
    "VersionComparator",
    "VersionRequirement",
    "parseVersionRequirement",
    "versionSatisfiesRequirement",
    "requirementToFilter",
    "VersionMatchResult",
    "matchCandidates",
    "selectHighest",
]



SEMVER_PATTERN_RE = re.compile(
    r"^(?P<major>0|[1-9]\d*)"
    r"\.(?P<minor>0|[1-9]\d*)"
    r"\.(?P<patch>0|[1-9]\d*)"
    r"(?:-(?P<prerelease>(?:0|[1-9]\d*|[0-9A-Za-z-]*[A-Za-z-][0-9A-Za-z-]*)"
    r"(?:\.(?:0|[1-9]\d*|[0-9A-Za-z-]*[A-Za-z-][0-9A-Za-z-]*))*))?"
    r"(?:\+(?P<build>[0-9A-Za-z-]+(?:\.[0-9A-Za-z-]+)*))?$"
)

# OSGi style "1.2.3.qualifier"
_QUALIFIER_RE = re.compile(r"^[0-9A-Za-z_-]+$")

# OSGi interval notation: [1.0,2.0) (1.0,2.0] ...
_INTERVAL_RE = re.compile(r"^(?P<open>[\[(])\s*(?P<low>[^,\s]+)\s*,\s*(?P<high>[^\])\s]+)\s*(?P<close>[\])])$")

Operator = Literal["<", "<=", ">", ">=", "=="]

T = TypeVar("T")


@total_ordering
@dataclass(frozen=True)
class Version:
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
        return f"Version({str(self)!r})"

    def _prereleaseCmpKey(self) -> tuple:
        # Numeric identifiers sort below alphanumeric ones: (0, int) < (1, str)
        parts: list[tuple[int, int | str]] = []
        for ident in self.prerelease:
            if ident.isdigit():
                parts.append((0, int(ident)))
            else:
                parts.append((1, ident))
        return tuple(parts)

    def _cmpKey(self) -> tuple:
        # Build is ignored for ordering.
        # A release outranks any of its prereleases.
        releaseFlag = 1 if not self.prerelease else 0
        return (
            self.major,
            self.minor,
            self.patch,
            releaseFlag,
            self._prereleaseCmpKey(),
        )

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Version):
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
        if not isinstance(other, Version):
            return NotImplemented
        return self._cmpKey() < other._cmpKey()



EMPTY_VERSION = Version(0, 0, 0)



def parseVersion(raw: str) -> Version:
    """
    Parse a version string into Version.

    Accepted forms (examples):
        "1"                   -> 1.0.0
        "1.2"                 -> 1.2.0
        "1.2.3"               -> 1.2.3
        "v1.2.3"              -> 1.2.3
        "1.2.3-alpha.1"
        "1.2.3+build.1"
        "1.2.3.SNAPSHOT"      -> 1.2.3-SNAPSHOT (catalog qualifier form)

    Rejected:
        "", ".1", "1.", "1..3", "01.2.3" (leading zeroes), "1.2.3.4.5", ...
    """
    if raw is None:
        raise ValueError("Version string cannot be None")

    if not isinstance(raw, str):
        raise TypeError(f"Version string must be a string type, got {type(raw).__name__}")

    raw = raw.strip()
    if not raw:
        raise ValueError("Version string cannot be empty or whitespace only")

    if raw.startswith("v") and len(raw) > 1 and "0" <= raw[1] <= "9":
        raw = raw[1:]

    sepIndex = len(raw)
    for ch in ("-", "+"):
        idx = raw.find(ch)
        if idx != -1 and idx < sepIndex:
            sepIndex = idx

    core = raw[:sepIndex]
    suffix = raw[sepIndex:]

    coreParts = core.split(".")
    if len(coreParts) == 4 and not suffix:
        # Catalog qualifier: the fourth segment becomes a prerelease identifier
        qualifier = coreParts.pop()
        if not _QUALIFIER_RE.fullmatch(qualifier):
            raise ValueError(f"Invalid qualifier {qualifier!r} in version {raw!r}")
        suffix = f"-{qualifier.replace('_', '-')}"

    if not 1 <= len(coreParts) <= 3:
        raise ValueError(f"Invalid version core {core!r} in {raw!r}")

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
        raise ValueError(f"Invalid version {raw!r} (normalized {normalized!r})")

    prereleaseGroup = mtch.group("prerelease")
    buildGroup = mtch.group("build")

    return Version(
        major=major,
        minor=minor,
        patch=patch,
        prerelease=tuple(prereleaseGroup.split(".")) if prereleaseGroup is not None else (),
        build=tuple(buildGroup.split(".")) if buildGroup is not None else (),
    )



def coerceVersion(value: Version | str | None) -> Version:
    """None and blank strings become EMPTY_VERSION."""
    if value is None:
        return EMPTY_VERSION
    if isinstance(value, Version):
        return value
    if isinstance(value, str) and not value.strip():
        return EMPTY_VERSION
    return parseVersion(value)



@dataclass(frozen=True)
class VersionComparator:
    operator: Operator
    version: Version

    def __str__(self) -> str:
        return f"{self.operator}{self.version}"



@dataclass(frozen=True)
class VersionRequirement:
    # All comparators are AND-ed.
    comparators: tuple[VersionComparator, ...] = ()

    def __str__(self) -> str:
        return " ".join(str(comp) for comp in self.comparators) or "*"



def _makeComparator(op: str, versionStr: str, rawRequirement: str) -> VersionComparator:
    if not versionStr:
        raise ValueError(f"Missing version after operator {op!r} in requirement {rawRequirement!r}")
    parsedVersion = parseVersion(versionStr)
    canonOp = "==" if op == "=" else op
    if canonOp not in ("<", "<=", ">", ">=", "=="):
        raise ValueError(f"Unsupported operator {op!r} in requirement {rawRequirement!r}")
    return VersionComparator(canonOp, parsedVersion)



def _caretToComparators(version: Version) -> tuple[VersionComparator, VersionComparator]:
    """
    ^M.m.p:
      - M > 0:            >= M.m.p  and  < (M+1).0.0
      - M == 0, m > 0:    >= 0.m.p  and  < 0.(m+1).0
      - M == 0, m == 0:   >= 0.0.p  and  < 0.0.(p+1)
    """
    major, minor, patch = version.major, version.minor, version.patch
    if major > 0:
        upperVersion = Version(major + 1, 0, 0)
    elif minor > 0:
        upperVersion = Version(0, minor + 1, 0)
    else:
        upperVersion = Version(0, 0, patch + 1)
    return VersionComparator(">=", version), VersionComparator("<", upperVersion)



def _tildeToComparators(version: Version) -> tuple[VersionComparator, VersionComparator]:
    """
    ~M.m.p:
      - minor or patch non-zero:  >= M.m.p  and  < M.(m+1).0
      - only major ('~1'):         >= M.0.0  and  < (M+1).0.0
    """
    major, minor, patch = version.major, version.minor, version.patch
    if minor > 0 or patch > 0:
        upperVersion = Version(major, minor + 1, 0)
    else:
        upperVersion = Version(major + 1, 0, 0)
    return VersionComparator(">=", version), VersionComparator("<", upperVersion)



def _intervalToComparators(mtch: re.Match[str]) -> tuple[VersionComparator, VersionComparator]:
    low = parseVersion(mtch.group("low"))
    high = parseVersion(mtch.group("high"))
    if high < low:
        raise ValueError(f"Invalid interval {mtch.group(0)!r}: upper < lower")
    lowOp: Operator = ">=" if mtch.group("open") == "[" else ">"
    highOp: Operator = "<=" if mtch.group("close") == "]" else "<"
    return VersionComparator(lowOp, low), VersionComparator(highOp, high)



def parseVersionRequirement(rawVersion: str | None) -> VersionRequirement | None:
    """
    Parse a version range into VersionRequirement.

    Accepted forms:

        None, "", or "*"        -> no constraint (returns None)

        "1.2.3"                 -> == 1.2.3
        ">=1.2.0 <2.0.0"        -> >=1.2.0 AND <2.0.0
        "^1.2.3"                -> >=1.2.3 AND <2.0.0 (with 0.x semantics)
        "~1.2.3"                -> >=1.2.3 AND <1.3.0
        "1.2.3 - 2.0.0"         -> >=1.2.3 AND <=2.0.0
        "[1.0,2.0)"             -> >=1.0.0 AND <2.0.0
    """
    if rawVersion is None:
        return None
    if not isinstance(rawVersion, str):
        raise TypeError(f"Requirement must be a string or None, got {type(rawVersion).__name__}")

    rawVersion = rawVersion.strip()
    if not rawVersion or rawVersion == "*":
        return None

    interval = _INTERVAL_RE.match(rawVersion)
    if interval:
        return VersionRequirement(comparators=_intervalToComparators(interval))

    # Hyphen range needs whitespace around '-' so "1.2.3-alpha" stays a version
    mtch = re.match(r"^(?P<left>\S+)\s+-\s+(?P<right>\S+)$", rawVersion)
    if mtch:
        versionLeft = parseVersion(mtch.group("left"))
        versionRight = parseVersion(mtch.group("right"))
        if versionRight < versionLeft:
            raise ValueError(f"Invalid hyphen range {rawVersion!r}: upper < lower")
        return VersionRequirement(comparators=(
            VersionComparator(">=", versionLeft),
            VersionComparator("<=", versionRight),
        ))

    comparators: list[VersionComparator] = []
    for token in rawVersion.split():
        if token[0] in ("^", "~"):
            if len(token) == 1:
                raise ValueError(f"Missing version after {token[0]!r} in requirement {rawVersion!r}")
            parsedVersion = parseVersion(token[1:])
            if token[0] == "^":
                comparators.extend(_caretToComparators(parsedVersion))
            else:
                comparators.extend(_tildeToComparators(parsedVersion))
            continue

        op = next((cand for cand in ("<=", ">=", "==", "<", ">", "=") if token.startswith(cand)), None)
        if op is not None:
            comparators.append(_makeComparator(op, token[len(op):], rawVersion))
            continue

        comparators.append(VersionComparator("==", parseVersion(token)))

    if not comparators:
        return None

    return VersionRequirement(comparators=tuple(comparators))



def versionSatisfiesRequirement(
    version: Version,
    requirement: VersionRequirement | None,
) -> bool:
    """requirement None => always True."""
    if requirement is None:
        return True

    for comparator in requirement.comparators:
        if comparator.operator == "==":
            ok = version == comparator.version
        elif comparator.operator == ">=":
            ok = version >= comparator.version
        elif comparator.operator == "<=":
            ok = version <= comparator.version
        elif comparator.operator == ">":
            ok = version > comparator.version
        elif comparator.operator == "<":
            ok = version < comparator.version
        else:
            raise ValueError(f"Unknown operator {comparator.operator!r}")
        if not ok:
            return False
    return True



def requirementToFilter(attribute: str, requirement: VersionRequirement | None) -> str:
    """
    Render a version requirement as an LDAP filter fragment over `attribute`.

    Strict '<' and '>' are expressed through negation so the output only uses
    the operators every filter implementation understands:

        ">=1.0.0 <2.0.0"  -> "(&(version>=1.0.0)(!(version>=2.0.0)))"
        None              -> "(version=*)"
    """
    if requirement is None or not requirement.comparators:
        return f"({attribute}=*)"

    parts: list[str] = []
    for comparator in requirement.comparators:
        version = comparator.version
        if comparator.operator == "==":
            parts.append(f"({attribute}={version})")
        elif comparator.operator == ">=":
            parts.append(f"({attribute}>={version})")
        elif comparator.operator == "<=":
            parts.append(f"({attribute}<={version})")
        elif comparator.operator == ">":
            parts.append(f"(!({attribute}<={version}))")
        else:
            parts.append(f"(!({attribute}>={version}))")

    if len(parts) == 1:
        return parts[0]
    return "(&" + "".join(parts) + ")"



@dataclass(frozen=True)
class VersionMatchResult(Generic[T]):
    """
    Result of version-based selection among candidates.

    - candidates: all candidates seen.
    - matches: candidates that satisfy the requirement.
    - best: the single best match by version, or None if no matches.
            Equal best versions resolve to the first one in input order.
    """
    requirement: VersionRequirement | None
    candidates: tuple[tuple[Version, T], ...]
    matches: tuple[tuple[Version, T], ...]
    best: tuple[Version, T] | None



def matchCandidates(
    candidates: Iterable[tuple[Version, T]],
    requirement: VersionRequirement | None = None,
) -> VersionMatchResult[T]:
    """
    Filter candidates by requirement and select the highest version.
    If several candidates share the highest version, the first one wins.
    """
    candidatesList: list[tuple[Version, T]] = list(candidates)

    matchList = [
        (version, payload)
        for version, payload in candidatesList
        if versionSatisfiesRequirement(version, requirement)
    ]

    best: tuple[Version, T] | None = None
    if matchList:
        bestVersion, bestPayload = matchList[0]
        for version, payload in matchList[1:]:
            if version > bestVersion:
                bestVersion, bestPayload = version, payload
        best = (bestVersion, bestPayload)

    return VersionMatchResult(
        requirement=requirement,
        candidates=tuple(candidatesList),
        matches=tuple(matchList),
        best=best,
    )



def selectHighest(candidates: Iterable[tuple[Version, T]]) -> tuple[Version, T] | None:
    """Highest (version, payload) pair; the first one seen wins ties."""
    return matchCandidates(candidates).best
