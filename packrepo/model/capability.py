# packrepo/model/capability.py
from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any

from packrepo.model.filter import Filter, parseFilter
from packrepo.semver.semver import Version, parseVersion

__all__ = [
    "BUNDLE",
    "PACKAGE",
    "SERVICE",
    "EXTENDER",
    "FRAGMENT",
    "Capability",
    "Requirement",
]



# Well-known namespaces
BUNDLE = "bundle"
PACKAGE = "package"
SERVICE = "service"
EXTENDER = "extender"
FRAGMENT = "fragment"

_VERSION_KEY = "version"



def _freezeAttributes(attributes: Mapping[str, Any] | None) -> Mapping[str, Any]:
    frozen: dict[str, Any] = {}
    for key, value in (attributes or {}).items():
        if key.lower() == _VERSION_KEY and isinstance(value, str):
            value = parseVersion(value)
        elif isinstance(value, list):
            value = tuple(value)
        frozen[str(key)] = value
    return MappingProxyType(frozen)



@dataclass(frozen=True)
class Capability:
    """
    A named, attributed fact a resource offers, e.g.
    Capability("package", {"package": "org.example.api", "version": "1.2.0"}).

    A string "version" attribute is normalized to Version so filters compare
    it by version order rather than lexically.
    """
    namespace: str
    attributes: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not self.namespace or not isinstance(self.namespace, str):
            raise ValueError("Capability namespace must be a non-empty string")
        object.__setattr__(self, "attributes", _freezeAttributes(self.attributes))

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Capability):
            return NotImplemented
        return self.namespace == other.namespace and dict(self.attributes) == dict(other.attributes)

    def __hash__(self) -> int:
        return hash((self.namespace, tuple(sorted(self.attributes))))

    @property
    def version(self) -> Version | None:
        value = self.attributes.get(_VERSION_KEY)
        return value if isinstance(value, Version) else None

    def __str__(self) -> str:
        attrs = ", ".join(f"{key}={value}" for key, value in self.attributes.items())
        return f"{self.namespace}[{attrs}]"



@dataclass(frozen=True)
class Requirement:
    """
    A filtered need against capabilities of one namespace.

    - optional: an unmet optional requirement never fails resolution.
    - multiple: more than one provider may be wired for this requirement.
    - extend:   the requirement extends its provider (fragment -> host).
    """
    namespace: str
    filter: Filter
    optional: bool = False
    multiple: bool = False
    extend: bool = False
    comment: str | None = None

    def __post_init__(self) -> None:
        if not self.namespace or not isinstance(self.namespace, str):
            raise ValueError("Requirement namespace must be a non-empty string")
        if isinstance(self.filter, str):
            # InvalidFilterSyntax propagates to whoever built the requirement
            object.__setattr__(self, "filter", parseFilter(self.filter))
        elif not isinstance(self.filter, Filter):
            raise TypeError(f"Requirement filter must be a Filter or str, got {type(self.filter).__name__}")

    def isSatisfiedBy(self, capability: Capability) -> bool:
        return (
            capability.namespace == self.namespace
            and self.filter.matches(capability.attributes)
        )

    @property
    def packageNames(self) -> tuple[str, ...]:
        if self.namespace != PACKAGE:
            return ()
        return self.filter.valuesFor(PACKAGE)

    def __str__(self) -> str:
        flags = []
        if self.optional:
            flags.append("optional")
        if self.multiple:
            flags.append("multiple")
        suffix = f" [{', '.join(flags)}]" if flags else ""
        return f"{self.namespace}:{self.filter}{suffix}"
