# packrepo/model/resource.py
from __future__ import annotations

from collections.abc import Iterable, Mapping
from types import MappingProxyType
from typing import Any, TYPE_CHECKING

from packrepo.model.capability import BUNDLE, FRAGMENT, Capability, Requirement
from packrepo.semver.semver import Version, coerceVersion

if TYPE_CHECKING:
    from packrepo.deploy.installer import HandleState, InstalledHandle

__all__ = [
    "Resource",
    "LocalResource",
]



class Resource:
    """
    A named, versioned unit of deployment.

    Identity is (symbolicName, version): two instances with the same pair are
    equal and hash alike, whatever repository or catalog entry they came from.
    A resource without a symbolic name is only equal to itself.
    """

    isLocal = False

    def __init__(
        self,
        symbolicName: str | None,
        version: Version | str | None = None,
        *,
        id: str | None = None,
        presentationName: str | None = None,
        capabilities: Iterable[Capability] = (),
        requirements: Iterable[Requirement] = (),
        sourceUri: str | None = None,
        properties: Mapping[str, Any] | None = None,
    ) -> None:
        self.symbolicName: str | None = symbolicName.strip() if isinstance(symbolicName, str) else None
        self.version: Version = coerceVersion(version)
        self.id = id or (f"{self.symbolicName}/{self.version}" if self.symbolicName else None)
        self.presentationName = presentationName
        self.sourceUri = sourceUri
        self.properties: Mapping[str, Any] = MappingProxyType(dict(properties or {}))
        self.requirements: tuple[Requirement, ...] = tuple(requirements)

        caps = tuple(capabilities)
        if self.symbolicName and not any(cap.namespace == BUNDLE for cap in caps):
            bundleAttrs: dict[str, Any] = {
                "symbolicname": self.symbolicName,
                "version": self.version,
            }
            if presentationName:
                bundleAttrs["presentationname"] = presentationName
            caps = (Capability(BUNDLE, bundleAttrs),) + caps
        self.capabilities: tuple[Capability, ...] = caps

        self._identity = (self.symbolicName, self.version) if self.symbolicName else None

    # ----- Identity -----

    @property
    def identity(self) -> tuple[str, Version] | None:
        return self._identity

    def __eq__(self, other: object) -> bool:
        if self is other:
            return True
        if not isinstance(other, Resource):
            return NotImplemented
        if self._identity is None or other._identity is None:
            return False
        return self._identity == other._identity

    def __hash__(self) -> int:
        if self._identity is None:
            return id(self)
        return hash(self._identity)

    # ----- Queries -----

    @property
    def displayName(self) -> str:
        return self.presentationName or self.symbolicName or (self.id or "<anonymous>")

    @property
    def isFragment(self) -> bool:
        if self.properties.get("fragmenthost"):
            return True
        if any(cap.namespace == FRAGMENT for cap in self.capabilities):
            return True
        return any(req.extend for req in self.requirements)

    def providesFor(self, requirement: Requirement) -> bool:
        return any(requirement.isSatisfiedBy(cap) for cap in self.capabilities)

    def filterAttributes(self) -> dict[str, Any]:
        """Attribute view used by discovery filters such as (symbolicname=org.example*)."""
        attrs: dict[str, Any] = {str(key).lower(): value for key, value in self.properties.items()}
        attrs.update({
            "id": self.id,
            "symbolicname": self.symbolicName,
            "version": self.version,
            "presentationname": self.presentationName,
            "uri": self.sourceUri,
        })
        return attrs

    def __str__(self) -> str:
        return f"{self.symbolicName or self.displayName}@{self.version}"

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(symbolicName={self.symbolicName!r}, "
            f"version={str(self.version)!r}, id={self.id!r})"
        )



class LocalResource(Resource):
    """
    Resolver view of an installed resource.

    Identity, capabilities and requirements are captured from the handle once,
    here in the constructor, so equality never changes after creation.
    """

    isLocal = True

    def __init__(self, handle: InstalledHandle) -> None:
        headers = dict(handle.headers or {})
        super().__init__(
            handle.symbolicName,
            handle.version,
            id=f"local:{handle.handleId}",
            presentationName=headers.get("presentationname"),
            capabilities=handle.capabilities or (),
            requirements=handle.requirements or (),
            sourceUri=handle.location,
            properties=headers,
        )
        self.handle = handle
        self.lastModified: float = handle.lastModified

    @property
    def state(self) -> HandleState:
        return self.handle.state
