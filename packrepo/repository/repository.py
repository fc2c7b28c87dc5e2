# packrepo/repository/repository.py
from __future__ import annotations

import time
from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from packrepo.model.capability import Requirement
from packrepo.model.filter import Filter, parseFilter
from packrepo.model.resource import LocalResource, Resource

if TYPE_CHECKING:
    from packrepo.deploy.installer import Installer

__all__ = [
    "LOCAL_URI",
    "Referral",
    "Repository",
    "buildLocalRepository",
]



LOCAL_URI = "local"



@dataclass(frozen=True, slots=True)
class Referral:
    """Another catalog named by this one. depth bounds how many more hops may be followed from it."""
    url: str
    depth: int = 1



@dataclass(frozen=True, eq=False)
class Repository:
    """
    Immutable snapshot of a catalog (or of the installed state when uri == "local").

    Resources keep their declaration order; that order is the final tie-break
    when candidates are otherwise equal.
    """
    uri: str
    resources: tuple[Resource, ...] = ()
    lastModified: float = field(default_factory=time.time)
    name: str | None = None
    referrals: tuple[Referral, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "resources", tuple(self.resources))
        object.__setattr__(self, "referrals", tuple(self.referrals))

    @property
    def isLocal(self) -> bool:
        return self.uri == LOCAL_URI

    def __iter__(self) -> Iterator[Resource]:
        return iter(self.resources)

    def __len__(self) -> int:
        return len(self.resources)

    def findProviders(self, requirement: Requirement) -> Iterator[Resource]:
        for resource in self.resources:
            if resource.providesFor(requirement):
                yield resource

    def discover(self, filter: Filter | str) -> Iterator[Resource]:
        flt = parseFilter(filter) if isinstance(filter, str) else filter
        for resource in self.resources:
            if flt.matches(resource.filterAttributes()):
                yield resource

    def findBySymbolicName(self, symbolicName: str) -> list[Resource]:
        return [res for res in self.resources if res.symbolicName == symbolicName]

    def __repr__(self) -> str:
        return f"Repository(uri={self.uri!r}, name={self.name!r}, resources={len(self.resources)})"



def buildLocalRepository(installer: Installer, *, extra: Iterable[LocalResource] = ()) -> Repository:
    """
    Build the "local" repository from what the installer reports right now.

    Never cached: every call reflects the current installed state.
    """
    resources: list[Resource] = [LocalResource(handle) for handle in installer.listInstalled()]
    resources.extend(extra)
    lastModified = max((res.lastModified for res in resources if isinstance(res, LocalResource)), default=0.0)
    return Repository(uri=LOCAL_URI, resources=tuple(resources), lastModified=lastModified, name="local")
