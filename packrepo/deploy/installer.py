# packrepo/deploy/installer.py
from __future__ import annotations

from collections.abc import Mapping, Sequence
from enum import Enum
from typing import Any, Protocol, TYPE_CHECKING, runtime_checkable

from packrepo.core.errors import PackRepoError

if TYPE_CHECKING:
    from packrepo.model.capability import Capability, Requirement
    from packrepo.model.resource import Resource
    from packrepo.semver.semver import Version

__all__ = [
    "HandleState",
    "InstalledHandle",
    "Installer",
    "InstallerError",
    "InstallError",
    "UpdateError",
    "StartError",
    "StopError",
]



class HandleState(str, Enum):
    """State of an installed instance as reported by the installer."""
    INSTALLED = "installed"
    RESOLVED = "resolved"
    STARTING = "starting"
    ACTIVE = "active"
    STOPPING = "stopping"
    UNINSTALLED = "uninstalled"

    @property
    def isRunning(self) -> bool:
        return self in (HandleState.STARTING, HandleState.ACTIVE)



# ------------------------------------------------------------------ #
# Errors raised by installers
# ------------------------------------------------------------------ #

class InstallerError(PackRepoError):
    """Base class for failures reported by an Installer."""

    step = "unknown"

    def __init__(self, message: str, *, resource: Resource | None = None) -> None:
        super().__init__(message)
        self.resource = resource



class InstallError(InstallerError):
    step = "install"



class UpdateError(InstallerError):
    step = "update"



class StartError(InstallerError):
    step = "start"



class StopError(InstallerError):
    step = "stop"



# ------------------------------------------------------------------ #
# Boundary protocols
# ------------------------------------------------------------------ #

@runtime_checkable
class InstalledHandle(Protocol):
    """A live installed instance, as exposed by the installer."""
    handleId: str
    symbolicName: str | None
    version: Version | str | None
    location: str | None
    lastModified: float
    headers: Mapping[str, Any]
    capabilities: Sequence[Capability]
    requirements: Sequence[Requirement]

    @property
    def state(self) -> HandleState:
        ...



class Installer(Protocol):
    """
    Side-effecting collaborator that installs and activates resources.

    Implementations raise the matching InstallerError subclass on failure.
    The deployer never retries.
    """

    def listInstalled(self) -> Sequence[InstalledHandle]:
        ...

    def install(self, resource: Resource) -> InstalledHandle:
        ...

    def update(self, handle: InstalledHandle, resource: Resource) -> None:
        ...

    def start(self, handle: InstalledHandle) -> None:
        ...

    def stop(self, handle: InstalledHandle) -> None:
        ...
