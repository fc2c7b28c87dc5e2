# packrepo/deploy/lifecycle.py
from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from packrepo.deploy.deployer import DeploymentEntry, DeploymentError, DeploymentReport

__all__ = [
    "DeployListener",
]



class DeployListener:
    """
    Optional hook interface for systems that want to observe deployments.

    Implementations may override any subset of methods. All methods have
    safe no-op defaults. Exceptions raised by listeners are logged and
    otherwise ignored by the Deployer.
    """

    def onDeployPlanned(self, report: DeploymentReport) -> None:
        """
        Called once the plan is partitioned and ordered, before the first
        installer call. Every entry is still PLANNED.
        """
        # Default: no-op
        return

    def onResourceInstalled(self, entry: DeploymentEntry) -> None:
        """
        Called after a resource was installed or updated (state INSTALLED or UPDATED).
        """
        # Default: no-op
        return

    def onResourceStarted(self, entry: DeploymentEntry) -> None:
        # Default: no-op
        return

    def onDeployFinished(self, report: DeploymentReport) -> None:
        # Default: no-op
        return

    def onDeployFailed(self, error: DeploymentError) -> None:
        """
        Called when the batch stopped on an installer error. Nothing is
        rolled back; error.report shows how far the deployment got.
        """
        # Default: no-op
        return
