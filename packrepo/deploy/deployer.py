# packrepo/deploy/deployer.py
from __future__ import annotations

import logging
import threading
from collections.abc import Iterable
from dataclasses import dataclass, field
from enum import Enum, Flag
from typing import TYPE_CHECKING, Any

from packrepo.core.errors import PackRepoError
from packrepo.core.ids import shortId
from packrepo.core.logging import restoreLogContext, setLogContext
from packrepo.core.tracing import getTracer
from packrepo.deploy.installer import InstalledHandle, Installer, InstallerError
from packrepo.deploy.lifecycle import DeployListener
from packrepo.model.resource import LocalResource, Resource
from packrepo.semver.semver import coerceVersion

if TYPE_CHECKING:
    from packrepo.resolver.resolver import ResolutionResult

logger = logging.getLogger(__name__)

__all__ = [
    "DeployOption",
    "DeployAction",
    "DeployState",
    "DeploymentEntry",
    "DeploymentReport",
    "DeploymentError",
    "Deployer",
    "DEPLOY_LOCK",
]



# One deploy at a time per process
DEPLOY_LOCK = threading.RLock()



class DeployOption(Flag):
    NONE = 0
    START = 1
    NO_OPTIONAL_RESOURCES = 2



class DeployAction(str, Enum):
    NOOP = "noop"
    INSTALL = "install"
    UPDATE = "update"



class DeployState(str, Enum):
    """
    Per-resource deployment state.

    PLANNED -> INSTALLED | UPDATED -> STARTED
    PLANNED -> UNCHANGED (-> STARTED)
    any     -> DEPLOY_FAILED (terminal)
    """
    PLANNED = "planned"
    INSTALLED = "installed"
    UPDATED = "updated"
    STARTED = "started"
    UNCHANGED = "unchanged"
    DEPLOY_FAILED = "deployFailed"



@dataclass(slots=True)
class DeploymentEntry:
    resource: Resource
    action: DeployAction
    state: DeployState = DeployState.PLANNED
    handle: InstalledHandle | None = None
    wasRunning: bool = False
    error: BaseException | None = None



@dataclass(slots=True)
class DeploymentReport:
    """Outcome of one deploy call, in execution order."""
    deployId: str
    options: DeployOption
    entries: list[DeploymentEntry] = field(default_factory=list)

    def entryFor(self, resource: Resource) -> DeploymentEntry | None:
        for entry in self.entries:
            if entry.resource == resource:
                return entry
        return None

    def stateOf(self, resource: Resource) -> DeployState | None:
        entry = self.entryFor(resource)
        return entry.state if entry is not None else None

    def resourcesIn(self, state: DeployState) -> list[Resource]:
        return [entry.resource for entry in self.entries if entry.state is state]

    @property
    def order(self) -> list[Resource]:
        return [entry.resource for entry in self.entries]

    @property
    def failed(self) -> bool:
        return any(entry.state is DeployState.DEPLOY_FAILED for entry in self.entries)



class DeploymentError(PackRepoError):
    """
    First installer failure of a deployment. The batch stopped there;
    `report` holds the states reached so far. Nothing was rolled back.
    """

    def __init__(self, message: str, *, resource: Resource, step: str, report: DeploymentReport) -> None:
        super().__init__(message)
        self.resource = resource
        self.step = step
        self.report = report



class Deployer:
    """
    Applies a successful resolution through an Installer.

    Resources are installed or updated providers-first following the
    resolution wires, then started in the same order. Fragments are
    never started.
    """

    def __init__(
        self,
        installer: Installer,
        *,
        lock: threading.RLock | None = None,
        listeners: Iterable[DeployListener] = (),
    ) -> None:
        self.installer = installer
        self._lock = lock if lock is not None else DEPLOY_LOCK
        self._listeners: list[DeployListener] = list(listeners)

    def addListener(self, listener: DeployListener) -> None:
        self._listeners.append(listener)

    def removeListener(self, listener: DeployListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    # ----- Planning -----

    def plan(self, plan: ResolutionResult, options: DeployOption = DeployOption.NONE) -> list[DeploymentEntry]:
        """Partition and order the resources of `plan` without touching the installer state."""
        resources: list[Resource] = []
        for resource in plan.requiredResources:
            if resource not in resources:
                resources.append(resource)
        if not (options & DeployOption.NO_OPTIONAL_RESOURCES):
            for resource in plan.optionalResources:
                if resource not in resources:
                    resources.append(resource)

        installedByName: dict[str, InstalledHandle] = {}
        for handle in self.installer.listInstalled():
            if handle.symbolicName and handle.symbolicName not in installedByName:
                installedByName[handle.symbolicName] = handle

        entries = [self._partition(resource, installedByName) for resource in self._order(resources, plan)]
        return entries

    def _partition(self, resource: Resource, installedByName: dict[str, InstalledHandle]) -> DeploymentEntry:
        if isinstance(resource, LocalResource):
            return DeploymentEntry(resource, DeployAction.NOOP, handle=resource.handle)

        handle = installedByName.get(resource.symbolicName) if resource.symbolicName else None
        if handle is None:
            return DeploymentEntry(resource, DeployAction.INSTALL)

        sameVersion = coerceVersion(handle.version) == resource.version
        sameSource = resource.sourceUri is None or handle.location == resource.sourceUri
        if sameVersion and sameSource:
            return DeploymentEntry(resource, DeployAction.NOOP, handle=handle)
        return DeploymentEntry(resource, DeployAction.UPDATE, handle=handle)

    def _order(self, resources: list[Resource], plan: ResolutionResult) -> list[Resource]:
        """Providers before requirers; a cycle is broken where closure order enters it."""
        members = set(resources)
        providersOf: dict[Resource, list[Resource]] = {res: [] for res in resources}
        for wire in plan.wires:
            requirer, provider = wire.requirer, wire.provider
            if requirer is None or requirer not in members or provider not in members:
                continue
            if provider == requirer:
                continue
            if provider not in providersOf[requirer]:
                providersOf[requirer].append(provider)

        ordered: list[Resource] = []
        done: set[Resource] = set()
        visiting: set[Resource] = set()

        def visit(res: Resource) -> None:
            if res in done or res in visiting:
                return
            visiting.add(res)
            for provider in providersOf[res]:
                visit(provider)
            visiting.discard(res)
            done.add(res)
            ordered.append(res)

        for res in resources:
            visit(res)
        return ordered

    # ----- Execution -----

    def deploy(self, plan: ResolutionResult, options: DeployOption = DeployOption.NONE) -> DeploymentReport:
        with self._lock:
            return self._deployLocked(plan, options)

    def _deployLocked(self, plan: ResolutionResult, options: DeployOption) -> DeploymentReport:
        start = bool(options & DeployOption.START)
        report = DeploymentReport(deployId=shortId("dep_"), options=options)
        previousCtx = setLogContext(deployId=report.deployId)

        tracer = getTracer()
        span = tracer.startSpan("deploy", attrs={"options": str(options), "deployId": report.deployId}, tags=["deploy"])

        current: DeploymentEntry | None = None
        step = "plan"
        try:
            report.entries = self.plan(plan, options)
            self._notify("onDeployPlanned", report)
            logger.info(
                "Deploying %d resource(s): %s",
                len(report.entries),
                ", ".join(f"{entry.resource}({entry.action.value})" for entry in report.entries),
            )

            for entry in report.entries:
                current = entry
                if entry.action is DeployAction.INSTALL:
                    step = "install"
                    entry.handle = self.installer.install(entry.resource)
                    entry.state = DeployState.INSTALLED
                    self._notify("onResourceInstalled", entry)
                elif entry.action is DeployAction.UPDATE:
                    entry.wasRunning = entry.handle.state.isRunning
                    if entry.wasRunning:
                        step = "stop"
                        self.installer.stop(entry.handle)
                    step = "update"
                    self.installer.update(entry.handle, entry.resource)
                    entry.state = DeployState.UPDATED
                    self._notify("onResourceInstalled", entry)
                else:
                    entry.state = DeployState.UNCHANGED

            for entry in report.entries:
                current = entry
                if not self._shouldStart(entry, start):
                    continue
                step = "start"
                self.installer.start(entry.handle)
                entry.state = DeployState.STARTED
                self._notify("onResourceStarted", entry)
        except Exception as err:
            failedStep = err.step if isinstance(err, InstallerError) and err.step != "unknown" else step
            failedResource = current.resource if current is not None else None
            if current is not None:
                current.state = DeployState.DEPLOY_FAILED
                current.error = err
            tracer.endSpan(
                span,
                "error",
                level="error",
                tags=["deploy"],
                errorType=type(err).__name__,
                errorMessage=str(err),
                attrs={"step": failedStep, "resource": str(failedResource)},
            )
            logger.error("Deployment failed at %s of '%s': %s", failedStep, failedResource, err)
            restoreLogContext(previousCtx)
            if current is None:
                raise
            error = DeploymentError(
                f"Failed to {failedStep} '{current.resource}': {err}",
                resource=current.resource,
                step=failedStep,
                report=report,
            )
            self._notify("onDeployFailed", error)
            raise error from err

        tracer.endSpan(
            span,
            "ok",
            tags=["deploy"],
            attrs={
                "installed": [str(res) for res in report.resourcesIn(DeployState.INSTALLED)],
                "updated": [str(res) for res in report.resourcesIn(DeployState.UPDATED)],
                "started": [str(res) for res in report.resourcesIn(DeployState.STARTED)],
            },
        )
        self._notify("onDeployFinished", report)
        restoreLogContext(previousCtx)
        return report

    def _shouldStart(self, entry: DeploymentEntry, start: bool) -> bool:
        if entry.resource.isFragment or entry.handle is None:
            return False
        if entry.action is DeployAction.UPDATE:
            return start or entry.wasRunning
        if entry.action is DeployAction.INSTALL:
            return start
        return start and not entry.handle.state.isRunning

    def _notify(self, method: str, payload: Any) -> None:
        for listener in list(self._listeners):
            try:
                getattr(listener, method)(payload)
            except Exception:
                logger.exception("Deploy listener %r failed in %s", listener, method)
