# packrepo/resolver/resolver.py
from __future__ import annotations

import logging
import threading
from collections import deque
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, overload

from packrepo.app.settings import config, configBool
from packrepo.core.errors import PackRepoError
from packrepo.core.ids import shortId
from packrepo.core.logging import restoreLogContext, setLogContext
from packrepo.core.tracing import getTracer
from packrepo.deploy.deployer import Deployer, DeploymentReport, DeployOption
from packrepo.model.capability import BUNDLE, PACKAGE, Requirement
from packrepo.model.resource import Resource
from packrepo.repository.repository import LOCAL_URI, Repository, buildLocalRepository
from packrepo.resolver.selector import CandidateSelector

if TYPE_CHECKING:
    from packrepo.deploy.installer import Installer

logger = logging.getLogger(__name__)

__all__ = [
    "Reason",
    "Wire",
    "ResolutionResult",
    "ResolutionError",
    "InterruptedResolution",
    "IllegalStateError",
    "Resolver",
]



# ------------------------------------------------------------------ #
# Errors
# ------------------------------------------------------------------ #

class ResolutionError(PackRepoError):
    """Base class for resolver errors. Unsatisfied requirements are not errors, see Reason."""



class InterruptedResolution(ResolutionError):
    """Raised by resolve() when the session was cancelled."""



class IllegalStateError(ResolutionError):
    """Raised by deploy() when there is no successful, current resolution."""



# ------------------------------------------------------------------ #
# Result types
# ------------------------------------------------------------------ #

@dataclass(frozen=True, slots=True)
class Reason:
    """
    Why something happened to a requirement.

    As an unsatisfied entry: `requirement` of `resource` had no provider.
    From getReason(x): `resource` pulled x in through `requirement`.
    `resource` is None for requirements added directly to the resolver.
    """
    requirement: Requirement
    resource: Resource | None

    def __str__(self) -> str:
        owner = str(self.resource) if self.resource is not None else "<root>"
        return f"{owner} -> {self.requirement}"



@dataclass(frozen=True, slots=True)
class Wire:
    """Satisfaction edge chosen during resolution: requirer's requirement is met by provider."""
    requirer: Resource | None
    requirement: Requirement
    provider: Resource



@dataclass(frozen=True, slots=True)
class ResolutionResult:
    """Deployment plan handed to the Deployer."""
    addedResources: tuple[Resource, ...]
    requiredResources: tuple[Resource, ...]
    optionalResources: tuple[Resource, ...]
    wires: tuple[Wire, ...]
    localRepository: Repository



class _SessionState(str, Enum):
    FRESH = "fresh"
    RESOLVED = "resolved"
    UNSATISFIED = "unsatisfied"
    INTERRUPTED = "interrupted"



# Parent of requirements added without an owning resource; never part of a closure
class _RootResource(Resource):
    def __init__(self, requirements: Iterable[Requirement]) -> None:
        super().__init__(None, id="<root>", requirements=requirements)



@dataclass(slots=True)
class _Tentative:
    """Closure grown for one optional candidate; committed only if complete."""
    resources: list[Resource] = field(default_factory=list)
    wires: list[Wire] = field(default_factory=list)
    reasons: list[tuple[Resource, Reason]] = field(default_factory=list)
    deferred: list[tuple[Resource, Requirement]] = field(default_factory=list)
    selected: dict[str, Resource] = field(default_factory=dict)



# ------------------------------------------------------------------ #
# Resolver
# ------------------------------------------------------------------ #

class Resolver:
    """
    One resolution session.

    Resources and requirements are added, resolve() computes the required and
    optional closures against the repository snapshot captured at creation plus
    the installed state (recomputed on every resolve()), and deploy() hands the
    successful result to the Deployer.
    """

    def __init__(
        self,
        repositories: Sequence[Repository] = (),
        *,
        installer: Installer | None = None,
        selector: CandidateSelector | None = None,
        deployer: Deployer | None = None,
    ) -> None:
        self._repositories: tuple[Repository, ...] = tuple(
            repo for repo in repositories if repo.uri != LOCAL_URI
        )
        self._installer = installer
        self._selector = selector or CandidateSelector()
        self._deployer = deployer
        self._cancelEvent = threading.Event()

        self._added: list[Resource] = []
        self._addedMandatory: list[frozenset[str]] = []
        self._addedRequirements: list[Requirement] = []
        self._rootMandatory: set[str] = set()

        self._state = _SessionState.FRESH
        self._resetSession()

    def _resetSession(self) -> None:
        self._localRepository = Repository(uri=LOCAL_URI, resources=(), lastModified=0.0, name="local")
        self._required: list[Resource] = []
        self._optional: list[Resource] = []
        self._unsatisfied: list[Reason] = []
        self._wires: list[Wire] = []
        self._reasons: dict[Resource, list[Reason]] = {}
        self._selected: dict[str, Resource] = {}
        self._deferred: list[tuple[Resource, Requirement]] = []
        self._mandatoryByResource: dict[Resource, frozenset[str]] = {}

    # ----- Building the request -----

    @overload
    def add(self, item: Resource, *, mandatoryPackages: Iterable[str] | None = None) -> None: ...
    @overload
    def add(self, item: Requirement, *, mandatoryPackages: Iterable[str] | None = None) -> None: ...

    def add(self, item, *, mandatoryPackages=None) -> None:
        """
        Add a root resource, or a bare requirement (see addRequirement).

        mandatoryPackages names packages whose optional package imports of this
        root are resolved as if they were mandatory.
        """
        if isinstance(item, Requirement):
            self.addRequirement(item, mandatoryPackages=mandatoryPackages)
            return
        if not isinstance(item, Resource):
            raise TypeError(f"Resolver.add() expects a Resource or Requirement, got {type(item).__name__}")
        self._added.append(item)
        self._addedMandatory.append(frozenset(mandatoryPackages or ()))
        self._state = _SessionState.FRESH

    def addRequirement(self, requirement: Requirement, *, mandatoryPackages: Iterable[str] | None = None) -> None:
        if not isinstance(requirement, Requirement):
            raise TypeError(f"Resolver.addRequirement() expects a Requirement, got {type(requirement).__name__}")
        self._addedRequirements.append(requirement)
        self._rootMandatory.update(mandatoryPackages or ())
        self._state = _SessionState.FRESH

    def cancel(self) -> None:
        """Ask a running (or the next) resolve() to stop with InterruptedResolution."""
        self._cancelEvent.set()

    # ----- Accessors -----

    def getAddedResources(self) -> list[Resource]:
        return list(self._added)

    def getAddedRequirements(self) -> list[Requirement]:
        return list(self._addedRequirements)

    def getRequiredResources(self) -> list[Resource]:
        return list(self._required)

    def getOptionalResources(self) -> list[Resource]:
        return list(self._optional)

    def getUnsatisfiedRequirements(self) -> list[Reason]:
        return list(self._unsatisfied)

    def getReason(self, resource: Resource) -> list[Reason]:
        return list(self._reasons.get(resource, ()))

    def getWires(self) -> list[Wire]:
        return list(self._wires)

    @property
    def localRepository(self) -> Repository:
        return self._localRepository

    @property
    def isResolved(self) -> bool:
        return self._state is _SessionState.RESOLVED

    # ----- Resolution -----

    def resolve(self, cancel: threading.Event | None = None) -> bool:
        """
        Compute the closures from scratch. Returns False when a mandatory
        requirement has no provider; getUnsatisfiedRequirements() says which.

        Raises InterruptedResolution when cancelled (resolver.cancel() or the
        given event), leaving the closures empty.
        """
        self._resetSession()
        self._state = _SessionState.FRESH
        self._checkEachStep = configBool("resolver.checkInterruptEachStep", True)

        previousCtx = setLogContext(resolveId=shortId("rsv_"))
        tracer = getTracer()
        span = tracer.startSpan(
            "resolver.resolve",
            attrs={
                "added": [str(res) for res in self._added],
                "requirements": [str(req) for req in self._addedRequirements],
                "repositories": [repo.uri for repo in self._repositories],
            },
            tags=["resolver"],
        )
        status, level = "error", "error"
        endAttrs: dict[str, object] = {}
        errorType: str | None = None
        errorMessage: str | None = None
        try:
            self._checkCancelled(cancel)
            if self._installer is not None:
                self._localRepository = buildLocalRepository(self._installer)
            self._resolveRequired(cancel)
            self._resolveOptional(cancel)
        except InterruptedResolution:
            self._cancelEvent.clear()
            self._resetSession()
            self._state = _SessionState.INTERRUPTED
            status, level = "cancelled", "warning"
            logger.info("Resolution interrupted")
            raise
        except Exception as err:
            self._resetSession()
            errorType, errorMessage = type(err).__name__, str(err)
            logger.error("Resolution failed: %s", err)
            raise
        else:
            ok = not self._unsatisfied
            self._state = _SessionState.RESOLVED if ok else _SessionState.UNSATISFIED
            status, level = ("ok" if ok else "unsatisfied"), "info"
            endAttrs = {
                "required": len(self._required),
                "optional": len(self._optional),
                "unsatisfied": [str(reason) for reason in self._unsatisfied],
            }
            if ok:
                logger.info(
                    "Resolved %d required and %d optional resource(s)",
                    len(self._required), len(self._optional),
                )
            else:
                for reason in self._unsatisfied:
                    logger.warning("Unsatisfied requirement: %s", reason)
            return ok
        finally:
            tracer.endSpan(
                span,
                status,
                level=level,
                tags=["resolver"],
                errorType=errorType,
                errorMessage=errorMessage,
                attrs=endAttrs,
            )
            restoreLogContext(previousCtx)

    def _checkCancelled(self, cancel: threading.Event | None) -> None:
        if self._cancelEvent.is_set() or (cancel is not None and cancel.is_set()):
            raise InterruptedResolution("Resolution was interrupted")

    def _checkStep(self, cancel: threading.Event | None) -> None:
        if self._checkEachStep:
            self._checkCancelled(cancel)

    def _isMandatory(self, requirement: Requirement, rootMandatory: frozenset[str]) -> bool:
        """Optional package import promoted to mandatory by configuration."""
        if requirement.namespace != PACKAGE:
            return False
        names = set(rootMandatory)
        names.update(config("resolver.mandatoryPackages", []) or [])
        if not names:
            return False
        if "*" in names:
            return True
        return any(name in names for name in requirement.packageNames)

    def _closure(self) -> list[Resource]:
        return self._required + self._optional

    def _candidatesFor(
        self,
        requirement: Requirement,
        selected: dict[str, Resource],
        extra: Iterable[Resource] = (),
    ) -> list[Resource]:
        found = self._selector.findProviders(
            requirement,
            self._repositories,
            self._localRepository,
            closure=[*self._closure(), *extra],
        )
        return self._selector.rankCandidates(
            found,
            localRepository=self._localRepository,
            selected=selected,
        )

    def _requirerOf(self, resource: Resource) -> Resource | None:
        return None if isinstance(resource, _RootResource) else resource

    def _select(self, resource: Resource) -> None:
        if resource.symbolicName:
            self._selected[resource.symbolicName] = resource

    def _mandatoryFor(self, resource: Resource) -> frozenset[str]:
        return self._mandatoryByResource.get(resource, frozenset())

    def _inherit(self, provider: Resource, mandatory: frozenset[str]) -> bool:
        """Merge a root tree's mandatory packages into `provider`; True if it grew."""
        current = self._mandatoryFor(provider)
        if mandatory <= current:
            return False
        self._mandatoryByResource[provider] = current | mandatory
        return True

    def _resolveRequired(self, cancel: threading.Event | None) -> None:
        queue: deque[Resource] = deque()
        for resource, mandatory in zip(self._added, self._addedMandatory):
            chosen = self._selected.get(resource.symbolicName) if resource.symbolicName else None
            if chosen is not None and chosen != resource:
                # One version per symbolic name, the first added root wins
                identity = Requirement(
                    BUNDLE,
                    f"(&(symbolicname={resource.symbolicName})(version={resource.version}))",
                )
                reason = Reason(identity, resource)
                self._unsatisfied.append(reason)
                logger.debug("'%s' conflicts with already selected '%s'", resource, chosen)
                continue
            self._inherit(resource, mandatory)
            if resource in self._required:
                continue
            self._required.append(resource)
            self._select(resource)
            queue.append(resource)

        root = _RootResource(self._addedRequirements)
        self._mandatoryByResource[root] = frozenset(self._rootMandatory)
        queue.append(root)

        self._drainRequired(queue, cancel)

    def _drainRequired(self, queue: deque[Resource], cancel: threading.Event | None) -> None:
        # Resources come back through the queue when they inherit new mandatory
        # packages, so only their still-optional requirements are looked at again
        seen: dict[Resource, frozenset[str]] = {}
        while queue:
            self._checkStep(cancel)
            resource = queue.popleft()
            mandatory = self._mandatoryFor(resource)
            previous = seen.get(resource)
            if previous is not None and mandatory <= previous:
                continue
            seen[resource] = mandatory
            for requirement in resource.requirements:
                if requirement.optional and not self._isMandatory(requirement, mandatory):
                    if (resource, requirement) not in self._deferred:
                        self._deferred.append((resource, requirement))
                    continue
                if previous is not None and (not requirement.optional or self._isMandatory(requirement, previous)):
                    # Already wired on the earlier visit; hand the larger set on
                    for wire in self._wires:
                        if wire.requirer is self._requirerOf(resource) and wire.requirement is requirement:
                            if not wire.provider.isLocal and self._inherit(wire.provider, mandatory):
                                queue.append(wire.provider)
                    continue
                if (resource, requirement) in self._deferred:
                    self._deferred.remove((resource, requirement))
                self._wireRequired(resource, requirement, mandatory, queue)

    def _wireRequired(
        self,
        resource: Resource,
        requirement: Requirement,
        mandatory: frozenset[str],
        queue: deque[Resource],
    ) -> None:
        ranked = self._candidatesFor(requirement, self._selected)
        requirer = self._requirerOf(resource)
        if not ranked:
            reason = Reason(requirement, requirer)
            self._unsatisfied.append(reason)
            logger.debug("No provider for %s", reason)
            return

        provider = ranked[0]
        self._wires.append(Wire(requirer, requirement, provider))
        if requirement.multiple:
            self._deferred.append((resource, requirement))
        if provider.isLocal:
            # Satisfied in place; installed resources are never redeployed
            self._select(provider)
            return
        self._reasons.setdefault(provider, []).append(Reason(requirement, requirer))
        grew = self._inherit(provider, mandatory)
        if provider not in self._required:
            logger.debug("Selected '%s' for %s", provider, requirement)
            self._required.append(provider)
            self._select(provider)
            queue.append(provider)
        elif grew:
            queue.append(provider)

    def _resolveOptional(self, cancel: threading.Event | None) -> None:
        # Items appended while iterating (optional requirements of committed
        # optional resources) are processed in the same pass
        index = 0
        while index < len(self._deferred):
            self._checkStep(cancel)
            resource, requirement = self._deferred[index]
            index += 1
            requirer = self._requirerOf(resource)
            mandatory = self._mandatoryFor(resource)
            ranked = self._candidatesFor(requirement, self._selected)

            if requirement.multiple:
                wired = {wire.provider for wire in self._wires if wire.requirer is requirer and wire.requirement is requirement}
                for candidate in ranked:
                    if candidate in wired:
                        continue
                    chosen = self._selected.get(candidate.symbolicName) if candidate.symbolicName else None
                    if chosen is not None and chosen != candidate:
                        continue
                    if self._tryCommit(requirer, requirement, candidate, mandatory, cancel):
                        wired.add(candidate)
                continue

            if any(wire.requirer is requirer and wire.requirement is requirement for wire in self._wires):
                continue
            for candidate in ranked:
                if self._tryCommit(requirer, requirement, candidate, mandatory, cancel):
                    break
            else:
                logger.debug("Optional requirement left unresolved: %s", Reason(requirement, requirer))

    def _tryCommit(
        self,
        requirer: Resource | None,
        requirement: Requirement,
        candidate: Resource,
        mandatory: frozenset[str],
        cancel: threading.Event | None,
    ) -> bool:
        tentative = self._tentativeClosure(requirer, requirement, candidate, mandatory, cancel)
        if tentative is None:
            logger.debug("Optional candidate '%s' for %s does not close", candidate, requirement)
            return False
        self._optional.extend(tentative.resources)
        for res in tentative.resources:
            self._inherit(res, mandatory)
        self._selected.update(tentative.selected)
        self._wires.extend(tentative.wires)
        for res, reason in tentative.reasons:
            self._reasons.setdefault(res, []).append(reason)
        self._deferred.extend(tentative.deferred)
        return True

    def _tentativeClosure(
        self,
        requirer: Resource | None,
        requirement: Requirement,
        candidate: Resource,
        mandatory: frozenset[str],
        cancel: threading.Event | None,
    ) -> _Tentative | None:
        """Everything `candidate` needs, or None if one of its mandatory requirements has no provider."""
        tentative = _Tentative()
        tentative.wires.append(Wire(requirer, requirement, candidate))
        if candidate.isLocal or candidate in self._closure():
            if not candidate.isLocal:
                tentative.reasons.append((candidate, Reason(requirement, requirer)))
            return tentative

        def select(res: Resource) -> None:
            if res.symbolicName:
                tentative.selected[res.symbolicName] = res

        tentative.resources.append(candidate)
        tentative.reasons.append((candidate, Reason(requirement, requirer)))
        select(candidate)

        pending: deque[Resource] = deque([candidate])
        while pending:
            self._checkStep(cancel)
            resource = pending.popleft()
            for req in resource.requirements:
                if req.optional and not self._isMandatory(req, mandatory):
                    tentative.deferred.append((resource, req))
                    continue
                ranked = self._candidatesFor(req, {**self._selected, **tentative.selected}, tentative.resources)
                if not ranked:
                    return None
                provider = ranked[0]
                tentative.wires.append(Wire(resource, req, provider))
                if req.multiple:
                    tentative.deferred.append((resource, req))
                if provider.isLocal:
                    select(provider)
                    continue
                tentative.reasons.append((provider, Reason(req, resource)))
                if provider in self._closure() or provider in tentative.resources:
                    continue
                tentative.resources.append(provider)
                select(provider)
                pending.append(provider)
        return tentative

    # ----- Result / deployment -----

    def result(self) -> ResolutionResult:
        if self._state is not _SessionState.RESOLVED:
            raise IllegalStateError(
                f"No successful resolution to use (state: {self._state.value}); call resolve() first"
            )
        return ResolutionResult(
            addedResources=tuple(self._added),
            requiredResources=tuple(self._required),
            optionalResources=tuple(self._optional),
            wires=tuple(self._wires),
            localRepository=self._localRepository,
        )

    def deploy(self, options: DeployOption | None = None) -> DeploymentReport:
        """
        Deploy the last successful resolution.

        Raises IllegalStateError unless resolve() returned True and nothing
        was added since.
        """
        plan = self.result()
        if options is None:
            options = DeployOption.START if configBool("deploy.startByDefault", False) else DeployOption.NONE
        deployer = self._deployer
        if deployer is None:
            if self._installer is None:
                raise IllegalStateError("Resolver has no installer to deploy with")
            deployer = Deployer(self._installer)
        return deployer.deploy(plan, options)
