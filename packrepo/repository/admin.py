# packrepo/repository/admin.py
from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Sequence

from packrepo.app.settings import config
from packrepo.core.redaction import redactUri
from packrepo.core.tracing import getTracer
from packrepo.deploy.deployer import Deployer
from packrepo.deploy.installer import Installer
from packrepo.model.capability import BUNDLE, Requirement
from packrepo.model.filter import Filter, parseFilter
from packrepo.model.resource import Resource
from packrepo.repository.catalog import RepositoryLoadError, loadCatalog, resolveReferral
from packrepo.repository.repository import LOCAL_URI, Repository, buildLocalRepository
from packrepo.resolver.resolver import Resolver
from packrepo.resolver.selector import CandidateSelector
from packrepo.semver.semver import parseVersionRequirement, requirementToFilter

logger = logging.getLogger(__name__)

__all__ = [
    "RepositoryAdmin",
]

CatalogLoader = Callable[[str], Repository]



class RepositoryAdmin:
    """
    Registry of remote repositories plus the entry points built on it:
    discovery, requirement helpers and resolver creation.

    The repository list is an immutable tuple replaced wholesale under a lock;
    readers (and resolvers created from it) keep whatever snapshot they saw.
    """

    def __init__(
        self,
        installer: Installer | None = None,
        *,
        loader: CatalogLoader | None = None,
        deployer: Deployer | None = None,
        selector: CandidateSelector | None = None,
    ) -> None:
        self.installer = installer
        self._loader: CatalogLoader = loader or loadCatalog
        self._deployer = deployer
        self._selector = selector or CandidateSelector()
        self._repositories: tuple[Repository, ...] = ()
        self._lock = threading.Lock()

    def initialize(self) -> list[Repository]:
        """Load every catalog listed in repositories.urls. Failures are logged and skipped."""
        loaded: list[Repository] = []
        for uri in config("repositories.urls", []) or []:
            try:
                loaded.append(self.addRepository(str(uri)))
            except Exception as err:
                logger.error("Failed to load repository '%s': %s", redactUri(str(uri)), err)
        return loaded

    # ----- Repository source -----

    def listRepositories(self) -> tuple[Repository, ...]:
        return self._repositories

    def getRepository(self, uri: str) -> Repository | None:
        for repository in self._repositories:
            if repository.uri == uri:
                return repository
        return None

    def addRepository(self, uri: str, *, hops: int | None = None) -> Repository:
        """
        Load the catalog at `uri` and register it. Re-adding a known URI
        reloads it in place, keeping its position.

        Referrals named by the catalog are registered too, each followed for at
        most min(referral depth, hops) further levels; `hops` defaults to the
        repositories.maxReferralDepth setting. A referral that fails to load is
        logged and skipped.

        Raises CatalogReadError / CatalogParseError (RepositoryLoadError) for
        `uri` itself.
        """
        repository = self._register(uri)
        if hops is None:
            hops = int(config("repositories.maxReferralDepth", 8))
        self._followReferrals(repository, hops, {uri})
        return repository

    def _register(self, uri: str) -> Repository:
        if uri == LOCAL_URI:
            raise ValueError(f"'{LOCAL_URI}' is reserved for the installed state")
        repository = self._loader(uri)
        with self._lock:
            current = list(self._repositories)
            for index, existing in enumerate(current):
                if existing.uri == uri:
                    current[index] = repository
                    break
            else:
                current.append(repository)
            self._repositories = tuple(current)

        logger.info("Added repository '%s' (%d resources)", redactUri(uri), len(repository))
        getTracer().traceEvent(
            "repository.added",
            {"uri": redactUri(uri), "resources": len(repository)},
            level="info",
            tags=["repository"],
        )
        return repository

    def _followReferrals(self, repository: Repository, hops: int, visited: set[str]) -> None:
        for referral in repository.referrals:
            budget = min(referral.depth, hops)
            if budget <= 0:
                continue
            try:
                uri = resolveReferral(repository.uri, referral.url)
            except RepositoryLoadError as err:
                logger.warning("Skipping referral '%s' of '%s': %s", redactUri(referral.url), redactUri(repository.uri), err)
                continue
            if uri in visited or uri == LOCAL_URI:
                continue
            visited.add(uri)
            try:
                referred = self._register(uri)
            except RepositoryLoadError as err:
                logger.warning("Skipping referral '%s' of '%s': %s", redactUri(uri), redactUri(repository.uri), err)
                continue
            self._followReferrals(referred, budget - 1, visited)

    def removeRepository(self, uri: str) -> bool:
        with self._lock:
            remaining = tuple(repo for repo in self._repositories if repo.uri != uri)
            removed = len(remaining) != len(self._repositories)
            self._repositories = remaining

        if removed:
            logger.info("Removed repository '%s'", redactUri(uri))
            getTracer().traceEvent("repository.removed", {"uri": redactUri(uri)}, level="info", tags=["repository"])
        return removed

    def refreshRepository(self, uri: str) -> Repository:
        """Reload a registered repository. KeyError when `uri` is not registered."""
        if self.getRepository(uri) is None:
            raise KeyError(f"Repository '{redactUri(uri)}' is not registered")
        return self.addRepository(uri)

    # ----- Discovery -----

    def localRepository(self) -> Repository:
        if self.installer is None:
            return Repository(uri=LOCAL_URI, resources=(), lastModified=0.0, name="local")
        return buildLocalRepository(self.installer)

    def discoverResources(self, query: str | Filter | Sequence[Requirement]) -> list[Resource]:
        """
        Resources of the registered repositories matching either a filter over
        resource attributes (symbolicname, version, presentationname, ...) or
        all of the given requirements. Registration order, duplicates dropped.
        """
        repositories = self._repositories
        found: list[Resource] = []
        seen: set[Resource] = set()

        if isinstance(query, (str, Filter)):
            flt = parseFilter(query) if isinstance(query, str) else query
            matches = (res for repo in repositories for res in repo.discover(flt))
        else:
            requirements = list(query)
            matches = (
                res for repo in repositories for res in repo
                if all(res.providesFor(req) for req in requirements)
            )

        for resource in matches:
            if resource not in seen:
                seen.add(resource)
                found.append(resource)
        return found

    # ----- Factories -----

    def requirement(self, namespace: str, filter: str | Filter) -> Requirement:
        return Requirement(namespace, filter)

    def bundleRequirement(self, symbolicName: str, versionRange: str | None = None) -> Requirement:
        """
        Requirement on a bundle by symbolic name, e.g.
        bundleRequirement("org.example.core", "[1.0,2.0)").
        """
        parts = [f"(symbolicname={symbolicName})"]
        requirement = parseVersionRequirement(versionRange)
        if requirement is not None:
            parts.append(requirementToFilter("version", requirement))
        text = parts[0] if len(parts) == 1 else "(&" + "".join(parts) + ")"
        return Requirement(BUNDLE, text)

    def resolver(self) -> Resolver:
        """Fresh resolver bound to the current repository snapshot."""
        return Resolver(
            self._repositories,
            installer=self.installer,
            selector=self._selector,
            deployer=self._deployer,
        )
