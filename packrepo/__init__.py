# packrepo/__init__.py
from __future__ import annotations

from packrepo.core.errors import PackRepoError
from packrepo.core.logging import configureLogging
from packrepo.deploy.deployer import (
    Deployer,
    DeploymentError,
    DeploymentReport,
    DeployOption,
    DeployState,
)
from packrepo.deploy.installer import (
    HandleState,
    InstalledHandle,
    Installer,
    InstallerError,
    InstallError,
    StartError,
    StopError,
    UpdateError,
)
from packrepo.deploy.lifecycle import DeployListener
from packrepo.model.capability import BUNDLE, EXTENDER, FRAGMENT, PACKAGE, SERVICE, Capability, Requirement
from packrepo.model.filter import Filter, InvalidFilterSyntax, parseFilter
from packrepo.model.resource import LocalResource, Resource
from packrepo.repository.admin import RepositoryAdmin
from packrepo.repository.catalog import CatalogParseError, CatalogReadError, RepositoryLoadError, loadCatalog
from packrepo.repository.repository import LOCAL_URI, Referral, Repository, buildLocalRepository
from packrepo.resolver.resolver import (
    IllegalStateError,
    InterruptedResolution,
    Reason,
    ResolutionError,
    ResolutionResult,
    Resolver,
    Wire,
)
from packrepo.resolver.selector import CandidateSelector
from packrepo.semver.semver import EMPTY_VERSION, Version, parseVersion, parseVersionRequirement

__all__ = [
    "PackRepoError",
    "configureLogging",
    # model
    "BUNDLE", "PACKAGE", "SERVICE", "EXTENDER", "FRAGMENT",
    "Capability", "Requirement", "Resource", "LocalResource",
    "Filter", "InvalidFilterSyntax", "parseFilter",
    "Version", "EMPTY_VERSION", "parseVersion", "parseVersionRequirement",
    # repositories
    "LOCAL_URI", "Referral", "Repository", "buildLocalRepository", "RepositoryAdmin",
    "loadCatalog", "RepositoryLoadError", "CatalogReadError", "CatalogParseError",
    # resolution
    "CandidateSelector", "Resolver", "Reason", "Wire", "ResolutionResult",
    "ResolutionError", "InterruptedResolution", "IllegalStateError",
    # deployment
    "Deployer", "DeployOption", "DeployState", "DeploymentReport", "DeploymentError",
    "DeployListener", "HandleState", "InstalledHandle", "Installer",
    "InstallerError", "InstallError", "UpdateError", "StartError", "StopError",
]
