# packrepo/repository/catalog.py
from __future__ import annotations

import json
import logging
import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any
from urllib.parse import unquote, urlparse

import json5
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from packrepo.core.errors import PackRepoError
from packrepo.core.redaction import redactUri
from packrepo.model.capability import Capability, Requirement
from packrepo.model.filter import InvalidFilterSyntax
from packrepo.model.resource import Resource
from packrepo.repository.repository import Referral, Repository
from packrepo.semver.semver import parseVersion

logger = logging.getLogger(__name__)

__all__ = [
    "RepositoryLoadError",
    "CatalogReadError",
    "CatalogParseError",
    "CapabilityModel",
    "RequirementModel",
    "ResourceModel",
    "ReferralModel",
    "CatalogModel",
    "catalogPath",
    "loadCatalog",
    "parseCatalog",
    "resolveReferral",
]



# ------------------------------------------------------------------ #
# Errors
# ------------------------------------------------------------------ #

class RepositoryLoadError(PackRepoError):
    """A repository catalog could not be loaded."""

    def __init__(self, message: str, *, uri: str | None = None) -> None:
        super().__init__(message)
        self.uri = uri



class CatalogReadError(RepositoryLoadError):
    """The catalog could not be read (missing file, permissions, unsupported scheme)."""



class CatalogParseError(RepositoryLoadError):
    """The catalog was read but is not valid JSON/JSON5 or does not match the catalog model."""



# ------------------------------------------------------------------ #
# Catalog models
# ------------------------------------------------------------------ #

class CapabilityModel(BaseModel):
    model_config = ConfigDict(extra="forbid")

    namespace: str = Field(min_length=1)
    attributes: dict[str, Any] = Field(default_factory=dict)



class RequirementModel(BaseModel):
    model_config = ConfigDict(extra="forbid")

    namespace: str = Field(min_length=1)
    filter: str = Field(min_length=1)
    optional: bool = False
    multiple: bool = False
    extend: bool = False
    comment: str | None = None



class ResourceModel(BaseModel):
    model_config = ConfigDict(extra="forbid")

    id: str | None = None
    symbolicName: str = Field(min_length=1)
    version: str = "0.0.0"
    presentationName: str | None = None
    uri: str | None = None
    properties: dict[str, Any] = Field(default_factory=dict)
    capabilities: list[CapabilityModel] = Field(default_factory=list)
    requirements: list[RequirementModel] = Field(default_factory=list)

    @field_validator("version", mode="before")
    @classmethod
    def _versionAsString(cls, value: Any) -> Any:
        # json5 reads 1.0 as a float
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return str(value)
        return value

    @field_validator("version")
    @classmethod
    def _versionParses(cls, value: str) -> str:
        parseVersion(value)
        return value



class ReferralModel(BaseModel):
    model_config = ConfigDict(extra="forbid")

    url: str = Field(min_length=1)
    depth: int = Field(1, ge=0)



class CatalogModel(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str | None = None
    lastModified: float | None = None
    resources: list[ResourceModel] = Field(default_factory=list)
    referrals: list[ReferralModel] = Field(default_factory=list)



# ------------------------------------------------------------------ #
# Loading
# ------------------------------------------------------------------ #

def catalogPath(uri: str) -> Path:
    """
    Local file path of a catalog URI. Only file:// URIs and plain paths are
    supported; anything else raises CatalogReadError.
    """
    parsed = urlparse(uri)
    if parsed.scheme == "file":
        return Path(unquote(parsed.path))
    # Windows drive letters parse as a one-letter scheme
    if parsed.scheme and len(parsed.scheme) > 1:
        raise CatalogReadError(f"Unsupported catalog URI scheme '{parsed.scheme}'", uri=uri)
    return Path(os.path.expanduser(uri))



def resolveReferral(baseUri: str, url: str) -> str:
    """
    URI of a referral as written in the catalog at `baseUri`.

    Relative plain paths are taken against the referring catalog's directory;
    file:// URIs and absolute paths are returned unchanged.
    """
    parsed = urlparse(url)
    if parsed.scheme and len(parsed.scheme) > 1:
        return url
    path = Path(os.path.expanduser(url))
    if path.is_absolute():
        return url
    return str(catalogPath(baseUri).parent / path)



def _toResource(model: ResourceModel, uri: str) -> Resource:
    try:
        capabilities = [Capability(cap.namespace, cap.attributes) for cap in model.capabilities]
        requirements = [
            Requirement(
                req.namespace,
                req.filter,
                optional=req.optional,
                multiple=req.multiple,
                extend=req.extend,
                comment=req.comment,
            )
            for req in model.requirements
        ]
    except (InvalidFilterSyntax, ValueError) as err:
        raise CatalogParseError(
            f"Invalid resource '{model.symbolicName}' in catalog '{redactUri(uri)}': {err}",
            uri=uri,
        ) from err

    return Resource(
        model.symbolicName,
        model.version,
        id=model.id,
        presentationName=model.presentationName,
        capabilities=capabilities,
        requirements=requirements,
        sourceUri=model.uri,
        properties=model.properties,
    )



def parseCatalog(raw: Mapping[str, Any], *, uri: str, lastModified: float | None = None) -> Repository:
    """Validate an already-decoded catalog object and build the repository snapshot."""
    try:
        model = CatalogModel.model_validate(raw)
    except ValidationError as err:
        raise CatalogParseError(f"Catalog '{redactUri(uri)}' is invalid: {err}", uri=uri) from err

    resources = tuple(_toResource(resModel, uri) for resModel in model.resources)
    stamp = model.lastModified if model.lastModified is not None else (lastModified or 0.0)
    referrals = tuple(Referral(ref.url, ref.depth) for ref in model.referrals)
    return Repository(uri=uri, resources=resources, lastModified=stamp, name=model.name, referrals=referrals)



def loadCatalog(uri: str) -> Repository:
    """
    Read a .json or .json5 catalog file and return its Repository snapshot.

    Raises CatalogReadError for I/O problems, CatalogParseError for syntax or
    model errors.
    """
    path = catalogPath(uri)
    try:
        text = path.read_text(encoding="utf-8")
        mtime = path.stat().st_mtime
    except OSError as err:
        raise CatalogReadError(f"Cannot read catalog '{redactUri(uri)}': {err}", uri=uri) from err

    try:
        if path.suffix == ".json":
            raw = json.loads(text)
        else:
            raw = json5.loads(text)
    except ValueError as err:
        raise CatalogParseError(f"Catalog '{redactUri(uri)}' is not valid JSON: {err}", uri=uri) from err

    if raw is None or not isinstance(raw, dict):
        raise CatalogParseError(f"Catalog '{redactUri(uri)}' is not a JSON object", uri=uri)

    repository = parseCatalog(raw, uri=uri, lastModified=mtime)
    logger.debug("Loaded catalog '%s' with %d resource(s)", redactUri(uri), len(repository))
    return repository
