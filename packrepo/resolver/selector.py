# packrepo/resolver/selector.py
from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping, Sequence

from packrepo.model.capability import Requirement
from packrepo.model.resource import Resource
from packrepo.repository.repository import Repository

logger = logging.getLogger(__name__)

__all__ = [
    "CandidateSelector",
]



class CandidateSelector:
    """
    Finds and ranks providers for a requirement.

    findProviders() is a pure query over repository snapshots; rankCandidates()
    applies the selection policy:

      1. a candidate already selected in this session (same identity),
      2. candidates clashing with a selected symbolic name at another version are dropped,
      3. local candidates,
      4. highest version,
      5. declaration order (first declared wins).
    """

    def findProviders(
        self,
        requirement: Requirement,
        repositories: Sequence[Repository],
        localRepository: Repository | None = None,
        *,
        closure: Iterable[Resource] = (),
    ) -> list[Resource]:
        """
        Providers in query order: local repository, then `closure` (resources
        already chosen in the session), then remote repositories in their
        registration order. De-duplicated by identity, first occurrence kept.
        """
        found: list[Resource] = []
        seen: set[Resource] = set()

        def collect(resources: Iterable[Resource]) -> None:
            for resource in resources:
                if resource in seen:
                    continue
                seen.add(resource)
                found.append(resource)

        if localRepository is not None:
            collect(localRepository.findProviders(requirement))
        collect(res for res in closure if res.providesFor(requirement))
        for repository in repositories:
            if localRepository is not None and repository is localRepository:
                continue
            collect(repository.findProviders(requirement))
        return found

    def rankCandidates(
        self,
        candidates: Iterable[Resource],
        *,
        localRepository: Repository | None = None,
        selected: Mapping[str, Resource] | None = None,
    ) -> list[Resource]:
        selected = selected or {}
        localSet: set[Resource] = set(localRepository.resources) if localRepository is not None else set()

        admissible: list[Resource] = []
        for candidate in candidates:
            chosen = selected.get(candidate.symbolicName) if candidate.symbolicName else None
            if chosen is not None and chosen != candidate:
                logger.debug("Dropping '%s': '%s' is already selected", candidate, chosen)
                continue
            admissible.append(candidate)

        def isSelected(res: Resource) -> bool:
            return res.symbolicName is not None and res.symbolicName in selected

        def isLocal(res: Resource) -> bool:
            return res.isLocal or res in localSet

        # Stable sorts: version first (reverse keeps equal versions in declaration order)
        ranked = sorted(admissible, key=lambda res: res.version, reverse=True)
        ranked.sort(key=lambda res: (not isSelected(res), not isLocal(res)))
        return ranked

    def selectBest(
        self,
        candidates: Iterable[Resource],
        *,
        localRepository: Repository | None = None,
        selected: Mapping[str, Resource] | None = None,
    ) -> Resource | None:
        ranked = self.rankCandidates(candidates, localRepository=localRepository, selected=selected)
        return ranked[0] if ranked else None
